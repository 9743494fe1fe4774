"""Error taxonomy for protected operations."""

# Fallback reasons that are not derived from an exception message
CIRCUIT_OPEN = "CIRCUIT_OPEN"
OPERATION_TIMEOUT = "OPERATION_TIMEOUT"
OPERATION_FAILED = "OPERATION_FAILED"
OPERATION_CANCELLED = "OPERATION_CANCELLED"


class OperationTimeoutError(TimeoutError):
    """Raised internally when an operation exceeds the execution timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(OPERATION_TIMEOUT)
        self.timeout = timeout


class OperationCancelledError(RuntimeError):
    """The operation cancelled itself while its caller was still waiting."""

    def __init__(self) -> None:
        super().__init__(OPERATION_CANCELLED)


class FallbackStrategyError(RuntimeError):
    """A registered fallback strategy raised instead of returning a result.

    Strategies must not throw, so this is treated as a configuration error
    and propagated to the caller of ``execute``.
    """

    def __init__(self, operation_type: str, reason: str) -> None:
        super().__init__(
            f"Fallback strategy for '{operation_type}' failed (reason: {reason})"
        )
        self.operation_type = operation_type
        self.reason = reason
