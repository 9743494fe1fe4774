"""Failure classification by error message."""

from outcome_engine.breakers.models import FailureType

# Checked in order; first bucket with a matching marker wins.
_MESSAGE_MARKERS: tuple[tuple[FailureType, tuple[str, ...]], ...] = (
    (FailureType.TIMEOUT, ("TIMEOUT", "timeout")),
    (FailureType.CONNECTION, ("CONNECTION", "ECONNREFUSED")),
    (FailureType.DATABASE, ("DATABASE", "MongoDB")),
    (FailureType.VALIDATION, ("VALIDATION", "validation")),
    (FailureType.AI_SERVICE, ("AI", "analytics")),
)


def error_message(error: BaseException) -> str:
    """Return the message text of an exception ("" when it has none)."""
    return str(error) if error.args else ""


def classify_error(error: BaseException) -> FailureType:
    """Bucket an error into a :class:`FailureType`.

    Classification is informational: it is stored with the failure record
    and reported on failure events, but every failure counts the same
    toward the breaker threshold.

    Args:
        error: The exception raised by a protected operation

    Returns:
        The first matching failure type, UNKNOWN otherwise
    """
    message = error_message(error)

    if isinstance(error, TimeoutError):
        return FailureType.TIMEOUT

    for failure_type, markers in _MESSAGE_MARKERS:
        if failure_type is FailureType.CONNECTION and isinstance(error, ConnectionError):
            return failure_type
        if any(marker in message for marker in markers):
            return failure_type

    return FailureType.UNKNOWN
