"""Outcome measures services protected by circuit breakers."""

from outcome_engine.services.backend import OutcomeMeasuresBackend
from outcome_engine.services.protected_service import OutcomeMeasuresServiceWithCircuitBreaker
from outcome_engine.services.stub_backend import StubOutcomeMeasuresBackend

__all__ = [
    "OutcomeMeasuresBackend",
    "OutcomeMeasuresServiceWithCircuitBreaker",
    "StubOutcomeMeasuresBackend",
]
