"""Abstract outcome measures backend interface."""

from abc import ABC, abstractmethod
from typing import Any


class OutcomeMeasuresBackend(ABC):
    """Interface of the outcome measures service being protected.

    Implementations talk to the database, the AI analytics provider and
    the cache. Every method may raise; the circuit breaker wrapper turns
    failures into fallback results.
    """

    @abstractmethod
    async def get_dashboard_data(self, user_id: str, options: dict[str, Any]) -> Any:
        """
        Fetch the outcome measures dashboard for a clinician.

        Args:
            user_id: Clinician identifier
            options: Query options (date range, patient filters)

        Returns:
            Dashboard payload
        """
        ...

    @abstractmethod
    async def get_quality_indicators(self, user_id: str, filters: dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def get_trends(self, user_id: str, options: dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def get_benchmarks(self, user_id: str, criteria: dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def create_outcome_measure(self, user_id: str, measure_data: dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def update_outcome_measure(
        self, user_id: str, measure_id: str, update_data: dict[str, Any]
    ) -> Any:
        ...

    @abstractmethod
    async def delete_outcome_measure(self, user_id: str, measure_id: str) -> Any:
        ...

    @abstractmethod
    async def get_outcome_measure_by_id(self, user_id: str, measure_id: str) -> Any:
        ...

    @abstractmethod
    async def list_outcome_measures(self, user_id: str, options: dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def get_ai_analytics(self, user_id: str, analytics_config: dict[str, Any]) -> Any:
        """
        Run AI outcome prediction and pattern analysis.

        Args:
            user_id: Clinician identifier
            analytics_config: Model and scope settings

        Returns:
            Predictions, patterns and recommendations
        """
        ...

    @abstractmethod
    async def extract_from_oasis(self, user_id: str, oasis_data: dict[str, Any]) -> Any:
        """
        Extract quality indicators from an OASIS assessment.

        Args:
            user_id: Clinician identifier
            oasis_data: OASIS assessment fields

        Returns:
            Extracted outcome measures
        """
        ...

    @abstractmethod
    async def extract_from_soap(self, user_id: str, soap_data: dict[str, Any]) -> Any:
        ...
