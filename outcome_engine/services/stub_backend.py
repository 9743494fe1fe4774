"""Stub outcome measures backend with deterministic data and injectable faults."""

import asyncio
from datetime import datetime, timezone
from typing import Any

from .backend import OutcomeMeasuresBackend


class StubOutcomeMeasuresBackend(OutcomeMeasuresBackend):
    """Stub backend returning fixed outcome measures for demos and tests."""

    def __init__(
        self,
        failing_operations: set[str] | None = None,
        latency: float = 0.0,
        error_message: str = "DATABASE connection lost",
    ):
        """
        Initialize stub backend.

        Args:
            failing_operations: Method names (e.g. ``get_trends``) that raise
            latency: Seconds every call sleeps before answering
            error_message: Message of the injected RuntimeError
        """
        self.failing_operations = set(failing_operations or ())
        self.latency = latency
        self.error_message = error_message
        self.calls: dict[str, int] = {}
        self._measures: dict[str, dict[str, Any]] = {}
        self._next_id = 1

    async def _enter(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        if operation in self.failing_operations:
            raise RuntimeError(self.error_message)

    async def get_dashboard_data(self, user_id: str, options: dict[str, Any]) -> Any:
        await self._enter("get_dashboard_data")
        return {
            "success": True,
            "data": {
                "quality_indicators": (await self._indicators())["indicators"],
                "trends": {"functional_status": "improving"},
                "benchmarks": {"national_average": 72.5},
                "recent_assessments": list(self._measures.values())[-5:],
                "alerts": [],
            },
            "metadata": {
                "source": "stub",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "user_id": user_id,
            },
        }

    async def _indicators(self) -> dict[str, Any]:
        return {
            "success": True,
            "indicators": [
                {"id": "ambulation", "name": "Improvement in Ambulation", "value": 68.0, "trend": "improving"},
                {"id": "pain", "name": "Improvement in Pain", "value": 74.5, "trend": "stable"},
            ],
        }

    async def get_quality_indicators(self, user_id: str, filters: dict[str, Any]) -> Any:
        await self._enter("get_quality_indicators")
        return await self._indicators()

    async def get_trends(self, user_id: str, options: dict[str, Any]) -> Any:
        await self._enter("get_trends")
        return {
            "success": True,
            "trends": {"functional_status": [61.0, 64.5, 68.0]},
            "analysis": {"overall_trend": "improving", "confidence": 0.8, "data_points": 3},
        }

    async def get_benchmarks(self, user_id: str, criteria: dict[str, Any]) -> Any:
        await self._enter("get_benchmarks")
        return {
            "success": True,
            "benchmarks": {"ambulation": {"national": 70.1, "state": 69.4}},
            "comparisons": [],
        }

    async def create_outcome_measure(self, user_id: str, measure_data: dict[str, Any]) -> Any:
        await self._enter("create_outcome_measure")
        measure_id = f"om-{self._next_id}"
        self._next_id += 1
        measure = {"id": measure_id, "user_id": user_id, **measure_data}
        self._measures[measure_id] = measure
        return {"success": True, "data": measure}

    async def update_outcome_measure(
        self, user_id: str, measure_id: str, update_data: dict[str, Any]
    ) -> Any:
        await self._enter("update_outcome_measure")
        if measure_id not in self._measures:
            raise KeyError(f"Outcome measure {measure_id} not found")
        self._measures[measure_id].update(update_data)
        return {"success": True, "data": self._measures[measure_id]}

    async def delete_outcome_measure(self, user_id: str, measure_id: str) -> Any:
        await self._enter("delete_outcome_measure")
        return {"success": self._measures.pop(measure_id, None) is not None}

    async def get_outcome_measure_by_id(self, user_id: str, measure_id: str) -> Any:
        await self._enter("get_outcome_measure_by_id")
        measure = self._measures.get(measure_id)
        return {"success": measure is not None, "data": measure}

    async def list_outcome_measures(self, user_id: str, options: dict[str, Any]) -> Any:
        await self._enter("list_outcome_measures")
        measures = [m for m in self._measures.values() if m["user_id"] == user_id]
        return {"success": True, "data": measures, "total": len(measures)}

    async def get_ai_analytics(self, user_id: str, analytics_config: dict[str, Any]) -> Any:
        await self._enter("get_ai_analytics")
        return {
            "success": True,
            "analytics": {
                "patterns": {"readmission_risk": "low"},
                "predictions": [{"indicator": "ambulation", "expected": 70.2}],
                "recommendations": ["Continue current therapy plan"],
                "confidence": 0.72,
            },
        }

    async def extract_from_oasis(self, user_id: str, oasis_data: dict[str, Any]) -> Any:
        await self._enter("extract_from_oasis")
        return {"success": True, "source": "OASIS", "measures": sorted(oasis_data)}

    async def extract_from_soap(self, user_id: str, soap_data: dict[str, Any]) -> Any:
        await self._enter("extract_from_soap")
        return {"success": True, "source": "SOAP", "measures": sorted(soap_data)}
