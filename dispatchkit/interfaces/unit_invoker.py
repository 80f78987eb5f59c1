"""UnitInvoker protocol for dispatchkit - boundary to the analysis units."""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from dispatchkit.services.orchestration.models import Query, UnitResult


@runtime_checkable
class UnitInvoker(Protocol):
    """Executes one analysis unit.

    The orchestration core treats every invocation as independent and free of
    side effects. Implementations should return within a bounded time and
    should not raise; the core still guards against both (timeouts and
    exceptions become error results).
    """

    async def invoke(
        self,
        unit_id: str,
        query: Query,
        constraints: Mapping[str, str],
        upstream_results: Mapping[str, UnitResult],
    ) -> UnitResult:
        """Run one unit.

        Args:
            unit_id: Registry id of the unit to run
            query: The classified query
            constraints: Explicit user constraints (field -> required value)
            upstream_results: Results of the unit's declared, completed
                dependencies, keyed by unit id

        Returns:
            UnitResult for ``unit_id``
        """
        ...
