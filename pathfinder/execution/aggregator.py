"""
Result aggregation for a run.

Collects every unit's terminal result, computes the pass/fail/skip tallies
and the run outcome, and hands the result list to the persistence store.
"""

from typing import Dict, Iterable, List, Optional

from ..core.exceptions import PersistenceError
from ..core.logging_config import get_logger
from ..core.run_context import RunStatus
from .models import RunSummary, ScenarioExecutionResult, ScenarioStatus


class ResultAggregator:
    """Accumulates the results of one run."""

    def __init__(self, run_id: str, store=None):
        """
        Args:
            run_id: Run the results belong to
            store: Persistence store receiving the results, if any
        """
        self.run_id = run_id
        self.store = store
        self.logger = get_logger(__name__, run_id=run_id)
        self._results: List[ScenarioExecutionResult] = []
        self._keys = set()

    def add(self, result: ScenarioExecutionResult) -> None:
        """Record one unit result; a unit may only report once."""
        if result.unit_key in self._keys:
            raise ValueError(
                f"Duplicate result for scenario {result.scenario_id} on {result.viewport}"
            )
        self._keys.add(result.unit_key)
        self._results.append(result)

    def extend(self, results: Iterable[ScenarioExecutionResult]) -> None:
        for result in results:
            self.add(result)

    @property
    def results(self) -> List[ScenarioExecutionResult]:
        return list(self._results)

    def summary(self) -> RunSummary:
        counts: Dict[ScenarioStatus, int] = {status: 0 for status in ScenarioStatus}
        for result in self._results:
            counts[result.status] += 1
        return RunSummary(
            total=len(self._results),
            passed=counts[ScenarioStatus.PASS],
            failed=counts[ScenarioStatus.FAIL],
            skipped=counts[ScenarioStatus.SKIP],
        )

    def outcome(self, cancelled: bool = False) -> RunStatus:
        """Cancelled if requested, else Failed when any unit failed."""
        if cancelled:
            return RunStatus.CANCELLED
        if self.summary().failed > 0:
            return RunStatus.FAILED
        return RunStatus.COMPLETED

    def persist(self) -> Optional[PersistenceError]:
        """
        Hand the results to the store.

        Returns:
            None on success, otherwise the PersistenceError that was logged
        """
        if self.store is None:
            return None
        try:
            self.store.save_results(self.run_id, self.results)
        except PersistenceError as e:
            self.logger.error(
                f"Failed to persist results: {e.message}",
                extra={"metadata": e.to_dict()},
            )
            return e
        except OSError as e:
            error = PersistenceError(
                f"Failed to persist results: {e}",
                run_id=self.run_id,
                operation="save_results",
            )
            self.logger.error(error.message, extra={"metadata": error.to_dict()})
            return error

        self.logger.info(f"Persisted {len(self._results)} results")
        return None
