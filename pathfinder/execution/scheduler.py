"""
Viewport concurrency scheduler.

Runs every (scenario, viewport) unit of a run with bounded parallelism. Units
wait in a FIFO queue; a fixed pool of worker tasks pulls from it and hands
each finished result to a result queue, which ``run_all`` drains in
completion order.
"""

import asyncio
import time
import traceback
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional

from ..core.logging_config import get_logger
from ..streaming.emitter import ProgressEmitter
from .cancellation import CancellationToken
from .models import (
    ErrorObject,
    ExecutionProgress,
    Scenario,
    ScenarioExecutionResult,
    ScenarioStatus,
    ViewportConfig,
    compute_percentage,
    utc_now_iso,
)

DEFAULT_CONCURRENCY_LIMIT = 3


@dataclass(frozen=True)
class ExecutionUnit:
    """One scenario paired with one viewport."""

    scenario: Scenario
    viewport: ViewportConfig
    index: int

    @property
    def key(self) -> tuple:
        return (self.scenario.id, self.viewport.id)


UnitRunner = Callable[[ExecutionUnit], Awaitable[ScenarioExecutionResult]]


def build_units(
    scenarios: Iterable[Scenario], viewports: Iterable[ViewportConfig]
) -> List[ExecutionUnit]:
    """Scenario-major cross product of scenarios and enabled viewports."""
    enabled = [viewport for viewport in viewports if viewport.enabled]
    units = []
    for scenario in scenarios:
        for viewport in enabled:
            units.append(ExecutionUnit(scenario=scenario, viewport=viewport, index=len(units)))
    return units


class ViewportScheduler:
    """
    Per-run worker pool.

    Queue, in-flight counter and tallies live on the instance; create one
    scheduler per run.
    """

    def __init__(
        self,
        run_unit: UnitRunner,
        emitter: Optional[ProgressEmitter] = None,
        cancel_token: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ):
        self.run_unit = run_unit
        self.run_id = run_id or "-"
        self.emitter = emitter or ProgressEmitter(self.run_id)
        self.cancel_token = cancel_token or CancellationToken()
        self.logger = get_logger(__name__, run_id=self.run_id)

        self.total = 0
        self.completed = 0
        self.passed = 0
        self.failed = 0
        self.skipped = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._start_time: Optional[float] = None

    async def run_all(
        self,
        units: Iterable[ExecutionUnit],
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    ) -> AsyncIterator[ScenarioExecutionResult]:
        """
        Run every unit, yielding results as they complete.

        Exactly one result is yielded per unit. Completion order is not
        submission order.
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        units = list(units)
        self.total = len(units)
        self._start_time = time.time()
        if not units:
            return

        pending: asyncio.Queue = asyncio.Queue()
        for unit in units:
            pending.put_nowait(unit)
        finished: asyncio.Queue = asyncio.Queue()

        worker_count = min(concurrency_limit, len(units))
        self.logger.info(
            f"Scheduling {len(units)} units with {worker_count} workers",
            extra={"metadata": {"total": len(units), "concurrency_limit": concurrency_limit}},
        )
        workers = [
            asyncio.create_task(self._worker(pending, finished), name=f"unit-worker-{n}")
            for n in range(worker_count)
        ]

        try:
            for _ in range(len(units)):
                result = await finished.get()
                self._record(result)
                yield result
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self, pending: asyncio.Queue, finished: asyncio.Queue) -> None:
        while True:
            try:
                unit = pending.get_nowait()
            except asyncio.QueueEmpty:
                return

            if self.cancel_token.cancelled:
                await finished.put(self._skipped_result(unit))
                continue

            self.emitter.scenario_start(unit.scenario.name, unit.viewport.id, unit.index)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                result = await self.run_unit(unit)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(
                    f"Unit {unit.scenario.name} on {unit.viewport.id} raised: {e}",
                    extra={
                        "metadata": {
                            "scenario_id": unit.scenario.id,
                            "viewport": unit.viewport.id,
                        }
                    },
                )
                result = self._failed_result(unit, e)
            finally:
                self.in_flight -= 1

            self.emitter.scenario_complete(result)
            await finished.put(result)

    def _record(self, result: ScenarioExecutionResult) -> None:
        self.completed += 1
        if result.status == ScenarioStatus.PASS:
            self.passed += 1
        elif result.status == ScenarioStatus.FAIL:
            self.failed += 1
        else:
            self.skipped += 1
        self.emitter.progress(self.progress(result.scenario_name))

    def progress(self, current_scenario: Optional[str] = None) -> ExecutionProgress:
        """Snapshot of the running tallies."""
        elapsed = 0
        if self._start_time is not None:
            elapsed = int((time.time() - self._start_time) * 1000)
        return ExecutionProgress(
            current=self.completed,
            total=self.total,
            percentage=compute_percentage(self.completed, self.total),
            passed=self.passed,
            failed=self.failed,
            skipped=self.skipped,
            elapsed_time=elapsed,
            current_scenario=current_scenario,
        )

    def _failed_result(self, unit: ExecutionUnit, error: Exception) -> ScenarioExecutionResult:
        now = utc_now_iso()
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        return ScenarioExecutionResult(
            scenario_id=unit.scenario.id,
            scenario_name=unit.scenario.name,
            viewport=unit.viewport.id,
            viewport_size=unit.viewport.size,
            status=ScenarioStatus.FAIL,
            started_at=now,
            completed_at=now,
            errors=[
                ErrorObject(
                    message=message,
                    stack="".join(
                        traceback.format_exception(type(error), error, error.__traceback__)
                    ),
                )
            ],
        )

    def _skipped_result(self, unit: ExecutionUnit) -> ScenarioExecutionResult:
        now = utc_now_iso()
        return ScenarioExecutionResult(
            scenario_id=unit.scenario.id,
            scenario_name=unit.scenario.name,
            viewport=unit.viewport.id,
            viewport_size=unit.viewport.size,
            status=ScenarioStatus.SKIP,
            started_at=now,
            completed_at=now,
        )
