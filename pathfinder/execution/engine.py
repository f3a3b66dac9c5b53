"""
Execution engine.

Wires one run together: validates the request, resolves scenarios and
viewports, launches the shared browser, schedules every unit through the
retry wrapper and scenario runner, aggregates and persists the results, and
closes the event stream with exactly one ``terminal`` or ``error`` event.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from ..browser.driver import BrowserDriver, PlaywrightDriver
from ..core.config import Config
from ..core.exceptions import (
    OrchestrationError,
    PersistenceError,
    ValidationError,
)
from ..core.logging_config import get_logger, log_performance
from ..core.run_context import RunContext, RunStatus, generate_run_id
from ..persistence.source import SuiteSource
from ..persistence.store import InMemoryResultStore, ResultStore
from ..streaming.emitter import ProgressEmitter
from .aggregator import ResultAggregator
from .artifacts import ScreenshotStore
from .cancellation import CancellationToken
from .models import (
    DEFAULT_VIEWPORTS,
    ConsoleLog,
    RunRequest,
    Scenario,
    ScenarioExecutionResult,
    ViewportConfig,
)
from .retry import RetryPolicy, SleepFn
from .scenario_runner import ScenarioRunner
from .scheduler import ExecutionUnit, ViewportScheduler, build_units

DriverFactory = Callable[[Config], BrowserDriver]

RequestInput = Union[RunRequest, Dict[str, Any]]


@dataclass
class RunPlan:
    """A validated request resolved to concrete scenarios and viewports."""

    run_id: str
    target_url: str
    scenarios: List[Scenario]
    viewports: List[ViewportConfig]
    concurrency_limit: int
    max_retries: int
    screenshot_on_every_step: bool
    suite_id: Optional[str] = None

    @property
    def total_units(self) -> int:
        return len(self.scenarios) * len(self.viewports)

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "suiteId": self.suite_id,
            "targetUrl": self.target_url,
            "scenarios": [scenario.id for scenario in self.scenarios],
            "viewports": [viewport.id for viewport in self.viewports],
            "concurrencyLimit": self.concurrency_limit,
            "maxRetries": self.max_retries,
            "totalUnits": self.total_units,
        }


class ExecutionEngine:
    """
    Entry point for running scenario sets.

    The engine holds nothing beyond the runs currently executing: a run is
    registered in the run table while it executes and dropped when it ends.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        driver_factory: Optional[DriverFactory] = None,
        store: Optional[ResultStore] = None,
        source: Optional[SuiteSource] = None,
        sleep: Optional[SleepFn] = None,
    ):
        """
        Initialize the execution engine.

        Args:
            config: Runner configuration
            driver_factory: Builds the browser driver for a run
            store: Persistence collaborator for results
            source: Resolves suite ids to scenarios
            sleep: Backoff sleep used by the retry wrapper
        """
        self.config = config or Config()
        self.driver_factory = driver_factory or PlaywrightDriver.from_config
        self.store = store or InMemoryResultStore()
        self.source = source or SuiteSource(self.config.suites_dir)
        self.sleep = sleep
        self.logger = get_logger(__name__)

        self._runs: Dict[str, CancellationToken] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_runs(self) -> List[str]:
        return list(self._runs)

    def cancel(self, run_id: str, reason: str = "Cancelled by request") -> bool:
        """
        Request cancellation of a running run.

        Returns:
            False if no run with this id is executing
        """
        token = self._runs.get(run_id)
        if token is None:
            return False
        token.cancel(reason)
        self.logger.info(f"Cancellation requested for run {run_id}: {reason}")
        return True

    async def drain(self) -> None:
        """Wait for every background run started by ``stream``."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stream(self, request: RequestInput) -> AsyncIterator:
        """
        Start a run and yield its events.

        Closing the iterator early detaches the consumer; the run itself keeps
        going to completion and persists its results.
        """
        run_id, request = self.assign_run_id(request)
        emitter = ProgressEmitter(run_id)
        cancel_token = CancellationToken()

        task = asyncio.create_task(
            self.execute(request, emitter, cancel_token), name=f"run-{run_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            async for event in emitter.events():
                yield event
        finally:
            if not emitter.closed:
                emitter.detach()

    async def execute(
        self,
        request: RequestInput,
        emitter: Optional[ProgressEmitter] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RunContext:
        """
        Execute one run to completion.

        Every outcome, including an invalid request or a browser that cannot
        be launched, ends with exactly one closing event on ``emitter``.

        Returns:
            The run's context in its final state
        """
        run_id, request = self.assign_run_id(request)
        emitter = emitter or ProgressEmitter(run_id)
        cancel_token = cancel_token or CancellationToken()
        run_context = RunContext(run_id=run_id)
        logger = get_logger(__name__, run_id=run_id)

        if run_id in self._runs:
            error = OrchestrationError(
                f"Run {run_id} is already executing", run_id=run_id, stage="start"
            )
            self._abort(run_context, emitter, error, persist=False)
            return run_context

        self._runs[run_id] = cancel_token
        try:
            try:
                plan = self._plan(run_id, request)
            except ValidationError as e:
                self._abort(run_context, emitter, e, persist=False)
                return run_context

            run_context.metadata.update(plan.to_metadata())
            run_context.start()
            self._create_run_record(plan, emitter)

            try:
                results = await self._run_units(plan, emitter, cancel_token)
            except OrchestrationError as e:
                self._abort(run_context, emitter, e)
                return run_context

            self._finish(run_context, plan, results, emitter, cancel_token)
            return run_context
        except Exception as e:
            logger.error(f"Run {run_id} crashed: {e}", exc_info=True)
            self._abort(
                run_context,
                emitter,
                OrchestrationError(f"Run failed: {e}", run_id=run_id, stage="execute"),
            )
            return run_context
        finally:
            self._runs.pop(run_id, None)

    def assign_run_id(self, request: RequestInput) -> Tuple[str, RequestInput]:
        """Return the request's run id, stamping a fresh one when it has none."""
        if isinstance(request, RunRequest):
            if request.run_id:
                return request.run_id, request
            run_id = generate_run_id()
            return run_id, request.model_copy(update={"run_id": run_id})

        request = dict(request or {})
        run_id = request.get("runId") or request.get("run_id")
        if not run_id:
            run_id = generate_run_id()
            request["runId"] = run_id
        return str(run_id), request

    def _plan(self, run_id: str, request: RequestInput) -> RunPlan:
        """
        Validate a request and resolve it against the scenario source.

        Raises:
            ValidationError: If the request cannot produce at least one unit
        """
        if not isinstance(request, RunRequest):
            try:
                request = RunRequest.model_validate(request)
            except PydanticValidationError as e:
                violations = [
                    f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
                    for err in e.errors()
                ]
                raise ValidationError(
                    "Invalid run request: " + "; ".join(violations),
                    validation_type="request",
                    violations=violations,
                ) from e

        scenarios = list(request.scenarios)
        target_url = request.target_url
        if request.viewports:
            viewports = request.enabled_viewports
        else:
            viewports = [viewport for viewport in DEFAULT_VIEWPORTS if viewport.enabled]

        if request.suite_id:
            suite = self.source.load_suite(request.suite_id)
            scenarios = scenarios or list(suite.scenarios)
            target_url = target_url or suite.target_url
            if not request.viewports:
                viewports = [viewport for viewport in suite.viewports if viewport.enabled]

        violations = []
        if not scenarios:
            violations.append("no scenarios to run")
        if not viewports:
            violations.append("no enabled viewports")
        if not target_url:
            violations.append("no target URL")
        if violations:
            raise ValidationError(
                "Invalid run request: " + "; ".join(violations),
                validation_type="request",
                violations=violations,
            )

        return RunPlan(
            run_id=run_id,
            target_url=target_url,
            scenarios=scenarios,
            viewports=viewports,
            concurrency_limit=request.concurrency_limit or self.config.concurrency_limit,
            max_retries=request.max_retries or self.config.max_retries,
            screenshot_on_every_step=(
                request.screenshot_on_every_step or self.config.screenshot_on_every_step
            ),
            suite_id=request.suite_id,
        )

    async def _run_units(
        self,
        plan: RunPlan,
        emitter: ProgressEmitter,
        cancel_token: CancellationToken,
    ) -> List[ScenarioExecutionResult]:
        screenshots = ScreenshotStore(self.config.artifacts_dir, plan.run_id)
        driver = self.driver_factory(self.config)
        results: List[ScenarioExecutionResult] = []

        async with driver.session():
            runner = ScenarioRunner(
                driver,
                target_url=plan.target_url,
                screenshot_store=screenshots,
                screenshot_on_every_step=plan.screenshot_on_every_step,
                scenario_deadline_ms=self.config.scenario_deadline_ms,
                cancel_token=cancel_token,
                run_id=plan.run_id,
            )
            retry = RetryPolicy(
                max_retries=plan.max_retries,
                base=self.config.backoff_base,
                sleep=self.sleep,
                cancel_token=cancel_token,
            )

            async def run_unit(unit: ExecutionUnit) -> ScenarioExecutionResult:
                def forward(entry: ConsoleLog) -> None:
                    emitter.log(entry, unit.scenario.id, unit.viewport.id)

                return await retry.execute(
                    lambda attempt: runner.run(unit.scenario, unit.viewport, attempt, forward)
                )

            scheduler = ViewportScheduler(
                run_unit, emitter=emitter, cancel_token=cancel_token, run_id=plan.run_id
            )
            units = build_units(plan.scenarios, plan.viewports)
            async for result in scheduler.run_all(units, plan.concurrency_limit):
                results.append(result)

        screenshots.write_registry()
        return results

    def _create_run_record(self, plan: RunPlan, emitter: ProgressEmitter) -> None:
        try:
            self.store.create_run(plan.run_id, plan.to_metadata())
        except PersistenceError as e:
            self._report_persistence_error(e, emitter)

    def _finish(
        self,
        run_context: RunContext,
        plan: RunPlan,
        results: List[ScenarioExecutionResult],
        emitter: ProgressEmitter,
        cancel_token: CancellationToken,
    ) -> None:
        aggregator = ResultAggregator(plan.run_id, self.store)
        aggregator.extend(results)
        summary = aggregator.summary()

        persist_error = aggregator.persist()
        if persist_error is not None:
            self._report_persistence_error(persist_error, emitter, log=False)

        status = aggregator.outcome(cancelled=cancel_token.cancelled)
        run_context.transition(status, reason=cancel_token.reason)
        self._update_status(plan.run_id, status, emitter)

        log_performance(
            run_context.logger,
            "run",
            run_context.duration,
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
            skipped=summary.skipped,
            status=status.value,
        )
        emitter.terminal(
            success=status == RunStatus.COMPLETED,
            results=aggregator.results,
            summary=summary,
        )

    def _abort(
        self,
        run_context: RunContext,
        emitter: ProgressEmitter,
        error: Exception,
        persist: bool = True,
    ) -> None:
        message = getattr(error, "message", None) or str(error)
        run_context.logger.error(
            f"Run {run_context.run_id} aborted: {message}",
            extra={"metadata": error.to_dict() if hasattr(error, "to_dict") else {}},
        )
        run_context.fail(error)
        if persist:
            self._update_status(run_context.run_id, RunStatus.FAILED, emitter)
        emitter.error(message)

    def _update_status(
        self, run_id: str, status: RunStatus, emitter: ProgressEmitter
    ) -> None:
        try:
            self.store.update_run_status(run_id, status)
        except PersistenceError as e:
            self._report_persistence_error(e, emitter)

    def _report_persistence_error(
        self, error: PersistenceError, emitter: ProgressEmitter, log: bool = True
    ) -> None:
        if log:
            self.logger.error(error.message, extra={"metadata": error.to_dict()})
        emitter.log(ConsoleLog(type="error", message=f"[Persistence] {error.message}"))
