"""
Scenario runner.

Runs one scenario under one viewport: opens an isolated browser context and
page, attaches console/network/page-error listeners, performs the mandatory
initial navigation, executes the steps in ``order`` with a continue-on-error
policy, and folds everything into a ``ScenarioExecutionResult``.
"""

import time
import traceback
from typing import Any, Callable, List, Optional

from ..core.exceptions import NavigationError, TransientExecutionError
from ..core.logging_config import get_logger
from .artifacts import ScreenshotStore
from .cancellation import CancellationToken
from .models import (
    ConsoleLog,
    ErrorObject,
    FlowStep,
    NetworkLog,
    Scenario,
    ScenarioExecutionResult,
    ScenarioStatus,
    StepResult,
    StepType,
    ViewportConfig,
    utc_now_iso,
)
from .step_executor import NAVIGATION_TIMEOUT_MS, StepExecutor

UnitLogSink = Callable[[ConsoleLog], None]

_CONSOLE_TYPES = {"warning": "warn", "trace": "debug", "assert": "error"}


class _UnitRecorder:
    """Accumulates everything observed while one unit runs."""

    def __init__(self, log_sink: Optional[UnitLogSink] = None):
        self.log_sink = log_sink
        self.console_logs: List[ConsoleLog] = []
        self.network_logs: List[NetworkLog] = []
        self.errors: List[ErrorObject] = []
        self.step_results: List[StepResult] = []
        self.screenshots: List[str] = []

    def log(self, level: str, message: str) -> None:
        entry = ConsoleLog(type=level, message=message)
        self.console_logs.append(entry)
        if self.log_sink is not None:
            self.log_sink(entry)

    def console(self, message: Any) -> None:
        kind = _CONSOLE_TYPES.get(message.type, message.type)
        self.console_logs.append(ConsoleLog(type=kind, message=message.text))

    def response(self, response: Any) -> None:
        self.network_logs.append(
            NetworkLog(
                url=response.url,
                method=response.request.method,
                status=response.status,
            )
        )

    def page_error(self, error: Any) -> None:
        self.errors.append(
            ErrorObject(
                message=getattr(error, "message", None) or str(error),
                stack=getattr(error, "stack", None),
            )
        )

    def error(self, message: str, stack: Optional[str] = None) -> None:
        self.errors.append(ErrorObject(message=message, stack=stack))

    def skip_remaining(self, steps: List[FlowStep], start: int, reason: str) -> None:
        for index in range(start, len(steps)):
            self.step_results.append(
                StepResult(
                    step_index=index,
                    step_id=steps[index].id,
                    step_type=steps[index].type,
                    status=ScenarioStatus.SKIP,
                    message=reason,
                )
            )


class ScenarioRunner:
    """
    Executes one (scenario, viewport) unit per ``run`` call.

    Step and navigation failures are converted to data on the returned
    result. Only a failure to obtain a browser context or page escapes, as
    ``TransientExecutionError``, so the retry wrapper can re-run the unit.
    """

    def __init__(
        self,
        driver,
        target_url: str,
        screenshot_store: Optional[ScreenshotStore] = None,
        screenshot_on_every_step: bool = False,
        scenario_deadline_ms: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ):
        """
        Initialize the scenario runner.

        Args:
            driver: Browser driver providing ``page_scope``
            target_url: URL every unit loads before its steps
            screenshot_store: Where captured screenshots are written
            screenshot_on_every_step: Capture after each step
            scenario_deadline_ms: Optional ceiling on a unit's step phase
            cancel_token: Token checked between steps
            run_id: Run identifier for log correlation
        """
        self.driver = driver
        self.target_url = target_url
        self.screenshot_store = screenshot_store
        self.screenshot_on_every_step = screenshot_on_every_step
        self.scenario_deadline_ms = scenario_deadline_ms
        self.cancel_token = cancel_token or CancellationToken()
        self.run_id = run_id
        self.logger = get_logger(__name__, run_id=run_id or "-")

    async def run(
        self,
        scenario: Scenario,
        viewport: ViewportConfig,
        attempt: int = 1,
        log_sink: Optional[UnitLogSink] = None,
    ) -> ScenarioExecutionResult:
        """
        Run one scenario under one viewport.

        Raises:
            TransientExecutionError: If the browser context or page cannot be opened
        """
        start = time.time()
        started_at = utc_now_iso()
        recorder = _UnitRecorder(log_sink)
        cancelled = False

        self.logger.info(
            f"Running scenario '{scenario.name}' on {viewport.id} (attempt {attempt})",
            extra={"metadata": {"scenario_id": scenario.id, "viewport": viewport.id}},
        )

        try:
            async with self.driver.page_scope(viewport) as page:
                self._attach_listeners(page, recorder)

                navigation_error = await self._initial_navigation(page, viewport, recorder)
                if navigation_error is None:
                    await self._capture_quietly(
                        page, recorder, scenario, viewport, "initial-load", "Initial load"
                    )
                    cancelled = await self._run_steps(scenario, viewport, page, recorder)
                    await self._capture_quietly(
                        page, recorder, scenario, viewport, "final-state", "Final state"
                    )
        except TransientExecutionError as e:
            e.scenario_id = scenario.id
            e.attempt = attempt
            e.context.update({"scenario_id": scenario.id, "attempt": attempt})
            raise
        except Exception as e:
            # Anything else stays inside this unit
            self.logger.error(
                f"Scenario '{scenario.name}' aborted on {viewport.id}: {e}",
                extra={"metadata": {"scenario_id": scenario.id, "viewport": viewport.id}},
            )
            recorder.error(str(e) or "Scenario execution failed", traceback.format_exc())

        failed = recorder.errors or any(
            r.status == ScenarioStatus.FAIL for r in recorder.step_results
        )
        # A failure recorded before the cancel outranks the skip
        if failed:
            status = ScenarioStatus.FAIL
        elif cancelled:
            status = ScenarioStatus.SKIP
        else:
            status = ScenarioStatus.PASS

        return ScenarioExecutionResult(
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            viewport=viewport.id,
            viewport_size=viewport.size,
            status=status,
            duration_ms=int((time.time() - start) * 1000),
            started_at=started_at,
            completed_at=utc_now_iso(),
            screenshots=recorder.screenshots,
            console_logs=recorder.console_logs,
            network_logs=recorder.network_logs,
            errors=recorder.errors,
            step_results=recorder.step_results,
            attempts=attempt,
        )

    def _attach_listeners(self, page: Any, recorder: _UnitRecorder) -> None:
        page.on("console", recorder.console)
        page.on("response", recorder.response)
        page.on("pageerror", recorder.page_error)

    async def _initial_navigation(
        self, page: Any, viewport: ViewportConfig, recorder: _UnitRecorder
    ) -> Optional[NavigationError]:
        recorder.log("info", f"[Playwright] Navigating to {self.target_url}")
        try:
            await page.goto(
                self.target_url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS
            )
        except Exception as e:
            error = NavigationError(
                f"Failed to navigate to {self.target_url}: {e}",
                url=self.target_url,
                viewport=viewport.id,
            )
            recorder.log("error", f"[Playwright] {error.message}")
            recorder.error(error.message, traceback.format_exc())
            self.logger.warning(error.message, extra={"metadata": error.to_dict()})
            return error
        return None

    async def _run_steps(
        self,
        scenario: Scenario,
        viewport: ViewportConfig,
        page: Any,
        recorder: _UnitRecorder,
    ) -> bool:
        """Execute the steps in order. Returns True when cancelled midway."""

        async def capture(page: Any, step_name: str, description: Optional[str]) -> Optional[str]:
            return await self._capture(page, recorder, scenario, viewport, step_name, description)

        executor = StepExecutor(
            target_url=self.target_url,
            log=recorder.log,
            capture=capture,
        )
        steps = scenario.ordered_steps()
        steps_start = time.time()

        for index, step in enumerate(steps):
            if self.cancel_token.cancelled:
                recorder.log("warn", "[Playwright] Run cancelled, skipping remaining steps")
                recorder.skip_remaining(steps, index, "Run cancelled")
                return True

            if self._deadline_exceeded(steps_start):
                message = (
                    f"Scenario deadline of {self.scenario_deadline_ms}ms exceeded "
                    f"before step {index + 1}"
                )
                recorder.log("error", f"[Playwright] {message}")
                recorder.error(message)
                recorder.skip_remaining(steps, index, "Scenario deadline exceeded")
                return False

            recorder.log(
                "info",
                f"[Playwright] Executing step {index + 1}/{len(steps)}: {step.type.value}",
            )
            step_start = time.time()
            error = await executor.execute(step, page, index)
            duration_ms = int((time.time() - step_start) * 1000)

            if error is None:
                recorder.step_results.append(
                    StepResult(
                        step_index=index,
                        step_id=step.id,
                        step_type=step.type,
                        status=ScenarioStatus.PASS,
                        duration_ms=duration_ms,
                        message="Step completed successfully",
                    )
                )
                recorder.log("info", f"[Playwright] Step {index + 1} succeeded")
                if self.screenshot_on_every_step and step.type != StepType.SCREENSHOT:
                    await self._capture_quietly(
                        page,
                        recorder,
                        scenario,
                        viewport,
                        f"step-{index + 1}-{step.type.value}",
                        step.label,
                    )
                continue

            recorder.log("error", f"[Playwright] Step {index + 1} failed: {error.message}")
            recorder.step_results.append(
                StepResult(
                    step_index=index,
                    step_id=step.id,
                    step_type=step.type,
                    status=ScenarioStatus.FAIL,
                    duration_ms=duration_ms,
                    message=error.message,
                    error=error.stack,
                )
            )
            recorder.error(
                f"Step {index + 1} ({step.type.value}) failed: {error.message}",
                error.stack,
            )
            await self._capture_quietly(
                page, recorder, scenario, viewport, f"error-step-{index + 1}", "Error state"
            )

        return False

    def _deadline_exceeded(self, steps_start: float) -> bool:
        if not self.scenario_deadline_ms:
            return False
        return (time.time() - steps_start) * 1000 > self.scenario_deadline_ms

    async def _capture(
        self,
        page: Any,
        recorder: _UnitRecorder,
        scenario: Scenario,
        viewport: ViewportConfig,
        step_name: str,
        description: Optional[str],
    ) -> Optional[str]:
        image = await page.screenshot(full_page=True, type="png")
        if self.screenshot_store is None:
            return None
        path = self.screenshot_store.save(
            image, scenario.name, step_name, viewport.id, description
        )
        if path:
            recorder.screenshots.append(path)
        return path

    async def _capture_quietly(
        self,
        page: Any,
        recorder: _UnitRecorder,
        scenario: Scenario,
        viewport: ViewportConfig,
        step_name: str,
        description: Optional[str],
    ) -> Optional[str]:
        try:
            return await self._capture(page, recorder, scenario, viewport, step_name, description)
        except Exception as e:
            self.logger.warning(
                f"Failed to capture {step_name} screenshot: {e}",
                extra={"metadata": {"scenario_id": scenario.id, "viewport": viewport.id}},
            )
            return None
