"""
Step executor.

Performs one declarative flow step (navigate, click, fill, select, hover,
verify, wait, screenshot) against a Playwright page. Failures come back as
``StepError`` values; nothing raised by the page escapes ``execute``.
"""

import logging
import time
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.exceptions import StepError
from ..core.logging_config import log_browser_call
from .models import FlowStep, StepType

# (level, message) -> None
LogSink = Callable[[str, str], None]

# (page, step_name, description) -> stored screenshot path
CaptureFn = Callable[[Any, str, Optional[str]], Awaitable[Optional[str]]]

NAVIGATION_TIMEOUT_MS = 30000
VISIBLE_TIMEOUT_MS = 10000
CLICK_TIMEOUT_MS = 5000
WAIT_SELECTOR_TIMEOUT_MS = 30000
DEFAULT_SLEEP_MS = 3000


def _discard(level: str, message: str) -> None:
    pass


class StepExecutor:
    """
    Executes flow steps against a page handle.

    Each action writes a log line to ``log`` before it runs. The executor is
    stateless apart from its collaborators, so one instance serves every step
    of a unit.
    """

    def __init__(
        self,
        target_url: Optional[str] = None,
        log: Optional[LogSink] = None,
        capture: Optional[CaptureFn] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the step executor.

        Args:
            target_url: Fallback URL for navigate steps without one
            log: Sink for per-action log lines
            capture: Screenshot capture used by screenshot steps
            logger: Optional logger instance
        """
        self.target_url = target_url
        self.log = log or _discard
        self.capture = capture
        self.logger = logger or logging.getLogger(__name__)

        self._handlers: Dict[StepType, Callable[[FlowStep, Any], Awaitable[None]]] = {
            StepType.NAVIGATE: self._navigate,
            StepType.CLICK: self._click,
            StepType.FILL: self._fill,
            StepType.SELECT: self._select,
            StepType.HOVER: self._hover,
            StepType.VERIFY: self._verify,
            StepType.WAIT: self._wait,
            StepType.SCREENSHOT: self._screenshot,
        }

    async def execute(
        self, step: FlowStep, page: Any, index: Optional[int] = None
    ) -> Optional[StepError]:
        """
        Execute one step.

        Args:
            step: Step to perform
            page: Playwright page handle
            index: Position of the step in its scenario, for error context

        Returns:
            None on success, otherwise the StepError describing the failure
        """
        handler = self._handlers[step.type]
        start = time.time()

        try:
            await handler(step, page)
        except StepError as e:
            e.step_index = index
            e.step_type = step.type.value
            e.context.update({"step_index": index, "step_type": step.type.value})
            log_browser_call(self.logger, step.type.value, time.time() - start, False)
            return e
        except PlaywrightTimeoutError as e:
            log_browser_call(self.logger, step.type.value, time.time() - start, False)
            return StepError(
                self._describe_timeout(step, e),
                step_index=index,
                step_type=step.type.value,
                selector=step.config.selector,
                error_code="STEP_TIMEOUT",
                stack=traceback.format_exc(),
            )
        except Exception as e:
            log_browser_call(self.logger, step.type.value, time.time() - start, False)
            return StepError(
                str(e) or e.__class__.__name__,
                step_index=index,
                step_type=step.type.value,
                selector=step.config.selector,
                stack=traceback.format_exc(),
            )

        log_browser_call(
            self.logger,
            step.type.value,
            time.time() - start,
            True,
            selector=step.config.selector,
        )
        return None

    def _describe_timeout(self, step: FlowStep, error: Exception) -> str:
        first_line = str(error).splitlines()[0] if str(error) else "Timeout exceeded"
        if step.config.selector:
            return f"Element not found: {step.config.selector} ({first_line})"
        return first_line

    def _require_selector(self, step: FlowStep) -> str:
        selector = step.config.selector
        if not selector:
            raise StepError(
                f"{step.type.value} step requires a selector",
                error_code="INVALID_STEP",
            )
        return selector

    async def _visible_locator(self, step: FlowStep, page: Any) -> Any:
        """Locate the step's element, wait until visible and scroll to it."""
        locator = page.locator(self._require_selector(step))
        await locator.wait_for(state="visible", timeout=VISIBLE_TIMEOUT_MS)
        await locator.scroll_into_view_if_needed()
        return locator

    async def _navigate(self, step: FlowStep, page: Any) -> None:
        url = step.config.url or self.target_url
        if not url:
            raise StepError("navigate step requires a url", error_code="INVALID_STEP")
        self.log("info", f"[Playwright] Navigating to {url}")
        await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)

    async def _click(self, step: FlowStep, page: Any) -> None:
        self.log("info", f"[Playwright] Clicking element: {step.config.selector}")
        locator = await self._visible_locator(step, page)
        try:
            await locator.click(timeout=CLICK_TIMEOUT_MS)
        except Exception as e:
            if "intercept" not in str(e):
                raise
            self.log(
                "warn",
                f"[Playwright] Click intercepted on {step.config.selector}, forcing click",
            )
            await locator.click(force=True)

    async def _fill(self, step: FlowStep, page: Any) -> None:
        self.log("info", f"[Playwright] Filling field: {step.config.selector}")
        locator = await self._visible_locator(step, page)
        await locator.fill(step.config.value or "")

    async def _select(self, step: FlowStep, page: Any) -> None:
        self.log("info", f"[Playwright] Selecting option: {step.config.value}")
        locator = await self._visible_locator(step, page)
        await locator.select_option(step.config.value or "")

    async def _hover(self, step: FlowStep, page: Any) -> None:
        self.log("info", f"[Playwright] Hovering over: {step.config.selector}")
        locator = await self._visible_locator(step, page)
        await locator.hover()

    async def _verify(self, step: FlowStep, page: Any) -> None:
        selector = self._require_selector(step)
        self.log("info", f"[Playwright] Verifying element: {selector}")
        locator = page.locator(selector)
        await locator.wait_for(state="visible", timeout=VISIBLE_TIMEOUT_MS)

        expected = step.config.expected_result
        if expected:
            text = await locator.text_content() or ""
            if expected not in text:
                raise StepError(
                    f'Expected text "{expected}" not found in {selector} '
                    f'(actual: "{text.strip()[:200]}")',
                    selector=selector,
                    error_code="ASSERTION_FAILED",
                )

    async def _wait(self, step: FlowStep, page: Any) -> None:
        if step.config.selector:
            timeout = step.config.timeout or WAIT_SELECTOR_TIMEOUT_MS
            self.log("info", f"[Playwright] Waiting for element: {step.config.selector}")
            await page.locator(step.config.selector).wait_for(
                state="visible", timeout=timeout
            )
        else:
            duration = step.config.timeout or DEFAULT_SLEEP_MS
            self.log("info", f"[Playwright] Waiting {duration}ms")
            await page.wait_for_timeout(duration)

    async def _screenshot(self, step: FlowStep, page: Any) -> None:
        description = step.config.description or "screenshot"
        self.log("info", f"[Playwright] Taking screenshot: {description}")
        if self.capture is not None:
            await self.capture(page, f"screenshot-{step.id}", description)
