"""
Pytest configuration and shared fixtures for Pathfinder tests.

Provides fake Playwright handles (driver, context, page, locator) that record
every call, plus factories for scenarios, viewports and configuration.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pathfinder.browser.driver import BrowserDriver
from pathfinder.core.config import Config
from pathfinder.core.exceptions import OrchestrationError
from pathfinder.execution.models import FlowStep, Scenario, StepConfig, StepType, ViewportConfig


class FakeLocator:
    """Locator double; behaviour comes from its page's settings."""

    def __init__(self, page: "FakePage", selector: str):
        self.page = page
        self.selector = selector

    async def wait_for(self, state: str = "visible", timeout: Optional[int] = None):
        self.page.record("wait_for", self.selector, state=state, timeout=timeout)
        await asyncio.sleep(self.page.delay)
        if self.selector in self.page.missing:
            raise PlaywrightTimeoutError(
                f"Timeout {timeout}ms exceeded.\nwaiting for locator('{self.selector}')"
            )

    async def scroll_into_view_if_needed(self):
        self.page.record("scroll", self.selector)

    async def click(self, timeout: Optional[int] = None, force: bool = False):
        self.page.record("click", self.selector, force=force)
        if self.selector in self.page.intercepted and not force:
            raise Exception(
                f"Element is not clickable: <div class=\"overlay\"></div> intercepts pointer events"
            )

    async def fill(self, value: str):
        self.page.record("fill", self.selector, value=value)

    async def select_option(self, value: str):
        self.page.record("select_option", self.selector, value=value)

    async def hover(self):
        self.page.record("hover", self.selector)

    async def text_content(self):
        return self.page.texts.get(self.selector, "")


class FakePage:
    """Page double that records actions and lets tests fire listeners."""

    def __init__(
        self,
        missing: Optional[Set[str]] = None,
        intercepted: Optional[Set[str]] = None,
        texts: Optional[Dict[str, str]] = None,
        fail_navigation: bool = False,
        fail_screenshot: bool = False,
        delay: float = 0,
    ):
        self.missing = set(missing or ())
        self.intercepted = set(intercepted or ())
        self.texts = dict(texts or {})
        self.fail_navigation = fail_navigation
        self.fail_screenshot = fail_screenshot
        self.delay = delay
        self.actions: List[Dict[str, Any]] = []
        self.listeners: Dict[str, List[Callable]] = {}
        self.closed = False

    def record(self, action: str, target: Optional[str] = None, **details):
        self.actions.append({"action": action, "target": target, **details})

    def actions_named(self, action: str) -> List[Dict[str, Any]]:
        return [entry for entry in self.actions if entry["action"] == action]

    def on(self, event: str, handler: Callable):
        self.listeners.setdefault(event, []).append(handler)

    def fire(self, event: str, payload: Any):
        for handler in self.listeners.get(event, []):
            handler(payload)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[int] = None):
        self.record("goto", url, wait_until=wait_until, timeout=timeout)
        await asyncio.sleep(self.delay)
        if self.fail_navigation:
            raise Exception(f"net::ERR_CONNECTION_REFUSED at {url}")

    async def wait_for_timeout(self, timeout: int):
        self.record("wait_for_timeout", None, timeout=timeout)

    async def screenshot(self, full_page: bool = False, type: str = "png") -> bytes:
        self.record("screenshot", None, full_page=full_page)
        if self.fail_screenshot:
            raise Exception("Screenshot failed")
        return b"\x89PNG\r\n\x1a\nfake"

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, driver: "FakeDriver", viewport: ViewportConfig):
        self.driver = driver
        self.viewport = viewport
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = self.driver.page_factory(self.viewport)
        self.pages.append(page)
        self.driver.pages.append(page)
        return page

    async def close(self):
        self.closed = True
        self.driver.open_contexts -= 1


class FakeDriver(BrowserDriver):
    """
    Browser driver double.

    ``context_failures`` makes the first N ``new_context`` calls raise;
    ``launch_error`` makes ``launch`` fail the way a missing browser does.
    """

    def __init__(
        self,
        page_factory: Optional[Callable[[ViewportConfig], FakePage]] = None,
        context_failures: int = 0,
        launch_error: bool = False,
    ):
        super().__init__()
        self.page_factory = page_factory or (lambda viewport: FakePage())
        self.context_failures = context_failures
        self.launch_error = launch_error
        self.launched = 0
        self.closed = 0
        self.contexts: List[FakeContext] = []
        self.pages: List[FakePage] = []
        self.open_contexts = 0
        self.max_open_contexts = 0

    async def launch(self) -> None:
        if self.launch_error:
            raise OrchestrationError(
                "Failed to launch browser: executable doesn't exist", stage="browser_launch"
            )
        self.launched += 1

    async def close(self) -> None:
        self.closed += 1

    async def new_context(self, viewport: ViewportConfig) -> FakeContext:
        if self.context_failures > 0:
            self.context_failures -= 1
            raise RuntimeError("Target page, context or browser has been closed")
        context = FakeContext(self, viewport)
        self.contexts.append(context)
        self.open_contexts += 1
        self.max_open_contexts = max(self.max_open_contexts, self.open_contexts)
        return context


class ConsoleMessage:
    def __init__(self, type: str, text: str):
        self.type = type
        self.text = text


class FakeResponse:
    class _Request:
        def __init__(self, method: str):
            self.method = method

    def __init__(self, url: str, status: int, method: str = "GET"):
        self.url = url
        self.status = status
        self.request = self._Request(method)


def make_step(index: int, type: str, **config) -> FlowStep:
    return FlowStep(
        id=f"step-{index}",
        type=StepType(type),
        order=index,
        config=StepConfig(**config),
    )


def make_scenario(scenario_id: str, steps: Optional[List[FlowStep]] = None, name: Optional[str] = None) -> Scenario:
    return Scenario(id=scenario_id, name=name or f"Scenario {scenario_id}", steps=steps or [])


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Configuration writing everything under a temporary directory."""
    for name in (
        "CI",
        "PATHFINDER_HEADLESS",
        "PATHFINDER_LOG_LEVEL",
        "PATHFINDER_CONCURRENCY",
        "PATHFINDER_MAX_RETRIES",
        "PATHFINDER_SCENARIO_DEADLINE_MS",
    ):
        monkeypatch.delenv(name, raising=False)
    return Config(
        project_root=tmp_path,
        artifacts_dir=tmp_path / "artifacts",
        results_dir=tmp_path / "results",
        reports_dir=tmp_path / "reports",
        logs_dir=tmp_path / "logs",
        suites_dir=tmp_path / "suites",
    )


@pytest.fixture
def fake_page_cls():
    return FakePage


@pytest.fixture
def fake_driver_cls():
    return FakeDriver


@pytest.fixture
def console_message_cls():
    return ConsoleMessage


@pytest.fixture
def fake_response_cls():
    return FakeResponse


@pytest.fixture
def step():
    """Factory for flow steps: ``step(1, "click", selector="#go")``."""
    return make_step


@pytest.fixture
def scenario():
    """Factory for scenarios: ``scenario("s1", [steps])``."""
    return make_scenario


@pytest.fixture
def desktop():
    return ViewportConfig(id="desktop", name="Desktop HD", width=1920, height=1080)


@pytest.fixture
def mobile():
    return ViewportConfig(id="mobile_large", name="iPhone 12", width=390, height=844)


@pytest.fixture
def no_sleep():
    """Recording replacement for the retry wrapper's backoff sleep."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep
