"""
Browser automation driver.

Wraps the Playwright async API behind a small interface the execution engine
consumes: launch one shared browser per run, open one isolated context and
page per unit, and release every handle on every exit path.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, List, Optional

from ..core.config import Config, DEFAULT_USER_AGENT
from ..core.exceptions import OrchestrationError, TransientExecutionError
from ..core.logging_config import log_browser_call
from ..execution.models import DeviceClass, ViewportConfig


class BrowserMode(Enum):
    """Browser execution mode."""

    HEADED = "headed"
    HEADLESS = "headless"


class BrowserDriver(ABC):
    """
    Browser automation capability used by the engine.

    Subclasses provide ``launch``, ``close`` and ``new_context``; the scoped
    helpers ``session`` and ``page_scope`` guarantee release of the engine,
    context and page handles they hand out.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    async def launch(self) -> None:
        """Start the shared browser process."""

    @abstractmethod
    async def close(self) -> None:
        """Stop the shared browser process."""

    @abstractmethod
    async def new_context(self, viewport: ViewportConfig) -> Any:
        """Create an isolated browser context sized to ``viewport``."""

    @asynccontextmanager
    async def session(self) -> AsyncIterator["BrowserDriver"]:
        """Launch the browser for the duration of a run."""
        await self.launch()
        try:
            yield self
        finally:
            try:
                await self.close()
            except Exception as e:
                self.logger.warning(f"Failed to close browser: {e}")

    @asynccontextmanager
    async def page_scope(self, viewport: ViewportConfig) -> AsyncIterator[Any]:
        """
        Open one context and page for a unit and always release both.

        Raises:
            TransientExecutionError: If the context or page cannot be created
        """
        context = None
        page = None
        try:
            try:
                context = await self.new_context(viewport)
                page = await context.new_page()
            except TransientExecutionError:
                raise
            except Exception as e:
                raise TransientExecutionError(
                    f"Failed to open browser page: {e}", viewport=viewport.id
                ) from e
            yield page
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    self.logger.warning(f"Failed to close page ({viewport.id}): {e}")
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    self.logger.warning(f"Failed to close context ({viewport.id}): {e}")


class PlaywrightDriver(BrowserDriver):
    """Chromium driven through ``playwright.async_api``."""

    def __init__(
        self,
        mode: BrowserMode = BrowserMode.HEADLESS,
        user_agent: str = DEFAULT_USER_AGENT,
        browser_args: Optional[List[str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.mode = mode
        self.user_agent = user_agent
        self.browser_args = browser_args or []
        self._playwright = None
        self._browser = None

    @classmethod
    def from_config(cls, config: Config) -> "PlaywrightDriver":
        mode = BrowserMode.HEADLESS if config.is_headless else BrowserMode.HEADED
        return cls(
            mode=mode,
            user_agent=config.user_agent,
            browser_args=list(config.browser_args),
        )

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def launch(self) -> None:
        from playwright.async_api import async_playwright

        self.logger.info(f"Launching browser in {self.mode.value} mode")
        start = time.time()
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.mode == BrowserMode.HEADLESS,
                args=self.browser_args,
            )
        except Exception as e:
            log_browser_call(self.logger, "launch", time.time() - start, False, error=str(e))
            await self._stop_playwright()
            raise OrchestrationError(
                f"Failed to launch browser: {e}", stage="browser_launch"
            ) from e
        log_browser_call(self.logger, "launch", time.time() - start, True)

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            await self._stop_playwright()

    async def _stop_playwright(self) -> None:
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            finally:
                self._playwright = None

    async def new_context(self, viewport: ViewportConfig) -> Any:
        if not self.is_running:
            raise TransientExecutionError(
                "Browser is not running", viewport=viewport.id
            )

        mobile = viewport.device_class == DeviceClass.MOBILE
        start = time.time()
        context = await self._browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
            user_agent=self.user_agent,
            device_scale_factor=1,
            is_mobile=mobile,
            has_touch=mobile,
        )
        log_browser_call(
            self.logger, "new_context", time.time() - start, True, viewport=viewport.id
        )
        return context
