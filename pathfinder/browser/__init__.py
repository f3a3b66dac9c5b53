"""
Browser automation for Pathfinder Runner.

Provides the driver interface the execution engine uses to launch the browser
and open isolated contexts, plus its Playwright implementation.
"""

from .driver import BrowserDriver, BrowserMode, PlaywrightDriver

__all__ = [
    "BrowserDriver",
    "BrowserMode",
    "PlaywrightDriver",
]
