"""Cooperative cancellation for a single run."""

import asyncio
from typing import Optional


class CancellationToken:
    """
    Flag shared by the scheduler, retry wrapper and scenario runners of a run.

    Cancellation is cooperative: queued units are skipped and running units
    stop at their next step boundary.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Run cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
