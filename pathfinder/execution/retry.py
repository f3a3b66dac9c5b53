"""
Retry/backoff wrapper for whole-unit execution.

A unit is retried when an attempt did not pass or raised a
``TransientExecutionError``. Between attempts the wrapper waits
``base ** attempt`` seconds.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..core.exceptions import TransientExecutionError
from .cancellation import CancellationToken
from .models import ScenarioExecutionResult, ScenarioStatus

# attempt number (1-based) -> result of that attempt
UnitFn = Callable[[int], Awaitable[ScenarioExecutionResult]]
SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Bounded retries with exponential backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        base: float = 2.0,
        sleep: Optional[SleepFn] = None,
        cancel_token: Optional[CancellationToken] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.base = base
        self.sleep = sleep or asyncio.sleep
        self.cancel_token = cancel_token
        self.logger = logger or logging.getLogger(__name__)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after a failed ``attempt``."""
        return self.base ** attempt

    async def execute(self, unit_fn: UnitFn) -> ScenarioExecutionResult:
        """
        Run ``unit_fn`` until it passes or attempts run out.

        The last attempt's result is returned as is. A transient error on the
        last attempt propagates; any other exception propagates immediately.
        """
        attempt = 1
        while True:
            final = attempt >= self.max_retries
            try:
                result = await unit_fn(attempt)
            except TransientExecutionError as e:
                if final or self._cancelled:
                    raise
                self.logger.warning(
                    f"Attempt {attempt}/{self.max_retries} raised: {e.message}",
                    extra={"metadata": e.to_dict()},
                )
                outcome = e
            else:
                result.attempts = attempt
                if result.status != ScenarioStatus.FAIL or final or self._cancelled:
                    return result
                self.logger.info(
                    f"Attempt {attempt}/{self.max_retries} of "
                    f"{result.scenario_name} on {result.viewport} failed"
                )
                outcome = result

            delay = self.delay_for(attempt)
            self.logger.info(f"Retrying in {delay:g}s")
            await self._backoff(delay)

            # Cancelled while backing off: the last attempt stands
            if self._cancelled:
                if isinstance(outcome, TransientExecutionError):
                    raise outcome
                return outcome
            attempt += 1

    async def _backoff(self, delay: float) -> None:
        """Sleep ``delay`` seconds, waking early if the run is cancelled."""
        if self.cancel_token is None:
            await self.sleep(delay)
            return
        sleeper = asyncio.ensure_future(self.sleep(delay))
        cancelled = asyncio.ensure_future(self.cancel_token.wait())
        try:
            await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, cancelled):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, cancelled, return_exceptions=True)

    @property
    def _cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled
