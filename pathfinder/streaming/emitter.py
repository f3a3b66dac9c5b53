"""
Progress event emitter.

One push channel per run. Producers (scheduler, engine) call ``emit`` or the
typed helpers; one consumer drains ``events()``. The channel enforces the
stream's ordering rules: ``progress.current`` never decreases and exactly one
``terminal`` or ``error`` event closes it.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from ..core.exceptions import OrchestrationError
from ..execution.models import (
    ConsoleLog,
    ExecutionProgress,
    RunSummary,
    ScenarioExecutionResult,
)
from .events import (
    ErrorEvent,
    LogEvent,
    ProgressEventModel,
    ScenarioCompleteEvent,
    ScenarioStartEvent,
    TerminalEvent,
    is_closing,
)

_LOG_TYPES = {"info", "warn", "error"}

_DETACHED = object()


class ProgressEmitter:
    """Queue-backed event channel for one run."""

    def __init__(self, run_id: str, logger: Optional[logging.Logger] = None):
        self.run_id = run_id
        self.logger = logger or logging.getLogger(__name__)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._detached = False
        self._last_current = 0
        self.emitted = 0

    @property
    def closed(self) -> bool:
        """True once a terminal or error event has been emitted."""
        return self._closed

    @property
    def detached(self) -> bool:
        """True once the consumer has gone away."""
        return self._detached

    def emit(self, event) -> bool:
        """
        Push one event.

        Returns:
            True if the event was queued for the consumer

        Raises:
            OrchestrationError: If a progress event would move ``current`` backwards
        """
        if self._closed:
            self.logger.warning(
                f"Dropping {event.kind} event for run {self.run_id}: stream already closed"
            )
            return False

        if event.kind == "progress":
            if event.current < self._last_current:
                raise OrchestrationError(
                    f"Progress moved backwards ({self._last_current} -> {event.current})",
                    run_id=self.run_id,
                    stage="emit",
                )
            self._last_current = event.current

        if is_closing(event):
            self._closed = True

        if self._detached:
            return False

        self._queue.put_nowait(event)
        self.emitted += 1
        return True

    def progress(self, progress: ExecutionProgress) -> bool:
        return self.emit(
            ProgressEventModel(test_run_id=self.run_id, **progress.model_dump())
        )

    def log(
        self,
        entry: ConsoleLog,
        scenario_id: Optional[str] = None,
        viewport: Optional[str] = None,
    ) -> bool:
        level = entry.type if entry.type in _LOG_TYPES else "info"
        return self.emit(
            LogEvent(
                type=level,
                message=entry.message,
                timestamp=entry.timestamp,
                scenario_id=scenario_id,
                viewport=viewport,
            )
        )

    def scenario_start(self, scenario_name: str, viewport: str, index: int) -> bool:
        return self.emit(
            ScenarioStartEvent(scenario_name=scenario_name, viewport=viewport, index=index)
        )

    def scenario_complete(self, result: ScenarioExecutionResult) -> bool:
        return self.emit(
            ScenarioCompleteEvent(
                scenario_name=result.scenario_name,
                viewport=result.viewport,
                status=result.status,
                duration_ms=result.duration_ms,
            )
        )

    def terminal(
        self,
        success: bool,
        results: List[ScenarioExecutionResult],
        summary: RunSummary,
    ) -> bool:
        return self.emit(TerminalEvent(success=success, results=results, summary=summary))

    def error(self, message: str) -> bool:
        return self.emit(ErrorEvent(error=message))

    def detach(self) -> None:
        """
        Consumer closed the channel.

        Later events are dropped; producers keep running.
        """
        if self._detached:
            return
        self._detached = True
        self.logger.info(f"Consumer detached from run {self.run_id}")
        self._queue.put_nowait(_DETACHED)

    async def events(self) -> AsyncIterator:
        """Yield events until the closing event or until the consumer detaches."""
        while True:
            event = await self._queue.get()
            if event is _DETACHED:
                return
            yield event
            if is_closing(event):
                return
