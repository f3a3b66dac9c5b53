"""
Run tracking for Pathfinder Runner.

Handles run ID generation, correlation, and the run-level state machine
(Idle -> Running -> Completed | Failed | Cancelled).
"""

import uuid
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional
from dataclasses import dataclass, field

from .exceptions import OrchestrationError
from .logging_config import get_logger


class RunStatus(Enum):
    """Run-level lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


_ALLOWED_TRANSITIONS = {
    RunStatus.IDLE: {RunStatus.RUNNING, RunStatus.FAILED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
    RunStatus.CANCELLED: set(),
}


def generate_run_id() -> str:
    """
    Generate a unique run ID for correlating logs, results and screenshots.

    Returns:
        Run identifier of the form ``YYYYMMDD-<16 hex chars>``
    """
    run_id = uuid.uuid4().hex[:16]
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{timestamp}-{run_id}"


@dataclass
class RunContext:
    """Context information and state for one run."""

    run_id: str = field(default_factory=generate_run_id)
    status: RunStatus = RunStatus.IDLE
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.logger = get_logger("pathfinder.run", run_id=self.run_id)

    @property
    def duration(self) -> float:
        """Get current run duration in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> int:
        return int(self.duration * 1000)

    @property
    def start_timestamp(self) -> Optional[str]:
        """Get formatted start timestamp."""
        if self.start_time is None:
            return None
        return datetime.fromtimestamp(self.start_time, tz=timezone.utc).isoformat()

    def transition(self, new_status: RunStatus, reason: Optional[str] = None) -> None:
        """
        Move the run to a new state.

        Raises:
            OrchestrationError: If the transition is not allowed
        """
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise OrchestrationError(
                f"Illegal run transition {self.status.value} -> {new_status.value}",
                run_id=self.run_id,
                stage="state_machine",
            )

        previous = self.status
        self.status = new_status
        if new_status == RunStatus.RUNNING:
            self.start_time = time.time()
        elif new_status.is_terminal:
            if self.start_time is None:
                self.start_time = time.time()
            self.end_time = time.time()

        self.logger.info(
            f"Run {self.run_id}: {previous.value} -> {new_status.value}",
            extra={
                "metadata": {
                    "from": previous.value,
                    "to": new_status.value,
                    "reason": reason,
                    "duration": self.duration,
                }
            },
        )

    def start(self) -> None:
        self.transition(RunStatus.RUNNING)

    def fail(self, error: Exception) -> None:
        """Mark the run Failed after an unrecoverable orchestration error."""
        if self.status.is_terminal:
            return
        self.transition(RunStatus.FAILED, reason=str(error))

    def to_dict(self) -> Dict[str, Any]:
        """Convert run context to dictionary."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "start_time": self.start_timestamp,
            "duration": self.duration,
            "metadata": self.metadata,
        }
