"""
Progress event protocol.

Every record carried on a run's event stream is one of the models below,
tagged by its ``kind``. The tag is validated at the serialization boundary
in both directions, so producer and consumer agree on one encoding per kind.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from ..execution.models import (
    ScenarioExecutionResult,
    ScenarioStatus,
    RunSummary,
    WireModel,
    utc_now_iso,
)


class ProgressEventModel(WireModel):
    """Running tallies after a unit completes."""

    kind: Literal["progress"] = "progress"
    test_run_id: str
    current: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    passed: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    elapsed_time: int = Field(0, ge=0)
    current_scenario: Optional[str] = None


class LogEvent(WireModel):
    """One runner log line forwarded from a unit."""

    kind: Literal["log"] = "log"
    type: Literal["info", "warn", "error"] = "info"
    message: str
    timestamp: str = Field(default_factory=utc_now_iso)
    scenario_id: Optional[str] = None
    viewport: Optional[str] = None


class ScenarioStartEvent(WireModel):
    kind: Literal["scenario-start"] = "scenario-start"
    scenario_name: str
    viewport: str
    index: int = Field(..., ge=0)


class ScenarioCompleteEvent(WireModel):
    kind: Literal["scenario-complete"] = "scenario-complete"
    scenario_name: str
    viewport: Optional[str] = None
    status: ScenarioStatus
    duration_ms: int = Field(0, ge=0)


class TerminalEvent(WireModel):
    """Closes a run that executed: every result plus the summary."""

    kind: Literal["terminal"] = "terminal"
    success: bool
    results: List[ScenarioExecutionResult] = Field(default_factory=list)
    summary: RunSummary


class ErrorEvent(WireModel):
    """Closes a run that could not execute."""

    kind: Literal["error"] = "error"
    error: str


ProgressEvent = Annotated[
    Union[
        ProgressEventModel,
        LogEvent,
        ScenarioStartEvent,
        ScenarioCompleteEvent,
        TerminalEvent,
        ErrorEvent,
    ],
    Field(discriminator="kind"),
]

CLOSING_KINDS = frozenset({"terminal", "error"})

_event_adapter: TypeAdapter = TypeAdapter(ProgressEvent)


def parse_event(data: Union[str, bytes, Dict[str, Any]]):
    """
    Validate a raw record into its event model.

    Raises:
        pydantic.ValidationError: If the record does not match any kind
    """
    if isinstance(data, (str, bytes)):
        return _event_adapter.validate_json(data)
    return _event_adapter.validate_python(data)


def is_closing(event) -> bool:
    return event.kind in CLOSING_KINDS


def encode_json(event) -> str:
    """One event as a compact JSON document."""
    return json.dumps(event.to_wire(), ensure_ascii=False, separators=(",", ":"))


def encode_sse(event) -> str:
    """One event as a server-sent-events record."""
    return f"event: {event.kind}\ndata: {encode_json(event)}\n\n"
