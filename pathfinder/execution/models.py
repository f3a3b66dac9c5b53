"""
Data models for scenario execution.

Defines Pydantic models for viewports, flow steps, scenarios, per-unit
execution results and run progress. Models serialize with camelCase keys,
the encoding consumers of the event stream and the result store expect.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class WireModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump to the camelCase JSON-compatible form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StepType(Enum):
    """Declarative step actions understood by the step executor."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    HOVER = "hover"
    VERIFY = "verify"
    WAIT = "wait"
    SCREENSHOT = "screenshot"


class ScenarioStatus(Enum):
    """Terminal status of one (scenario, viewport) unit."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class DeviceClass(Enum):
    """Device family a viewport emulates."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class ViewportConfig(WireModel):
    """A named screen-size profile used to create browser contexts."""

    id: str = Field(..., description="Viewport identifier")
    name: str = Field(..., description="Display name, e.g. 'iPhone 12'")
    width: int = Field(..., gt=0, description="Viewport width in CSS pixels")
    height: int = Field(..., gt=0, description="Viewport height in CSS pixels")
    enabled: bool = Field(True, description="Whether the viewport takes part in runs")

    @field_validator("id", "name")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Viewport id and name cannot be empty")
        return v.strip()

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def device_class(self) -> DeviceClass:
        """Classify the viewport by its name."""
        name = self.name.lower()
        if "iphone" in name or "mobile" in name:
            return DeviceClass.MOBILE
        if "ipad" in name or "tablet" in name:
            return DeviceClass.TABLET
        return DeviceClass.DESKTOP


DEFAULT_VIEWPORTS: List[ViewportConfig] = [
    ViewportConfig(id="mobile_small", name="iPhone SE", width=375, height=667, enabled=False),
    ViewportConfig(id="mobile_large", name="iPhone 12", width=390, height=844),
    ViewportConfig(id="tablet", name="iPad", width=768, height=1024),
    ViewportConfig(id="desktop", name="Desktop HD", width=1920, height=1080),
    ViewportConfig(id="desktop_large", name="Desktop 2K", width=2560, height=1440, enabled=False),
]


class StepConfig(WireModel):
    """Action parameters of a flow step."""

    description: Optional[str] = Field(None, description="Human description of the step")
    selector: Optional[str] = Field(None, description="Element selector")
    value: Optional[str] = Field(None, description="Value to fill or option to select")
    url: Optional[str] = Field(None, description="Navigation target")
    assertion: Optional[str] = Field(None, description="Free-form assertion note")
    timeout: Optional[int] = Field(None, ge=0, description="Timeout or sleep in milliseconds")
    expected_result: Optional[str] = Field(None, description="Text a verify step expects")


class FlowStep(WireModel):
    """One declarative action of a scenario."""

    id: str = Field(..., description="Step identifier")
    type: StepType = Field(..., description="Step action")
    order: int = Field(..., description="Position of the step within its scenario")
    config: StepConfig = Field(default_factory=StepConfig)

    @property
    def label(self) -> str:
        return self.config.description or self.type.value


class Scenario(WireModel):
    """One named test case made of ordered steps."""

    id: str = Field(..., description="Scenario identifier")
    name: str = Field(..., description="Scenario name")
    steps: List[FlowStep] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Scenario name cannot be empty")
        return v.strip()

    def ordered_steps(self) -> List[FlowStep]:
        """Steps sorted by ``order``; ties keep their listed position."""
        return sorted(self.steps, key=lambda step: step.order)


class ConsoleLog(WireModel):
    """One console or runner log line captured during a unit."""

    type: str = Field("info", description="log, info, warn, error or debug")
    message: str
    timestamp: str = Field(default_factory=utc_now_iso)


class ErrorObject(WireModel):
    """An error recorded on a scenario result."""

    message: str
    stack: Optional[str] = None


class NetworkLog(WireModel):
    """One network response observed by the page."""

    url: str
    method: str
    status: int
    timestamp: str = Field(default_factory=utc_now_iso)


class StepResult(WireModel):
    """Outcome of one executed (or skipped) step."""

    step_index: int
    step_id: str
    step_type: StepType
    status: ScenarioStatus
    duration_ms: int = Field(0, ge=0)
    message: str = ""
    error: Optional[str] = None


class ScenarioExecutionResult(WireModel):
    """Result record of one (scenario, viewport) unit."""

    scenario_id: str
    scenario_name: str
    viewport: str = Field(..., description="ViewportConfig id")
    viewport_size: str
    status: ScenarioStatus
    duration_ms: int = Field(0, ge=0)
    started_at: str
    completed_at: str
    screenshots: List[str] = Field(default_factory=list)
    console_logs: List[ConsoleLog] = Field(default_factory=list)
    network_logs: List[NetworkLog] = Field(default_factory=list)
    errors: List[ErrorObject] = Field(default_factory=list)
    step_results: List[StepResult] = Field(default_factory=list)
    attempts: int = Field(1, ge=1)

    @model_validator(mode="after")
    def validate_pass_has_no_errors(self):
        if self.status == ScenarioStatus.PASS and self.errors:
            raise ValueError("A passing result cannot carry recorded errors")
        return self

    @property
    def unit_key(self) -> tuple:
        return (self.scenario_id, self.viewport)

    @property
    def passed(self) -> bool:
        return self.status == ScenarioStatus.PASS


class ExecutionProgress(WireModel):
    """Running tallies of a run."""

    current: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    percentage: int = Field(0, ge=0, le=100)
    passed: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    elapsed_time: int = Field(0, ge=0, description="Milliseconds since run start")
    current_scenario: Optional[str] = None

    @model_validator(mode="after")
    def validate_current_within_total(self):
        if self.current > self.total:
            raise ValueError(f"current ({self.current}) exceeds total ({self.total})")
        return self


def compute_percentage(current: int, total: int) -> int:
    """``round(current / total * 100)`` with halves rounded up."""
    if total <= 0:
        return 0
    return int(math.floor(current / total * 100 + 0.5))


class RunSummary(WireModel):
    """Pass/fail/skip tallies of a finished run."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0


class RunRequest(WireModel):
    """Input of one run: what to execute, where, and on which viewports."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    run_id: Optional[str] = None
    suite_id: Optional[str] = None
    target_url: Optional[str] = None
    scenarios: List[Scenario] = Field(default_factory=list)
    viewports: List[ViewportConfig] = Field(default_factory=list)
    screenshot_on_every_step: bool = False
    concurrency_limit: Optional[int] = Field(None, ge=1, le=16)
    max_retries: Optional[int] = Field(None, ge=1, le=10)

    @model_validator(mode="after")
    def validate_source(self):
        if not self.suite_id and not self.scenarios:
            raise ValueError("Either suiteId or scenarios must be provided")
        if self.scenarios and not self.target_url and not self.suite_id:
            raise ValueError("targetUrl is required when scenarios are given inline")
        return self

    @property
    def enabled_viewports(self) -> List[ViewportConfig]:
        return [viewport for viewport in self.viewports if viewport.enabled]
