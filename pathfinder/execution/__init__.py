"""
Scenario execution for Pathfinder Runner.

Models are imported first: the streaming and browser packages depend on
``execution.models`` while the scheduler and engine depend on them.
"""

from .models import (
    ViewportConfig,
    FlowStep,
    StepConfig,
    StepType,
    Scenario,
    ScenarioStatus,
    ScenarioExecutionResult,
    ExecutionProgress,
    RunRequest,
    RunSummary,
    DEFAULT_VIEWPORTS,
)
from .cancellation import CancellationToken
from .step_executor import StepExecutor
from .scenario_runner import ScenarioRunner
from .retry import RetryPolicy
from .scheduler import ExecutionUnit, ViewportScheduler, build_units
from .aggregator import ResultAggregator
from .engine import ExecutionEngine

__all__ = [
    "ViewportConfig",
    "FlowStep",
    "StepConfig",
    "StepType",
    "Scenario",
    "ScenarioStatus",
    "ScenarioExecutionResult",
    "ExecutionProgress",
    "RunRequest",
    "RunSummary",
    "DEFAULT_VIEWPORTS",
    "CancellationToken",
    "StepExecutor",
    "ScenarioRunner",
    "RetryPolicy",
    "ExecutionUnit",
    "ViewportScheduler",
    "build_units",
    "ResultAggregator",
    "ExecutionEngine",
]
