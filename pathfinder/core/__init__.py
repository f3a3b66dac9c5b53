"""Core components for Pathfinder Runner."""

from .config import Config
from .exceptions import (
    PathfinderError,
    StepError,
    NavigationError,
    TransientExecutionError,
    OrchestrationError,
    ValidationError,
    PersistenceError,
)
from .logging_config import setup_logging, get_logger
from .run_context import RunContext, RunStatus, generate_run_id

__all__ = [
    "Config",
    "PathfinderError",
    "StepError",
    "NavigationError",
    "TransientExecutionError",
    "OrchestrationError",
    "ValidationError",
    "PersistenceError",
    "setup_logging",
    "get_logger",
    "RunContext",
    "RunStatus",
    "generate_run_id",
]
