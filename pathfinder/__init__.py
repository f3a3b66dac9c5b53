"""
Pathfinder Runner - Test Execution Orchestration Engine

Runs declarative browser scenarios across viewport configurations with
bounded concurrency and retries, and streams structured progress events to a
consumer while the run executes.
"""

__version__ = "0.1.0"
__author__ = "Pathfinder Team"

from .core.config import Config
from .core.exceptions import PathfinderError
from .core.logging_config import setup_logging
from .execution.engine import ExecutionEngine
from .execution.models import RunRequest

__all__ = [
    "Config",
    "PathfinderError",
    "setup_logging",
    "ExecutionEngine",
    "RunRequest",
]
