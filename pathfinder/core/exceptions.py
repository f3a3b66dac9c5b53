"""
Base exception classes for Pathfinder Runner.

Provides a hierarchy of exceptions for the failures that can occur while a
test run is orchestrated, from a single failed step up to a run that cannot
start at all.
"""

from typing import Optional, Dict, Any


class PathfinderError(Exception):
    """Base exception class for all Pathfinder errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class StepError(PathfinderError):
    """
    One step action failed (selector not found, timeout, assertion mismatch).

    Step errors are returned by the step executor as data and recorded on the
    scenario result; they are not raised past the scenario runner.
    """

    def __init__(
        self,
        message: str,
        step_index: Optional[int] = None,
        step_type: Optional[str] = None,
        selector: Optional[str] = None,
        error_code: str = "STEP_FAILED",
        stack: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.step_index = step_index
        self.step_type = step_type
        self.selector = selector
        self.stack = stack
        self.context.update(
            {
                "step_index": step_index,
                "step_type": step_type,
                "selector": selector,
            }
        )


class NavigationError(PathfinderError):
    """Raised when the mandatory initial page load of a unit fails."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        viewport: Optional[str] = None,
    ):
        super().__init__(message, "NAVIGATION_FAILED")
        self.url = url
        self.viewport = viewport
        self.context.update(
            {
                "url": url,
                "viewport": viewport,
            }
        )


class TransientExecutionError(PathfinderError):
    """Raised for browser or network flakiness; the whole unit may be retried."""

    def __init__(
        self,
        message: str,
        scenario_id: Optional[str] = None,
        viewport: Optional[str] = None,
        attempt: Optional[int] = None,
    ):
        super().__init__(message, "TRANSIENT_EXECUTION_FAILED")
        self.scenario_id = scenario_id
        self.viewport = viewport
        self.attempt = attempt
        self.context.update(
            {
                "scenario_id": scenario_id,
                "viewport": viewport,
                "attempt": attempt,
            }
        )


class OrchestrationError(PathfinderError):
    """Raised when the scheduler or streaming layer cannot continue a run."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message, "ORCHESTRATION_FAILED")
        self.run_id = run_id
        self.stage = stage
        self.context.update(
            {
                "run_id": run_id,
                "stage": stage,
            }
        )


class ValidationError(PathfinderError):
    """Raised when configuration or run input validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )


class PersistenceError(PathfinderError):
    """Raised when the result store cannot accept run data."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, "PERSISTENCE_FAILED")
        self.run_id = run_id
        self.operation = operation
        self.context.update(
            {
                "run_id": run_id,
                "operation": operation,
            }
        )
