"""
Configuration management for Pathfinder Runner.

Handles environment variables, defaults, and configuration validation
for the execution engine and its collaborators.
"""

import os
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; PathfinderBot/1.0)"

DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass
class Config:
    """Configuration class for Pathfinder Runner with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Browser settings
    headless_mode: Optional[bool] = field(default=None)
    user_agent: str = field(default=DEFAULT_USER_AGENT)
    browser_args: List[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))

    # Orchestration settings
    concurrency_limit: int = field(default=3)
    max_retries: int = field(default=3)
    backoff_base: float = field(default=2.0)
    scenario_deadline_ms: Optional[int] = field(default=None)
    screenshot_on_every_step: bool = field(default=False)

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")

    # Directory paths
    project_root: Path = field(default_factory=lambda: Path.cwd())
    artifacts_dir: Path = field(default_factory=lambda: Path.cwd() / "artifacts")
    results_dir: Path = field(default_factory=lambda: Path.cwd() / "results")
    reports_dir: Path = field(default_factory=lambda: Path.cwd() / "reports")
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")
    suites_dir: Path = field(default_factory=lambda: Path.cwd() / "suites")

    def __post_init__(self):
        """Post-initialization validation and environment overrides."""
        ci_env = os.getenv("CI", "").lower() == "true"
        if ci_env and self.ci_mode is False:
            self.ci_mode = True

        headless_env = os.getenv("PATHFINDER_HEADLESS")
        if headless_env is not None:
            self.headless_mode = headless_env.lower() == "true"

        log_env = os.getenv("PATHFINDER_LOG_LEVEL")
        if log_env:
            self.log_level = log_env
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        self.log_level = self.log_level.upper()
        if self.log_level == "WARN":
            self.log_level = "WARNING"
        if self.log_level not in valid_log_levels:
            self.log_level = "INFO"

        # CI consumers read JSON lines
        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        concurrency_env = _env_int("PATHFINDER_CONCURRENCY")
        if concurrency_env is not None:
            self.concurrency_limit = concurrency_env

        retries_env = _env_int("PATHFINDER_MAX_RETRIES")
        if retries_env is not None:
            self.max_retries = retries_env

        deadline_env = _env_int("PATHFINDER_SCENARIO_DEADLINE_MS")
        if deadline_env is not None:
            self.scenario_deadline_ms = deadline_env if deadline_env > 0 else None

    @property
    def is_headless(self) -> bool:
        """Get effective headless mode setting."""
        return self.get_effective_headless_mode()

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def debug_enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"

    def get_effective_headless_mode(self) -> bool:
        """Headless unless explicitly turned off; CI always runs headless."""
        if self.ci_mode:
            return True
        if self.headless_mode is not None:
            return self.headless_mode
        return True

    def get_log_file_path(self) -> Path:
        """Get the main log file path."""
        return self.logs_dir / "pathfinder.log"

    def get_debug_log_dir(self) -> Path:
        """Get the debug log directory path."""
        debug_dir = self.logs_dir / "debug"
        debug_dir.mkdir(parents=True, exist_ok=True)
        return debug_dir

    def ensure_directories(self) -> None:
        """Create the output directories used by a run."""
        for directory in (
            self.artifacts_dir,
            self.results_dir,
            self.reports_dir,
            self.logs_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "headless_mode": self.is_headless,
            "concurrency_limit": self.concurrency_limit,
            "max_retries": self.max_retries,
            "backoff_base": self.backoff_base,
            "scenario_deadline_ms": self.scenario_deadline_ms,
            "screenshot_on_every_step": self.screenshot_on_every_step,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "project_root": str(self.project_root),
            "artifacts_dir": str(self.artifacts_dir),
            "results_dir": str(self.results_dir),
            "reports_dir": str(self.reports_dir),
            "logs_dir": str(self.logs_dir),
            "suites_dir": str(self.suites_dir),
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        ci = os.getenv("CI", "").lower() == "true"
        log_format = "json" if ci else os.getenv("PATHFINDER_LOG_FORMAT", "text")
        root = Path(os.getenv("PATHFINDER_HOME", str(Path.cwd())))

        return cls(
            ci_mode=ci,
            log_format=log_format,
            project_root=root,
            artifacts_dir=root / "artifacts",
            results_dir=root / "results",
            reports_dir=root / "reports",
            logs_dir=root / "logs",
            suites_dir=Path(os.getenv("PATHFINDER_SUITES_DIR", str(root / "suites"))),
        )

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        if self.concurrency_limit < 1:
            errors.append(
                f"Invalid concurrency limit: {self.concurrency_limit}. Must be at least 1"
            )

        if self.max_retries < 1:
            errors.append(
                f"Invalid max retries: {self.max_retries}. Must be at least 1 attempt"
            )

        if self.backoff_base <= 0:
            errors.append(f"Invalid backoff base: {self.backoff_base}. Must be positive")

        if self.scenario_deadline_ms is not None and self.scenario_deadline_ms <= 0:
            errors.append(
                f"Invalid scenario deadline: {self.scenario_deadline_ms}. Must be positive"
            )

        if self.log_format not in ["text", "json"]:
            errors.append(
                f"Invalid log format: {self.log_format}. Must be one of ['text', 'json']"
            )

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
