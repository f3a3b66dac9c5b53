"""
Scenario source.

Loads test suites (target URL, scenarios and viewports) from YAML or JSON
files. A suite id resolves to ``<suites_dir>/<suite_id>.yaml``, ``.yml`` or
``.json``.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import Field, ValidationError as PydanticValidationError

from ..core.exceptions import ValidationError
from ..core.logging_config import get_logger
from ..execution.models import (
    DEFAULT_VIEWPORTS,
    Scenario,
    ViewportConfig,
    WireModel,
)

SUITE_EXTENSIONS = (".yaml", ".yml", ".json")


class Suite(WireModel):
    """A named, stored set of scenarios bound to a target."""

    id: str
    name: str
    target_url: str
    scenarios: List[Scenario] = Field(default_factory=list)
    viewports: List[ViewportConfig] = Field(default_factory=list)


def _viewport_entry(entry: Any) -> Any:
    """Resolve a preset id to its ViewportConfig; pass mappings through."""
    if not isinstance(entry, str):
        return entry
    for preset in DEFAULT_VIEWPORTS:
        if preset.id == entry:
            return preset.model_copy(update={"enabled": True})
    raise ValueError(f"Unknown viewport preset: {entry}")


def _entries(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{where}: expected a list, got {value!r}")
    return value


def _normalize(raw: Dict[str, Any], default_id: str) -> Dict[str, Any]:
    data = dict(raw)
    data.setdefault("id", default_id)
    data.setdefault("name", data["id"])

    scenarios = []
    for s_index, scenario in enumerate(_entries(data.get("scenarios"), "scenarios")):
        if not isinstance(scenario, dict):
            raise ValueError(f"scenarios.{s_index}: expected a mapping, got {scenario!r}")
        scenario = dict(scenario)
        scenario.setdefault("id", f"scenario-{s_index + 1}")
        steps = []
        for index, step in enumerate(_entries(scenario.get("steps"), f"scenarios.{s_index}.steps")):
            if not isinstance(step, dict):
                raise ValueError(
                    f"scenarios.{s_index}.steps.{index}: expected a mapping, got {step!r}"
                )
            step = dict(step)
            step.setdefault("id", f"{scenario['id']}-step-{index + 1}")
            step.setdefault("order", index + 1)
            steps.append(step)
        scenario["steps"] = steps
        scenarios.append(scenario)
    data["scenarios"] = scenarios

    if data.get("viewports"):
        _entries(data["viewports"], "viewports")
        data["viewports"] = [_viewport_entry(entry) for entry in data["viewports"]]
    else:
        data["viewports"] = [viewport for viewport in DEFAULT_VIEWPORTS if viewport.enabled]
    return data


def load_suite_file(path: Union[str, Path]) -> Suite:
    """
    Load and validate one suite file.

    Missing step ids and orders default to the step's position; missing
    viewports default to the enabled presets.

    Raises:
        ValidationError: If the file cannot be read or does not describe a suite
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(
            f"Cannot read suite file {path}: {e}",
            validation_type="suite",
            violations=[str(e)],
        ) from e

    try:
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(
            f"Suite file {path} is not valid {path.suffix.lstrip('.').upper() or 'YAML'}",
            validation_type="suite",
            violations=[str(e)],
        ) from e

    if not isinstance(raw, dict):
        raise ValidationError(
            f"Suite file {path} must contain a mapping",
            validation_type="suite",
            violations=["top-level value is not a mapping"],
        )

    try:
        return Suite.model_validate(_normalize(raw, path.stem))
    except (PydanticValidationError, ValueError) as e:
        violations = (
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            if isinstance(e, PydanticValidationError)
            else [str(e)]
        )
        raise ValidationError(
            f"Invalid suite file {path}",
            validation_type="suite",
            violations=violations,
        ) from e


class SuiteSource:
    """Resolves suite ids against a directory of suite files."""

    def __init__(self, suites_dir: Union[str, Path]):
        self.suites_dir = Path(suites_dir)
        self.logger = get_logger(__name__)

    def find(self, suite_id: str) -> Optional[Path]:
        if not suite_id or "/" in suite_id or "\\" in suite_id or suite_id.startswith("."):
            return None
        for extension in SUITE_EXTENSIONS:
            candidate = self.suites_dir / f"{suite_id}{extension}"
            if candidate.is_file():
                return candidate
        return None

    def load_suite(self, suite_id: str) -> Suite:
        """
        Raises:
            ValidationError: If the suite is unknown or invalid
        """
        path = self.find(suite_id)
        if path is None:
            raise ValidationError(
                f"Unknown suite: {suite_id}",
                validation_type="suite",
                violations=[f"no suite file for '{suite_id}' in {self.suites_dir}"],
            )
        suite = load_suite_file(path)
        self.logger.info(
            f"Loaded suite {suite.id} with {len(suite.scenarios)} scenarios",
            extra={"metadata": {"suite_id": suite.id, "path": str(path)}},
        )
        return suite

    def list_suites(self) -> List[str]:
        if not self.suites_dir.is_dir():
            return []
        return sorted(
            path.stem
            for path in self.suites_dir.iterdir()
            if path.is_file() and path.suffix in SUITE_EXTENSIONS
        )
