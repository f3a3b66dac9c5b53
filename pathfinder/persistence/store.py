"""
Result stores.

A store accepts the terminal results of a run keyed by run id. There is no
read path in the execution core; ``load_run`` exists for the report and CLI
tooling.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.exceptions import PersistenceError
from ..core.logging_config import get_logger
from ..core.run_context import RunStatus
from ..execution.artifacts import safe_name
from ..execution.models import ScenarioExecutionResult, utc_now_iso


class ResultStore(ABC):
    """Persistence collaborator of the execution engine."""

    @abstractmethod
    def create_run(self, run_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Register a new run before any unit executes."""

    @abstractmethod
    def save_results(self, run_id: str, results: List[ScenarioExecutionResult]) -> None:
        """Store every terminal result of a run."""

    @abstractmethod
    def update_run_status(self, run_id: str, status: RunStatus) -> None:
        """Record the run's final state."""

    @abstractmethod
    def load_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored run record, or None if unknown."""


class InMemoryResultStore(ResultStore):
    """Keeps runs in a dict. Used by tests and by the HTTP service by default."""

    def __init__(self):
        self._runs: Dict[str, Dict[str, Any]] = {}

    def create_run(self, run_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if run_id in self._runs:
            raise PersistenceError(
                f"Run already exists: {run_id}", run_id=run_id, operation="create_run"
            )
        self._runs[run_id] = {
            "runId": run_id,
            "status": RunStatus.RUNNING.value,
            "createdAt": utc_now_iso(),
            "metadata": dict(metadata or {}),
            "results": [],
        }

    def save_results(self, run_id: str, results: List[ScenarioExecutionResult]) -> None:
        record = self._require(run_id, "save_results")
        record["results"] = [result.to_wire() for result in results]
        record["savedAt"] = utc_now_iso()

    def update_run_status(self, run_id: str, status: RunStatus) -> None:
        record = self._require(run_id, "update_run_status")
        record["status"] = status.value
        record["updatedAt"] = utc_now_iso()

    def load_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        record = self._runs.get(run_id)
        return dict(record) if record is not None else None

    def _require(self, run_id: str, operation: str) -> Dict[str, Any]:
        record = self._runs.get(run_id)
        if record is None:
            raise PersistenceError(
                f"Unknown run: {run_id}", run_id=run_id, operation=operation
            )
        return record


class JsonFileResultStore(ResultStore):
    """
    Stores each run as ``<results_dir>/<run_id>.json``.

    The file is rewritten on every operation, so a crashed run still leaves
    its metadata and last known status on disk.
    """

    def __init__(self, results_dir: Union[str, Path]):
        self.results_dir = Path(results_dir)
        self.logger = get_logger(__name__)

    def _run_file(self, run_id: str) -> Path:
        return self.results_dir / f"{safe_name(run_id)}.json"

    def _read(self, run_id: str, operation: str) -> Dict[str, Any]:
        run_file = self._run_file(run_id)
        if not run_file.exists():
            raise PersistenceError(
                f"Unknown run: {run_id}", run_id=run_id, operation=operation
            )
        try:
            with open(run_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(
                f"Could not read run file {run_file}: {e}",
                run_id=run_id,
                operation=operation,
            ) from e

    def _write(self, run_id: str, record: Dict[str, Any], operation: str) -> None:
        run_file = self._run_file(run_id)
        try:
            self.results_dir.mkdir(parents=True, exist_ok=True)
            with open(run_file, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise PersistenceError(
                f"Could not write run file {run_file}: {e}",
                run_id=run_id,
                operation=operation,
            ) from e

    def create_run(self, run_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if self._run_file(run_id).exists():
            raise PersistenceError(
                f"Run already exists: {run_id}", run_id=run_id, operation="create_run"
            )
        record = {
            "runId": run_id,
            "status": RunStatus.RUNNING.value,
            "createdAt": utc_now_iso(),
            "metadata": dict(metadata or {}),
            "results": [],
        }
        self._write(run_id, record, "create_run")
        self.logger.debug(f"Created run record {self._run_file(run_id)}")

    def save_results(self, run_id: str, results: List[ScenarioExecutionResult]) -> None:
        record = self._read(run_id, "save_results")
        record["results"] = [result.to_wire() for result in results]
        record["savedAt"] = utc_now_iso()
        self._write(run_id, record, "save_results")
        self.logger.info(f"Saved {len(results)} results to {self._run_file(run_id)}")

    def update_run_status(self, run_id: str, status: RunStatus) -> None:
        record = self._read(run_id, "update_run_status")
        record["status"] = status.value
        record["updatedAt"] = utc_now_iso()
        self._write(run_id, record, "update_run_status")

    def load_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        if not self._run_file(run_id).exists():
            return None
        return self._read(run_id, "load_run")
