"""
Screenshot storage for scenario runs.

Stores captured PNG screenshots under ``artifacts/<run_id>/<viewport>/`` and
keeps a per-run registry so the visual-analysis collaborator can find every
image of a run.
"""

import hashlib
import json
import re
import time
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..core.logging_config import get_logger
from .models import utc_now_iso


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(value: str) -> str:
    """Make a value usable as a single path component."""
    cleaned = _UNSAFE_CHARS.sub("-", value.strip()).strip("-")
    return cleaned or "unnamed"


class ScreenshotMetadata(BaseModel):
    """Metadata for one stored screenshot."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run the screenshot belongs to")
    scenario_name: str = Field(..., description="Scenario that captured it")
    step_name: str = Field(..., description="Capture point, e.g. 'initial-load'")
    viewport: str = Field(..., description="Viewport id")
    file_path: str = Field(..., description="Path of the PNG file")
    file_size: int = Field(..., ge=0, description="File size in bytes")
    checksum: str = Field("", description="SHA-256 of the file content")
    description: Optional[str] = Field(None, description="Screenshot description")
    created_at: str = Field(default_factory=utc_now_iso)


class ScreenshotStore:
    """
    Writes screenshots for one run and records their metadata.

    A failed write is logged and reported as ``None`` so that a storage
    problem never fails the scenario that captured the image.
    """

    def __init__(self, artifacts_dir: Union[str, Path], run_id: str):
        self.run_id = run_id
        self.run_dir = Path(artifacts_dir) / safe_name(run_id)
        self.logger = get_logger(__name__, run_id=run_id)
        self._registry: List[ScreenshotMetadata] = []
        self._registry_file = self.run_dir / "screenshots.json"

    def save(
        self,
        image: bytes,
        scenario_name: str,
        step_name: str,
        viewport: str,
        description: Optional[str] = None,
    ) -> Optional[str]:
        """
        Store a PNG image.

        Returns:
            Path of the stored file, or None when it could not be written
        """
        timestamp = int(time.time() * 1000)
        viewport_dir = self.run_dir / safe_name(viewport)
        file_name = f"{safe_name(scenario_name)}-{safe_name(step_name)}-{timestamp}.png"
        file_path = viewport_dir / file_name

        try:
            viewport_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(image)
        except OSError as e:
            self.logger.warning(
                f"Screenshot write failed: {file_path} - {e}",
                extra={"metadata": {"viewport": viewport, "step_name": step_name}},
            )
            return None

        metadata = ScreenshotMetadata(
            run_id=self.run_id,
            scenario_name=scenario_name,
            step_name=step_name,
            viewport=viewport,
            file_path=str(file_path),
            file_size=len(image),
            checksum=hashlib.sha256(image).hexdigest(),
            description=description,
        )
        self._registry.append(metadata)

        self.logger.debug(
            f"Stored screenshot: {file_path}",
            extra={
                "metadata": {
                    "viewport": viewport,
                    "step_name": step_name,
                    "file_size": metadata.file_size,
                }
            },
        )
        return str(file_path)

    @property
    def screenshots(self) -> List[ScreenshotMetadata]:
        return list(self._registry)

    def get_screenshots_by_viewport(self, viewport: str) -> List[ScreenshotMetadata]:
        return [item for item in self._registry if item.viewport == viewport]

    def write_registry(self) -> Optional[Path]:
        """Persist the run's screenshot registry next to the images."""
        if not self._registry:
            return None
        try:
            self.run_dir.mkdir(parents=True, exist_ok=True)
            with open(self._registry_file, "w", encoding="utf-8") as f:
                json.dump(
                    [item.model_dump() for item in self._registry],
                    f,
                    indent=2,
                    ensure_ascii=False,
                )
        except OSError as e:
            self.logger.error(f"Failed to save screenshot registry: {e}")
            return None
        return self._registry_file

    def get_storage_statistics(self) -> Dict[str, Any]:
        by_viewport: Dict[str, int] = {}
        for item in self._registry:
            by_viewport[item.viewport] = by_viewport.get(item.viewport, 0) + 1
        return {
            "run_id": self.run_id,
            "count": len(self._registry),
            "total_size": sum(item.file_size for item in self._registry),
            "by_viewport": by_viewport,
        }
