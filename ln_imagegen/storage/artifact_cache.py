"""
Artifact Cache
==============
Local directory of downloaded images, one ``<artifact id>.png`` per artifact.
"""

import time
from pathlib import Path
from typing import Optional


class ArtifactCache:
    """Local directory of downloaded artifacts"""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def path_for(self, artifact_id: str) -> Path:
        name = Path(artifact_id).name
        if not name or name in {".", ".."}:
            raise ValueError(f"Invalid artifact id: {artifact_id!r}")
        return self.directory / f"{name}.png"

    def ensure(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def remove(self, artifact_id: str) -> bool:
        try:
            self.path_for(artifact_id).unlink()
            return True
        except FileNotFoundError:
            return False

    def sweep(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """Delete cached files older than max_age_seconds"""
        if not self.directory.exists():
            return 0
        cutoff = (now if now is not None else time.time()) - max_age_seconds
        removed = 0
        for path in self.directory.glob("*.png"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        return removed
