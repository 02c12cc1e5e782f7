"""Persistent metadata about files synced to a project's store.

This module remembers, per project, which relative paths were uploaded,
with which modification time, and which remote document holds them. The
mapping is the only state shared between a sync pass and the deletion
watcher.
"""

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class TrackedFile:
    """A file that was successfully synced at least once."""

    relative_path: str
    """Forward-slash path relative to the watch root (the metadata key)"""

    mtime_ms: float
    """Modification time (ms) of the local file when it was last synced"""

    document_name: str
    """Remote document identifier holding the file's content"""

    def to_dict(self) -> dict:
        """Convert to the persisted ``{mtime, documentName}`` form."""
        return {"mtime": self.mtime_ms, "documentName": self.document_name}

    @classmethod
    def from_dict(cls, relative_path: str, data: dict) -> "TrackedFile":
        return cls(
            relative_path=relative_path,
            mtime_ms=float(data.get("mtime", 0)),
            document_name=data.get("documentName", ""),
        )


class MetadataStore:
    """Loads and saves the tracked-file mapping of each project.

    The state is stored as one JSON file per project in the user's config
    directory, keyed by a hash of the project name. Saving writes a
    temporary file next to the target and renames it into place, so a
    crash mid-write leaves the previous mapping intact.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize the metadata store.

        Args:
            state_dir: Directory to store metadata files. Defaults to
                      ~/.config/pyfilesearch/metadata/
        """
        if state_dir is None:
            state_dir = Path.home() / ".config" / "pyfilesearch" / "metadata"
        self.state_dir = state_dir
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _get_state_key(self, project_name: str) -> str:
        return hashlib.sha256(project_name.encode("utf-8")).hexdigest()[:16]

    def path_for(self, project_name: str) -> Path:
        """Get the metadata file path for a project."""
        return self.state_dir / f"{self._get_state_key(project_name)}.json"

    def load(self, project_name: str) -> dict[str, TrackedFile]:
        """Load the tracked files of a project.

        Args:
            project_name: Project (store display name)

        Returns:
            Mapping from relative path to TrackedFile (empty if none saved)
        """
        state_file = self.path_for(project_name)

        if not state_file.exists():
            logger.debug(f"No metadata found at {state_file}")
            return {}

        try:
            with open(state_file, encoding="utf-8") as f:
                data = json.load(f)
            files = data.get("files", {})
            tracked = {
                path: TrackedFile.from_dict(path, entry)
                for path, entry in files.items()
                if isinstance(entry, dict)
            }
            logger.debug(f"Loaded metadata for {len(tracked)} files of {project_name}")
            return tracked
        except (OSError, json.JSONDecodeError, AttributeError, ValueError) as e:
            logger.warning(f"Failed to load metadata from {state_file}: {e}")
            return {}

    def save(self, project_name: str, tracked: dict[str, TrackedFile]) -> None:
        """Replace the persisted mapping of a project.

        Args:
            project_name: Project (store display name)
            tracked: Complete mapping to persist

        Raises:
            OSError: If the file could not be written
        """
        state_file = self.path_for(project_name)
        data = {
            "project": project_name,
            "files": {
                path: entry.to_dict() for path, entry in sorted(tracked.items())
            },
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=self.state_dir, prefix=f".{state_file.stem}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, state_file)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug(f"Saved metadata for {len(tracked)} files to {state_file}")

    def clear(self, project_name: str) -> bool:
        """Remove the metadata of a project.

        Returns:
            True if metadata was removed, False if none existed
        """
        state_file = self.path_for(project_name)
        if state_file.exists():
            state_file.unlink()
            logger.debug(f"Cleared metadata at {state_file}")
            return True
        return False
