"""Project settings stored in ``document-sync.json``."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import FileSearchConfigError
from .utils import SETTINGS_FILE_NAME, relative_key

logger = logging.getLogger(__name__)

PROJECT_PATH_ENV = "PROJECT_PATH"


class ProjectSettings:
    """Reads and writes the settings file in a project root.

    The file holds ``{"projectName": ..., "watchLocation": ...}``. A relative
    watch location is resolved against the project root; absolute paths are
    accepted for backward compatibility.
    """

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)

    @property
    def path(self) -> Path:
        return self.project_root / SETTINGS_FILE_NAME

    def load(self) -> dict[str, Any]:
        """Load settings, returning an empty dict if missing or unreadable."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.warning(f"Ignoring malformed settings in {self.path}")
                return {}
            return data
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load settings from {self.path}: {e}")
            return {}

    def save(self, settings: dict[str, Any]) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=2)
            f.write("\n")

    def update_setting(self, key: str, value: Optional[str]) -> None:
        """Set a single key, or remove it when value is None."""
        settings = self.load()
        if value is None:
            settings.pop(key, None)
        else:
            settings[key] = value
        self.save(settings)

    @property
    def project_name(self) -> Optional[str]:
        return self.load().get("projectName") or None

    @property
    def watch_location(self) -> Optional[str]:
        return self.load().get("watchLocation") or None

    def set_watch_location(self, location: Path) -> str:
        """Store a watch location, relative to the project root when inside it.

        Returns:
            The value written to the settings file
        """
        location = Path(location).resolve()
        rel = relative_key(location, self.project_root.resolve())
        value = rel if rel is not None else str(location)
        if value == "":
            value = "."
        self.update_setting("watchLocation", value)
        return value

    def resolve_watch_root(self) -> Optional[Path]:
        """Absolute watch root, or None if no watch location is configured."""
        location = self.watch_location
        if not location:
            return None
        path = Path(location)
        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()

    def require_project_name(self) -> str:
        name = self.project_name
        if not name:
            raise FileSearchConfigError(
                f"No project name configured in {self.path}. "
                "Run 'pyfilesearch project NAME' first."
            )
        return name

    def require_watch_root(self) -> Path:
        root = self.resolve_watch_root()
        if root is None:
            raise FileSearchConfigError(
                f"No watch location configured in {self.path}. "
                "Run 'pyfilesearch watch-location PATH' first."
            )
        return root


def find_settings_file(start: Optional[Path] = None) -> Optional[Path]:
    """Search for the settings file from ``start`` up to the filesystem root.

    If the ``PROJECT_PATH`` environment variable is set, the search starts
    there instead of the current directory.
    """
    env_path = os.environ.get(PROJECT_PATH_ENV)
    if start is None:
        start = Path(env_path) if env_path else Path.cwd()

    directory = Path(start).resolve()
    for candidate in [directory, *directory.parents]:
        settings_path = candidate / SETTINGS_FILE_NAME
        if settings_path.exists():
            return settings_path
    return None


def detect_project_name(start: Optional[Path] = None) -> Optional[str]:
    """Project name from the nearest settings file, if any."""
    settings_path = find_settings_file(start)
    if settings_path is None:
        return None
    return ProjectSettings(settings_path.parent).project_name
