"""Project definition for sync operations."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..settings import ProjectSettings


@dataclass
class Project:
    """A named set of documents mapped one-to-one to a remote store.

    Examples:
        >>> project = Project(name="handbook", watch_root=Path("/docs/handbook"))
        >>> project.store_name is None
        True
    """

    name: str
    """Project name, also the display name of the remote store"""

    watch_root: Path
    """Local directory whose files are synced"""

    store_name: Optional[str] = None
    """Remote store resource name, resolved lazily"""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Project name cannot be empty")
        self.watch_root = Path(self.watch_root)

    @classmethod
    def from_settings(cls, settings: ProjectSettings) -> "Project":
        """Build a project from a settings file.

        Raises:
            FileSearchConfigError: If the project name or watch location is missing
        """
        return cls(
            name=settings.require_project_name(),
            watch_root=settings.require_watch_root(),
        )
