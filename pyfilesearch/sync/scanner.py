"""Directory scanning utilities for sync operations."""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..utils import (
    DEFAULT_EXCLUDED_NAMES,
    SETTINGS_FILE_NAME,
    get_mime_type,
    normalize_relative_path,
)

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """Represents a local file with metadata."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    mtime_ms: float
    """Last modification time in milliseconds since the epoch"""

    mime_type: str
    """Content type used for upload"""

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> Optional["LocalFile"]:
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Base path for calculating relative paths

        Returns:
            LocalFile instance, or None if the file type is not supported
        """
        mime_type = get_mime_type(file_path.name)
        if mime_type is None:
            return None

        stat = file_path.stat()
        relative_path = normalize_relative_path(
            file_path.relative_to(base_path).as_posix()
        )
        return cls(
            path=file_path,
            relative_path=relative_path,
            mtime_ms=stat.st_mtime_ns / 1_000_000,
            mime_type=mime_type,
        )


class ExclusionPredicate:
    """Decides which directory entries a scan skips.

    Examples:
        >>> excluded = ExclusionPredicate()
        >>> excluded("node_modules")
        True
        >>> excluded(".git")
        True
        >>> excluded("docs")
        False
    """

    def __init__(
        self,
        excluded_names: Optional[Iterable[str]] = None,
        exclude_hidden: bool = True,
    ):
        """Initialize the predicate.

        Args:
            excluded_names: Directory/file names never scanned
                (defaults to dependency caches such as node_modules)
            exclude_hidden: Whether names starting with a dot are skipped
        """
        self.excluded_names = frozenset(
            DEFAULT_EXCLUDED_NAMES if excluded_names is None else excluded_names
        )
        self.exclude_hidden = exclude_hidden

    def __call__(self, name: str) -> bool:
        if name == SETTINGS_FILE_NAME:
            return True
        if self.exclude_hidden and name.startswith("."):
            return True
        return name in self.excluded_names

    def excludes_path(self, relative_path: str) -> bool:
        """Check every component of a relative path."""
        return any(self(part) for part in relative_path.split("/") if part)


class DirectoryScanner:
    """Scans a watch root and builds the list of syncable files.

    Every call performs a fresh full walk. Directories are tracked by
    ``(st_dev, st_ino)`` so symlink loops are entered only once, and
    ``max_depth`` bounds recursion.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> files = scanner.scan_local(Path("/home/user/notes"))
        >>> # node_modules, hidden folders and unsupported types are skipped
    """

    def __init__(
        self,
        is_excluded: Optional[Callable[[str], bool]] = None,
        max_depth: int = 64,
    ):
        """Initialize directory scanner.

        Args:
            is_excluded: Predicate on an entry name; True skips the entry
            max_depth: Maximum directory depth below the root
        """
        self.is_excluded = is_excluded or ExclusionPredicate()
        self.max_depth = max_depth

    def scan_local(self, directory: Path) -> list[LocalFile]:
        """Recursively scan a local directory.

        Args:
            directory: Watch root to scan

        Returns:
            List of LocalFile objects sorted by relative path
        """
        files: list[LocalFile] = []
        visited: set[tuple[int, int]] = set()
        self._scan_directory(directory, directory, 0, visited, files)
        files.sort(key=lambda f: f.relative_path)
        return files

    def _scan_directory(
        self,
        directory: Path,
        base_path: Path,
        depth: int,
        visited: set[tuple[int, int]],
        files: list[LocalFile],
    ) -> None:
        try:
            stat = directory.stat()
        except OSError as e:
            logger.warning(f"Cannot access {directory}: {e}")
            return

        key = (stat.st_dev, stat.st_ino)
        if key in visited:
            logger.debug(f"Skipping already visited directory: {directory}")
            return
        visited.add(key)

        if depth > self.max_depth:
            logger.warning(f"Maximum depth {self.max_depth} reached at {directory}")
            return

        try:
            entries = list(os.scandir(directory))
        except OSError as e:
            # Skip directories we can't read
            logger.warning(f"Cannot read directory {directory}: {e}")
            return

        for entry in entries:
            if self.is_excluded(entry.name):
                continue

            item = Path(entry.path)
            try:
                if entry.is_dir():
                    self._scan_directory(item, base_path, depth + 1, visited, files)
                elif entry.is_file():
                    local_file = LocalFile.from_path(item, base_path)
                    if local_file is None:
                        logger.debug(f"Skipping unsupported file type: {item}")
                        continue
                    files.append(local_file)
            except OSError as e:
                # Skip files we can't stat
                logger.warning(f"Cannot read {item}: {e}")
