"""Utility functions for pyfilesearch."""

import os
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Optional, Union

# =============================================================================
# Constants for sync operations
# =============================================================================

# Modification times closer than this are considered equal (milliseconds)
MTIME_TOLERANCE_MS: float = 1000.0

# Interval between polls of a long-running upload operation
DEFAULT_POLL_INTERVAL: float = 2.0  # seconds

# Give up on an upload operation that never reports done
DEFAULT_OPERATION_TIMEOUT: float = 600.0  # seconds

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Store teardown: concurrent deletes per chunk and pauses for consistency lag
DEFAULT_DELETE_BATCH_SIZE: int = 10
DEFAULT_CHUNK_PAUSE: float = 0.2  # seconds
DEFAULT_DRAIN_CHECK_DELAY: float = 1.0  # seconds
DEFAULT_STORE_DELETE_RETRIES: int = 5
DEFAULT_STORE_DELETE_RETRY_DELAY: float = 2.0  # seconds

# Page size requested from list endpoints
DEFAULT_PAGE_SIZE: int = 20

# Settings file kept in the project root
SETTINGS_FILE_NAME = "document-sync.json"

# Directories never descended into during a scan (hidden ones are skipped too)
DEFAULT_EXCLUDED_NAMES = frozenset({"node_modules", "__pycache__", "venv", ".venv"})


# =============================================================================
# Content types
# =============================================================================

MIME_TYPES: dict[str, str] = {
    "txt": "text/plain",
    "md": "text/markdown",
    "pdf": "application/pdf",
    "js": "text/javascript",
    # The service handles TypeScript as JavaScript
    "ts": "text/javascript",
    "py": "text/x-python",
    "html": "text/html",
    "css": "text/css",
    "csv": "text/csv",
    "json": "application/json",
}


def get_mime_type(file_path: Union[str, Path]) -> Optional[str]:
    """Map a file extension to the MIME type used for upload.

    Args:
        file_path: File name or path

    Returns:
        MIME type string, or None if the extension is not supported

    Examples:
        >>> get_mime_type("notes/readme.MD")
        'text/markdown'
        >>> get_mime_type("image.png") is None
        True
    """
    name = str(file_path)
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[-1].lower()
    return MIME_TYPES.get(ext)


def is_supported_file(file_path: Union[str, Path]) -> bool:
    return get_mime_type(file_path) is not None


# =============================================================================
# Path utilities
# =============================================================================


def normalize_relative_path(path: str) -> str:
    """Normalize a relative path to forward-slash form.

    Backslash separators are converted regardless of the current platform,
    so a key produced on Windows matches the same key produced elsewhere.

    Examples:
        >>> normalize_relative_path("docs\\\\guide\\\\intro.md")
        'docs/guide/intro.md'
        >>> normalize_relative_path("./docs//intro.md")
        'docs/intro.md'
    """
    posix = PureWindowsPath(path).as_posix() if "\\" in path else path
    parts = [p for p in PurePosixPath(posix).parts if p not in ("", ".")]
    return "/".join(parts)


def relative_key(file_path: Path, root: Path) -> Optional[str]:
    """Return the metadata key for ``file_path`` relative to ``root``.

    Args:
        file_path: Absolute path of a file
        root: Watch root

    Returns:
        Forward-slash relative path, or None if the file is outside root
    """
    try:
        rel = os.path.relpath(os.path.abspath(file_path), os.path.abspath(root))
    except ValueError:
        # Different drives on Windows
        return None
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None
    return normalize_relative_path(rel)


# =============================================================================
# Formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
