"""Exception classes for pyfilesearch."""


class FileSearchError(Exception):
    """Base exception for all pyfilesearch errors."""


class FileSearchConfigError(FileSearchError):
    """Missing or invalid configuration (API key, project, watch location)."""


class FileSearchFileNotFoundError(FileSearchError):
    """Local file does not exist."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"File not found: {file_path}")


class FileSearchAPIError(FileSearchError):
    """Error returned by the remote File Search API."""

    def __init__(self, message: str, status_code: int = 0, status: str = ""):
        self.status_code = status_code
        self.status = status
        super().__init__(message)


class FileSearchAuthenticationError(FileSearchAPIError):
    """Invalid or missing API key."""


class FileSearchPermissionError(FileSearchAPIError):
    """Access to the resource is forbidden."""


class FileSearchNotFoundError(FileSearchAPIError):
    """Remote resource does not exist."""


class FileSearchRateLimitError(FileSearchAPIError):
    """Quota or rate limit exceeded (429 / RESOURCE_EXHAUSTED)."""


class FileSearchNetworkError(FileSearchAPIError):
    """Transport level failure (connection, timeout)."""


class FileSearchInvalidResponseError(FileSearchAPIError):
    """Server returned something that is not the expected JSON."""


class FileSearchUploadError(FileSearchAPIError):
    """Upload could not be started or did not finish."""


class FileSearchOperationError(FileSearchAPIError):
    """Long-running operation finished with an error or timed out."""


class FileSearchStoreNotEmptyError(FileSearchAPIError):
    """Store deletion refused because documents are still present."""
