"""pyfilesearch - Sync a local folder into a Gemini File Search store."""

from .api import FileSearchClient
from .exceptions import (
    FileSearchAPIError,
    FileSearchAuthenticationError,
    FileSearchConfigError,
    FileSearchError,
    FileSearchFileNotFoundError,
    FileSearchInvalidResponseError,
    FileSearchNetworkError,
    FileSearchNotFoundError,
    FileSearchOperationError,
    FileSearchPermissionError,
    FileSearchRateLimitError,
    FileSearchStoreNotEmptyError,
    FileSearchUploadError,
)
from .models import Citation, FileSearchStore, Operation, QueryResult, RemoteDocument

__version__ = "0.1.0"

__all__ = [
    "FileSearchClient",
    "FileSearchError",
    "FileSearchAPIError",
    "FileSearchAuthenticationError",
    "FileSearchConfigError",
    "FileSearchFileNotFoundError",
    "FileSearchInvalidResponseError",
    "FileSearchNetworkError",
    "FileSearchNotFoundError",
    "FileSearchOperationError",
    "FileSearchPermissionError",
    "FileSearchRateLimitError",
    "FileSearchStoreNotEmptyError",
    "FileSearchUploadError",
    "FileSearchStore",
    "RemoteDocument",
    "Operation",
    "QueryResult",
    "Citation",
]
