"""API client for the Gemini File Search service."""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Any, Optional

import httpx

from .config import config
from .exceptions import (
    FileSearchAPIError,
    FileSearchAuthenticationError,
    FileSearchConfigError,
    FileSearchFileNotFoundError,
    FileSearchInvalidResponseError,
    FileSearchNetworkError,
    FileSearchNotFoundError,
    FileSearchPermissionError,
    FileSearchRateLimitError,
    FileSearchStoreNotEmptyError,
    FileSearchUploadError,
)
from .models import FileSearchStore, Operation, QueryResult, RemoteDocument
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PAGE_SIZE, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

API_VERSION = "v1beta"


class FileSearchClient:
    """Client for the Gemini File Search REST API.

    One instance is created per API key and passed to every component that
    talks to the service.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        model: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 60.0,
    ):
        """Initialize the File Search API client.

        Args:
            api_key: Optional API key (uses config if not provided)
            api_url: Optional API base URL (uses config if not provided)
            model: Optional generation model (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 60.0)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.model = model or config.model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.api_key:
            raise FileSearchConfigError(
                "API key not configured. Please set GEMINI_API_KEY environment "
                "variable or run 'pyfilesearch init'."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"x-goog-api-key": self.api_key},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> FileSearchClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures
        if isinstance(exception, (FileSearchNetworkError, FileSearchRateLimitError)):
            return True

        if isinstance(exception, FileSearchAPIError):
            return 500 <= exception.status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        # retry_delay * (2 ** attempt) with +/- 25% jitter
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    @staticmethod
    def _parse_error_body(response: httpx.Response) -> tuple[str, str]:
        """Extract (message, status) from a Google style error body."""
        try:
            if response.content:
                data = response.json()
                if isinstance(data, dict):
                    error = data.get("error", data)
                    if isinstance(error, dict):
                        return (
                            str(error.get("message") or ""),
                            str(error.get("status") or ""),
                        )
        except ValueError:
            # Not JSON, fall back to the status line
            pass
        return "", ""

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Handle HTTP errors and determine if retry should occur.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code
        message, status = self._parse_error_body(e.response)
        detail = f": {message}" if message else ""

        if status_code == 401:
            raise FileSearchAuthenticationError(
                f"Invalid API key or unauthorized access{detail}", status_code, status
            ) from e
        elif status_code == 403:
            raise FileSearchPermissionError(
                f"Access forbidden - check your permissions{detail}",
                status_code,
                status,
            ) from e
        elif status_code == 404:
            raise FileSearchNotFoundError(
                f"Resource not found{detail}", status_code, status
            ) from e
        elif status_code == 429 or status == "RESOURCE_EXHAUSTED":
            error = FileSearchRateLimitError(
                f"Rate limit exceeded{detail}", status_code, status
            )
            return (error, attempt < self.max_retries)

        lowered = message.lower()
        if status_code in (400, 409, 412) and (
            "non-empty" in lowered
            or "not empty" in lowered
            or status == "FAILED_PRECONDITION"
        ):
            error = FileSearchStoreNotEmptyError(
                f"Store is not empty{detail}", status_code, status
            )
            return (error, False)

        if status_code == 400 and "api key" in lowered:
            raise FileSearchAuthenticationError(
                f"Invalid API key{detail}", status_code, status
            ) from e

        error = FileSearchAPIError(
            f"API request failed with status {status_code}{detail}",
            status_code,
            status,
        )
        return (error, 500 <= status_code < 600 and attempt < self.max_retries)

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request with retry logic and return the raw response.

        Raises:
            FileSearchAPIError: If the request fails after all retries
        """
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if (
                        isinstance(error, FileSearchRateLimitError)
                        and retry_after
                        and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        f"{method} {url} failed ({error}), retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = FileSearchNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {url} network error, retrying: {e}")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise FileSearchAPIError("Request failed after all retry attempts")

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise FileSearchInvalidResponseError(
                f"Unexpected response type: {content_type}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise FileSearchInvalidResponseError(
                "Invalid JSON response from server"
            ) from e

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: Resource path below the API version prefix
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data
        """
        url = f"{self.api_url}/{API_VERSION}/{endpoint.lstrip('/')}"
        return self._parse_json(self._send(method, url, **kwargs))

    def _list_paginated(
        self, endpoint: str, key: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params: dict[str, Any] = {"pageSize": page_size}
            if page_token:
                params["pageToken"] = page_token
            data = self._request("GET", endpoint, params=params)
            items.extend(data.get(key) or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        return items

    # =========================
    # Store Operations
    # =========================

    def list_stores(self) -> list[FileSearchStore]:
        """List every File Search store visible to this API key."""
        return [
            FileSearchStore.from_api_response(item)
            for item in self._list_paginated("fileSearchStores", "fileSearchStores")
        ]

    def create_store(self, display_name: str) -> FileSearchStore:
        """Create a new store.

        Args:
            display_name: Human readable name (the project name)

        Returns:
            The created store
        """
        data = self._request(
            "POST", "fileSearchStores", json={"displayName": display_name}
        )
        store = FileSearchStore.from_api_response(data)
        if not store.name:
            raise FileSearchInvalidResponseError(
                "Failed to create store: name is missing from response"
            )
        return store

    def delete_store(self, store_name: str, force: bool = False) -> None:
        """Delete a store.

        Args:
            store_name: Store resource name
            force: Also delete any documents still in the store

        Raises:
            FileSearchStoreNotEmptyError: If documents remain and force is False
        """
        params = {"force": "true"} if force else None
        self._request("DELETE", store_name, params=params)

    # =========================
    # Document Operations
    # =========================

    def list_documents(self, store_name: str) -> list[RemoteDocument]:
        """List all documents in a store.

        The listing is eventually consistent: recently uploaded or deleted
        documents may be missing or still present.
        """
        return [
            RemoteDocument.from_api_response(item)
            for item in self._list_paginated(f"{store_name}/documents", "documents")
        ]

    def delete_document(self, document_name: str, force: bool = True) -> None:
        """Delete a document (and its chunks when force is set)."""
        params = {"force": "true"} if force else None
        self._request("DELETE", document_name, params=params)

    def upload_document(
        self,
        store_name: str,
        file_path: Path,
        mime_type: str,
        display_name: str,
    ) -> Operation:
        """Upload a file into a store and return the import operation.

        Uses the resumable upload protocol: a start request announces the
        metadata and returns an upload URL, then the bytes are sent in one
        finalizing request.

        Args:
            store_name: Target store resource name
            file_path: Local file to upload
            mime_type: MIME type of the file
            display_name: Display name (the relative path of the file)

        Returns:
            Operation that must be polled until done

        Raises:
            FileSearchFileNotFoundError: If the file doesn't exist
            FileSearchUploadError: If the upload could not be started
        """
        if not file_path.exists():
            raise FileSearchFileNotFoundError(str(file_path))

        content = file_path.read_bytes()
        start_url = (
            f"{self.api_url}/upload/{API_VERSION}/{store_name}:uploadToFileSearchStore"
        )
        start_response = self._send(
            "POST",
            start_url,
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(content)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
            },
            json={"displayName": display_name, "mimeType": mime_type},
        )
        upload_url = start_response.headers.get("x-goog-upload-url")
        if not upload_url:
            raise FileSearchUploadError(
                f"Upload of {display_name} was not accepted: no upload URL returned"
            )

        upload_response = self._send(
            "POST",
            upload_url,
            headers={
                "X-Goog-Upload-Command": "upload, finalize",
                "X-Goog-Upload-Offset": "0",
                "Content-Type": mime_type,
            },
            content=content,
        )
        data = self._parse_json(upload_response)
        operation = Operation.from_api_response(data)
        if not operation.name and not operation.done:
            raise FileSearchUploadError(
                f"Upload of {display_name} returned no operation: {data}"
            )
        return operation

    def get_operation(self, operation_name: str) -> Operation:
        """Fetch the current state of a long-running operation."""
        return Operation.from_api_response(self._request("GET", operation_name))

    # =========================
    # Generation
    # =========================

    def generate_content(
        self,
        query: str,
        store_names: list[str],
        model: str | None = None,
    ) -> QueryResult:
        """Generate an answer grounded on the given stores.

        Args:
            query: Prompt text
            store_names: Stores the file search tool may read from
            model: Model id (defaults to the configured model)

        Returns:
            QueryResult with text and citations
        """
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": query}]}],
        }
        if store_names:
            payload["tools"] = [
                {"fileSearch": {"fileSearchStoreNames": list(store_names)}}
            ]
        data = self._request(
            "POST", f"models/{model or self.model}:generateContent", json=payload
        )
        return QueryResult.from_api_response(data)

    def validate_api_key(self) -> bool:
        """Check the key by listing stores.

        Returns:
            True if the service accepted the key
        """
        try:
            self._request("GET", "fileSearchStores", params={"pageSize": 1})
            return True
        except (FileSearchAuthenticationError, FileSearchPermissionError):
            return False
