"""Data models for File Search API responses."""

from dataclasses import dataclass, field
from typing import Any, Optional


def _to_int(value: Any) -> int:
    # int64 fields arrive as JSON strings
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class FileSearchStore:
    """A remote document store (one per project)."""

    name: str
    """Resource name, e.g. ``fileSearchStores/abc123``"""

    display_name: str = ""
    active_documents_count: int = 0
    pending_documents_count: int = 0
    failed_documents_count: int = 0
    size_bytes: int = 0

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "FileSearchStore":
        return cls(
            name=data.get("name", ""),
            display_name=data.get("displayName", ""),
            active_documents_count=_to_int(data.get("activeDocumentsCount")),
            pending_documents_count=_to_int(data.get("pendingDocumentsCount")),
            failed_documents_count=_to_int(data.get("failedDocumentsCount")),
            size_bytes=_to_int(data.get("sizeBytes")),
        )


@dataclass
class RemoteDocument:
    """A document inside a store.

    ``display_name`` is the join key against local relative paths.
    """

    name: str
    """Resource name, e.g. ``fileSearchStores/abc/documents/xyz``"""

    display_name: str = ""
    mime_type: str = ""
    uri: str = ""
    state: str = ""
    size_bytes: int = 0
    update_time: str = ""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "RemoteDocument":
        name = data.get("name", "")
        return cls(
            name=name,
            # Fall back to the trailing id when the service omits a display name
            display_name=data.get("displayName") or name.split("/")[-1],
            mime_type=data.get("mimeType", ""),
            uri=data.get("uri", ""),
            state=data.get("state", ""),
            size_bytes=_to_int(data.get("sizeBytes")),
            update_time=data.get("updateTime", ""),
        )


@dataclass
class Operation:
    """Handle for a long-running remote operation (e.g. an upload import)."""

    name: str
    done: bool = False
    error: Optional[dict[str, Any]] = None
    response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Operation":
        return cls(
            name=data.get("name", ""),
            done=bool(data.get("done", False)),
            error=data.get("error"),
            response=data.get("response") or {},
        )

    @property
    def document_name(self) -> Optional[str]:
        """Document created by a finished upload, if the service reported it."""
        return self.response.get("documentName") or None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        return self.error.get("message") or str(self.error)


@dataclass
class Citation:
    """A grounding chunk that supported a generated answer."""

    title: str = ""
    text: str = ""
    uri: str = ""

    @classmethod
    def from_grounding_chunk(cls, chunk: dict[str, Any]) -> "Citation":
        context = chunk.get("retrievedContext") or {}
        return cls(
            title=context.get("title", ""),
            text=context.get("text", ""),
            uri=context.get("uri", ""),
        )


@dataclass
class QueryResult:
    """Answer text plus the citations it was grounded on."""

    text: str
    citations: list[Citation] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "QueryResult":
        candidates = data.get("candidates") or []
        if not candidates:
            return cls(text="No response generated.")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
        chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
        return cls(
            text=text or "No response generated.",
            citations=[Citation.from_grounding_chunk(c) for c in chunks],
        )
