"""Shared fixtures: an in-memory document store service."""

import itertools
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Optional

import pytest

from pyfilesearch.exceptions import (
    FileSearchAPIError,
    FileSearchNotFoundError,
    FileSearchStoreNotEmptyError,
    FileSearchUploadError,
)
from pyfilesearch.models import FileSearchStore, Operation, QueryResult, RemoteDocument
from pyfilesearch.sync.state import MetadataStore


class FakeDocumentStore:
    """In-memory stand-in for the File Search service.

    Records every call in ``calls`` and supports failure injection and
    listing lag.
    """

    def __init__(self):
        self.stores: dict[str, FileSearchStore] = {}
        self.documents: dict[str, dict[str, RemoteDocument]] = {}
        self.calls: list[tuple] = []
        self.fail_uploads: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_list_documents = 0
        self.hidden_from_listing: set[str] = set()
        self.non_empty_refusals = 0
        self.answer = "Answer"
        self.max_concurrent_deletes = 0
        self._active_deletes = 0
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    # Helpers

    def _next_id(self) -> int:
        with self._lock:
            return next(self._counter)

    def add_store(self, display_name: str) -> FileSearchStore:
        n = self._next_id()
        store = FileSearchStore(name=f"fileSearchStores/store-{n}", display_name=display_name)
        self.stores[store.name] = store
        self.documents[store.name] = {}
        return store

    def add_document(self, store_name: str, display_name: str) -> RemoteDocument:
        n = self._next_id()
        doc = RemoteDocument(
            name=f"{store_name}/documents/doc-{n}",
            display_name=display_name,
            state="STATE_ACTIVE",
            update_time=f"2025-01-01T00:00:00.{n:06d}Z",
        )
        self.documents[store_name][doc.name] = doc
        return doc

    def docs_named(self, store_name: str, display_name: str) -> list[RemoteDocument]:
        return [
            d for d in self.documents[store_name].values() if d.display_name == display_name
        ]

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def close(self) -> None:
        self.calls.append(("close",))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # DocumentStoreProtocol

    def list_stores(self) -> list[FileSearchStore]:
        self.calls.append(("list_stores",))
        return list(self.stores.values())

    def create_store(self, display_name: str) -> FileSearchStore:
        self.calls.append(("create_store", display_name))
        return self.add_store(display_name)

    def delete_store(self, store_name: str, force: bool = False) -> None:
        self.calls.append(("delete_store", store_name))
        if store_name not in self.stores:
            raise FileSearchNotFoundError("Resource not found", 404)
        if self.non_empty_refusals > 0:
            self.non_empty_refusals -= 1
            raise FileSearchStoreNotEmptyError("Store is not empty", 400, "FAILED_PRECONDITION")
        if self.documents[store_name] and not force:
            raise FileSearchStoreNotEmptyError("Store is not empty", 400, "FAILED_PRECONDITION")
        del self.stores[store_name]
        del self.documents[store_name]

    def list_documents(self, store_name: str) -> list[RemoteDocument]:
        self.calls.append(("list_documents", store_name))
        if self.fail_list_documents > 0:
            self.fail_list_documents -= 1
            raise FileSearchAPIError("listing unavailable", 503)
        docs = [
            d
            for d in self.documents.get(store_name, {}).values()
            if d.name not in self.hidden_from_listing
        ]
        return sorted(docs, key=lambda d: d.update_time)

    def upload_document(
        self, store_name: str, file_path: Path, mime_type: str, display_name: str
    ) -> Operation:
        self.calls.append(("upload_document", display_name))
        if display_name in self.fail_uploads:
            raise FileSearchUploadError(f"upload of {display_name} rejected", 500)
        Path(file_path).read_bytes()
        doc = self.add_document(store_name, display_name)
        return Operation(
            name=f"operations/upload-{doc.name.rsplit('-', 1)[-1]}",
            done=False,
            response={"documentName": doc.name},
        )

    def get_operation(self, operation_name: str) -> Operation:
        self.calls.append(("get_operation", operation_name))
        n = operation_name.rsplit("-", 1)[-1]
        document_name = next(
            (
                d.name
                for docs in self.documents.values()
                for d in docs.values()
                if d.name.endswith(f"doc-{n}")
            ),
            None,
        )
        return Operation(
            name=operation_name,
            done=True,
            response={"documentName": document_name} if document_name else {},
        )

    def delete_document(self, document_name: str, force: bool = True) -> None:
        with self._lock:
            self.calls.append(("delete_document", document_name))
            self._active_deletes += 1
            self.max_concurrent_deletes = max(
                self.max_concurrent_deletes, self._active_deletes
            )
        try:
            time.sleep(0.001)
            if document_name in self.fail_deletes:
                raise FileSearchAPIError("delete failed", 500)
            with self._lock:
                for docs in self.documents.values():
                    if document_name in docs:
                        del docs[document_name]
                        return
            raise FileSearchNotFoundError("Resource not found", 404)
        finally:
            with self._lock:
                self._active_deletes -= 1

    # GenerationProtocol

    def generate_content(
        self, query: str, store_names: list[str], model: Optional[str] = None
    ) -> QueryResult:
        self.calls.append(("generate_content", query, tuple(store_names)))
        return QueryResult(text=self.answer)


def set_mtime(path: Path, mtime_ms: float) -> None:
    """Set a file's modification time in milliseconds."""
    ns = round(mtime_ms * 1000) * 1000
    os.utime(path, ns=(ns, ns))


@pytest.fixture
def fake_store():
    return FakeDocumentStore()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def metadata_store(temp_dir):
    return MetadataStore(temp_dir / "metadata")


@pytest.fixture
def watch_root(temp_dir):
    root = temp_dir / "docs"
    root.mkdir()
    return root


@pytest.fixture
def write_file(watch_root):
    """Create a file below the watch root, optionally with a fixed mtime."""

    def _write(relative_path: str, content: str = "content", mtime_ms=None) -> Path:
        path = watch_root.joinpath(*relative_path.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        if mtime_ms is not None:
            set_mtime(path, mtime_ms)
        return path

    return _write
