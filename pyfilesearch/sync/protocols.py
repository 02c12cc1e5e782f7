"""Protocols the sync engine depends on.

The engine only talks to the remote service through
:class:`DocumentStoreProtocol`; :class:`pyfilesearch.api.FileSearchClient`
is the production implementation and tests substitute an in-memory fake.
"""

from pathlib import Path
from typing import Callable, Optional, Protocol

from ..models import FileSearchStore, Operation, QueryResult, RemoteDocument


class DocumentStoreProtocol(Protocol):
    """Operations consumed from the remote document store service."""

    def list_stores(self) -> list[FileSearchStore]: ...

    def create_store(self, display_name: str) -> FileSearchStore: ...

    def delete_store(self, store_name: str, force: bool = False) -> None: ...

    def list_documents(self, store_name: str) -> list[RemoteDocument]: ...

    def upload_document(
        self,
        store_name: str,
        file_path: Path,
        mime_type: str,
        display_name: str,
    ) -> Operation: ...

    def get_operation(self, operation_name: str) -> Operation: ...

    def delete_document(self, document_name: str, force: bool = True) -> None: ...


class GenerationProtocol(Protocol):
    """Grounded generation consumed by the query layer."""

    def generate_content(
        self,
        query: str,
        store_names: list[str],
        model: Optional[str] = None,
    ) -> QueryResult: ...


# Prompts the user with a message and returns True on confirmation
ConfirmCallback = Callable[[str], bool]
