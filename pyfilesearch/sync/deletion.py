"""Propagation of local deletions to the remote store."""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import FileSearchAPIError, FileSearchNotFoundError
from ..utils import relative_key
from .directory import RemoteStoreDirectory
from .project import Project
from .protocols import ConfirmCallback, DocumentStoreProtocol
from .scanner import ExclusionPredicate
from .state import MetadataStore

logger = logging.getLogger(__name__)


class DeletionOutcome(str, Enum):
    """Result of handling one local deletion event."""

    IGNORED_UNTRACKED = "ignored_untracked"
    IGNORED_EXCLUDED = "ignored_excluded"
    DECLINED = "declined"
    DELETED = "deleted"
    FAILED = "failed"


class DeletionWatcher:
    """Removes remote documents whose local file was deleted.

    Only files recorded in the project's metadata are considered, and the
    user has to confirm each removal. The metadata entry is dropped only
    after the remote delete succeeded. When the tracked document id is
    missing or already gone, the store is searched by display name so a
    newer version of the file is not left behind.
    """

    def __init__(
        self,
        client: DocumentStoreProtocol,
        metadata_store: MetadataStore,
        project: Project,
        is_excluded: Optional[Callable[[str], bool]] = None,
    ):
        self.client = client
        self.metadata = metadata_store
        self.project = project
        self.is_excluded = is_excluded or ExclusionPredicate()
        self.directory = RemoteStoreDirectory(client)

    def _is_excluded_path(self, relative_path: str) -> bool:
        excludes_path = getattr(self.is_excluded, "excludes_path", None)
        if excludes_path is not None:
            return excludes_path(relative_path)
        return any(self.is_excluded(part) for part in relative_path.split("/"))

    def handle_deleted(self, path: Path, confirm: ConfirmCallback) -> DeletionOutcome:
        """Handle the deletion of a local file.

        Args:
            path: Absolute path of the deleted file
            confirm: Asked with a message; returns True to delete remotely

        Returns:
            DeletionOutcome
        """
        rel = relative_key(Path(path), self.project.watch_root)
        if rel is None or rel == "":
            logger.debug(f"Ignoring deletion outside watch root: {path}")
            return DeletionOutcome.IGNORED_EXCLUDED
        if self._is_excluded_path(rel):
            logger.debug(f"Ignoring deletion in excluded path: {rel}")
            return DeletionOutcome.IGNORED_EXCLUDED

        tracked = self.metadata.load(self.project.name)
        entry = tracked.get(rel)
        if entry is None:
            logger.debug(f"Deleted file was never synced: {rel}")
            return DeletionOutcome.IGNORED_UNTRACKED

        if not confirm(
            f"'{rel}' was deleted locally. Remove it from the "
            f"'{self.project.name}' store too?"
        ):
            logger.info(f"Kept remote document for {rel}")
            return DeletionOutcome.DECLINED

        try:
            self._delete_remote(rel, entry.document_name)
        except FileSearchAPIError as e:
            logger.error(f"Failed to delete {rel} from store: {e}")
            return DeletionOutcome.FAILED

        # Reload so a sync pass that ran meanwhile is not overwritten
        tracked = self.metadata.load(self.project.name)
        tracked.pop(rel, None)
        self.metadata.save(self.project.name, tracked)
        return DeletionOutcome.DELETED

    def _delete_remote(self, rel: str, document_name: str) -> None:
        if document_name:
            try:
                self.client.delete_document(document_name, force=True)
                logger.info(f"Deleted {rel} from store")
                return
            except FileSearchNotFoundError:
                logger.info(f"Tracked document for {rel} was already gone")
        self._delete_by_display_name(rel)

    def _delete_by_display_name(self, rel: str) -> None:
        """Delete every listed document whose display name is ``rel``."""
        store_name = self.project.store_name
        if store_name is None:
            store = self.directory.find_store(self.project.name)
            if store is None:
                logger.info(f"No store for {self.project.name}, nothing to delete")
                return
            store_name = self.project.store_name = store.name

        for document in self.directory.list_documents(store_name):
            if document.display_name != rel:
                continue
            try:
                self.client.delete_document(document.name, force=True)
                logger.info(f"Deleted {rel} ({document.name}) from store")
            except FileSearchNotFoundError:
                logger.debug(f"Document {document.name} already deleted")
