"""Deletion of a project's remote store together with all its documents."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional

from ..exceptions import (
    FileSearchAPIError,
    FileSearchNotFoundError,
    FileSearchStoreNotEmptyError,
)
from ..models import RemoteDocument
from ..utils import (
    DEFAULT_CHUNK_PAUSE,
    DEFAULT_DELETE_BATCH_SIZE,
    DEFAULT_DRAIN_CHECK_DELAY,
    DEFAULT_STORE_DELETE_RETRIES,
    DEFAULT_STORE_DELETE_RETRY_DELAY,
)
from .directory import RemoteStoreDirectory
from .protocols import DocumentStoreProtocol
from .state import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class TeardownResult:
    """Statistics of a store teardown."""

    store_name: str
    documents_deleted: int = 0
    documents_failed: int = 0
    attempts: int = 0
    drain_rounds: int = 0


class StoreTeardown:
    """Drains a store of documents and deletes it.

    The listing is eventually consistent, so a store that looks empty may
    still refuse deletion. The drain loop deletes whatever the listing shows
    in small concurrent chunks, re-lists after a pause until nothing is left,
    and then deletes the store. A "store not empty" refusal restarts the
    whole sequence after a pause, up to ``max_attempts`` times.

    Examples:
        >>> teardown = StoreTeardown(client, MetadataStore())
        >>> teardown.delete_project("handbook")
        True
    """

    def __init__(
        self,
        client: DocumentStoreProtocol,
        metadata_store: Optional[MetadataStore] = None,
        chunk_size: int = DEFAULT_DELETE_BATCH_SIZE,
        chunk_pause: float = DEFAULT_CHUNK_PAUSE,
        drain_check_delay: float = DEFAULT_DRAIN_CHECK_DELAY,
        max_attempts: int = DEFAULT_STORE_DELETE_RETRIES,
        retry_delay: float = DEFAULT_STORE_DELETE_RETRY_DELAY,
        max_drain_rounds: int = 100,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize store teardown.

        Args:
            client: Remote document store service
            metadata_store: Metadata cleared after a project is deleted
            chunk_size: Documents deleted concurrently per chunk
            chunk_pause: Seconds between chunks
            drain_check_delay: Seconds before re-listing a drained store
            max_attempts: Attempts of the drain-and-delete sequence
            retry_delay: Seconds between attempts
            max_drain_rounds: Listings per attempt before trying the store delete
            sleep: Blocking sleep function
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.client = client
        self.metadata = metadata_store
        self.chunk_size = chunk_size
        self.chunk_pause = chunk_pause
        self.drain_check_delay = drain_check_delay
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.max_drain_rounds = max_drain_rounds
        self.sleep = sleep

    def delete_project(self, project_name: str) -> bool:
        """Delete the store of a project and forget its metadata.

        Args:
            project_name: Project (store display name)

        Returns:
            True if a store was deleted, False if the project had none
        """
        store = RemoteStoreDirectory(self.client).find_store(project_name)
        if store is None:
            logger.info(f"No store found for project {project_name}")
            self._clear_metadata(project_name)
            return False

        self.delete_store(store.name)
        self._clear_metadata(project_name)
        return True

    def delete_store(self, store_name: str) -> TeardownResult:
        """Drain and delete a store.

        Raises:
            FileSearchStoreNotEmptyError: If the store still refused deletion
                after all attempts
            FileSearchAPIError: On other failures of the store delete
        """
        result = TeardownResult(store_name=store_name)

        for attempt in range(self.max_attempts):
            result.attempts = attempt + 1
            self._drain(store_name, result)
            try:
                self.client.delete_store(store_name)
                logger.info(f"Deleted store {store_name}")
                return result
            except FileSearchNotFoundError:
                logger.info(f"Store {store_name} was already deleted")
                return result
            except FileSearchStoreNotEmptyError as e:
                if attempt + 1 >= self.max_attempts:
                    logger.error(
                        f"Store {store_name} still not empty after "
                        f"{self.max_attempts} attempts"
                    )
                    raise
                logger.warning(
                    f"Store {store_name} not empty yet "
                    f"(attempt {attempt + 1}/{self.max_attempts}): {e}"
                )
                self.sleep(self.retry_delay)

        return result

    def _drain(self, store_name: str, result: TeardownResult) -> None:
        """Delete listed documents until the listing comes back empty."""
        for _ in range(self.max_drain_rounds):
            documents = self.client.list_documents(store_name)
            if not documents:
                return
            result.drain_rounds += 1
            logger.info(f"Deleting {len(documents)} document(s) from {store_name}...")

            for start in range(0, len(documents), self.chunk_size):
                chunk = documents[start : start + self.chunk_size]
                deleted, failed = self._delete_chunk(chunk)
                result.documents_deleted += deleted
                result.documents_failed += failed
                if start + self.chunk_size < len(documents):
                    self.sleep(self.chunk_pause)

            self.sleep(self.drain_check_delay)

        logger.warning(
            f"Store {store_name} still lists documents after "
            f"{self.max_drain_rounds} rounds"
        )

    def _delete_chunk(self, chunk: list[RemoteDocument]) -> tuple[int, int]:
        """Delete one chunk of documents concurrently.

        Returns:
            Tuple of (deleted, failed) counts
        """
        deleted = 0
        failed = 0

        def delete_one(document: RemoteDocument) -> bool:
            try:
                self.client.delete_document(document.name, force=True)
            except FileSearchNotFoundError:
                logger.debug(f"Document {document.name} already deleted")
            return True

        with ThreadPoolExecutor(max_workers=len(chunk)) as executor:
            futures = {executor.submit(delete_one, doc): doc for doc in chunk}
            for future in as_completed(futures):
                document = futures[future]
                try:
                    future.result()
                    deleted += 1
                except FileSearchAPIError as e:
                    failed += 1
                    logger.warning(f"Failed to delete {document.display_name}: {e}")

        return deleted, failed

    def _clear_metadata(self, project_name: str) -> None:
        if self.metadata is None:
            return
        if self.metadata.clear(project_name):
            logger.debug(f"Cleared metadata of {project_name}")
