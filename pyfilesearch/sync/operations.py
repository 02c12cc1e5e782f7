"""Remote operations used by the sync executor."""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from ..exceptions import FileSearchNotFoundError, FileSearchOperationError
from ..models import Operation
from ..utils import DEFAULT_OPERATION_TIMEOUT, DEFAULT_POLL_INTERVAL
from .protocols import DocumentStoreProtocol
from .scanner import LocalFile

logger = logging.getLogger(__name__)


class OperationState(str, Enum):
    """States of a long-running remote operation."""

    PENDING = "pending"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.DONE, OperationState.FAILED)


class OperationPoller:
    """Drives an operation handle until the service reports it done.

    ``poll_once`` advances the state machine by one step and never sleeps,
    so it can be called from a timer callback. ``wait`` is the blocking
    driver that sleeps a constant interval between steps.
    """

    def __init__(
        self,
        client: DocumentStoreProtocol,
        operation: Operation,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = DEFAULT_OPERATION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.operation = operation
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.clock = clock
        self.state = OperationState.PENDING
        self.error: str = ""
        self.polls = 0
        self._started_at: Optional[float] = None

    def _settle(self) -> None:
        if self.operation.error:
            self.state = OperationState.FAILED
            self.error = self.operation.error_message
        else:
            self.state = OperationState.DONE

    def poll_once(self) -> OperationState:
        """Advance the state machine by one step."""
        if self.state.is_terminal:
            return self.state

        if self.state == OperationState.PENDING:
            self._started_at = self.clock()
            if self.operation.done:
                self._settle()
            else:
                self.state = OperationState.POLLING
            return self.state

        self.operation = self.client.get_operation(self.operation.name)
        self.polls += 1
        if self.operation.done:
            self._settle()
        elif (
            self.timeout is not None
            and self._started_at is not None
            and self.clock() - self._started_at > self.timeout
        ):
            self.state = OperationState.FAILED
            self.error = f"operation did not finish within {self.timeout:.0f}s"
        return self.state

    def wait(self, sleep: Callable[[float], None] = time.sleep) -> Operation:
        """Poll at a fixed interval until the operation is terminal.

        Returns:
            The finished operation

        Raises:
            FileSearchOperationError: If the operation failed or timed out
        """
        while not self.poll_once().is_terminal:
            sleep(self.poll_interval)

        if self.state == OperationState.FAILED:
            raise FileSearchOperationError(
                f"Operation {self.operation.name} failed: {self.error}"
            )
        return self.operation


class SyncOperations:
    """Upload and delete primitives with the semantics the executor needs."""

    def __init__(
        self,
        client: DocumentStoreProtocol,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        operation_timeout: Optional[float] = DEFAULT_OPERATION_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize sync operations.

        Args:
            client: Remote document store service
            poll_interval: Seconds between operation polls
            operation_timeout: Seconds before an upload operation is abandoned
            sleep: Blocking sleep used between polls
        """
        self.client = client
        self.poll_interval = poll_interval
        self.operation_timeout = operation_timeout
        self.sleep = sleep

    def upload_file(self, store_name: str, local_file: LocalFile) -> Operation:
        """Upload a local file and wait for the import to complete.

        Args:
            store_name: Target store
            local_file: File to upload; its relative path is the display name

        Returns:
            The finished operation
        """
        logger.debug(f"Uploading {local_file.relative_path} to {store_name}...")
        operation = self.client.upload_document(
            store_name,
            local_file.path,
            local_file.mime_type,
            local_file.relative_path,
        )
        poller = OperationPoller(
            self.client,
            operation,
            poll_interval=self.poll_interval,
            timeout=self.operation_timeout,
        )
        finished = poller.wait(self.sleep)
        logger.debug(
            f"Upload complete for {local_file.relative_path} after {poller.polls} poll(s)"
        )
        return finished

    def delete_document(self, document_name: str) -> bool:
        """Delete a remote document.

        Returns:
            True if deleted, False if it was already gone
        """
        try:
            self.client.delete_document(document_name, force=True)
            return True
        except FileSearchNotFoundError:
            logger.debug(f"Document {document_name} already deleted")
            return False
