"""Tests for upload operation polling."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from pyfilesearch.api import FileSearchClient
from pyfilesearch.exceptions import FileSearchNotFoundError, FileSearchOperationError
from pyfilesearch.models import Operation
from pyfilesearch.sync.operations import OperationPoller, OperationState, SyncOperations
from pyfilesearch.sync.scanner import LocalFile


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class TestOperationPoller:
    @pytest.fixture
    def mock_client(self):
        return Mock(spec=FileSearchClient)

    def test_already_done_operation_needs_no_polls(self, mock_client):
        poller = OperationPoller(mock_client, Operation(name="op", done=True))

        assert poller.poll_once() == OperationState.DONE
        mock_client.get_operation.assert_not_called()

    def test_poll_once_walks_the_states(self, mock_client):
        mock_client.get_operation.side_effect = [
            Operation(name="op", done=False),
            Operation(name="op", done=True, response={"documentName": "d1"}),
        ]
        poller = OperationPoller(mock_client, Operation(name="op"))

        assert poller.poll_once() == OperationState.POLLING
        assert poller.poll_once() == OperationState.POLLING
        assert poller.poll_once() == OperationState.DONE
        assert poller.operation.document_name == "d1"
        assert poller.polls == 2

    def test_wait_sleeps_fixed_interval(self, mock_client):
        mock_client.get_operation.side_effect = [
            Operation(name="op", done=False),
            Operation(name="op", done=False),
            Operation(name="op", done=True),
        ]
        sleeps = []
        poller = OperationPoller(mock_client, Operation(name="op"), poll_interval=2.0)

        finished = poller.wait(sleep=sleeps.append)

        assert finished.done
        assert sleeps == [2.0, 2.0, 2.0]

    def test_operation_error_fails(self, mock_client):
        mock_client.get_operation.return_value = Operation(
            name="op", done=True, error={"message": "unsupported file"}
        )
        poller = OperationPoller(mock_client, Operation(name="op"))

        with pytest.raises(FileSearchOperationError, match="unsupported file"):
            poller.wait(sleep=lambda s: None)
        assert poller.state == OperationState.FAILED

    def test_timeout_fails(self, mock_client):
        mock_client.get_operation.return_value = Operation(name="op", done=False)
        clock = FakeClock()
        poller = OperationPoller(
            mock_client, Operation(name="op"), poll_interval=2.0, timeout=10.0, clock=clock
        )

        with pytest.raises(FileSearchOperationError, match="did not finish"):
            poller.wait(sleep=clock.sleep)
        assert poller.polls <= 6

    def test_terminal_state_is_sticky(self, mock_client):
        poller = OperationPoller(mock_client, Operation(name="op", done=True))
        poller.poll_once()

        assert poller.poll_once() == OperationState.DONE
        mock_client.get_operation.assert_not_called()


class TestSyncOperations:
    @pytest.fixture
    def mock_client(self):
        return Mock(spec=FileSearchClient)

    def test_upload_file_waits_for_operation(self, mock_client):
        mock_client.upload_document.return_value = Operation(name="op")
        mock_client.get_operation.return_value = Operation(
            name="op", done=True, response={"documentName": "d1"}
        )
        local_file = LocalFile(
            path=Path("/docs/a.md"),
            relative_path="a.md",
            mtime_ms=1.0,
            mime_type="text/markdown",
        )

        operations = SyncOperations(mock_client, sleep=lambda s: None)
        finished = operations.upload_file("fileSearchStores/s", local_file)

        assert finished.document_name == "d1"
        mock_client.upload_document.assert_called_once_with(
            "fileSearchStores/s", Path("/docs/a.md"), "text/markdown", "a.md"
        )

    def test_delete_not_found_counts_as_done(self, mock_client):
        mock_client.delete_document.side_effect = FileSearchNotFoundError("gone", 404)

        assert SyncOperations(mock_client).delete_document("d1") is False

    def test_delete_document(self, mock_client):
        assert SyncOperations(mock_client).delete_document("d1") is True
        mock_client.delete_document.assert_called_once_with("d1", force=True)
