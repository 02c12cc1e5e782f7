"""Progress reporting for sync passes."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class SyncProgressEvent(str, Enum):
    """Events emitted while a sync pass runs."""

    PLAN_READY = "plan_ready"
    ENTRY_START = "entry_start"
    STALE_DELETED = "stale_deleted"
    ENTRY_COMPLETE = "entry_complete"
    ENTRY_FAILED = "entry_failed"
    ENTRY_SKIPPED = "entry_skipped"
    RECONCILE_START = "reconcile_start"
    SYNC_COMPLETE = "sync_complete"


@dataclass
class SyncProgressInfo:
    """Snapshot of a sync pass passed to progress callbacks."""

    event: SyncProgressEvent
    relative_path: str = ""
    files_total: int = 0
    files_processed: int = 0
    files_uploaded: int = 0
    files_failed: int = 0
    message: str = ""


class SyncProgressTracker:
    """Counts processed entries and forwards events to a callback."""

    def __init__(self, callback: Optional[Callable[[SyncProgressInfo], None]] = None):
        self.callback = callback
        self.files_total = 0
        self.files_processed = 0
        self.files_uploaded = 0
        self.files_failed = 0

    def _emit(self, event: SyncProgressEvent, relative_path: str = "", message: str = "") -> None:
        if self.callback is None:
            return
        self.callback(
            SyncProgressInfo(
                event=event,
                relative_path=relative_path,
                files_total=self.files_total,
                files_processed=self.files_processed,
                files_uploaded=self.files_uploaded,
                files_failed=self.files_failed,
                message=message,
            )
        )

    def on_plan_ready(self, files_total: int) -> None:
        self.files_total = files_total
        self._emit(SyncProgressEvent.PLAN_READY)

    def on_entry_start(self, relative_path: str) -> None:
        self._emit(SyncProgressEvent.ENTRY_START, relative_path)

    def on_stale_deleted(self, relative_path: str, document_name: str) -> None:
        self._emit(SyncProgressEvent.STALE_DELETED, relative_path, document_name)

    def on_entry_complete(self, relative_path: str) -> None:
        self.files_processed += 1
        self.files_uploaded += 1
        self._emit(SyncProgressEvent.ENTRY_COMPLETE, relative_path)

    def on_entry_failed(self, relative_path: str, error: str) -> None:
        self.files_processed += 1
        self.files_failed += 1
        self._emit(SyncProgressEvent.ENTRY_FAILED, relative_path, error)

    def on_entry_skipped(self, relative_path: str) -> None:
        self.files_processed += 1
        self._emit(SyncProgressEvent.ENTRY_SKIPPED, relative_path)

    def on_reconcile_start(self) -> None:
        self._emit(SyncProgressEvent.RECONCILE_START)

    def on_sync_complete(self, summary: str) -> None:
        self._emit(SyncProgressEvent.SYNC_COMPLETE, message=summary)
