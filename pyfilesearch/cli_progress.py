"""CLI progress display for sync passes.

This module provides a Rich-based progress display that works with
the SyncProgressTracker from the sync engine.
"""

import threading
from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.engine import SyncEngine, SyncResult
from .sync.progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .sync.project import Project


class SyncProgressDisplay:
    """Rich-based progress display for sync passes.

    Shows one bar over the files of the upload plan, with the file
    currently being uploaded and the number of failures so far.
    """

    def __init__(self) -> None:
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display."""
        return SyncProgressTracker(callback=self._handle_event)

    @staticmethod
    def _format_status(info: SyncProgressInfo) -> str:
        if info.files_failed:
            return f"{info.files_failed} failed"
        return ""

    def _handle_event(self, info: SyncProgressInfo) -> None:
        if self._progress is None or self._task is None:
            return

        if info.event == SyncProgressEvent.PLAN_READY:
            self._progress.update(
                self._task,
                description="Uploading",
                total=info.files_total,
                completed=0,
            )

        elif info.event == SyncProgressEvent.ENTRY_START:
            self._progress.update(self._task, description=f"Uploading: {info.relative_path}")

        elif info.event == SyncProgressEvent.STALE_DELETED:
            self._progress.update(
                self._task, description=f"Replacing: {info.relative_path}"
            )

        elif info.event in (
            SyncProgressEvent.ENTRY_COMPLETE,
            SyncProgressEvent.ENTRY_FAILED,
            SyncProgressEvent.ENTRY_SKIPPED,
        ):
            self._progress.update(
                self._task,
                completed=info.files_processed,
                status=self._format_status(info),
            )

        elif info.event == SyncProgressEvent.RECONCILE_START:
            self._progress.update(self._task, description="Updating metadata")

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[red]{task.fields[status]}"),
            TimeElapsedColumn(),
            transient=True,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task("Preparing sync...", total=None, status="")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None


def run_sync_with_progress(
    engine: SyncEngine,
    project: Project,
    dry_run: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> SyncResult:
    """Run a sync pass with a Rich progress display.

    Args:
        engine: SyncEngine instance
        project: Project to sync
        dry_run: If True, only show what would be uploaded
        cancel_event: Set to stop the pass before the next file

    Returns:
        SyncResult
    """
    # For dry-run, don't show progress bar (just text output)
    if dry_run:
        return engine.sync_project(project, dry_run=True)

    with SyncProgressDisplay() as display:
        return engine.sync_project(
            project,
            cancel_event=cancel_event,
            sync_progress_tracker=display.create_tracker(),
        )
