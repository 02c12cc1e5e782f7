"""Filesystem watching that keeps a project's store up to date."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import FileSearchError
from .sync.deletion import DeletionOutcome, DeletionWatcher
from .sync.engine import SyncEngine, SyncResult
from .sync.project import Project
from .sync.protocols import ConfirmCallback
from .sync.scanner import ExclusionPredicate
from .utils import is_supported_file, relative_key

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE: float = 2.0  # seconds without events before a sync starts


class SyncEventHandler(FileSystemEventHandler):
    """Collects file events below a watch root.

    Created and modified files are queued as changes, deleted files as
    deletions. A move counts as a deletion of the source and a change of
    the destination. Excluded and unsupported files are dropped here.
    """

    def __init__(
        self,
        watch_root: Path,
        is_excluded: Optional[Callable[[str], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.watch_root = Path(watch_root)
        self.is_excluded = is_excluded or ExclusionPredicate()
        self.clock = clock
        self.pending_changes: set[Path] = set()
        self.pending_deletions: set[Path] = set()
        self.last_event_time: Optional[float] = None
        self._lock = threading.Lock()

    def _is_relevant(self, path: Path) -> bool:
        rel = relative_key(path, self.watch_root)
        if not rel:
            return False
        if any(self.is_excluded(part) for part in rel.split("/")):
            return False
        return is_supported_file(path.name)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(Path(event.src_path), deleted=False)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(Path(event.src_path), deleted=False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(Path(event.src_path), deleted=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(Path(event.src_path), deleted=True)
            self._queue(Path(event.dest_path), deleted=False)

    def _queue(self, path: Path, deleted: bool) -> None:
        if not self._is_relevant(path):
            return
        with self._lock:
            if deleted:
                self.pending_changes.discard(path)
                self.pending_deletions.add(path)
            else:
                self.pending_deletions.discard(path)
                self.pending_changes.add(path)
            self.last_event_time = self.clock()
        logger.debug(f"Queued {'deletion' if deleted else 'change'}: {path}")

    def take_deletions(self) -> set[Path]:
        """Get and clear pending deletions."""
        with self._lock:
            deletions = self.pending_deletions.copy()
            self.pending_deletions.clear()
        return deletions

    def take_changes_if_quiet(self, debounce: float) -> set[Path]:
        """Get and clear pending changes once no event arrived for ``debounce`` seconds."""
        with self._lock:
            if not self.pending_changes or self.last_event_time is None:
                return set()
            if self.clock() - self.last_event_time < debounce:
                return set()
            changes = self.pending_changes.copy()
            self.pending_changes.clear()
        return changes


class ProjectWatcher:
    """Runs sync passes and deletion prompts in response to file events.

    Events are collected on the observer thread; all processing happens on
    the thread calling :meth:`run`, so at most one sync pass runs at a time
    and confirmations are asked one after another.
    """

    def __init__(
        self,
        engine: SyncEngine,
        deletion_watcher: DeletionWatcher,
        project: Project,
        confirm: ConfirmCallback,
        debounce: float = DEFAULT_DEBOUNCE,
        poll_interval: float = 0.5,
        observer_factory: Callable[[], Observer] = Observer,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the watcher.

        Args:
            engine: Sync engine used for passes
            deletion_watcher: Handles locally deleted files
            project: Project being watched
            confirm: Asked before a remote document is deleted
            debounce: Quiet seconds before changes trigger a pass
            poll_interval: Seconds between queue checks
            observer_factory: Creates the watchdog observer
            sleep: Blocking sleep function
        """
        self.engine = engine
        self.deletion_watcher = deletion_watcher
        self.project = project
        self.confirm = confirm
        self.debounce = debounce
        self.poll_interval = poll_interval
        self.observer_factory = observer_factory
        self.sleep = sleep
        self.handler = SyncEventHandler(project.watch_root, deletion_watcher.is_excluded)
        self.observer: Optional[Observer] = None
        self.stop_event = threading.Event()
        self.last_result: Optional[SyncResult] = None

    def start(self) -> None:
        """Start observing the watch root."""
        self.observer = self.observer_factory()
        self.observer.schedule(self.handler, str(self.project.watch_root), recursive=True)
        self.observer.start()
        logger.info(f"Watching {self.project.watch_root}")

    def stop(self) -> None:
        self.stop_event.set()
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
        logger.info("Watcher stopped")

    def run_sync(self) -> Optional[SyncResult]:
        """Run one sync pass, logging instead of raising on failure."""
        try:
            self.last_result = self.engine.sync_project(
                self.project, cancel_event=self.stop_event
            )
        except FileSearchError as e:
            logger.error(f"Sync of {self.project.name} failed: {e}")
            self.engine.output.error(f"Sync failed: {e}")
            return None
        return self.last_result

    def process_pending(self) -> bool:
        """Handle queued deletions and, once quiet, queued changes.

        Returns:
            True if a sync pass was started
        """
        for path in sorted(self.handler.take_deletions()):
            if path.exists():
                continue
            outcome = self.deletion_watcher.handle_deleted(path, self.confirm)
            if outcome == DeletionOutcome.DELETED:
                self.engine.output.success(f"Removed {path.name} from the store")
            elif outcome == DeletionOutcome.FAILED:
                self.engine.output.error(f"Could not remove {path.name} from the store")

        changes = self.handler.take_changes_if_quiet(self.debounce)
        if not changes:
            return False
        logger.info(f"{len(changes)} file(s) changed, starting sync")
        self.run_sync()
        return True

    def run(self, initial_sync: bool = True) -> None:
        """Watch until :meth:`stop` is called or the user interrupts."""
        self.start()
        try:
            if initial_sync:
                self.run_sync()
            while not self.stop_event.is_set():
                self.process_pending()
                self.sleep(self.poll_interval)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping watcher")
        finally:
            self.stop()
