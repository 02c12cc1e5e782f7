"""Core sync engine for executing sync passes."""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..exceptions import FileSearchAPIError, FileSearchConfigError, FileSearchError
from ..models import RemoteDocument
from ..output import OutputFormatter
from .comparator import ChangeReason, FileComparator, SyncPlan, UploadEntry
from .directory import RemoteStoreDirectory
from .operations import SyncOperations
from .progress import SyncProgressTracker
from .project import Project
from .protocols import DocumentStoreProtocol
from .scanner import DirectoryScanner, LocalFile
from .state import MetadataStore, TrackedFile

logger = logging.getLogger(__name__)


class EntryState(str, Enum):
    """Lifecycle of one upload entry within a pass."""

    PENDING = "pending"
    DELETING_STALE_DUPLICATE = "deleting_stale_duplicate"
    UPLOADING = "uploading"
    RECORDED = "recorded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class EntryResult:
    """Outcome of one upload entry."""

    relative_path: str
    state: EntryState
    reason: ChangeReason
    document_name: Optional[str] = None
    """Document reported by the finished upload operation"""

    error: str = ""
    stale_deleted: int = 0


@dataclass
class SyncResult:
    """Statistics of a sync pass."""

    project_name: str
    dry_run: bool = False
    cancelled: bool = False
    planned: int = 0
    unchanged: int = 0
    adopted: int = 0
    entries: list[EntryResult] = field(default_factory=list)
    metadata_error: str = ""

    def _count(self, state: EntryState) -> int:
        return sum(1 for e in self.entries if e.state == state)

    @property
    def uploaded(self) -> int:
        return self._count(EntryState.RECORDED)

    @property
    def failed(self) -> int:
        return self._count(EntryState.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(EntryState.SKIPPED)

    @property
    def stale_deleted(self) -> int:
        return sum(e.stale_deleted for e in self.entries)

    @property
    def failed_paths(self) -> list[str]:
        return [e.relative_path for e in self.entries if e.state == EntryState.FAILED]

    def summary(self) -> str:
        if self.dry_run:
            return f"Dry run: would upload {self.planned} file(s)."
        text = f"Uploaded {self.uploaded} of {self.planned} file(s)."
        if self.failed:
            text += f" {self.failed} failed."
        if self.skipped:
            text += f" {self.skipped} skipped (cancelled)."
        return text

    def to_dict(self) -> dict:
        return {
            "project": self.project_name,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "planned": self.planned,
            "uploaded": self.uploaded,
            "failed": self.failed,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "adopted": self.adopted,
            "stale_deleted": self.stale_deleted,
            "failed_paths": self.failed_paths,
        }


class SyncEngine:
    """Core sync engine that orchestrates one-way incremental synchronization.

    A pass enumerates local files, loads metadata, lists the store,
    classifies every file, uploads new and changed files one at a time and
    finally re-reads the store listing to record authoritative document
    names. Remote documents are never deleted here except stale duplicates
    of a file that is being re-uploaded.
    """

    def __init__(
        self,
        client: DocumentStoreProtocol,
        output: Optional[OutputFormatter] = None,
        metadata_store: Optional[MetadataStore] = None,
        scanner: Optional[DirectoryScanner] = None,
        comparator: Optional[FileComparator] = None,
        operations: Optional[SyncOperations] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Remote document store service
            output: Output formatter for displaying progress/status
            metadata_store: Persistent tracked-file metadata
            scanner: Local file enumerator
            comparator: Diff engine
            operations: Upload/delete primitives (defaults to blocking polling)
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.metadata = metadata_store or MetadataStore()
        self.scanner = scanner or DirectoryScanner()
        self.comparator = comparator or FileComparator()
        self.operations = operations or SyncOperations(client)
        self.directory = RemoteStoreDirectory(client)

    def sync_project(
        self,
        project: Project,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
        sync_progress_tracker: Optional[SyncProgressTracker] = None,
    ) -> SyncResult:
        """Run one sync pass for a project.

        Args:
            project: Project to synchronize
            dry_run: If True, only show what would be uploaded
            cancel_event: Checked before each entry; set it to stop the pass
            sync_progress_tracker: Receives progress events

        Returns:
            SyncResult with per-entry outcomes

        Raises:
            FileSearchConfigError: If the watch root is missing
            FileSearchAPIError: If the store cannot be resolved or listed

        Examples:
            >>> engine = SyncEngine(client)
            >>> project = Project("handbook", Path("/docs"))
            >>> result = engine.sync_project(project, dry_run=True)
            >>> print(result.summary())
        """
        root = project.watch_root
        if not root.exists():
            raise FileSearchConfigError(f"Watch location does not exist: {root}")
        if not root.is_dir():
            raise FileSearchConfigError(f"Watch location is not a directory: {root}")

        tracker = sync_progress_tracker or SyncProgressTracker()
        start_time = time.time()

        if not self.output.quiet:
            self.output.info(f"Syncing: {root} -> store '{project.name}'")
            if dry_run:
                self.output.info("Dry run: No changes will be made")

        store_name = project.store_name
        if store_name is None and dry_run:
            store = self.directory.find_store(project.name)
            store_name = store.name if store else None
        elif store_name is None:
            store_name = project.store_name = self.directory.get_or_create(project.name)
        logger.debug(f"Using store {store_name}")

        tracked = self.metadata.load(project.name)
        logger.info(f"Loaded metadata for {len(tracked)} previously synced files")

        local_files, remote_documents = self._scan(project, store_name)
        plan = self.comparator.build_plan(local_files, tracked, remote_documents)

        result = SyncResult(
            project_name=project.name,
            dry_run=dry_run,
            planned=len(plan.to_upload),
            unchanged=len(plan.unchanged),
            adopted=len(plan.adopted),
        )
        self._display_sync_plan(plan, len(local_files), len(remote_documents))

        if dry_run:
            self._display_summary(result)
            return result

        tracker.on_plan_ready(len(plan.to_upload))
        checkpoint = dict(tracked)
        checkpoint.update(plan.adopted)

        for entry in plan.to_upload:
            if cancel_event is not None and cancel_event.is_set():
                if not result.cancelled:
                    logger.info("Sync cancelled by user")
                    result.cancelled = True
                result.entries.append(
                    EntryResult(entry.relative_path, EntryState.SKIPPED, entry.reason)
                )
                tracker.on_entry_skipped(entry.relative_path)
                continue

            entry_result = self._execute_entry(store_name, entry, tracker)
            result.entries.append(entry_result)
            if entry_result.state == EntryState.RECORDED:
                checkpoint[entry.relative_path] = TrackedFile(
                    relative_path=entry.relative_path,
                    mtime_ms=entry.local_file.mtime_ms,
                    document_name=entry_result.document_name or "",
                )
                self._save_checkpoint(project.name, checkpoint)

        tracker.on_reconcile_start()
        updated = self._reconcile(store_name, tracked, local_files, plan, result)

        try:
            self.metadata.save(project.name, updated)
            logger.info(f"Saved metadata for {len(updated)} files")
        except OSError as e:
            result.metadata_error = str(e)
            logger.error(f"Failed to save metadata for {project.name}: {e}")
            self.output.error(f"Failed to save sync metadata: {e}")

        logger.debug(f"Sync pass took {time.time() - start_time:.2f}s")
        tracker.on_sync_complete(result.summary())
        self._display_summary(result)
        return result

    def _list_remote(self, store_name: Optional[str]) -> list[RemoteDocument]:
        # A dry run against a project without a store sees an empty store
        if store_name is None:
            return []
        return self.directory.list_documents(store_name)

    def _scan(
        self, project: Project, store_name: Optional[str]
    ) -> tuple[list[LocalFile], list[RemoteDocument]]:
        """List the store and scan the watch root."""
        if self.output.quiet:
            remote_documents = self._list_remote(store_name)
            local_files = self.scanner.scan_local(project.watch_root)
            return local_files, remote_documents

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            task = progress.add_task("Fetching documents from store...", total=None)
            remote_documents = self._list_remote(store_name)
            progress.update(
                task, description=f"Found {len(remote_documents)} document(s) in store"
            )

            task = progress.add_task("Scanning local directory...", total=None)
            local_files = self.scanner.scan_local(project.watch_root)
            progress.update(task, description=f"Found {len(local_files)} local file(s)")

        return local_files, remote_documents

    def _execute_entry(
        self,
        store_name: str,
        entry: UploadEntry,
        tracker: SyncProgressTracker,
    ) -> EntryResult:
        """Delete stale duplicates of one file, then upload it.

        A failed stale delete is logged and the upload proceeds; a failed
        upload leaves the file for the next pass.
        """
        path = entry.relative_path
        result = EntryResult(path, EntryState.PENDING, entry.reason)
        tracker.on_entry_start(path)

        if entry.stale_document_names:
            result.state = EntryState.DELETING_STALE_DUPLICATE
            for document_name in entry.stale_document_names:
                try:
                    if self.operations.delete_document(document_name):
                        result.stale_deleted += 1
                        logger.info(f"Deleted old version of {path} from store")
                        tracker.on_stale_deleted(path, document_name)
                except FileSearchAPIError as e:
                    logger.warning(f"Could not delete old version of {path}: {e}")

        result.state = EntryState.UPLOADING
        logger.info(f"Uploading {path} ({entry.reason.value})...")
        try:
            operation = self.operations.upload_file(store_name, entry.local_file)
        except (FileSearchError, OSError) as e:
            result.state = EntryState.FAILED
            result.error = str(e)
            logger.error(f"Failed to upload {path}: {e}")
            if not self.output.quiet:
                self.output.error(f"Failed to upload {path}: {e}")
            tracker.on_entry_failed(path, result.error)
            return result

        result.state = EntryState.RECORDED
        result.document_name = operation.document_name
        logger.info(f"Uploaded {path}")
        tracker.on_entry_complete(path)
        return result

    def _save_checkpoint(self, project_name: str, checkpoint: dict[str, TrackedFile]) -> None:
        try:
            self.metadata.save(project_name, checkpoint)
        except OSError as e:
            logger.warning(f"Failed to checkpoint metadata: {e}")

    def _reconcile(
        self,
        store_name: str,
        tracked: dict[str, TrackedFile],
        local_files: list[LocalFile],
        plan: SyncPlan,
        result: SyncResult,
    ) -> dict[str, TrackedFile]:
        """Re-list the store and rebuild metadata from the listing."""
        uploaded = {
            e.relative_path: e.document_name
            for e in result.entries
            if e.state == EntryState.RECORDED
        }
        untouched = {
            e.relative_path
            for e in result.entries
            if e.state in (EntryState.FAILED, EntryState.SKIPPED)
        }

        try:
            remote_documents = self.directory.list_documents(store_name)
        except FileSearchAPIError as e:
            logger.warning(f"Reconciliation listing failed, keeping reported ids: {e}")
            updated = dict(tracked)
            updated.update(plan.adopted)
            local_by_path = {f.relative_path: f for f in local_files}
            for path, document_name in uploaded.items():
                updated[path] = TrackedFile(
                    relative_path=path,
                    mtime_ms=local_by_path[path].mtime_ms,
                    document_name=document_name or "",
                )
            return updated

        return self.comparator.reconcile(
            tracked,
            local_files,
            remote_documents,
            uploaded=uploaded,
            untouched=untouched,
            adopted=plan.adopted,
            replaced=set(plan.stale_remote_duplicates),
        )

    def _display_sync_plan(self, plan: SyncPlan, local_count: int, remote_count: int) -> None:
        """Display sync plan to user."""
        if self.output.quiet:
            return

        self.output.info(f"Local files: {local_count}, documents in store: {remote_count}")
        self.output.info("Sync plan:")
        if plan.new_count > 0:
            self.output.info(f"  ↑ New: {plan.new_count} file(s)")
        if plan.changed_count > 0:
            self.output.info(f"  ↑ Changed: {plan.changed_count} file(s)")
        if plan.stale_remote_duplicates:
            self.output.info(
                f"  ✗ Replace old versions: {len(plan.stale_remote_duplicates)} document(s)"
            )
        if plan.adopted:
            self.output.info(f"  + Adopt from store: {len(plan.adopted)} file(s)")
        if plan.unchanged:
            self.output.info(f"  = Unchanged: {len(plan.unchanged)} file(s)")
        self.output.print("")

    def _display_summary(self, result: SyncResult) -> None:
        if self.output.quiet:
            return
        self.output.print("")
        if result.failed:
            self.output.warning(result.summary())
            for path in result.failed_paths:
                self.output.warning(f"  {path}")
        elif result.planned == 0 and not result.dry_run:
            self.output.success("No changes needed - everything is in sync!")
        else:
            self.output.success(result.summary())
