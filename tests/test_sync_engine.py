"""Tests for the sync engine."""

import threading
from unittest.mock import Mock

import pytest

from pyfilesearch.exceptions import FileSearchConfigError
from pyfilesearch.output import OutputFormatter
from pyfilesearch.sync import (
    DeletionOutcome,
    DeletionWatcher,
    EntryState,
    Project,
    SyncEngine,
    SyncOperations,
    SyncProgressEvent,
    SyncProgressTracker,
    TrackedFile,
)

BASE_MTIME = 1_700_000_000_000.0


class TestSyncEngine:
    """Test SyncEngine functionality."""

    @pytest.fixture
    def mock_output(self):
        """Create a mock output formatter."""
        output = Mock(spec=OutputFormatter)
        output.quiet = True  # Suppress output during tests
        return output

    @pytest.fixture
    def engine(self, fake_store, mock_output, metadata_store):
        operations = SyncOperations(fake_store, sleep=lambda seconds: None)
        return SyncEngine(fake_store, mock_output, metadata_store, operations=operations)

    @pytest.fixture
    def project(self, watch_root):
        return Project(name="handbook", watch_root=watch_root)

    def _store_name(self, fake_store) -> str:
        return next(iter(fake_store.stores))

    def test_create_sync_engine(self, fake_store, mock_output):
        """Test creating a sync engine."""
        engine = SyncEngine(fake_store, mock_output)
        assert engine.client == fake_store
        assert engine.output == mock_output
        assert engine.operations is not None

    def test_missing_watch_root(self, engine, temp_dir):
        """A missing watch root is a configuration error."""
        project = Project(name="handbook", watch_root=temp_dir / "nonexistent")

        with pytest.raises(FileSearchConfigError, match="does not exist"):
            engine.sync_project(project)

    def test_watch_root_is_file(self, engine, temp_dir):
        test_file = temp_dir / "test.txt"
        test_file.write_text("test")
        project = Project(name="handbook", watch_root=test_file)

        with pytest.raises(FileSearchConfigError, match="not a directory"):
            engine.sync_project(project)

    def test_first_sync_uploads_all_files(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """New files are uploaded and recorded with their document names."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        write_file("guide/b.txt", mtime_ms=BASE_MTIME)
        write_file("image.png")

        result = engine.sync_project(project)

        assert result.uploaded == 2
        assert result.failed == 0
        assert result.summary() == "Uploaded 2 of 2 file(s)."
        store_name = self._store_name(fake_store)
        assert fake_store.stores[store_name].display_name == "handbook"

        tracked = metadata_store.load("handbook")
        assert set(tracked) == {"a.md", "guide/b.txt"}
        for path, entry in tracked.items():
            docs = fake_store.docs_named(store_name, path)
            assert [d.name for d in docs] == [entry.document_name]
            assert entry.mtime_ms == BASE_MTIME

    def test_second_sync_is_idempotent(self, engine, project, fake_store, write_file):
        """A pass right after a successful pass uploads nothing."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        write_file("b.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        fake_store.calls.clear()

        result = engine.sync_project(project)

        assert result.planned == 0
        assert result.unchanged == 2
        assert "upload_document" not in fake_store.call_names()
        assert "delete_document" not in fake_store.call_names()

    def test_reuses_existing_store(self, engine, project, fake_store, write_file):
        existing = fake_store.add_store("handbook")
        write_file("a.md")

        engine.sync_project(project)

        assert list(fake_store.stores) == [existing.name]
        assert "create_store" not in fake_store.call_names()

    def test_mtime_within_tolerance_is_unchanged(
        self, engine, project, fake_store, write_file
    ):
        path = write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        write_file("a.md", content="edited", mtime_ms=BASE_MTIME + 500)
        fake_store.calls.clear()

        result = engine.sync_project(project)

        assert result.planned == 0
        assert path.read_text() == "edited"
        assert "upload_document" not in fake_store.call_names()

    def test_changed_file_replaces_old_document(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """The old document is deleted before the new version is uploaded."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        store_name = self._store_name(fake_store)
        old_doc = fake_store.docs_named(store_name, "a.md")[0]

        write_file("a.md", content="v2", mtime_ms=BASE_MTIME + 5000)
        fake_store.calls.clear()
        result = engine.sync_project(project)

        assert result.uploaded == 1
        assert result.stale_deleted == 1
        names = fake_store.call_names()
        assert names.index("delete_document") < names.index("upload_document")
        assert ("delete_document", old_doc.name) in fake_store.calls

        docs = fake_store.docs_named(store_name, "a.md")
        assert len(docs) == 1
        assert docs[0].name != old_doc.name
        entry = metadata_store.load("handbook")["a.md"]
        assert entry.document_name == docs[0].name
        assert entry.mtime_ms == BASE_MTIME + 5000

    def test_stale_delete_failure_still_uploads(
        self, engine, project, fake_store, write_file
    ):
        write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        store_name = self._store_name(fake_store)
        old_doc = fake_store.docs_named(store_name, "a.md")[0]
        fake_store.fail_deletes.add(old_doc.name)

        write_file("a.md", content="v2", mtime_ms=BASE_MTIME + 5000)
        result = engine.sync_project(project)

        assert result.uploaded == 1
        assert result.stale_deleted == 0
        assert len(fake_store.docs_named(store_name, "a.md")) == 2

    def test_upload_failure_is_isolated(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """One failing file does not stop the others or their metadata."""
        write_file("a.md")
        write_file("b.md")
        write_file("c.md")
        fake_store.fail_uploads.add("b.md")

        result = engine.sync_project(project)

        assert result.uploaded == 2
        assert result.failed == 1
        assert result.failed_paths == ["b.md"]
        assert set(metadata_store.load("handbook")) == {"a.md", "c.md"}

        fake_store.fail_uploads.clear()
        fake_store.calls.clear()
        result = engine.sync_project(project)

        assert result.uploaded == 1
        assert [c for c in fake_store.calls if c[0] == "upload_document"] == [
            ("upload_document", "b.md")
        ]

    def test_failed_reupload_keeps_old_metadata(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """A changed file whose upload fails is retried on the next pass."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        before = metadata_store.load("handbook")["a.md"]

        write_file("a.md", content="v2", mtime_ms=BASE_MTIME + 5000)
        fake_store.fail_uploads.add("a.md")
        result = engine.sync_project(project)

        assert result.failed == 1
        assert metadata_store.load("handbook")["a.md"] == before

        fake_store.fail_uploads.clear()
        result = engine.sync_project(project)
        assert result.uploaded == 1

    def test_cancel_before_start_skips_everything(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        write_file("a.md")
        write_file("b.md")
        cancel_event = threading.Event()
        cancel_event.set()

        result = engine.sync_project(project, cancel_event=cancel_event)

        assert result.cancelled
        assert result.skipped == 2
        assert result.uploaded == 0
        assert "upload_document" not in fake_store.call_names()
        assert metadata_store.load("handbook") == {}

    def test_cancel_midway_keeps_completed_uploads(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        write_file("a.md")
        write_file("b.md")
        write_file("c.md")
        cancel_event = threading.Event()

        def on_event(info):
            if info.event == SyncProgressEvent.ENTRY_COMPLETE:
                cancel_event.set()

        result = engine.sync_project(
            project,
            cancel_event=cancel_event,
            sync_progress_tracker=SyncProgressTracker(on_event),
        )

        assert result.uploaded == 1
        assert result.skipped == 2
        assert [e.state for e in result.entries] == [
            EntryState.RECORDED,
            EntryState.SKIPPED,
            EntryState.SKIPPED,
        ]
        assert set(metadata_store.load("handbook")) == {"a.md"}

    def test_orphan_document_is_adopted(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """A remote document matching an untracked local file is not re-uploaded."""
        store = fake_store.add_store("handbook")
        doc = fake_store.add_document(store.name, "a.md")
        write_file("a.md", mtime_ms=BASE_MTIME)

        result = engine.sync_project(project)

        assert result.adopted == 1
        assert result.planned == 0
        assert "upload_document" not in fake_store.call_names()
        entry = metadata_store.load("handbook")["a.md"]
        assert entry.document_name == doc.name
        assert entry.mtime_ms == BASE_MTIME

    def test_remote_only_documents_are_kept(self, engine, project, fake_store, write_file):
        store = fake_store.add_store("handbook")
        fake_store.add_document(store.name, "removed-locally.md")
        write_file("a.md")

        engine.sync_project(project)

        assert fake_store.docs_named(store.name, "removed-locally.md")
        assert "delete_document" not in fake_store.call_names()

    def test_unlisted_tracked_document_is_dropped(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """Metadata pointing at a vanished document is repaired."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        store_name = self._store_name(fake_store)
        for doc in fake_store.docs_named(store_name, "a.md"):
            del fake_store.documents[store_name][doc.name]

        engine.sync_project(project)
        assert "a.md" not in metadata_store.load("handbook")

        result = engine.sync_project(project)
        assert result.uploaded == 1
        assert "a.md" in metadata_store.load("handbook")

    def test_listing_lag_falls_back_to_reported_document(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        write_file("a.md")
        original_upload = fake_store.upload_document

        def upload_hidden(*args, **kwargs):
            operation = original_upload(*args, **kwargs)
            fake_store.hidden_from_listing.add(operation.response["documentName"])
            return operation

        fake_store.upload_document = upload_hidden

        engine.sync_project(project)

        entry = metadata_store.load("handbook")["a.md"]
        assert entry.document_name.startswith("fileSearchStores/")

    def test_lagging_listing_never_records_replaced_document(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """The listing still shows the deleted old version and hides the new one."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        store_name = self._store_name(fake_store)
        old_doc = fake_store.docs_named(store_name, "a.md")[0]

        def on_event(info):
            if info.event == SyncProgressEvent.RECONCILE_START:
                fake_store.list_documents = lambda name: [old_doc]

        write_file("a.md", content="v2", mtime_ms=BASE_MTIME + 5000)
        engine.sync_project(project, sync_progress_tracker=SyncProgressTracker(on_event))
        del fake_store.list_documents

        (new_doc,) = fake_store.docs_named(store_name, "a.md")
        assert new_doc.name != old_doc.name
        assert metadata_store.load("handbook")["a.md"].document_name == new_doc.name

        outcome = DeletionWatcher(fake_store, metadata_store, project).handle_deleted(
            project.watch_root / "a.md", lambda message: True
        )

        assert outcome == DeletionOutcome.DELETED
        assert fake_store.docs_named(store_name, "a.md") == []

    def test_stale_delete_already_gone_is_not_counted(
        self, engine, project, fake_store, write_file
    ):
        write_file("a.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        store_name = self._store_name(fake_store)
        old_doc = fake_store.docs_named(store_name, "a.md")[0]
        original_delete = fake_store.delete_document

        def delete_gone(name, force=True):
            fake_store.documents[store_name].pop(name, None)
            original_delete(name, force)

        fake_store.delete_document = delete_gone

        write_file("a.md", content="v2", mtime_ms=BASE_MTIME + 5000)
        result = engine.sync_project(project)

        assert result.uploaded == 1
        assert result.stale_deleted == 0
        assert old_doc.name not in fake_store.documents[store_name]

    def test_reconciliation_listing_failure_saves_uploads(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        write_file("a.md")

        def on_event(info):
            if info.event == SyncProgressEvent.RECONCILE_START:
                fake_store.fail_list_documents = 1

        result = engine.sync_project(
            project, sync_progress_tracker=SyncProgressTracker(on_event)
        )

        assert result.uploaded == 1
        entry = metadata_store.load("handbook")["a.md"]
        store_name = self._store_name(fake_store)
        assert entry.document_name == fake_store.docs_named(store_name, "a.md")[0].name

    def test_dry_run_makes_no_changes(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        write_file("a.md")
        write_file("b.md")

        result = engine.sync_project(project, dry_run=True)

        assert result.dry_run
        assert result.planned == 2
        assert fake_store.stores == {}
        assert "create_store" not in fake_store.call_names()
        assert "upload_document" not in fake_store.call_names()
        assert not metadata_store.path_for("handbook").exists()

    def test_excluded_directories_are_not_uploaded(
        self, engine, project, fake_store, write_file
    ):
        write_file("a.md")
        write_file("node_modules/pkg/readme.md")
        write_file(".git/notes.txt")
        write_file("document-sync.json")

        engine.sync_project(project)

        uploads = [c[1] for c in fake_store.calls if c[0] == "upload_document"]
        assert uploads == ["a.md"]

    def test_progress_events(self, engine, project, write_file):
        write_file("a.md")
        events = []

        engine.sync_project(
            project,
            sync_progress_tracker=SyncProgressTracker(lambda info: events.append(info.event)),
        )

        assert events == [
            SyncProgressEvent.PLAN_READY,
            SyncProgressEvent.ENTRY_START,
            SyncProgressEvent.ENTRY_COMPLETE,
            SyncProgressEvent.RECONCILE_START,
            SyncProgressEvent.SYNC_COMPLETE,
        ]

    def test_preserves_unrelated_metadata_entries(
        self, engine, project, fake_store, metadata_store, write_file
    ):
        """Entries of unchanged files keep their document ids."""
        write_file("a.md", mtime_ms=BASE_MTIME)
        write_file("b.md", mtime_ms=BASE_MTIME)
        engine.sync_project(project)
        before = metadata_store.load("handbook")["b.md"]

        write_file("a.md", content="v2", mtime_ms=BASE_MTIME + 5000)
        engine.sync_project(project)

        after = metadata_store.load("handbook")["b.md"]
        assert after == TrackedFile("b.md", BASE_MTIME, before.document_name)
