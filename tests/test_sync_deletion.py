"""Tests for propagating local deletions."""

import pytest

from pyfilesearch.sync import DeletionOutcome, DeletionWatcher, Project, TrackedFile


class TestDeletionWatcher:
    @pytest.fixture
    def project(self, watch_root):
        return Project(name="handbook", watch_root=watch_root)

    @pytest.fixture
    def store(self, fake_store):
        return fake_store.add_store("handbook")

    @pytest.fixture
    def watcher(self, fake_store, metadata_store, project):
        return DeletionWatcher(fake_store, metadata_store, project)

    def _track(self, fake_store, metadata_store, store, relative_path):
        doc = fake_store.add_document(store.name, relative_path)
        tracked = metadata_store.load("handbook")
        tracked[relative_path] = TrackedFile(relative_path, 1000.0, doc.name)
        metadata_store.save("handbook", tracked)
        return doc

    def test_confirmed_deletion_removes_document_and_metadata(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        doc = self._track(fake_store, metadata_store, store, "guide/a.md")
        prompts = []

        def confirm(message):
            prompts.append(message)
            return True

        outcome = watcher.handle_deleted(watch_root / "guide" / "a.md", confirm)

        assert outcome == DeletionOutcome.DELETED
        assert ("delete_document", doc.name) in fake_store.calls
        assert fake_store.docs_named(store.name, "guide/a.md") == []
        assert "guide/a.md" not in metadata_store.load("handbook")
        assert "guide/a.md" in prompts[0]

    def test_declined_deletion_changes_nothing(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        self._track(fake_store, metadata_store, store, "a.md")

        outcome = watcher.handle_deleted(watch_root / "a.md", lambda message: False)

        assert outcome == DeletionOutcome.DECLINED
        assert "delete_document" not in fake_store.call_names()
        assert "a.md" in metadata_store.load("handbook")

    def test_untracked_file_is_ignored_without_prompt(self, watcher, watch_root):
        def confirm(message):
            raise AssertionError("must not prompt")

        outcome = watcher.handle_deleted(watch_root / "never-synced.md", confirm)

        assert outcome == DeletionOutcome.IGNORED_UNTRACKED

    def test_path_outside_watch_root_is_ignored(self, watcher, temp_dir):
        outcome = watcher.handle_deleted(temp_dir / "elsewhere.md", lambda m: True)
        assert outcome == DeletionOutcome.IGNORED_EXCLUDED

    def test_excluded_path_is_ignored(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        self._track(fake_store, metadata_store, store, "node_modules/readme.md")

        outcome = watcher.handle_deleted(
            watch_root / "node_modules" / "readme.md", lambda m: True
        )

        assert outcome == DeletionOutcome.IGNORED_EXCLUDED
        assert "delete_document" not in fake_store.call_names()

    def test_already_deleted_document_counts_as_success(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        doc = self._track(fake_store, metadata_store, store, "a.md")
        del fake_store.documents[store.name][doc.name]

        outcome = watcher.handle_deleted(watch_root / "a.md", lambda m: True)

        assert outcome == DeletionOutcome.DELETED
        assert "a.md" not in metadata_store.load("handbook")

    def test_failed_delete_keeps_metadata(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        doc = self._track(fake_store, metadata_store, store, "a.md")
        fake_store.fail_deletes.add(doc.name)

        outcome = watcher.handle_deleted(watch_root / "a.md", lambda m: True)

        assert outcome == DeletionOutcome.FAILED
        assert "a.md" in metadata_store.load("handbook")

    def test_other_entries_survive(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        self._track(fake_store, metadata_store, store, "a.md")
        self._track(fake_store, metadata_store, store, "b.md")

        watcher.handle_deleted(watch_root / "a.md", lambda m: True)

        assert set(metadata_store.load("handbook")) == {"b.md"}

    def test_missing_document_id_deletes_by_display_name(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        live = fake_store.add_document(store.name, "a.md")
        other = fake_store.add_document(store.name, "b.md")
        metadata_store.save("handbook", {"a.md": TrackedFile("a.md", 1000.0, "")})

        outcome = watcher.handle_deleted(watch_root / "a.md", lambda m: True)

        assert outcome == DeletionOutcome.DELETED
        assert ("delete_document", live.name) in fake_store.calls
        assert list(fake_store.documents[store.name]) == [other.name]
        assert metadata_store.load("handbook") == {}

    def test_gone_document_id_deletes_newer_version(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        metadata_store.save(
            "handbook",
            {"a.md": TrackedFile("a.md", 1000.0, f"{store.name}/documents/deleted")},
        )
        live = fake_store.add_document(store.name, "a.md")

        outcome = watcher.handle_deleted(watch_root / "a.md", lambda m: True)

        assert outcome == DeletionOutcome.DELETED
        assert live.name not in fake_store.documents[store.name]

    def test_listing_failure_during_name_search_keeps_metadata(
        self, watcher, fake_store, metadata_store, store, watch_root
    ):
        fake_store.add_document(store.name, "a.md")
        metadata_store.save("handbook", {"a.md": TrackedFile("a.md", 1000.0, "")})
        fake_store.fail_list_documents = 1

        outcome = watcher.handle_deleted(watch_root / "a.md", lambda m: True)

        assert outcome == DeletionOutcome.FAILED
        assert "a.md" in metadata_store.load("handbook")
