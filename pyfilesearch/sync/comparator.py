"""File comparison logic for sync operations.

The comparator is pure: it never talks to the network. It turns the local
snapshot, the tracked metadata and a remote listing into a :class:`SyncPlan`,
and after uploads it folds the post-upload listing back into metadata.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..models import RemoteDocument
from ..utils import MTIME_TOLERANCE_MS
from .scanner import LocalFile
from .state import TrackedFile

logger = logging.getLogger(__name__)


class ChangeReason(str, Enum):
    """Why a local file has to be uploaded."""

    NEW = "new"
    """No tracked metadata for the path"""

    CHANGED = "changed"
    """Modification time moved by more than the tolerance"""


@dataclass
class UploadEntry:
    """One file the executor has to upload."""

    local_file: LocalFile
    reason: ChangeReason
    stale_document_names: tuple[str, ...] = ()
    """Remote documents with the same display name, deleted before upload"""

    @property
    def relative_path(self) -> str:
        return self.local_file.relative_path


@dataclass
class SyncPlan:
    """Result of comparing local files against metadata and the remote store."""

    to_upload: list[UploadEntry] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    adopted: dict[str, TrackedFile] = field(default_factory=dict)
    """Remote documents matched to untracked local files by display name"""

    @property
    def stale_remote_duplicates(self) -> list[str]:
        return [name for e in self.to_upload for name in e.stale_document_names]

    @property
    def new_count(self) -> int:
        return sum(1 for e in self.to_upload if e.reason == ChangeReason.NEW)

    @property
    def changed_count(self) -> int:
        return sum(1 for e in self.to_upload if e.reason == ChangeReason.CHANGED)

    @property
    def is_empty(self) -> bool:
        return not self.to_upload


def group_by_display_name(
    documents: list[RemoteDocument],
) -> dict[str, list[RemoteDocument]]:
    """Group listed documents by display name, newest first."""
    grouped: dict[str, list[RemoteDocument]] = defaultdict(list)
    for doc in documents:
        if doc.display_name:
            grouped[doc.display_name].append(doc)
    for docs in grouped.values():
        # ISO-8601 timestamps sort lexicographically; stable for missing ones
        docs.sort(key=lambda d: d.update_time, reverse=True)
    return dict(grouped)


class FileComparator:
    """Classifies local files and reconciles metadata with the remote store."""

    def __init__(self, tolerance_ms: float = MTIME_TOLERANCE_MS):
        """Initialize file comparator.

        Args:
            tolerance_ms: Largest mtime difference still treated as unchanged
        """
        self.tolerance_ms = tolerance_ms

    def classify(
        self, local_file: LocalFile, tracked: Optional[TrackedFile]
    ) -> Optional[ChangeReason]:
        """Classify a single local file.

        Returns:
            ChangeReason, or None if the file is unchanged
        """
        if tracked is None:
            return ChangeReason.NEW
        if abs(tracked.mtime_ms - local_file.mtime_ms) > self.tolerance_ms:
            return ChangeReason.CHANGED
        return None

    def build_plan(
        self,
        local_files: list[LocalFile],
        tracked: dict[str, TrackedFile],
        remote_documents: list[RemoteDocument],
    ) -> SyncPlan:
        """Compare the local snapshot against metadata and the remote listing.

        Remote documents without a local counterpart are never scheduled for
        deletion; removal only happens through the deletion watcher.

        Args:
            local_files: Fresh scan of the watch root
            tracked: Loaded metadata keyed by relative path
            remote_documents: Current listing of the project's store

        Returns:
            SyncPlan
        """
        plan = SyncPlan()
        remote_by_name = group_by_display_name(remote_documents)

        for local_file in local_files:
            path = local_file.relative_path
            entry = tracked.get(path)
            reason = self.classify(local_file, entry)
            remote_docs = remote_by_name.get(path, [])

            if reason is None:
                plan.unchanged.append(path)
                continue

            if reason == ChangeReason.NEW and remote_docs:
                # Orphan: present remotely, unknown to metadata
                plan.adopted[path] = TrackedFile(
                    relative_path=path,
                    mtime_ms=local_file.mtime_ms,
                    document_name=remote_docs[0].name,
                )
                logger.debug(f"Adopting remote document {remote_docs[0].name} for {path}")
                continue

            stale: tuple[str, ...] = ()
            if reason == ChangeReason.CHANGED:
                stale = tuple(doc.name for doc in remote_docs)
            plan.to_upload.append(
                UploadEntry(local_file=local_file, reason=reason, stale_document_names=stale)
            )
            logger.debug(f"{path}: {reason.value}, will upload")

        return plan

    def reconcile(
        self,
        tracked: dict[str, TrackedFile],
        local_files: list[LocalFile],
        remote_documents: list[RemoteDocument],
        uploaded: dict[str, Optional[str]],
        untouched: set[str],
        adopted: Optional[dict[str, TrackedFile]] = None,
        replaced: Optional[set[str]] = None,
    ) -> dict[str, TrackedFile]:
        """Fold a post-upload listing back into metadata.

        Args:
            tracked: Metadata as loaded before the pass
            local_files: Snapshot taken at the start of the pass
            remote_documents: Listing read after all uploads
            uploaded: Successfully uploaded paths mapped to the document name
                the finished operation reported (None if it reported none)
            untouched: Paths whose upload failed or was skipped; their
                entries are kept exactly as loaded
            adopted: Orphans adopted while planning
            replaced: Old versions deleted before re-upload; a lagging
                listing may still show them, so they are never recorded

        Returns:
            New metadata mapping
        """
        if replaced:
            remote_documents = [d for d in remote_documents if d.name not in replaced]
        local_by_path = {f.relative_path: f for f in local_files}
        remote_by_name = group_by_display_name(remote_documents)
        result: dict[str, TrackedFile] = {}

        for path, entry in tracked.items():
            if path in untouched or path in uploaded:
                result[path] = entry
                continue

            docs = remote_by_name.get(path, [])
            if not docs:
                logger.info(f"Remote document for {path} no longer listed, dropping metadata")
                continue

            names = [d.name for d in docs]
            local_file = local_by_path.get(path)
            result[path] = TrackedFile(
                relative_path=path,
                mtime_ms=local_file.mtime_ms if local_file else entry.mtime_ms,
                document_name=(
                    entry.document_name if entry.document_name in names else names[0]
                ),
            )

        for path, reported_name in uploaded.items():
            local_file = local_by_path[path]
            names = [d.name for d in remote_by_name.get(path, [])]
            if reported_name:
                if reported_name not in names:
                    logger.debug(f"Upload of {path} not yet visible in store listing")
                document_name = reported_name
            elif names:
                document_name = names[0]
            else:
                document_name = ""
                logger.debug(f"Upload of {path} not visible and no document id reported")
            result[path] = TrackedFile(
                relative_path=path,
                mtime_ms=local_file.mtime_ms,
                document_name=document_name,
            )

        for path, entry in (adopted or {}).items():
            if path not in result:
                result[path] = entry

        # Local files that appeared remotely since planning
        for path, local_file in local_by_path.items():
            if path in result or path in untouched:
                continue
            docs = remote_by_name.get(path)
            if docs:
                result[path] = TrackedFile(
                    relative_path=path,
                    mtime_ms=local_file.mtime_ms,
                    document_name=docs[0].name,
                )
                logger.info(f"Added missing metadata for {path}")

        return result
