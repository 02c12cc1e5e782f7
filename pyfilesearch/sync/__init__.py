"""Sync engine for pyfilesearch - one-way incremental sync into a store."""

from .comparator import ChangeReason, FileComparator, SyncPlan, UploadEntry
from .deletion import DeletionOutcome, DeletionWatcher
from .directory import RemoteStoreDirectory
from .engine import EntryState, SyncEngine, SyncResult
from .operations import OperationPoller, OperationState, SyncOperations
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .project import Project
from .protocols import DocumentStoreProtocol, GenerationProtocol
from .scanner import DirectoryScanner, ExclusionPredicate, LocalFile
from .state import MetadataStore, TrackedFile
from .teardown import StoreTeardown, TeardownResult

__all__ = [
    "SyncEngine",
    "SyncResult",
    "EntryState",
    "SyncOperations",
    "OperationPoller",
    "OperationState",
    "Project",
    "DirectoryScanner",
    "ExclusionPredicate",
    "LocalFile",
    "FileComparator",
    "ChangeReason",
    "SyncPlan",
    "UploadEntry",
    "MetadataStore",
    "TrackedFile",
    "RemoteStoreDirectory",
    "DeletionWatcher",
    "DeletionOutcome",
    "StoreTeardown",
    "TeardownResult",
    "SyncProgressTracker",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "DocumentStoreProtocol",
    "GenerationProtocol",
]
