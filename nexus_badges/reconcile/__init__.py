"""Keep the registry, the remote document and the automation mirror in step."""

from nexus_badges.reconcile.engine import (
    DocumentStore,
    ReconciliationEngine,
    is_retryable_write_error,
)
from nexus_badges.reconcile.errors import (
    AutomationPushError,
    MirrorTooLargeError,
    NothingTrackedError,
    NotInitializedError,
    ReconcileError,
    SyncConflictError,
)
from nexus_badges.reconcile.merge import entry_for, merge_document, owned_entries
from nexus_badges.reconcile.mirror import AutomationMirror, MirrorDelta, diff
from nexus_badges.reconcile.models import (
    DocumentEntry,
    ItemFailure,
    MirrorPushResult,
    SyncOutcome,
    SyncReport,
)
from nexus_badges.reconcile.retry import retry_bounded

__all__ = [
    "AutomationMirror",
    "AutomationPushError",
    "DocumentEntry",
    "DocumentStore",
    "ItemFailure",
    "MirrorDelta",
    "MirrorPushResult",
    "MirrorTooLargeError",
    "NotInitializedError",
    "NothingTrackedError",
    "ReconcileError",
    "ReconciliationEngine",
    "SyncConflictError",
    "SyncOutcome",
    "SyncReport",
    "diff",
    "entry_for",
    "is_retryable_write_error",
    "merge_document",
    "owned_entries",
    "retry_bounded",
]
