"""Structured log events for reconciliation runs.

Events are emitted as ``[event.type] key=value ...`` lines so a scheduled
job's output can be grepped for per-item failures and conflict retries.
"""

from __future__ import annotations

import enum
import typing as typ

from nexus_badges.github.errors import GitHubAPIError, GitHubResponseShapeError
from nexus_badges.logging import (
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)
from nexus_badges.nexus.errors import NexusAPIError, NexusResponseShapeError

from .errors import SyncConflictError

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from nexus_badges.registry.models import TrackedItem

    from .models import ItemFailure, SyncReport

logger = get_logger(__name__)


class SyncEventType(enum.StrEnum):
    """Structured log event types emitted by the engine."""

    RUN_STARTED = "sync.run.started"
    RUN_COMPLETED = "sync.run.completed"
    RUN_FAILED = "sync.run.failed"
    ITEM_REFRESHED = "sync.item.refreshed"
    ITEM_FAILED = "sync.item.failed"
    WRITE_CONFLICT = "sync.write.conflict"
    WRITE_SKIPPED = "sync.write.skipped"
    MIRROR_PUSHED = "sync.mirror.pushed"
    MIRROR_FAILED = "sync.mirror.failed"


class ErrorCategory(enum.StrEnum):
    """Categories used to route run failures."""

    CONFLICT = "conflict"
    REMOTE = "remote"
    SCHEMA_DRIFT = "schema_drift"
    UNKNOWN = "unknown"


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorise a run failure for log routing."""
    if isinstance(exc, SyncConflictError):
        return ErrorCategory.CONFLICT
    if isinstance(exc, GitHubResponseShapeError | NexusResponseShapeError):
        return ErrorCategory.SCHEMA_DRIFT
    if isinstance(exc, GitHubAPIError | NexusAPIError):
        return ErrorCategory.REMOTE
    return ErrorCategory.UNKNOWN


class SyncEventLogger:
    """Emit structured reconciliation events through femtologging."""

    def log_run_started(self, gist_id: str, item_count: int) -> None:
        """Log the start of a sync run."""
        log_info(
            logger,
            "[%s] gist_id=%s items=%d",
            SyncEventType.RUN_STARTED,
            gist_id,
            item_count,
        )

    def log_item_failed(self, failure: ItemFailure) -> None:
        """Log a skipped item."""
        log_warning(
            logger,
            "[%s] key=%s kind=%s reason=%s",
            SyncEventType.ITEM_FAILED,
            failure.item.key,
            failure.kind or "unknown",
            failure.reason,
        )

    def log_write_conflict(self, gist_id: str, attempt: int) -> None:
        """Log a lost revision race that will be retried."""
        log_warning(
            logger,
            "[%s] gist_id=%s attempt=%d",
            SyncEventType.WRITE_CONFLICT,
            gist_id,
            attempt,
        )

    def log_write_skipped(self, gist_id: str) -> None:
        """Log that the merged document matched the remote copy."""
        log_info(logger, "[%s] gist_id=%s", SyncEventType.WRITE_SKIPPED, gist_id)

    def log_run_completed(
        self, gist_id: str, report: SyncReport, duration: dt.timedelta
    ) -> None:
        """Log a completed run with its counters."""
        log_info(
            logger,
            "[%s] gist_id=%s duration_seconds=%.3f updated=%d failed=%d "
            "removed=%d document_written=%s attempts=%d",
            SyncEventType.RUN_COMPLETED,
            gist_id,
            duration.total_seconds(),
            len(report.updated),
            len(report.failed),
            len(report.removed),
            report.document_written,
            report.attempts,
        )

    def log_run_failed(
        self, gist_id: str, error: BaseException, duration: dt.timedelta
    ) -> None:
        """Log a failed run with its error category."""
        log_error(
            logger,
            "[%s] gist_id=%s duration_seconds=%.3f error_type=%s "
            "error_category=%s error_message=%s",
            SyncEventType.RUN_FAILED,
            gist_id,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
        )

    def log_mirror_pushed(self, repository: str, names: cabc.Iterable[str]) -> None:
        """Log the secrets and variables written to the Actions host."""
        log_info(
            logger,
            "[%s] repository=%s names=%s",
            SyncEventType.MIRROR_PUSHED,
            repository,
            ",".join(names),
        )

    def log_mirror_failed(self, repository: str, failure: str) -> None:
        """Log one value the Actions host rejected."""
        log_warning(
            logger,
            "[%s] repository=%s failure=%s",
            SyncEventType.MIRROR_FAILED,
            repository,
            failure,
        )

    def log_item_refreshed(self, item: TrackedItem) -> None:
        """Log a refreshed item."""
        log_debug(logger, "[%s] key=%s", SyncEventType.ITEM_REFRESHED, item.key)
