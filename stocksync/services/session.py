from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from enum import Enum

from stocksync.audit.base import AuditSink
from stocksync.logging.error_log import ErrorLogBuffer
from stocksync.models.records import CanonicalStockRecord
from stocksync.models.sync import PreviewResult, SyncReport
from stocksync.remote.base import RemoteCatalogClient

from .executor import UPDATE_BATCH_SIZE, UpdateCallback, execute_sync
from .reconcile import BATCH_SIZE, BatchCallback, reconcile

"""Sync lifecycle for one site.

idle -> previewing -> idle (preview ready) -> cancel -> idle
                                           -> confirm -> updating -> idle

- preview() only from idle; confirm() only with a ready preview.
- A confirmed or cancelled preview is consumed; there is no retry state.
- Preview and confirm each hold the site's lock, so two syncs against the
  same site cannot overlap.
"""

__all__ = [
    "SyncState",
    "SyncInProgressError",
    "InvalidSyncStateError",
    "SiteLockRegistry",
    "SITE_LOCKS",
    "SyncSession",
]

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    UPDATING = "updating"


class SyncInProgressError(RuntimeError):
    """Another preview or sync holds the site's lock."""


class InvalidSyncStateError(RuntimeError):
    """Operation not allowed in the session's current state."""


class SiteLockRegistry:
    """One non-reentrant lock per site name, created on demand."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, site: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(site, threading.Lock())

    def is_locked(self, site: str) -> bool:
        return self._lock_for(site).locked()

    @contextmanager
    def hold(self, site: str) -> Iterator[None]:
        lock = self._lock_for(site)
        if not lock.acquire(blocking=False):
            raise SyncInProgressError(f"a sync is already running for site '{site}'")
        try:
            yield
        finally:
            lock.release()


# プロセス内で共有するサイト単位のロック
SITE_LOCKS = SiteLockRegistry()


class SyncSession:
    """Drives preview -> confirm for a single site and user."""

    def __init__(
        self,
        client: RemoteCatalogClient,
        audit_sink: AuditSink,
        user: str,
        locks: SiteLockRegistry | None = None,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.client = client
        self.audit_sink = audit_sink
        self.user = user
        self.locks = locks if locks is not None else SITE_LOCKS
        self.batch_size = batch_size
        self.state = SyncState.IDLE
        self.status_message = ""
        self.preview_result: PreviewResult | None = None
        self.report: SyncReport | None = None
        self.error: str | None = None

    @property
    def site_name(self) -> str:
        return self.client.site.name

    @property
    def has_preview(self) -> bool:
        return self.state is SyncState.IDLE and self.preview_result is not None

    def preview(
        self,
        records: Sequence[CanonicalStockRecord],
        on_progress: BatchCallback | None = None,
    ) -> PreviewResult:
        """Fetch remote state and build a preview. All or nothing.

        Raises:
            InvalidSyncStateError: not idle, or a preview is already pending
            SyncInProgressError: the site is locked by another session
            RemoteApiError: remote fetch failed (session returns to idle)
        """
        if self.state is not SyncState.IDLE or self.preview_result is not None:
            raise InvalidSyncStateError(f"cannot preview while {self._describe()}")
        with self.locks.hold(self.site_name):
            self.state = SyncState.PREVIEWING
            self.status_message = "Fetching products from remote store..."
            self.report = None
            self.error = None
            try:
                result = reconcile(records, self.client, self.batch_size, on_progress)
            except Exception as e:
                self.error = str(e)
                self.status_message = f"Preview failed: {e}"
                raise
            finally:
                self.state = SyncState.IDLE
        self.preview_result = result
        self.status_message = (
            f"Preview ready: {len(result.to_update)} to update, "
            f"{len(result.up_to_date)} up to date, {len(result.not_found)} not found"
        )
        return result

    def cancel(self) -> None:
        """Discard a pending preview."""
        if self.state is not SyncState.IDLE:
            raise InvalidSyncStateError(f"cannot cancel while {self._describe()}")
        if self.preview_result is not None:
            logger.info(f"preview for {self.site_name} discarded")
        self.preview_result = None
        self.status_message = "Cancelled"

    def confirm(
        self,
        error_log: ErrorLogBuffer | None = None,
        on_progress: UpdateCallback | None = None,
    ) -> SyncReport:
        """Apply the pending preview. The preview is consumed even on failure."""
        if not self.has_preview:
            raise InvalidSyncStateError(f"nothing to confirm while {self._describe()}")
        preview = self.preview_result
        assert preview is not None
        with self.locks.hold(self.site_name):
            self.preview_result = None
            self.state = SyncState.UPDATING
            self.status_message = f"Updating {len(preview.update_payload)} products..."
            try:
                report = execute_sync(
                    self.client,
                    preview,
                    user=self.user,
                    audit_sink=self.audit_sink,
                    error_log=error_log,
                    batch_size=min(self.batch_size, UPDATE_BATCH_SIZE),
                    on_progress=on_progress,
                )
            except Exception as e:
                self.error = str(e)
                self.status_message = f"Sync failed: {e}"
                raise
            finally:
                self.state = SyncState.IDLE
        self.report = report
        self.status_message = (
            f"Sync complete: {report.summary.total_updated} updated, "
            f"{report.summary.total_errors} errors"
        )
        return report

    def _describe(self) -> str:
        if self.state is SyncState.IDLE:
            return "a preview is pending" if self.preview_result is not None else "idle"
        return self.state.value
