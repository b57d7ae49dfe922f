"""
Retention cleanup.

Removes terminal requests (approved, rejected, expired) created before a
cutoff.  Open requests are never removed, whatever their age.
"""

from __future__ import annotations

from datetime import timedelta

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import get_logger
from approval_kernel.stores.base import ApprovalRequestStore

logger = get_logger("services.retention")


class RetentionService:
    def __init__(
        self,
        store: ApprovalRequestStore,
        clock: Clock | None = None,
        default_retention_days: int = 90,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._default_days = default_retention_days

    def cleanup_old_requests(self, older_than_days: int | None = None) -> int:
        """Delete terminal requests older than the cutoff; returns the count removed."""
        days = self._default_days if older_than_days is None else older_than_days
        if days < 0:
            raise ValueError(f"older_than_days cannot be negative: {days}")

        cutoff = self._clock.now() - timedelta(days=days)
        doomed = [
            r.request_id for r in self._store.list_all()
            if r.is_terminal and r.created_at < cutoff
        ]
        removed = self._store.delete_many(doomed) if doomed else 0
        logger.info(
            "approval_requests_cleaned_up",
            extra={"cutoff": cutoff, "older_than_days": days, "removed": removed},
        )
        return removed
