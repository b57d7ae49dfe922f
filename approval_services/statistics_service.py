"""Statistics over the whole request set."""

from __future__ import annotations

from approval_engines.statistics import compute_statistics
from approval_kernel.domain.approval import ApprovalStatistics
from approval_kernel.logging_config import get_logger
from approval_kernel.stores.base import ApprovalRequestStore

logger = get_logger("services.statistics")


class ApprovalStatisticsService:
    def __init__(self, store: ApprovalRequestStore):
        self._store = store

    def get_statistics(self) -> ApprovalStatistics:
        stats = compute_statistics(self._store.list_all())
        logger.info(
            "approval_statistics_computed",
            extra={
                "total_requests": stats.total_requests,
                "average_approval_time_hours": round(stats.average_approval_time_hours, 3),
            },
        )
        return stats
