"""
Overdue reminders.

Open requests (pending or escalated) older than ``reminder_after_days``
are grouped into a critical bucket (older than ``critical_after_days``)
and a normal bucket; each non-empty bucket produces one
``send_overdue_reminder`` call.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from approval_kernel.domain.approval import Actor, ApprovalRequest, ApprovalStatus, UserRole
from approval_kernel.logging_config import get_logger
from approval_services.event_bus import SideEffectDispatcher
from approval_services.notifications import NotificationSink
from approval_services.request_manager import ApprovalRequestManager

logger = get_logger("services.reminders")

OPEN_STATUSES = frozenset({ApprovalStatus.PENDING, ApprovalStatus.ESCALATED})


def _may_decide(request: ApprovalRequest, role: UserRole) -> bool:
    return role in request.threshold.required_roles or role in request.escalated_to


@dataclass(frozen=True)
class ReminderSummary:
    critical: tuple[str, ...] = ()
    normal: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return len(self.critical) + len(self.normal)


class OverdueReminderService:
    def __init__(
        self,
        manager: ApprovalRequestManager,
        sink: NotificationSink,
        dispatcher: SideEffectDispatcher | None = None,
    ):
        self._manager = manager
        self._sink = sink
        self._dispatcher = dispatcher or manager.event_bus.dispatcher

    def send_overdue_reminders(
        self,
        recipients: Sequence[Actor],
        role: UserRole | None = None,
    ) -> ReminderSummary:
        settings = self._manager.settings
        now = self._manager.clock.now()

        def age_days(request: ApprovalRequest) -> int:
            return (now - request.created_at).days

        stale = [
            r for r in self._manager.store.list_all()
            if r.status in OPEN_STATUSES
            and age_days(r) >= settings.reminder_after_days
            and (role is None or _may_decide(r, role))
        ]
        stale.sort(key=lambda r: (r.created_at, r.request_id))
        critical = [r for r in stale if age_days(r) > settings.critical_after_days]
        normal = [r for r in stale if age_days(r) <= settings.critical_after_days]

        for bucket in (critical, normal):
            if not bucket:
                continue
            self._dispatcher.run(
                "overdue_reminder",
                self._sink.send_overdue_reminder,
                bucket,
                list(recipients),
                max(age_days(r) for r in bucket),
                timeout=settings.notification_timeout_seconds,
            )

        summary = ReminderSummary(
            critical=tuple(r.request_id for r in critical),
            normal=tuple(r.request_id for r in normal),
        )
        logger.info(
            "overdue_reminders_sent",
            extra={"critical": len(summary.critical), "normal": len(summary.normal)},
        )
        return summary
