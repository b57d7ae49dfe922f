"""
Notification bridge.

The engine does not deliver messages itself.  It calls a
``NotificationSink`` (email, chat, in-app inbox, ...) supplied by the
host application.  ``LoggingNotificationSink`` is the default and only
writes structured log records.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

from approval_kernel.domain.approval import (
    Actor,
    ApprovalEvent,
    ApprovalEventType,
    ApprovalRequest,
)
from approval_kernel.logging_config import get_logger
from approval_services.event_bus import ApprovalEventBus

logger = get_logger("services.notifications")


class NotificationSink(Protocol):
    def notify(self, request: ApprovalRequest, event_type: ApprovalEventType) -> None:
        ...

    def send_overdue_reminder(
        self,
        requests: Sequence[ApprovalRequest],
        recipients: Sequence[Actor],
        days_overdue: int,
    ) -> None:
        ...


class LoggingNotificationSink:
    """Writes one log record per notification."""

    def notify(self, request: ApprovalRequest, event_type: ApprovalEventType) -> None:
        logger.info(
            "approval_notification",
            extra={
                "event_type": event_type.value,
                "request_id": request.request_id,
                "purchase_order_id": request.purchase_order_id,
                "status": request.status.value,
                "priority": request.priority.value,
                "recipients": [r.value for r in request.escalated_to]
                or sorted(r.value for r in request.threshold.required_roles),
            },
        )

    def send_overdue_reminder(
        self,
        requests: Sequence[ApprovalRequest],
        recipients: Sequence[Actor],
        days_overdue: int,
    ) -> None:
        logger.info(
            "approval_overdue_reminder",
            extra={
                "request_ids": [r.request_id for r in requests],
                "recipient_ids": [a.user_id for a in recipients],
                "days_overdue": days_overdue,
            },
        )


class NotificationBridge:
    """Subscribes a ``NotificationSink`` to the event bus."""

    def __init__(self, sink: NotificationSink):
        self._sink = sink

    def handle(self, event: ApprovalEvent) -> None:
        self._sink.notify(event.request, event.event_type)

    def attach(self, bus: ApprovalEventBus, timeout: float | None = None) -> Callable[[], None]:
        return bus.subscribe(self.handle, name="notification_bridge", timeout=timeout)
