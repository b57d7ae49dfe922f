"""
Service wiring.

``build_approval_engine`` assembles the manager, scheduler, bulk
coordinator, statistics, retention and reminder services around one
store, one configuration provider, one clock and one event bus, and
attaches the notification and audit subscribers with the timeouts from
``EngineSettings``.  Callers that need a different arrangement construct
the services directly.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from approval_config.provider import ConfigurationProvider
from approval_kernel.domain.approval import ApprovalEvent
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.stores.base import ApprovalRequestStore, AuditSink
from approval_kernel.utils.locks import KeyedLock
from approval_services.audit_trail import AuditTrail
from approval_services.bulk_coordinator import BulkOperationsCoordinator
from approval_services.escalation_scheduler import EscalationScheduler
from approval_services.event_bus import ApprovalEventBus
from approval_services.notifications import (
    LoggingNotificationSink,
    NotificationBridge,
    NotificationSink,
)
from approval_services.reminders import OverdueReminderService
from approval_services.request_manager import ApprovalRequestManager
from approval_services.retention import RetentionService
from approval_services.statistics_service import ApprovalStatisticsService


@dataclass
class ApprovalEngine:
    manager: ApprovalRequestManager
    scheduler: EscalationScheduler
    bulk: BulkOperationsCoordinator
    statistics: ApprovalStatisticsService
    retention: RetentionService
    reminders: OverdueReminderService
    event_bus: ApprovalEventBus

    def subscribe(
        self,
        handler: Callable[[ApprovalEvent], None],
        timeout: float | None = None,
    ) -> Callable[[], None]:
        """Register a listener for approval events; returns the unsubscribe callable."""
        return self.event_bus.subscribe(handler, timeout=timeout)

    def close(self) -> None:
        self.scheduler.stop()
        self.event_bus.dispatcher.shutdown(wait=False)


def build_approval_engine(
    store: ApprovalRequestStore,
    config: ConfigurationProvider,
    clock: Clock | None = None,
    notification_sink: NotificationSink | None = None,
    audit_sink: AuditSink | None = None,
    event_bus: ApprovalEventBus | None = None,
) -> ApprovalEngine:
    clock = clock or SystemClock()
    bus = event_bus or ApprovalEventBus()
    settings = config.get_settings()
    sink = notification_sink or LoggingNotificationSink()

    NotificationBridge(sink).attach(bus, timeout=settings.notification_timeout_seconds)
    if audit_sink is not None:
        AuditTrail(audit_sink).attach(bus, timeout=settings.audit_timeout_seconds)

    manager = ApprovalRequestManager(
        store, config, clock=clock, event_bus=bus, locks=KeyedLock(),
    )
    return ApprovalEngine(
        manager=manager,
        scheduler=EscalationScheduler(manager),
        bulk=BulkOperationsCoordinator(manager),
        statistics=ApprovalStatisticsService(store),
        retention=RetentionService(store, clock, settings.retention_days),
        reminders=OverdueReminderService(manager, sink),
        event_bus=bus,
    )
