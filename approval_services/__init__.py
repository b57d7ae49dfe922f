"""
approval_services -- orchestration layer of the approval engine.

Usage:
    from approval_config import StaticConfigurationProvider, load_configuration
    from approval_kernel.stores import InMemoryApprovalStore
    from approval_services import build_approval_engine

    engine = build_approval_engine(
        InMemoryApprovalStore(),
        StaticConfigurationProvider(load_configuration()),
    )
    request = engine.manager.create_request(order, initiator)
"""

from approval_services.audit_trail import AuditTrail, build_audit_entry
from approval_services.bulk_coordinator import BulkOperationsCoordinator
from approval_services.engine import ApprovalEngine, build_approval_engine
from approval_services.escalation_scheduler import EscalationScheduler
from approval_services.event_bus import ApprovalEventBus, SideEffectDispatcher
from approval_services.notifications import (
    LoggingNotificationSink,
    NotificationBridge,
    NotificationSink,
)
from approval_services.reminders import OverdueReminderService, ReminderSummary
from approval_services.request_manager import ApprovalRequestManager
from approval_services.retention import RetentionService
from approval_services.statistics_service import ApprovalStatisticsService

__all__ = [
    "ApprovalEngine",
    "ApprovalEventBus",
    "ApprovalRequestManager",
    "ApprovalStatisticsService",
    "AuditTrail",
    "BulkOperationsCoordinator",
    "EscalationScheduler",
    "LoggingNotificationSink",
    "NotificationBridge",
    "NotificationSink",
    "OverdueReminderService",
    "ReminderSummary",
    "RetentionService",
    "SideEffectDispatcher",
    "build_approval_engine",
    "build_audit_entry",
]
