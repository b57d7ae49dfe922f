"""
Pytest fixtures for the approval engine test suite.

Provides:
- Deterministic clock (Monday 2024-01-01 12:00 UTC)
- In-memory and SQLite-backed stores
- Recording notification / audit sinks
- Factory helpers for orders, actors and thresholds
- Captured JSON logs
"""

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_config.provider import StaticConfigurationProvider
from approval_config.schema import ApprovalConfiguration, EngineSettings
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    make_session_factory,
)
from approval_kernel.domain.approval import (
    Actor,
    ApprovalEventType,
    ApprovalRequest,
    ApprovalThreshold,
    EscalationLevel,
    EscalationPolicy,
    EscalationRecipient,
    Priority,
    PurchaseOrder,
    RecipientType,
    UserRole,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.stores.audit import InMemoryAuditSink
from approval_kernel.stores.memory import InMemoryApprovalStore
from approval_kernel.stores.sql import SqlApprovalStore
from approval_services.audit_trail import AuditTrail
from approval_services.event_bus import ApprovalEventBus
from approval_services.notifications import NotificationBridge
from approval_services.request_manager import ApprovalRequestManager

MONDAY_NOON = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, manager):
            manager.create_request(...)
            assert any(r["message"] == "approval_request_created" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Factories
# =============================================================================


def make_actor(role: UserRole = UserRole.MANAGER, user_id: str | None = None) -> Actor:
    uid = user_id or f"{role.value}-{uuid4().hex[:8]}"
    return Actor(user_id=uid, name=f"{role.value.title()} {uid}", role=role, email=f"{uid}@example.com")


def make_order(
    total: str | int | Decimal = "25000",
    order_id: str | None = None,
    **kwargs,
) -> PurchaseOrder:
    return PurchaseOrder(
        order_id=order_id or f"PO-{uuid4().hex[:8]}",
        total=Decimal(str(total)),
        supplier_name=kwargs.pop("supplier_name", "Acme Supplies"),
        supplier_category=kwargs.pop("supplier_category", "office"),
        department=kwargs.pop("department", "operations"),
        payment_terms=kwargs.pop("payment_terms", "net30"),
        item_categories=kwargs.pop("item_categories", ("stationery",)),
        **kwargs,
    )


def make_threshold(
    threshold_id: str = "medium",
    name: str | None = None,
    min_amount: str | int = "10000",
    max_amount: str | int | None = "50000",
    roles: Sequence[UserRole] = (UserRole.MANAGER, UserRole.ADMIN),
    required_approvers: int = 2,
    **kwargs,
) -> ApprovalThreshold:
    return ApprovalThreshold(
        threshold_id=threshold_id,
        name=name or threshold_id.title(),
        min_amount=Decimal(str(min_amount)),
        max_amount=Decimal(str(max_amount)) if max_amount is not None else None,
        required_roles=frozenset(roles),
        required_approvers=required_approvers,
        **kwargs,
    )


def make_policy(*levels: tuple[int, int, UserRole, Priority], enabled: bool = True, **kwargs) -> EscalationPolicy:
    return EscalationPolicy(
        enabled=enabled,
        levels=tuple(
            EscalationLevel(
                level=number,
                after_hours=after_hours,
                recipients=(EscalationRecipient(RecipientType.ROLE, role.value),),
                priority=priority,
            )
            for number, after_hours, role, priority in levels
        ),
        **kwargs,
    )


DEFAULT_POLICY = make_policy(
    (1, 24, UserRole.MANAGER, Priority.MEDIUM),
    (2, 48, UserRole.ADMIN, Priority.HIGH),
)


def make_config(
    thresholds: Sequence[ApprovalThreshold] | None = None,
    escalation: EscalationPolicy | None = None,
    settings: EngineSettings | None = None,
    holidays=frozenset(),
) -> ApprovalConfiguration:
    return ApprovalConfiguration(
        thresholds=tuple(thresholds) if thresholds is not None else (
            make_threshold(escalation_time_hours=24),
        ),
        escalation=escalation or DEFAULT_POLICY,
        holidays=frozenset(holidays),
        settings=settings or EngineSettings(),
        checksum="test",
    )


# =============================================================================
# Recording sinks
# =============================================================================


class RecordingNotificationSink:
    def __init__(self):
        self.notifications: list[tuple[str, ApprovalEventType]] = []
        self.reminders: list[tuple[list[str], list[str], int]] = []

    def notify(self, request: ApprovalRequest, event_type: ApprovalEventType) -> None:
        self.notifications.append((request.request_id, event_type))

    def send_overdue_reminder(self, requests, recipients, days_overdue) -> None:
        self.reminders.append(
            ([r.request_id for r in requests], [a.user_id for a in recipients], days_overdue)
        )

    def events_for(self, request_id: str) -> list[ApprovalEventType]:
        return [e for rid, e in self.notifications if rid == request_id]


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(MONDAY_NOON)


@pytest.fixture
def store() -> InMemoryApprovalStore:
    return InMemoryApprovalStore()


@pytest.fixture
def config() -> ApprovalConfiguration:
    return make_config()


@pytest.fixture
def provider(config) -> StaticConfigurationProvider:
    return StaticConfigurationProvider(config)


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def event_bus(notifications, audit_sink) -> ApprovalEventBus:
    bus = ApprovalEventBus()
    NotificationBridge(notifications).attach(bus)
    AuditTrail(audit_sink).attach(bus)
    return bus


@pytest.fixture
def manager(store, provider, clock, event_bus) -> ApprovalRequestManager:
    return ApprovalRequestManager(store, provider, clock=clock, event_bus=event_bus)


@pytest.fixture
def manager_actor() -> Actor:
    return make_actor(UserRole.MANAGER, "mgr-1")


@pytest.fixture
def admin_actor() -> Actor:
    return make_actor(UserRole.ADMIN, "adm-1")


@pytest.fixture
def initiator() -> Actor:
    return make_actor(UserRole.EMPLOYEE, "emp-1")


# =============================================================================
# SQL fixtures
# =============================================================================


@pytest.fixture
def sql_engine():
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return make_session_factory(sql_engine)


@pytest.fixture
def sql_store(session_factory) -> SqlApprovalStore:
    return SqlApprovalStore(session_factory)
