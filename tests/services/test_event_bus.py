"""
Tests for the event bus, side-effect dispatcher and the notification /
audit subscribers.

Covers:
- Events follow the persisted state (published after the write)
- A failing subscriber never affects the publisher or other subscribers
- A slow subscriber is abandoned after its timeout
- Unsubscribe
- Notification and audit bridges
"""

import threading

import pytest

from approval_kernel.domain.approval import (
    ApprovalEvent,
    ApprovalEventType,
    ApprovalStatus,
    DecisionInput,
)
from approval_kernel.domain.audit import AuditAction
from approval_services.audit_trail import build_audit_entry
from approval_services.event_bus import ApprovalEventBus, SideEffectDispatcher
from approval_services.notifications import LoggingNotificationSink
from approval_services.request_manager import ApprovalRequestManager
from tests.conftest import MONDAY_NOON, make_order


@pytest.fixture
def dispatcher():
    dispatcher = SideEffectDispatcher(max_workers=2)
    yield dispatcher
    dispatcher.shutdown(wait=False)


class TestSideEffectDispatcher:
    def test_inline_success(self, dispatcher):
        calls = []
        assert dispatcher.run("record", calls.append, 1) is True
        assert calls == [1]

    def test_failure_logged_and_swallowed(self, dispatcher, captured_logs):
        def explode():
            raise RuntimeError("smtp down")

        assert dispatcher.run("mailer", explode) is False
        failed = [r for r in captured_logs() if r["message"] == "side_effect_failed"]
        assert failed[0]["side_effect"] == "mailer"
        assert failed[0]["exc_message"] == "smtp down"

    def test_timeout(self, dispatcher, captured_logs):
        release = threading.Event()
        try:
            assert dispatcher.run("slow", release.wait, 5, timeout=0.05) is False
        finally:
            release.set()
        timeouts = [r for r in captured_logs() if r["message"] == "side_effect_timeout"]
        assert timeouts[0]["side_effect"] == "slow"
        assert timeouts[0]["timeout_seconds"] == 0.05

    def test_within_timeout(self, dispatcher):
        calls = []
        assert dispatcher.run("quick", calls.append, "x", timeout=5) is True
        assert calls == ["x"]

    def test_failure_on_worker(self, dispatcher):
        def explode():
            raise ValueError("bad payload")

        assert dispatcher.run("worker", explode, timeout=5) is False


class TestApprovalEventBus:
    def test_subscribers_receive_events(self, manager, initiator):
        received = []
        manager.event_bus.subscribe(received.append)
        request = manager.create_request(make_order(), initiator)

        assert [e.event_type for e in received] == [ApprovalEventType.CREATED]
        assert received[0].request == request
        assert received[0].actor_id == "emp-1"

    def test_event_carries_persisted_state(self, manager, initiator, manager_actor, admin_actor):
        seen = []

        def check(event: ApprovalEvent):
            stored = manager.get_request(event.request.request_id)
            seen.append((event.event_type, stored.status, stored.version == event.request.version))

        manager.event_bus.subscribe(check)
        request = manager.create_request(make_order(), initiator)
        manager.submit_decision(request.request_id, DecisionInput(True, manager_actor))
        manager.submit_decision(request.request_id, DecisionInput(True, admin_actor))

        assert seen[-2:] == [
            (ApprovalEventType.DECISION_RECORDED, ApprovalStatus.APPROVED, True),
            (ApprovalEventType.APPROVED, ApprovalStatus.APPROVED, True),
        ]
        assert all(in_sync for _, _, in_sync in seen)

    def test_failing_subscriber_isolated(self, store, provider, clock, initiator, manager_actor, captured_logs):
        bus = ApprovalEventBus()
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(broken, name="broken")
        bus.subscribe(received.append)
        manager = ApprovalRequestManager(store, provider, clock=clock, event_bus=bus)

        request = manager.create_request(make_order(), initiator)
        result = manager.submit_decision(request.request_id, DecisionInput(False, manager_actor))

        assert result.success
        assert manager.get_request(request.request_id).status == ApprovalStatus.REJECTED
        assert [e.event_type for e in received] == [
            ApprovalEventType.CREATED,
            ApprovalEventType.DECISION_RECORDED,
            ApprovalEventType.REJECTED,
        ]
        failures = [r for r in captured_logs() if r["message"] == "side_effect_failed"]
        assert len(failures) == 3
        assert {r["side_effect"] for r in failures} == {"broken"}

    def test_slow_subscriber_does_not_block(self, store, provider, clock, initiator, dispatcher):
        bus = ApprovalEventBus(dispatcher)
        release = threading.Event()
        bus.subscribe(lambda event: release.wait(5), name="slow", timeout=0.05)
        manager = ApprovalRequestManager(store, provider, clock=clock, event_bus=bus)
        try:
            request = manager.create_request(make_order(), initiator)
        finally:
            release.set()
        assert manager.get_request(request.request_id) is not None

    def test_unsubscribe(self):
        bus = ApprovalEventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)
        assert bus.subscriber_count == 1
        unsubscribe()
        unsubscribe()
        assert bus.subscriber_count == 0

    def test_publish_without_subscribers(self, manager, initiator):
        bus = ApprovalEventBus()
        request = manager.create_request(make_order(), initiator)
        bus.publish(ApprovalEvent(ApprovalEventType.CREATED, request, MONDAY_NOON))


class TestBridges:
    def test_notifications_follow_lifecycle(self, manager, initiator, manager_actor, admin_actor, notifications):
        request = manager.create_request(make_order(), initiator)
        manager.submit_decision(request.request_id, DecisionInput(True, manager_actor))
        manager.submit_decision(request.request_id, DecisionInput(True, admin_actor))

        assert notifications.events_for(request.request_id) == [
            ApprovalEventType.CREATED,
            ApprovalEventType.DECISION_RECORDED,
            ApprovalEventType.DECISION_RECORDED,
            ApprovalEventType.APPROVED,
        ]

    def test_refused_decision_not_published(self, manager, initiator, manager_actor, notifications):
        request = manager.create_request(make_order(), initiator)
        manager.submit_decision(request.request_id, DecisionInput(True, manager_actor))
        manager.submit_decision(request.request_id, DecisionInput(True, manager_actor))
        assert notifications.events_for(request.request_id).count(ApprovalEventType.DECISION_RECORDED) == 1

    def test_audit_trail(self, manager, initiator, manager_actor, audit_sink):
        manager.create_request(make_order(order_id="PO-77"), initiator)
        request = manager.get_requests_for_purchase_order("PO-77")[0]
        manager.submit_decision(request.request_id, DecisionInput(False, manager_actor, reason="no budget"))

        entries = audit_sink.entries_for("PO-77")
        assert [e.action for e in entries] == [
            AuditAction.APPROVAL_REQUESTED,
            AuditAction.DECISION_RECORDED,
            AuditAction.APPROVAL_REJECTED,
        ]
        assert entries[0].actor_id == "emp-1"
        assert entries[1].payload["approved"] is False
        assert entries[1].payload["reason"] == "no budget"
        assert entries[1].payload["approver_role"] == "manager"

    def test_build_audit_entry_without_decision(self, manager, initiator):
        request = manager.create_request(make_order(), initiator)
        entry = build_audit_entry(ApprovalEvent(ApprovalEventType.CREATED, request, MONDAY_NOON))
        assert entry.action == AuditAction.APPROVAL_REQUESTED
        assert "approved" not in entry.payload
        assert entry.payload["required_approvals"] == 2

    def test_logging_sink(self, manager, initiator, captured_logs):
        request = manager.create_request(make_order(), initiator)
        LoggingNotificationSink().notify(request, ApprovalEventType.CREATED)
        LoggingNotificationSink().send_overdue_reminder([request], [initiator], 4)

        records = captured_logs()
        notice = [r for r in records if r["message"] == "approval_notification"][0]
        assert notice["event_type"] == "created"
        assert notice["recipients"] == ["admin", "manager"]
        reminder = [r for r in records if r["message"] == "approval_overdue_reminder"][0]
        assert reminder["days_overdue"] == 4
        assert reminder["recipient_ids"] == ["emp-1"]
