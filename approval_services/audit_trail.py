"""
Audit trail subscriber.

Turns approval events into ``AuditEntry`` records on an ``AuditSink``.
The request state is already persisted when the entry is written; a
failing audit sink is logged by the dispatcher and never undoes the
state change.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from approval_kernel.domain.approval import ApprovalEvent, ApprovalEventType
from approval_kernel.domain.audit import AuditAction, AuditEntry
from approval_kernel.stores.base import AuditSink
from approval_services.event_bus import ApprovalEventBus

EVENT_AUDIT_ACTIONS: dict[ApprovalEventType, AuditAction] = {
    ApprovalEventType.CREATED: AuditAction.APPROVAL_REQUESTED,
    ApprovalEventType.DECISION_RECORDED: AuditAction.DECISION_RECORDED,
    ApprovalEventType.APPROVED: AuditAction.APPROVAL_GRANTED,
    ApprovalEventType.REJECTED: AuditAction.APPROVAL_REJECTED,
    ApprovalEventType.ESCALATED: AuditAction.APPROVAL_ESCALATED,
    ApprovalEventType.EXPIRED: AuditAction.APPROVAL_EXPIRED,
}


def build_audit_entry(event: ApprovalEvent) -> AuditEntry:
    request = event.request
    payload: dict[str, Any] = {
        "status": request.status.value,
        "threshold": request.threshold.name,
        "threshold_version": request.threshold.version,
        "required_approvals": request.required_approvals,
        "approved_count": request.approved_count,
        "priority": request.priority.value,
    }
    if event.decision is not None:
        payload["approved"] = event.decision.approved
        payload["approver_role"] = event.decision.approver.role.value
        if event.decision.reason:
            payload["reason"] = event.decision.reason
    if event.escalation is not None:
        payload["level"] = event.escalation.level
        payload["escalated_to"] = [r.value for r in event.escalation.escalated_to]
        payload["escalation_reason"] = event.escalation.reason.value

    return AuditEntry(
        purchase_order_id=request.purchase_order_id,
        request_id=request.request_id,
        action=EVENT_AUDIT_ACTIONS[event.event_type],
        occurred_at=event.occurred_at,
        actor_id=event.actor_id,
        payload=payload,
    )


class AuditTrail:
    """Subscribes an ``AuditSink`` to the event bus."""

    def __init__(self, sink: AuditSink):
        self._sink = sink

    def handle(self, event: ApprovalEvent) -> None:
        self._sink.record(build_audit_entry(event))

    def attach(self, bus: ApprovalEventBus, timeout: float | None = None) -> Callable[[], None]:
        return bus.subscribe(self.handle, name="audit_trail", timeout=timeout)
