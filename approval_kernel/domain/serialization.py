"""
Serialization codec for approval domain objects.

Responsibility:
    Convert ``ApprovalRequest`` (with its threshold snapshot, decisions and
    metadata) and ``ApprovalEscalation`` to and from plain JSON-compatible
    dicts.  Used by the in-memory store (copy isolation), the SQL store
    (threshold snapshot column) and the CLI.

Guarantees:
    - Round trip is lossless: ``request_from_dict(request_to_dict(r)) == r``.
    - Datetimes are ISO-8601 strings carrying microseconds and UTC offset,
      so no precision or timezone is lost.
    - Decimals are strings, never floats.
    - Decision order is list order.
"""

from __future__ import annotations

import copy
from datetime import datetime
from decimal import Decimal
from typing import Any

from approval_kernel.domain.approval import (
    Actor,
    ApprovalCondition,
    ApprovalDecision,
    ApprovalEscalation,
    ApprovalRequest,
    ApprovalStatus,
    ApprovalThreshold,
    ConditionField,
    ConditionOperator,
    EscalationReason,
    Priority,
    UserRole,
)


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


# ---------------------------------------------------------------------------
# Threshold
# ---------------------------------------------------------------------------


def condition_to_dict(condition: ApprovalCondition) -> dict[str, Any]:
    value = condition.value
    return {
        "field": condition.field.value,
        "operator": condition.operator.value,
        "value": list(value) if isinstance(value, tuple) else value,
    }


def condition_from_dict(data: dict[str, Any]) -> ApprovalCondition:
    value = data["value"]
    return ApprovalCondition(
        field=ConditionField(data["field"]),
        operator=ConditionOperator(data["operator"]),
        value=tuple(value) if isinstance(value, list) else value,
    )


def threshold_to_dict(threshold: ApprovalThreshold) -> dict[str, Any]:
    return {
        "threshold_id": threshold.threshold_id,
        "name": threshold.name,
        "min_amount": str(threshold.min_amount),
        "max_amount": str(threshold.max_amount) if threshold.max_amount is not None else None,
        "required_roles": sorted(r.value for r in threshold.required_roles),
        "required_approvers": threshold.required_approvers,
        "escalation_time_hours": threshold.escalation_time_hours,
        "skip_weekends": threshold.skip_weekends,
        "skip_holidays": threshold.skip_holidays,
        "priority": threshold.priority.value,
        "auto_approve": threshold.auto_approve,
        "conditions": [condition_to_dict(c) for c in threshold.conditions],
        "is_active": threshold.is_active,
        "version": threshold.version,
    }


def threshold_from_dict(data: dict[str, Any]) -> ApprovalThreshold:
    max_amount = data.get("max_amount")
    return ApprovalThreshold(
        threshold_id=data["threshold_id"],
        name=data["name"],
        min_amount=Decimal(data["min_amount"]),
        max_amount=Decimal(max_amount) if max_amount is not None else None,
        required_roles=frozenset(UserRole(r) for r in data["required_roles"]),
        required_approvers=data["required_approvers"],
        escalation_time_hours=data.get("escalation_time_hours"),
        skip_weekends=data.get("skip_weekends", False),
        skip_holidays=data.get("skip_holidays", False),
        priority=Priority(data["priority"]),
        auto_approve=data.get("auto_approve", False),
        conditions=tuple(condition_from_dict(c) for c in data.get("conditions", ())),
        is_active=data.get("is_active", True),
        version=data.get("version", 1),
    )


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


def actor_to_dict(actor: Actor) -> dict[str, Any]:
    return {
        "user_id": actor.user_id,
        "name": actor.name,
        "role": actor.role.value,
        "email": actor.email,
    }


def actor_from_dict(data: dict[str, Any]) -> Actor:
    return Actor(
        user_id=data["user_id"],
        name=data["name"],
        role=UserRole(data["role"]),
        email=data.get("email", ""),
    )


def decision_to_dict(decision: ApprovalDecision) -> dict[str, Any]:
    return {
        "approved": decision.approved,
        "approver": actor_to_dict(decision.approver),
        "timestamp": _dt(decision.timestamp),
        "reason": decision.reason,
        "comments": decision.comments,
        "escalated": decision.escalated,
    }


def decision_from_dict(data: dict[str, Any]) -> ApprovalDecision:
    return ApprovalDecision(
        approved=data["approved"],
        approver=actor_from_dict(data["approver"]),
        timestamp=_parse_dt(data["timestamp"]),
        reason=data.get("reason"),
        comments=data.get("comments"),
        escalated=data.get("escalated", False),
    )


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


def request_to_dict(request: ApprovalRequest) -> dict[str, Any]:
    return {
        "request_id": request.request_id,
        "purchase_order_id": request.purchase_order_id,
        "threshold": threshold_to_dict(request.threshold),
        "required_approvals": request.required_approvals,
        "received_approvals": [decision_to_dict(d) for d in request.received_approvals],
        "status": request.status.value,
        "created_at": _dt(request.created_at),
        "expires_at": _dt(request.expires_at),
        "escalated_at": _dt(request.escalated_at),
        "escalation_level": request.escalation_level,
        "escalated_to": [r.value for r in request.escalated_to],
        "priority": request.priority.value,
        "metadata": copy.deepcopy(request.metadata),
        "version": request.version,
    }


def request_from_dict(data: dict[str, Any]) -> ApprovalRequest:
    return ApprovalRequest(
        request_id=data["request_id"],
        purchase_order_id=data["purchase_order_id"],
        threshold=threshold_from_dict(data["threshold"]),
        required_approvals=data["required_approvals"],
        received_approvals=tuple(
            decision_from_dict(d) for d in data.get("received_approvals", ())
        ),
        status=ApprovalStatus(data["status"]),
        created_at=_parse_dt(data["created_at"]),
        expires_at=_parse_dt(data.get("expires_at")),
        escalated_at=_parse_dt(data.get("escalated_at")),
        escalation_level=data.get("escalation_level", 0),
        escalated_to=tuple(UserRole(r) for r in data.get("escalated_to", ())),
        priority=Priority(data["priority"]),
        metadata=copy.deepcopy(data.get("metadata") or {}),
        version=data.get("version", 0),
    )


# ---------------------------------------------------------------------------
# Escalation
# ---------------------------------------------------------------------------


def escalation_to_dict(escalation: ApprovalEscalation) -> dict[str, Any]:
    return {
        "request_id": escalation.request_id,
        "level": escalation.level,
        "escalated_at": _dt(escalation.escalated_at),
        "escalated_to": [r.value for r in escalation.escalated_to],
        "reason": escalation.reason.value,
        "previous_approvers": list(escalation.previous_approvers),
    }


def escalation_from_dict(data: dict[str, Any]) -> ApprovalEscalation:
    return ApprovalEscalation(
        request_id=data["request_id"],
        level=data["level"],
        escalated_at=_parse_dt(data["escalated_at"]),
        escalated_to=tuple(UserRole(r) for r in data["escalated_to"]),
        reason=EscalationReason(data["reason"]),
        previous_approvers=tuple(data.get("previous_approvers", ())),
    )
