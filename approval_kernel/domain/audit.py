"""
Audit domain types (``approval_kernel.domain.audit``).

The audit trail is append-only and keyed by purchase-order id.  Every
create / approve / reject / escalate / expire transition produces exactly
one ``AuditEntry``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    """Types of auditable approval actions."""

    APPROVAL_REQUESTED = "approval_requested"
    DECISION_RECORDED = "approval_decision_recorded"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_ESCALATED = "approval_escalated"
    APPROVAL_EXPIRED = "approval_expired"


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit record."""

    purchase_order_id: str
    request_id: str
    action: AuditAction
    occurred_at: datetime
    actor_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
