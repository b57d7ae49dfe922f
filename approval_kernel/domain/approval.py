"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the purchase-order approval engine.  Defines the
request lifecycle state machine, threshold and escalation configuration
records, decisions, escalation records and the structured results returned
by the services.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``stores/`` or outer packages.

Invariants enforced
-------------------
* Lifecycle state machine -- ``APPROVAL_TRANSITIONS`` defines the only valid
  status transitions.  Terminal states have no outgoing edges.
* Threshold snapshot -- ``ApprovalRequest.threshold`` is a frozen copy
  taken at creation; later configuration changes never reach in-flight
  requests.
* Append-only decisions -- ``received_approvals`` is a tuple; services
  only ever extend it.
* Closed role set -- approver roles are ``UserRole`` members, never free
  strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

# =========================================================================
# Roles and priorities
# =========================================================================


class UserRole(str, Enum):
    """Roles that can be required by a threshold or targeted by escalation."""

    ADMIN = "admin"
    MANAGER = "manager"
    ACCOUNTANT = "accountant"
    EMPLOYEE = "employee"
    CASHIER = "cashier"


class Priority(str, Enum):
    """Request priority, also assigned by escalation levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_WEIGHTS: dict[Priority, int] = {
    Priority.URGENT: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 3,
    Priority.LOW: 4,
}

UNKNOWN_PRIORITY_WEIGHT = 5


def priority_weight(priority: Priority | str | None) -> int:
    """Sort weight for a priority; lower sorts first, unknown sorts last."""
    try:
        return PRIORITY_WEIGHTS[Priority(priority)]
    except (ValueError, KeyError):
        return UNKNOWN_PRIORITY_WEIGHT


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"
    EXPIRED = "expired"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.ESCALATED,
        ApprovalStatus.EXPIRED,
    }),
    ApprovalStatus.ESCALATED: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.ESCALATED,
        ApprovalStatus.EXPIRED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.EXPIRED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.EXPIRED,
})

OPEN_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.PENDING,
    ApprovalStatus.ESCALATED,
})


def can_transition(current: ApprovalStatus, new: ApprovalStatus) -> bool:
    """True when ``current -> new`` is an edge of the lifecycle graph."""
    return new in APPROVAL_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Threshold configuration
# =========================================================================


class ConditionField(str, Enum):
    """Purchase-order attributes a threshold condition may test."""

    SUPPLIER_CATEGORY = "supplier_category"
    PRODUCT_CATEGORY = "product_category"
    DEPARTMENT = "department"
    PAYMENT_TERMS = "payment_terms"
    CURRENCY = "currency"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "not_in"


@dataclass(frozen=True)
class ApprovalCondition:
    """A ``field operator value`` test evaluated against order attributes.

    ``value`` is a string for ``equals``/``contains`` and a tuple of
    strings for ``in``/``not_in``.
    """

    field: ConditionField
    operator: ConditionOperator
    value: str | tuple[str, ...]


@dataclass(frozen=True)
class ApprovalThreshold:
    """Configuration rule mapping an amount range to approval requirements.

    Immutable per ``version``.  ``max_amount=None`` means unbounded.
    """

    threshold_id: str
    name: str
    min_amount: Decimal
    max_amount: Decimal | None
    required_roles: frozenset[UserRole]
    required_approvers: int = 1
    escalation_time_hours: int | None = None
    skip_weekends: bool = False
    skip_holidays: bool = False
    priority: Priority = Priority.MEDIUM
    auto_approve: bool = False
    conditions: tuple[ApprovalCondition, ...] = ()
    is_active: bool = True
    version: int = 1

    @property
    def is_unbounded(self) -> bool:
        return self.max_amount is None

    @property
    def range_width(self) -> Decimal | None:
        """``max_amount - min_amount``; None for unbounded ranges."""
        if self.max_amount is None:
            return None
        return self.max_amount - self.min_amount

    def covers(self, amount: Decimal) -> bool:
        """True when ``amount`` lies inside ``[min_amount, max_amount]``."""
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount


# =========================================================================
# Escalation configuration
# =========================================================================


class RecipientType(str, Enum):
    ROLE = "role"
    USER = "user"
    EMAIL = "email"


class EscalationReason(str, Enum):
    TIMEOUT = "timeout"
    MANUAL = "manual"
    BUSINESS_RULE = "business_rule"


@dataclass(frozen=True)
class EscalationRecipient:
    type: RecipientType
    value: str
    name: str | None = None


@dataclass(frozen=True)
class EscalationLevel:
    """One ordered step of the escalation table."""

    level: int
    after_hours: int
    recipients: tuple[EscalationRecipient, ...] = ()
    priority: Priority = Priority.HIGH
    template: str | None = None

    @property
    def role_recipients(self) -> tuple[UserRole, ...]:
        """Roles targeted by this level (recipients of type ``role``)."""
        return tuple(
            UserRole(r.value) for r in self.recipients
            if r.type == RecipientType.ROLE
        )


@dataclass(frozen=True)
class EscalationPolicy:
    """Escalation settings: on/off switch, level table, calendar rules."""

    enabled: bool = True
    levels: tuple[EscalationLevel, ...] = ()
    skip_weekends: bool = False
    skip_holidays: bool = False

    def level(self, number: int) -> EscalationLevel | None:
        """Return the level definition numbered ``number``, if any."""
        for lvl in self.levels:
            if lvl.level == number:
                return lvl
        return None


# =========================================================================
# Actors, orders, decisions
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """An identified user acting on a request (initiator or approver)."""

    user_id: str
    name: str
    role: UserRole
    email: str = ""


@dataclass(frozen=True)
class PurchaseOrder:
    """The slice of a purchase order the engine needs."""

    order_id: str
    total: Decimal
    supplier_name: str = ""
    supplier_category: str = ""
    department: str = ""
    payment_terms: str = ""
    currency: str | None = None
    item_categories: tuple[str, ...] = ()

    @property
    def item_count(self) -> int:
        return len(self.item_categories)


@dataclass(frozen=True)
class ApprovalDecision:
    """Record of a single approver's decision. Immutable."""

    approved: bool
    approver: Actor
    timestamp: datetime
    reason: str | None = None
    comments: str | None = None
    escalated: bool = False


@dataclass(frozen=True)
class DecisionInput:
    """What an approver submits; the engine stamps time and escalation flag."""

    approved: bool
    approver: Actor
    reason: str | None = None
    comments: str | None = None


# =========================================================================
# Request aggregate
# =========================================================================


@dataclass(frozen=True)
class ApprovalRequest:
    """Snapshot of an approval request.

    Mutations produce a new instance via ``dataclasses.replace``; the store
    compares ``version`` at persist time to detect lost updates.
    """

    request_id: str
    purchase_order_id: str
    threshold: ApprovalThreshold
    required_approvals: int
    created_at: datetime
    priority: Priority
    status: ApprovalStatus = ApprovalStatus.PENDING
    received_approvals: tuple[ApprovalDecision, ...] = ()
    expires_at: datetime | None = None
    escalated_at: datetime | None = None
    escalation_level: int = 0
    escalated_to: tuple[UserRole, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    version: int = 0

    @property
    def approved_count(self) -> int:
        return sum(1 for d in self.received_approvals if d.approved)

    @property
    def approver_ids(self) -> tuple[str, ...]:
        return tuple(d.approver.user_id for d in self.received_approvals)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES

    def has_decision_from(self, user_id: str) -> bool:
        return any(d.approver.user_id == user_id for d in self.received_approvals)

    def is_overdue(self, now: datetime) -> bool:
        """Open, has a deadline, and the deadline has passed."""
        return (
            self.status in OPEN_APPROVAL_STATUSES
            and self.expires_at is not None
            and self.expires_at < now
        )


@dataclass(frozen=True)
class ApprovalEscalation:
    """Append-only record of one escalation event."""

    request_id: str
    level: int
    escalated_at: datetime
    escalated_to: tuple[UserRole, ...]
    reason: EscalationReason
    previous_approvers: tuple[str, ...] = ()


# =========================================================================
# Results
# =========================================================================


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of ``submit_decision``.

    ``code`` carries the machine-readable error code on failure (see
    ``approval_kernel.exceptions``); ``final_status`` is set only when the
    decision moved the request to a terminal status.
    """

    success: bool
    message: str
    request_id: str
    final_status: ApprovalStatus | None = None
    remaining_approvals: int | None = None
    code: str | None = None
    request: ApprovalRequest | None = None

    @classmethod
    def failure(cls, request_id: str, exc: Exception) -> DecisionResult:
        return cls(
            success=False,
            message=str(exc),
            request_id=request_id,
            code=getattr(exc, "code", type(exc).__name__),
        )


@dataclass(frozen=True)
class BulkFailure:
    request_id: str
    error: str
    code: str | None = None


@dataclass(frozen=True)
class BulkOperationResult:
    """Aggregate of a bulk approve/reject; ordering follows the input."""

    successful: tuple[str, ...] = ()
    failed: tuple[BulkFailure, ...] = ()

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class ApprovalStatistics:
    """Aggregate metrics over the full request set."""

    total_requests: int
    by_status: dict[ApprovalStatus, int]
    by_priority: dict[str, int]
    by_threshold: dict[str, int]
    average_approval_time_hours: float

    def count(self, status: ApprovalStatus) -> int:
        return self.by_status.get(status, 0)

    @property
    def pending_requests(self) -> int:
        return self.count(ApprovalStatus.PENDING)

    @property
    def approved_requests(self) -> int:
        return self.count(ApprovalStatus.APPROVED)

    @property
    def rejected_requests(self) -> int:
        return self.count(ApprovalStatus.REJECTED)

    @property
    def escalated_requests(self) -> int:
        return self.count(ApprovalStatus.ESCALATED)

    @property
    def expired_requests(self) -> int:
        return self.count(ApprovalStatus.EXPIRED)


# =========================================================================
# Events
# =========================================================================


class ApprovalEventType(str, Enum):
    CREATED = "created"
    DECISION_RECORDED = "decision_recorded"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ApprovalEvent:
    """A request state change, published after the change is persisted."""

    event_type: ApprovalEventType
    request: ApprovalRequest
    occurred_at: datetime
    actor_id: str | None = None
    escalation: ApprovalEscalation | None = None
    decision: ApprovalDecision | None = None
