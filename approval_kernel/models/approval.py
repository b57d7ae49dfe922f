"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approval requests, their decisions and
    their escalation records.

Architecture position: Kernel > Models.  May import from db/base.py and the
    domain layer (for DTO conversion) only.

Invariants enforced:
    - Lifecycle: DB check constraint limits status values; the services
      enforce transition rules.
    - Decision uniqueness: UNIQUE(request_id, approver_id).
    - Decision order: UNIQUE(request_id, sequence); decisions load ordered
      by sequence.
    - Escalation monotonicity: UNIQUE(request_id, level).
    - Decisions and escalations are append-only at the ORM level.
    - Threshold snapshot: stored as a JSON document at creation and never
      re-read from configuration.

Failure modes:
    - IntegrityError on duplicate decision or escalation level.
    - ImmutabilityViolationError on decision/escalation UPDATE or per-row
      DELETE.  Retention purges with bulk DELETE statements instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import AwareDateTime, Base
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import (
        ApprovalDecision,
        ApprovalEscalation,
        ApprovalRequest,
    )


class ApprovalRequestModel(Base):
    """Persistent approval request.

    Contract:
        ``version`` is the optimistic-concurrency token.  The store updates
        rows with ``WHERE version = :expected`` and treats zero affected rows
        as a lost update.
    """

    __tablename__ = "po_approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'escalated', 'expired')",
            name="ck_po_approval_requests_valid_status",
        ),
        Index("ix_po_approval_requests_po", "purchase_order_id", "created_at"),
        Index("ix_po_approval_requests_status_expiry", "status", "expires_at"),
    )

    request_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    purchase_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    threshold_id: Mapped[str] = mapped_column(String(100), nullable=False)
    threshold_name: Mapped[str] = mapped_column(String(200), nullable=False)
    threshold_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    required_approvals: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    escalation_level: Mapped[int] = mapped_column(nullable=False, default=0)
    escalated_to: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    request_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    version: Mapped[int] = mapped_column(nullable=False, default=0)

    decisions: Mapped[list[ApprovalDecisionModel]] = relationship(
        "ApprovalDecisionModel",
        back_populates="request",
        primaryjoin="ApprovalRequestModel.request_id == ApprovalDecisionModel.request_id",
        order_by="ApprovalDecisionModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.request_id} "
            f"po={self.purchase_order_id} status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalRequest as ApprovalRequestDTO,
            ApprovalStatus,
            Priority,
            UserRole,
        )
        from approval_kernel.domain.serialization import threshold_from_dict

        return ApprovalRequestDTO(
            request_id=self.request_id,
            purchase_order_id=self.purchase_order_id,
            threshold=threshold_from_dict(self.threshold_snapshot),
            required_approvals=self.required_approvals,
            received_approvals=tuple(d.to_dto() for d in self.decisions),
            status=ApprovalStatus(self.status),
            created_at=self.created_at,
            expires_at=self.expires_at,
            escalated_at=self.escalated_at,
            escalation_level=self.escalation_level,
            escalated_to=tuple(UserRole(r) for r in self.escalated_to),
            priority=Priority(self.priority),
            metadata=dict(self.request_metadata or {}),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRequest) -> ApprovalRequestModel:
        """Create ORM model (without decisions) from domain DTO."""
        from approval_kernel.domain.serialization import threshold_to_dict

        return cls(
            request_id=dto.request_id,
            purchase_order_id=dto.purchase_order_id,
            threshold_id=dto.threshold.threshold_id,
            threshold_name=dto.threshold.name,
            threshold_snapshot=threshold_to_dict(dto.threshold),
            required_approvals=dto.required_approvals,
            status=dto.status.value,
            priority=dto.priority.value,
            created_at=dto.created_at,
            expires_at=dto.expires_at,
            escalated_at=dto.escalated_at,
            escalation_level=dto.escalation_level,
            escalated_to=[r.value for r in dto.escalated_to],
            request_metadata=dict(dto.metadata),
            version=dto.version,
        )

    @staticmethod
    def mutable_values(dto: ApprovalRequest) -> dict[str, Any]:
        """Column values a state change may rewrite."""
        return {
            "status": dto.status.value,
            "priority": dto.priority.value,
            "expires_at": dto.expires_at,
            "escalated_at": dto.escalated_at,
            "escalation_level": dto.escalation_level,
            "escalated_to": [r.value for r in dto.escalated_to],
            "request_metadata": dict(dto.metadata),
        }


class ApprovalDecisionModel(Base):
    """Persistent approval decision. Append-only."""

    __tablename__ = "po_approval_decisions"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "approver_id",
            name="uq_po_approval_decisions_approver",
        ),
        UniqueConstraint(
            "request_id", "sequence",
            name="uq_po_approval_decisions_sequence",
        ),
    )

    request_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("po_approval_requests.request_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    approved: Mapped[bool] = mapped_column(nullable=False)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_email: Mapped[str] = mapped_column(String(254), nullable=False, default="")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    escalated: Mapped[bool] = mapped_column(nullable=False, default=False)
    decided_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)

    request: Mapped[ApprovalRequestModel] = relationship(
        "ApprovalRequestModel",
        back_populates="decisions",
        foreign_keys=[request_id],
        primaryjoin="ApprovalDecisionModel.request_id == ApprovalRequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalDecision request={self.request_id} #{self.sequence} "
            f"approver={self.approver_id} approved={self.approved}>"
        )

    def to_dto(self) -> ApprovalDecision:
        from approval_kernel.domain.approval import (
            Actor,
            ApprovalDecision as ApprovalDecisionDTO,
            UserRole,
        )

        return ApprovalDecisionDTO(
            approved=self.approved,
            approver=Actor(
                user_id=self.approver_id,
                name=self.approver_name,
                role=UserRole(self.approver_role),
                email=self.approver_email,
            ),
            timestamp=self.decided_at,
            reason=self.reason,
            comments=self.comments,
            escalated=self.escalated,
        )

    @classmethod
    def from_dto(
        cls, request_id: str, sequence: int, dto: ApprovalDecision,
    ) -> ApprovalDecisionModel:
        return cls(
            request_id=request_id,
            sequence=sequence,
            approved=dto.approved,
            approver_id=dto.approver.user_id,
            approver_name=dto.approver.name,
            approver_role=dto.approver.role.value,
            approver_email=dto.approver.email,
            reason=dto.reason,
            comments=dto.comments,
            escalated=dto.escalated,
            decided_at=dto.timestamp,
        )


class ApprovalEscalationModel(Base):
    """Persistent escalation record. Append-only."""

    __tablename__ = "po_approval_escalations"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "level",
            name="uq_po_approval_escalations_level",
        ),
    )

    request_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("po_approval_requests.request_id"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(nullable=False)
    escalated_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)
    escalated_to: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    previous_approvers: Mapped[list[str]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<ApprovalEscalation request={self.request_id} level={self.level}>"

    def to_dto(self) -> ApprovalEscalation:
        from approval_kernel.domain.approval import (
            ApprovalEscalation as ApprovalEscalationDTO,
            EscalationReason,
            UserRole,
        )

        return ApprovalEscalationDTO(
            request_id=self.request_id,
            level=self.level,
            escalated_at=self.escalated_at,
            escalated_to=tuple(UserRole(r) for r in self.escalated_to),
            reason=EscalationReason(self.reason),
            previous_approvers=tuple(self.previous_approvers),
        )

    @classmethod
    def from_dto(cls, dto: ApprovalEscalation) -> ApprovalEscalationModel:
        return cls(
            request_id=dto.request_id,
            level=dto.level,
            escalated_at=dto.escalated_at,
            escalated_to=[r.value for r in dto.escalated_to],
            reason=dto.reason.value,
            previous_approvers=list(dto.previous_approvers),
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(ApprovalDecisionModel, "before_update")
def prevent_decision_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalDecision",
        entity_id=f"{target.request_id}#{target.sequence}",
        reason="Approval decisions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalDecisionModel, "before_delete")
def prevent_decision_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalDecision",
        entity_id=f"{target.request_id}#{target.sequence}",
        reason="Approval decisions are immutable -- cannot delete",
    )


@event.listens_for(ApprovalEscalationModel, "before_update")
def prevent_escalation_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalEscalation",
        entity_id=f"{target.request_id}@{target.level}",
        reason="Escalation records are immutable -- cannot modify",
    )


@event.listens_for(ApprovalEscalationModel, "before_delete")
def prevent_escalation_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalEscalation",
        entity_id=f"{target.request_id}@{target.level}",
        reason="Escalation records are immutable -- cannot delete",
    )
