"""
Module: approval_kernel.models.audit_event
Responsibility: ORM persistence for the approval audit trail.
Architecture position: Kernel > Models.  May import from db/base.py and the
    domain layer only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE through the ORM.
    - ``seq`` orders entries of one purchase order in insertion order.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import AwareDateTime, Base
from approval_kernel.domain.audit import AuditAction, AuditEntry
from approval_kernel.exceptions import ImmutabilityViolationError


class AuditEventModel(Base):
    """One approval lifecycle action, recorded after the state change."""

    __tablename__ = "po_approval_audit_events"

    __table_args__ = (
        Index("ix_po_approval_audit_po_seq", "purchase_order_id", "seq"),
    )

    seq: Mapped[int] = mapped_column(nullable=False)
    purchase_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    request_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} po={self.purchase_order_id}>"

    def to_dto(self) -> AuditEntry:
        return AuditEntry(
            purchase_order_id=self.purchase_order_id,
            request_id=self.request_id,
            action=AuditAction(self.action),
            occurred_at=self.occurred_at,
            actor_id=self.actor_id,
            payload=dict(self.payload or {}),
        )

    @classmethod
    def from_dto(cls, dto: AuditEntry, seq: int) -> "AuditEventModel":
        return cls(
            seq=seq,
            purchase_order_id=dto.purchase_order_id,
            request_id=dto.request_id,
            action=dto.action.value,
            actor_id=dto.actor_id,
            occurred_at=dto.occurred_at,
            payload=dict(dto.payload),
        )


@event.listens_for(AuditEventModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.seq),
        reason="Audit events are immutable -- cannot modify",
    )


@event.listens_for(AuditEventModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.seq),
        reason="Audit events are immutable -- cannot delete",
    )
