"""ORM models for approval persistence."""

from approval_kernel.models.approval import (
    ApprovalDecisionModel,
    ApprovalEscalationModel,
    ApprovalRequestModel,
)
from approval_kernel.models.audit_event import AuditEventModel

__all__ = [
    "ApprovalDecisionModel",
    "ApprovalEscalationModel",
    "ApprovalRequestModel",
    "AuditEventModel",
]
