"""
approval_engines.quorum -- Decision validation and quorum evaluation.

Responsibility:
    Decide whether a decision may be recorded on a request, and what the
    request's status becomes once it is.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - One decision per approver id.
    - Only required roles may decide (plus the escalation recipients when
      decisions on escalated requests are accepted).
    - A single rejection forces ``rejected`` regardless of prior approvals.
    - ``approved`` exactly when the approved count reaches the quorum.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from approval_engines.thresholds import is_authorized
from approval_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalRequest,
    ApprovalStatus,
    DecisionInput,
)
from approval_kernel.exceptions import (
    DuplicateDecisionError,
    InvalidStatusError,
    UnauthorizedRoleError,
)


@dataclass(frozen=True)
class QuorumEvaluation:
    """Where a request stands given its decisions.

    ``status`` is the terminal status reached, or None while still open.
    """

    status: ApprovalStatus | None
    approved_count: int
    required_approvals: int
    rejected_by: str | None = None

    @property
    def remaining(self) -> int:
        return max(self.required_approvals - self.approved_count, 0)


def evaluate_quorum(
    decisions: Sequence[ApprovalDecision],
    required_approvals: int,
) -> QuorumEvaluation:
    for d in decisions:
        if not d.approved:
            return QuorumEvaluation(
                status=ApprovalStatus.REJECTED,
                approved_count=sum(1 for x in decisions if x.approved),
                required_approvals=required_approvals,
                rejected_by=d.approver.user_id,
            )

    approved_count = len(decisions)
    return QuorumEvaluation(
        status=ApprovalStatus.APPROVED if approved_count >= required_approvals else None,
        approved_count=approved_count,
        required_approvals=required_approvals,
    )


def quorum_reached_at(
    decisions: Sequence[ApprovalDecision],
    required_approvals: int,
) -> datetime | None:
    """Timestamp of the approving decision that completed the quorum."""
    count = 0
    for d in decisions:
        if not d.approved:
            return None
        count += 1
        if count >= required_approvals:
            return d.timestamp
    return None


def validate_decision(
    request: ApprovalRequest,
    decision: DecisionInput,
    accept_when_escalated: bool = False,
) -> None:
    """Raise the typed error that blocks ``decision``, if any.

    Raises:
        InvalidStatusError: Request is not open for decisions.
        UnauthorizedRoleError: Approver role is not allowed to decide.
        DuplicateDecisionError: Approver already decided.
    """
    open_statuses = {ApprovalStatus.PENDING}
    if accept_when_escalated:
        open_statuses.add(ApprovalStatus.ESCALATED)
    if request.status not in open_statuses:
        raise InvalidStatusError(request.request_id, request.status.value)

    escalated_to = request.escalated_to if request.status == ApprovalStatus.ESCALATED else ()
    if not is_authorized(decision.approver.role, request.threshold, escalated_to):
        allowed = {r.value for r in request.threshold.required_roles}
        allowed.update(r.value for r in escalated_to)
        raise UnauthorizedRoleError(
            request.request_id,
            decision.approver.role.value,
            sorted(allowed),
        )

    if request.has_decision_from(decision.approver.user_id):
        raise DuplicateDecisionError(request.request_id, decision.approver.user_id)


def apply_decision(
    request: ApprovalRequest,
    decision: DecisionInput,
    now: datetime,
    accept_when_escalated: bool = False,
) -> tuple[ApprovalRequest, ApprovalDecision, QuorumEvaluation]:
    """Validate, append and re-evaluate.  Returns the unsaved new request."""
    validate_decision(request, decision, accept_when_escalated)

    recorded = ApprovalDecision(
        approved=decision.approved,
        approver=decision.approver,
        timestamp=now,
        reason=decision.reason,
        comments=decision.comments,
        escalated=request.status == ApprovalStatus.ESCALATED,
    )
    decisions = request.received_approvals + (recorded,)
    evaluation = evaluate_quorum(decisions, request.required_approvals)

    updated = replace(
        request,
        received_approvals=decisions,
        status=evaluation.status or request.status,
    )
    return updated, recorded, evaluation
