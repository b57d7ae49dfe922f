"""
approval_engines.escalation -- Escalation planning.

Responsibility:
    Given an overdue request and the escalation policy, produce either the
    escalated request plus its escalation record, or the expired request.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Monotonic: the next level is always ``escalation_level + 1``; levels
      are never skipped or revisited.
    - Exhaustion: when the policy has no next level the request becomes
      ``expired`` and no escalation record is produced.
    - A level with ``after_hours == 0`` clears ``expires_at`` so the same
      request is not picked up again by the next run.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, tzinfo

from approval_engines.deadlines import compute_deadline
from approval_kernel.domain.approval import (
    ApprovalEscalation,
    ApprovalRequest,
    ApprovalStatus,
    EscalationLevel,
    EscalationPolicy,
    EscalationReason,
)
from approval_kernel.domain.calendar import NO_HOLIDAYS, HolidayCalendar


@dataclass(frozen=True)
class EscalationOutcome:
    """Result of escalating one request.

    ``escalation`` is None when the request expired instead.
    """

    request: ApprovalRequest
    escalation: ApprovalEscalation | None

    @property
    def expired(self) -> bool:
        return self.escalation is None


def select_escalation_candidates(
    requests: Iterable[ApprovalRequest],
    now: datetime,
) -> list[ApprovalRequest]:
    """Open requests past their deadline, soonest-expired first."""
    overdue = [r for r in requests if r.is_overdue(now)]
    return sorted(overdue, key=lambda r: (r.expires_at, r.request_id))


def next_level(request: ApprovalRequest, policy: EscalationPolicy) -> EscalationLevel | None:
    return policy.level(request.escalation_level + 1)


def escalate(
    request: ApprovalRequest,
    policy: EscalationPolicy,
    now: datetime,
    reason: EscalationReason = EscalationReason.TIMEOUT,
    calendar: HolidayCalendar = NO_HOLIDAYS,
    business_tz: tzinfo = UTC,
) -> EscalationOutcome:
    """Move ``request`` to its next escalation level, or expire it."""
    level = next_level(request, policy)
    if level is None:
        return EscalationOutcome(
            request=replace(request, status=ApprovalStatus.EXPIRED),
            escalation=None,
        )

    recipients = level.role_recipients
    escalation = ApprovalEscalation(
        request_id=request.request_id,
        level=level.level,
        escalated_at=now,
        escalated_to=recipients,
        reason=reason,
        previous_approvers=request.approver_ids,
    )
    escalated = replace(
        request,
        status=ApprovalStatus.ESCALATED,
        escalated_at=now,
        escalation_level=level.level,
        escalated_to=recipients,
        priority=level.priority,
        expires_at=compute_deadline(
            now,
            level.after_hours,
            policy.skip_weekends,
            policy.skip_holidays,
            calendar,
            business_tz,
        ),
    )
    return EscalationOutcome(request=escalated, escalation=escalation)
