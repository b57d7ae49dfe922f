"""
approval_services.request_manager -- Approval request lifecycle.

Responsibility:
    Creates approval requests for purchase orders, records approver
    decisions, performs escalations on behalf of the scheduler (and manual
    escalations), and answers read-only queries.  Rule evaluation is
    delegated to the pure engines in ``approval_engines``.

Architecture position:
    Services.  May import from approval_kernel, approval_engines and the
    ``ConfigurationProvider`` protocol.

Invariants enforced:
    - Threshold snapshot: the resolved threshold is copied into the request
      at creation; configuration changes never reach in-flight requests.
    - One decision per approver; only required roles decide; a rejection
      is final; quorum completes approval.
    - Every mutation of a request runs under that request's lock, re-reads
      the stored copy, and persists with a version check.
    - Events are published only after the store accepted the change.

Failure modes:
    - ``submit_decision`` never raises for decision-level problems; it
      returns a ``DecisionResult`` with ``code``.
    - ``PersistenceFailureError`` always propagates.
    - ``ValueError`` from ``create_request`` for a negative order total.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

from approval_config.provider import ConfigurationProvider
from approval_config.schema import EngineSettings
from approval_engines.deadlines import compute_deadline
from approval_engines.escalation import EscalationOutcome, escalate
from approval_engines.quorum import apply_decision
from approval_engines.thresholds import extract_condition_attributes
from approval_kernel.domain.approval import (
    Actor,
    ApprovalEvent,
    ApprovalEventType,
    ApprovalRequest,
    ApprovalStatus,
    DecisionInput,
    DecisionResult,
    EscalationReason,
    PurchaseOrder,
    UserRole,
    priority_weight,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateDecisionError,
    InvalidStatusError,
    RequestNotFoundError,
    UnauthorizedRoleError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.stores.base import ApprovalRequestStore
from approval_kernel.utils.locks import KeyedLock
from approval_services.event_bus import ApprovalEventBus

logger = get_logger("services.request_manager")

# Errors that submit_decision reports as structured results.
DECISION_ERRORS = (
    RequestNotFoundError,
    InvalidStatusError,
    UnauthorizedRoleError,
    DuplicateDecisionError,
    ConcurrentModificationError,
)

MSG_REJECTED = "Purchase order rejected"
MSG_APPROVED = "Purchase order fully approved"


def _remaining_message(remaining: int) -> str:
    return f"Approval recorded. {remaining} more approval(s) required."


class ApprovalRequestManager:
    """Owns creation, decisions and escalation of approval requests.

    Contract:
        Constructed with an explicit store and configuration provider; holds
        no process-wide state.  Two managers over two stores are fully
        independent.
    """

    def __init__(
        self,
        store: ApprovalRequestStore,
        config: ConfigurationProvider,
        clock: Clock | None = None,
        event_bus: ApprovalEventBus | None = None,
        locks: KeyedLock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._store = store
        self._config = config
        self._clock = clock or SystemClock()
        self._bus = event_bus or ApprovalEventBus()
        self._locks = locks or KeyedLock()
        self._new_id = id_factory or (lambda: str(uuid4()))

    @property
    def store(self) -> ApprovalRequestStore:
        return self._store

    @property
    def config(self) -> ConfigurationProvider:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def event_bus(self) -> ApprovalEventBus:
        return self._bus

    @property
    def settings(self) -> EngineSettings:
        return self._config.get_settings()

    # -------------------------------------------------------------------------
    # Threshold questions
    # -------------------------------------------------------------------------

    def _resolve(self, order: PurchaseOrder):
        attributes = extract_condition_attributes(order, self.settings.default_currency)
        return self._config.get_threshold(order.total, attributes)

    def requires_approval(self, order: PurchaseOrder) -> bool:
        return self._resolve(order) is not None

    def can_auto_approve(self, order: PurchaseOrder) -> bool:
        """True when the governing threshold is flagged ``auto_approve``."""
        threshold = self._resolve(order)
        return threshold is not None and threshold.auto_approve

    def required_roles_for(self, order: PurchaseOrder) -> frozenset[UserRole]:
        threshold = self._resolve(order)
        return threshold.required_roles if threshold is not None else frozenset()

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_request(self, order: PurchaseOrder, initiator: Actor) -> ApprovalRequest | None:
        """Open an approval request for ``order``.

        Returns None when no threshold applies (no approval required).
        """
        threshold = self._resolve(order)
        if threshold is None:
            logger.info(
                "approval_not_required",
                extra={"purchase_order_id": order.order_id, "amount": order.total},
            )
            return None

        settings = self.settings
        now = self._clock.now()
        request = ApprovalRequest(
            request_id=self._new_id(),
            purchase_order_id=order.order_id,
            threshold=threshold,
            required_approvals=threshold.required_approvers,
            created_at=now,
            priority=threshold.priority,
            status=ApprovalStatus.PENDING,
            expires_at=compute_deadline(
                now,
                threshold.escalation_time_hours,
                threshold.skip_weekends,
                threshold.skip_holidays,
                self._config.get_holiday_calendar(),
                settings.business_tzinfo,
            ),
            metadata={
                "initiator_id": initiator.user_id,
                "initiator_name": initiator.name,
                "total_amount": str(order.total),
                "currency": order.currency or settings.default_currency,
                "supplier_name": order.supplier_name,
                "item_count": order.item_count,
            },
        )

        with LogContext.bind(request_id=request.request_id, purchase_order_id=order.order_id):
            stored = self._store.add(request)
            logger.info(
                "approval_request_created",
                extra={
                    "threshold": threshold.name,
                    "threshold_id": threshold.threshold_id,
                    "required_approvals": stored.required_approvals,
                    "priority": stored.priority.value,
                    "expires_at": stored.expires_at,
                },
            )

        self._publish(ApprovalEventType.CREATED, stored, now, actor_id=initiator.user_id)
        return stored

    # -------------------------------------------------------------------------
    # Decide
    # -------------------------------------------------------------------------

    def submit_decision(self, request_id: str, decision: DecisionInput) -> DecisionResult:
        """Record ``decision``; problems come back as a failed ``DecisionResult``."""
        try:
            return self.record_decision(request_id, decision)
        except DECISION_ERRORS as exc:
            logger.warning(
                "approval_decision_refused",
                extra={
                    "request_id": request_id,
                    "approver_id": decision.approver.user_id,
                    "code": exc.code,
                    "reason": str(exc),
                },
            )
            return DecisionResult.failure(request_id, exc)

    def record_decision(self, request_id: str, decision: DecisionInput) -> DecisionResult:
        """Raising variant of ``submit_decision``.

        Raises:
            RequestNotFoundError, InvalidStatusError, UnauthorizedRoleError,
            DuplicateDecisionError, ConcurrentModificationError,
            PersistenceFailureError.
        """
        with LogContext.bind(request_id=request_id, actor_id=decision.approver.user_id):
            with self._locks.hold(request_id):
                current = self._require(request_id)
                now = self._clock.now()
                updated, recorded, evaluation = apply_decision(
                    current,
                    decision,
                    now,
                    accept_when_escalated=self.settings.accept_decisions_when_escalated,
                )
                stored = self._store.update(updated, expected_version=current.version)

            logger.info(
                "approval_decision_recorded",
                extra={
                    "purchase_order_id": stored.purchase_order_id,
                    "approved": recorded.approved,
                    "approver_role": recorded.approver.role.value,
                    "approved_count": evaluation.approved_count,
                    "required_approvals": evaluation.required_approvals,
                    "status": stored.status.value,
                },
            )

        actor_id = decision.approver.user_id
        self._publish(
            ApprovalEventType.DECISION_RECORDED, stored, now,
            actor_id=actor_id, decision=recorded,
        )
        if evaluation.status == ApprovalStatus.REJECTED:
            self._publish(ApprovalEventType.REJECTED, stored, now, actor_id=actor_id)
            message = MSG_REJECTED
        elif evaluation.status == ApprovalStatus.APPROVED:
            self._publish(ApprovalEventType.APPROVED, stored, now, actor_id=actor_id)
            message = MSG_APPROVED
        else:
            message = _remaining_message(evaluation.remaining)

        return DecisionResult(
            success=True,
            message=message,
            request_id=request_id,
            final_status=evaluation.status,
            remaining_approvals=evaluation.remaining,
            request=stored,
        )

    # -------------------------------------------------------------------------
    # Escalate
    # -------------------------------------------------------------------------

    def escalate_request(
        self,
        request_id: str,
        reason: EscalationReason = EscalationReason.MANUAL,
        now: datetime | None = None,
        only_if_overdue: bool = False,
    ) -> EscalationOutcome | None:
        """Move a request to its next escalation level, or expire it.

        Returns None when nothing was done: escalation is disabled, or
        ``only_if_overdue`` is set and the stored request is no longer
        overdue (another worker got there first).

        Raises:
            RequestNotFoundError: Unknown request.
            InvalidStatusError: Request is already terminal.
        """
        policy = self._config.get_escalation_policy()
        if not policy.enabled:
            logger.info("escalation_disabled", extra={"request_id": request_id})
            return None

        moment = now or self._clock.now()
        settings = self.settings
        with LogContext.bind(request_id=request_id):
            with self._locks.hold(request_id):
                current = self._require(request_id)
                if current.is_terminal:
                    raise InvalidStatusError(request_id, current.status.value, action="escalate")
                if only_if_overdue and not current.is_overdue(moment):
                    return None

                outcome = escalate(
                    current,
                    policy,
                    moment,
                    reason=reason,
                    calendar=self._config.get_holiday_calendar(),
                    business_tz=settings.business_tzinfo,
                )
                stored = self._store.update(
                    outcome.request,
                    expected_version=current.version,
                    escalation=outcome.escalation,
                )

            if outcome.escalation is None:
                logger.info(
                    "approval_expired",
                    extra={
                        "purchase_order_id": stored.purchase_order_id,
                        "escalation_level": stored.escalation_level,
                    },
                )
            else:
                logger.info(
                    "approval_escalated",
                    extra={
                        "purchase_order_id": stored.purchase_order_id,
                        "escalation_level": outcome.escalation.level,
                        "escalated_to": [r.value for r in outcome.escalation.escalated_to],
                        "reason": reason.value,
                        "expires_at": stored.expires_at,
                    },
                )

        if outcome.escalation is None:
            self._publish(ApprovalEventType.EXPIRED, stored, moment)
        else:
            self._publish(
                ApprovalEventType.ESCALATED, stored, moment, escalation=outcome.escalation,
            )
        return EscalationOutcome(request=stored, escalation=outcome.escalation)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_request(self, request_id: str) -> ApprovalRequest | None:
        return self._store.get(request_id)

    def get_requests_for_purchase_order(self, purchase_order_id: str) -> list[ApprovalRequest]:
        """All requests of one purchase order, newest first."""
        matches = [r for r in self._store.list_all() if r.purchase_order_id == purchase_order_id]
        return sorted(matches, key=lambda r: (r.created_at, r.request_id), reverse=True)

    def get_pending_by_role(self, role: UserRole) -> list[ApprovalRequest]:
        """Pending requests ``role`` may decide, most urgent first, then oldest."""
        matches = [
            r for r in self._store.list_all()
            if r.status == ApprovalStatus.PENDING and role in r.threshold.required_roles
        ]
        return sorted(
            matches,
            key=lambda r: (priority_weight(r.priority), r.created_at, r.request_id),
        )

    def get_overdue(self, now: datetime | None = None) -> list[ApprovalRequest]:
        """Pending requests past their deadline, soonest-expired first."""
        moment = now or self._clock.now()
        matches = [
            r for r in self._store.list_all()
            if r.status == ApprovalStatus.PENDING
            and r.expires_at is not None
            and r.expires_at < moment
        ]
        return sorted(matches, key=lambda r: (r.expires_at, r.request_id))

    def list_escalations(self, request_id: str | None = None):
        return self._store.list_escalations(request_id)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _require(self, request_id: str) -> ApprovalRequest:
        request = self._store.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def _publish(
        self,
        event_type: ApprovalEventType,
        request: ApprovalRequest,
        occurred_at: datetime,
        **kwargs,
    ) -> None:
        self._bus.publish(
            ApprovalEvent(
                event_type=event_type,
                request=request,
                occurred_at=occurred_at,
                **kwargs,
            )
        )
