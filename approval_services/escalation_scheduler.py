"""
approval_services.escalation_scheduler -- Time-driven escalation.

Contract:
    ``process_escalations()`` is one discrete pass: find open requests
    whose deadline has passed, move each to its next escalation level (or
    expire it when the levels are exhausted), and return the escalation
    records created during the pass.  ``start()`` / ``stop()`` run passes
    on a background thread.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Monotonic escalation: one level per request per pass.
    - Re-entrant: each candidate is re-read and re-checked under its lock,
      so concurrent passes never escalate the same request twice.
    - Cancellable: the cancel event is checked between requests; the
      request in progress is finished, not abandoned halfway.  A direct
      call without ``cancel_event`` runs to completion even after
      ``stop()``; only the background loop watches the stop signal.
    - A request whose write fails stays at its previous level with no
      escalation record, and the pass moves on to the next candidate.
    - Escalation disabled in configuration makes the pass a no-op.

Non-goals:
    - NOT a distributed scheduler (no leader election); cross-process
      safety comes from the store's version check.
"""

from __future__ import annotations

import threading
from datetime import datetime
from uuid import uuid4

from approval_engines.escalation import select_escalation_candidates
from approval_kernel.domain.approval import ApprovalEscalation, EscalationReason
from approval_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidStatusError,
    PersistenceFailureError,
    RequestNotFoundError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_services.request_manager import ApprovalRequestManager

logger = get_logger("services.escalation_scheduler")


class EscalationScheduler:
    """Runs escalation passes over the manager's store."""

    def __init__(
        self,
        manager: ApprovalRequestManager,
        tick_interval_seconds: float = 300,
    ):
        self._manager = manager
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process_escalations(
        self,
        now: datetime | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[ApprovalEscalation]:
        """Run one escalation pass.  Returns the escalations created."""
        policy = self._manager.config.get_escalation_policy()
        if not policy.enabled:
            logger.info("escalation_pass_skipped", extra={"reason": "disabled"})
            return []

        moment = now or self._manager.clock.now()
        cancel = cancel_event if cancel_event is not None else threading.Event()
        candidates = select_escalation_candidates(self._manager.store.list_all(), moment)

        escalations: list[ApprovalEscalation] = []
        expired = 0
        skipped = 0
        failed = 0
        with LogContext.bind(job_id=f"escalation-{uuid4()}"):
            logger.info(
                "escalation_pass_started",
                extra={"candidates": len(candidates), "as_of": moment},
            )
            for candidate in candidates:
                if cancel.is_set():
                    logger.info("escalation_pass_cancelled", extra={"processed": len(escalations) + expired})
                    break
                try:
                    outcome = self._manager.escalate_request(
                        candidate.request_id,
                        reason=EscalationReason.TIMEOUT,
                        now=moment,
                        only_if_overdue=True,
                    )
                except (RequestNotFoundError, InvalidStatusError, ConcurrentModificationError) as exc:
                    skipped += 1
                    logger.info(
                        "escalation_candidate_skipped",
                        extra={"request_id": candidate.request_id, "code": exc.code},
                    )
                    continue
                except PersistenceFailureError:
                    failed += 1
                    logger.exception(
                        "escalation_candidate_failed",
                        extra={"request_id": candidate.request_id},
                    )
                    continue
                if outcome is None:
                    skipped += 1
                elif outcome.expired:
                    expired += 1
                else:
                    escalations.append(outcome.escalation)

            logger.info(
                "escalation_pass_completed",
                extra={
                    "escalated": len(escalations),
                    "expired": expired,
                    "skipped": skipped,
                    "failed": failed,
                },
            )
        return escalations

    def start(self) -> None:
        """Run passes on a background thread until ``stop()``."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="po-escalation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.process_escalations(cancel_event=self._stop_event)
            except Exception:
                logger.exception("escalation_pass_failed")
            self._stop_event.wait(timeout=self._tick_interval)
