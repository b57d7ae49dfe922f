"""
approval_services.bulk_coordinator -- Bulk approve / reject.

Contract:
    Applies one approver's decision to many requests.  Each id goes through
    ``submit_decision`` independently: a failure is recorded against its id
    and never stops the others.  There is no rollback of items that
    succeeded.

Invariants enforced:
    - Bounded concurrency (``bulk_max_workers``).
    - ``CONCURRENT_MODIFICATION`` results are retried up to
      ``bulk_conflict_retries`` times.
    - Result ordering follows input ordering.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

from approval_kernel.domain.approval import (
    Actor,
    BulkFailure,
    BulkOperationResult,
    DecisionInput,
    DecisionResult,
)
from approval_kernel.exceptions import ConcurrentModificationError
from approval_kernel.logging_config import LogContext, get_logger
from approval_services.request_manager import ApprovalRequestManager

logger = get_logger("services.bulk_coordinator")


class BulkOperationsCoordinator:
    def __init__(
        self,
        manager: ApprovalRequestManager,
        max_workers: int | None = None,
        conflict_retries: int | None = None,
    ):
        settings = manager.settings
        self._manager = manager
        self._max_workers = max_workers or settings.bulk_max_workers
        self._conflict_retries = (
            conflict_retries if conflict_retries is not None else settings.bulk_conflict_retries
        )

    def bulk_approve(
        self,
        request_ids: Iterable[str],
        approver: Actor,
        reason: str | None = None,
        comments: str | None = "Bulk approval",
    ) -> BulkOperationResult:
        decision = DecisionInput(approved=True, approver=approver, reason=reason, comments=comments)
        return self._run("bulk_approve", list(request_ids), decision)

    def bulk_reject(
        self,
        request_ids: Iterable[str],
        approver: Actor,
        reason: str | None = None,
        comments: str | None = "Bulk rejection",
    ) -> BulkOperationResult:
        decision = DecisionInput(approved=False, approver=approver, reason=reason, comments=comments)
        return self._run("bulk_reject", list(request_ids), decision)

    def _run(self, operation: str, request_ids: list[str], decision: DecisionInput) -> BulkOperationResult:
        if not request_ids:
            return BulkOperationResult()

        successful: list[str] = []
        failed: list[BulkFailure] = []
        with LogContext.bind(job_id=f"{operation}-{uuid4()}", actor_id=decision.approver.user_id):
            workers = min(self._max_workers, len(request_ids))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="po-bulk") as pool:
                futures = [
                    pool.submit(contextvars.copy_context().run, self._submit_one, rid, decision)
                    for rid in request_ids
                ]
                for request_id, future in zip(request_ids, futures):
                    try:
                        result = future.result()
                    except Exception as exc:
                        logger.exception(
                            "bulk_item_failed",
                            extra={"request_id": request_id},
                        )
                        failed.append(
                            BulkFailure(request_id, str(exc), getattr(exc, "code", None))
                        )
                        continue
                    if result.success:
                        successful.append(request_id)
                    else:
                        failed.append(BulkFailure(request_id, result.message, result.code))

            logger.info(
                "bulk_operation_completed",
                extra={
                    "operation": operation,
                    "requested": len(request_ids),
                    "succeeded": len(successful),
                    "failed": len(failed),
                },
            )
        return BulkOperationResult(successful=tuple(successful), failed=tuple(failed))

    def _submit_one(self, request_id: str, decision: DecisionInput) -> DecisionResult:
        attempt = 0
        while True:
            result = self._manager.submit_decision(request_id, decision)
            if result.success or result.code != ConcurrentModificationError.code:
                return result
            if attempt >= self._conflict_retries:
                return result
            attempt += 1
            logger.info(
                "bulk_item_retry",
                extra={"request_id": request_id, "attempt": attempt},
            )
