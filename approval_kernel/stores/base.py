"""
Store interfaces.

Responsibility:
    The boundary between the approval services and durable state.  Services
    hold a store handle passed in at construction; nothing in the engine
    reaches for a process-wide instance.

Contract shared by every ``ApprovalRequestStore``:
    - ``get`` returns ``None`` for an unknown id.
    - ``add`` persists a new request as given (``version`` 0).
    - ``update`` is a compare-and-set on ``version``: it raises
      ``ConcurrentModificationError`` when the stored version differs from
      ``expected_version``, ``RequestNotFoundError`` when the row is gone,
      and ``ImmutabilityViolationError`` when the new decision list does
      not extend the stored one.  It returns the stored request carrying
      ``version = expected_version + 1``.
    - An ``escalation`` given to ``update`` is saved with the request in one
      unit of work: both are written or neither is.  A level already
      recorded for the request raises ``PersistenceFailureError``.
    - Datetimes round-trip exactly; decision order is preserved.
    - Backend failures surface as ``PersistenceFailureError``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from approval_kernel.domain.approval import ApprovalEscalation, ApprovalRequest
from approval_kernel.domain.audit import AuditEntry


class ApprovalRequestStore(Protocol):
    def get(self, request_id: str) -> ApprovalRequest | None:
        ...

    def list_all(self) -> list[ApprovalRequest]:
        ...

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        ...

    def update(
        self,
        request: ApprovalRequest,
        expected_version: int,
        escalation: ApprovalEscalation | None = None,
    ) -> ApprovalRequest:
        ...

    def delete_many(self, request_ids: Iterable[str]) -> int:
        ...

    def append_escalation(self, escalation: ApprovalEscalation) -> None:
        ...

    def list_escalations(self, request_id: str | None = None) -> list[ApprovalEscalation]:
        ...


class AuditSink(Protocol):
    """Append-only audit trail keyed by purchase order."""

    def record(self, entry: AuditEntry) -> None:
        ...

    def entries_for(self, purchase_order_id: str) -> list[AuditEntry]:
        ...
