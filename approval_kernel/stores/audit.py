"""Audit sinks: in-memory and SQLAlchemy-backed."""

from __future__ import annotations

import threading

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.audit import AuditEntry
from approval_kernel.exceptions import PersistenceFailureError
from approval_kernel.models.audit_event import AuditEventModel


class InMemoryAuditSink:
    """Append-only list of audit entries."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[AuditEntry] = []

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries_for(self, purchase_order_id: str) -> list[AuditEntry]:
        with self._lock:
            return [e for e in self._entries if e.purchase_order_id == purchase_order_id]

    @property
    def entries(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)


class SqlAuditSink:
    """Audit trail persisted to ``po_approval_audit_events``."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def record(self, entry: AuditEntry) -> None:
        try:
            with session_scope(self._session_factory) as session:
                last_seq = session.scalar(select(func.max(AuditEventModel.seq)))
                session.add(AuditEventModel.from_dto(entry, seq=(last_seq or 0) + 1))
        except SQLAlchemyError as exc:
            raise PersistenceFailureError("audit_record", str(exc)) from exc

    def entries_for(self, purchase_order_id: str) -> list[AuditEntry]:
        try:
            with session_scope(self._session_factory) as session:
                models = session.scalars(
                    select(AuditEventModel)
                    .where(AuditEventModel.purchase_order_id == purchase_order_id)
                    .order_by(AuditEventModel.seq)
                ).all()
                return [m.to_dto() for m in models]
        except SQLAlchemyError as exc:
            raise PersistenceFailureError("audit_entries_for", str(exc)) from exc
