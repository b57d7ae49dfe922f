"""
SQLAlchemy approval store.

Responsibility:
    ``ApprovalRequestStore`` over any SQLAlchemy backend.  Each call is one
    unit of work in its own session.

Concurrency:
    ``update`` issues ``UPDATE ... WHERE request_id = :id AND version =
    :expected``.  Zero affected rows means another writer got there first
    (or the row was purged); both are reported with typed errors.  New
    decisions are inserted in the same transaction, so a lost update never
    leaves orphan decisions behind.  An escalation record passed to
    ``update`` is inserted in that transaction too.

Failure modes:
    - Any ``SQLAlchemyError`` is re-raised as ``PersistenceFailureError``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval import ApprovalEscalation, ApprovalRequest
from approval_kernel.exceptions import (
    ConcurrentModificationError,
    ImmutabilityViolationError,
    PersistenceFailureError,
    RequestNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import (
    ApprovalDecisionModel,
    ApprovalEscalationModel,
    ApprovalRequestModel,
)

logger = get_logger("stores.sql")


class SqlApprovalStore:
    """Relational ``ApprovalRequestStore``."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def _scope(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(
                "store_operation_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise PersistenceFailureError(operation, str(exc)) from exc

    def _load(self, session: Session, request_id: str) -> ApprovalRequestModel | None:
        return session.scalars(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.request_id == request_id,
            )
        ).one_or_none()

    def get(self, request_id: str) -> ApprovalRequest | None:
        with self._scope("get") as session:
            model = self._load(session, request_id)
            return model.to_dto() if model is not None else None

    def list_all(self) -> list[ApprovalRequest]:
        with self._scope("list_all") as session:
            models = session.scalars(
                select(ApprovalRequestModel).order_by(
                    ApprovalRequestModel.created_at,
                    ApprovalRequestModel.request_id,
                )
            ).all()
            return [m.to_dto() for m in models]

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        with self._scope("add") as session:
            session.add(ApprovalRequestModel.from_dto(request))
            session.flush()
            for sequence, decision in enumerate(request.received_approvals):
                session.add(
                    ApprovalDecisionModel.from_dto(request.request_id, sequence, decision)
                )
        return request

    def update(
        self,
        request: ApprovalRequest,
        expected_version: int,
        escalation: ApprovalEscalation | None = None,
    ) -> ApprovalRequest:
        if escalation is not None and escalation.request_id != request.request_id:
            raise ValueError(
                f"Escalation for {escalation.request_id} cannot be saved with request {request.request_id}"
            )
        new_version = expected_version + 1
        with self._scope("update") as session:
            values = {
                getattr(ApprovalRequestModel, name): value
                for name, value in ApprovalRequestModel.mutable_values(request).items()
            }
            values[ApprovalRequestModel.version] = new_version
            result = session.execute(
                update(ApprovalRequestModel)
                .where(
                    ApprovalRequestModel.request_id == request.request_id,
                    ApprovalRequestModel.version == expected_version,
                )
                .values(values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                actual = session.scalar(
                    select(ApprovalRequestModel.version).where(
                        ApprovalRequestModel.request_id == request.request_id,
                    )
                )
                if actual is None:
                    raise RequestNotFoundError(request.request_id)
                raise ConcurrentModificationError(
                    request.request_id, expected_version, actual,
                )

            existing = [
                d.to_dto()
                for d in session.scalars(
                    select(ApprovalDecisionModel)
                    .where(ApprovalDecisionModel.request_id == request.request_id)
                    .order_by(ApprovalDecisionModel.sequence)
                ).all()
            ]
            if list(request.received_approvals[: len(existing)]) != existing:
                raise ImmutabilityViolationError(
                    entity_type="ApprovalRequest",
                    entity_id=request.request_id,
                    reason="Recorded decisions cannot be changed or removed",
                )
            for sequence in range(len(existing), len(request.received_approvals)):
                session.add(
                    ApprovalDecisionModel.from_dto(
                        request.request_id,
                        sequence,
                        request.received_approvals[sequence],
                    )
                )
            if escalation is not None:
                session.add(ApprovalEscalationModel.from_dto(escalation))

        return replace(request, version=new_version)

    def delete_many(self, request_ids: Iterable[str]) -> int:
        ids = list(set(request_ids))
        if not ids:
            return 0
        with self._scope("delete_many") as session:
            # Bulk statements: per-row ORM deletes of append-only rows are refused.
            session.execute(
                delete(ApprovalDecisionModel)
                .where(ApprovalDecisionModel.request_id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            session.execute(
                delete(ApprovalEscalationModel)
                .where(ApprovalEscalationModel.request_id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            result = session.execute(
                delete(ApprovalRequestModel)
                .where(ApprovalRequestModel.request_id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    def append_escalation(self, escalation: ApprovalEscalation) -> None:
        with self._scope("append_escalation") as session:
            if self._load(session, escalation.request_id) is None:
                raise RequestNotFoundError(escalation.request_id)
            session.add(ApprovalEscalationModel.from_dto(escalation))

    def list_escalations(self, request_id: str | None = None) -> list[ApprovalEscalation]:
        with self._scope("list_escalations") as session:
            stmt = select(ApprovalEscalationModel).order_by(
                ApprovalEscalationModel.escalated_at,
                ApprovalEscalationModel.level,
            )
            if request_id is not None:
                stmt = stmt.where(ApprovalEscalationModel.request_id == request_id)
            return [m.to_dto() for m in session.scalars(stmt).all()]
