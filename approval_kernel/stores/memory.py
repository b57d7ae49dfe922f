"""
In-memory approval store.

Keeps serialized dicts rather than live objects, so a caller holding a
returned request can never alias stored state.  Suitable for tests and
single-process deployments.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace

from approval_kernel.domain.approval import ApprovalEscalation, ApprovalRequest
from approval_kernel.domain.serialization import (
    escalation_from_dict,
    escalation_to_dict,
    request_from_dict,
    request_to_dict,
)
from approval_kernel.exceptions import (
    ConcurrentModificationError,
    ImmutabilityViolationError,
    PersistenceFailureError,
    RequestNotFoundError,
)


class InMemoryApprovalStore:
    """Dict-backed ``ApprovalRequestStore``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, dict] = {}
        self._escalations: list[dict] = []

    def get(self, request_id: str) -> ApprovalRequest | None:
        with self._lock:
            data = self._requests.get(request_id)
        return request_from_dict(data) if data is not None else None

    def list_all(self) -> list[ApprovalRequest]:
        with self._lock:
            rows = list(self._requests.values())
        return [request_from_dict(d) for d in rows]

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        data = request_to_dict(request)
        with self._lock:
            if request.request_id in self._requests:
                raise PersistenceFailureError(
                    "add", f"request {request.request_id} already exists",
                )
            self._requests[request.request_id] = data
        return request_from_dict(data)

    def update(
        self,
        request: ApprovalRequest,
        expected_version: int,
        escalation: ApprovalEscalation | None = None,
    ) -> ApprovalRequest:
        stored_request = replace(request, version=expected_version + 1)
        data = request_to_dict(stored_request)
        escalation_data = _escalation_for(request, escalation)
        with self._lock:
            current = self._requests.get(request.request_id)
            if current is None:
                raise RequestNotFoundError(request.request_id)
            if current["version"] != expected_version:
                raise ConcurrentModificationError(
                    request.request_id, expected_version, current["version"],
                )
            existing = current["received_approvals"]
            if data["received_approvals"][: len(existing)] != existing:
                raise ImmutabilityViolationError(
                    entity_type="ApprovalRequest",
                    entity_id=request.request_id,
                    reason="Recorded decisions cannot be changed or removed",
                )
            if escalation_data is not None:
                self._check_new_level(escalation_data)
                self._escalations.append(escalation_data)
            self._requests[request.request_id] = data
        return request_from_dict(data)

    def delete_many(self, request_ids: Iterable[str]) -> int:
        ids = set(request_ids)
        with self._lock:
            removed = [rid for rid in ids if self._requests.pop(rid, None) is not None]
            self._escalations = [
                e for e in self._escalations if e["request_id"] not in ids
            ]
        return len(removed)

    def append_escalation(self, escalation: ApprovalEscalation) -> None:
        data = escalation_to_dict(escalation)
        with self._lock:
            if escalation.request_id not in self._requests:
                raise RequestNotFoundError(escalation.request_id)
            self._check_new_level(data)
            self._escalations.append(data)

    def _check_new_level(self, data: dict) -> None:
        for existing in self._escalations:
            if existing["request_id"] == data["request_id"] and existing["level"] == data["level"]:
                raise PersistenceFailureError(
                    "append_escalation",
                    f"level {data['level']} already recorded for request {data['request_id']}",
                )

    def list_escalations(self, request_id: str | None = None) -> list[ApprovalEscalation]:
        with self._lock:
            rows = [
                e for e in self._escalations
                if request_id is None or e["request_id"] == request_id
            ]
        return [escalation_from_dict(e) for e in rows]

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)


def _escalation_for(request: ApprovalRequest, escalation: ApprovalEscalation | None) -> dict | None:
    if escalation is None:
        return None
    if escalation.request_id != request.request_id:
        raise ValueError(
            f"Escalation for {escalation.request_id} cannot be saved with request {request.request_id}"
        )
    return escalation_to_dict(escalation)
