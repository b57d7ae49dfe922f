"""
approval_engines.statistics -- Aggregate metrics over approval requests.

Latency of an approved request is the time from ``created_at`` to the
decision that completed the quorum, in hours.
"""

from __future__ import annotations

from collections.abc import Iterable

from approval_engines.quorum import quorum_reached_at
from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import (
    ApprovalRequest,
    ApprovalStatistics,
    ApprovalStatus,
    Priority,
)


def approval_latency_hours(request: ApprovalRequest) -> float | None:
    """Hours from creation to quorum; None unless the request is approved."""
    if request.status != ApprovalStatus.APPROVED:
        return None
    reached = quorum_reached_at(request.received_approvals, request.required_approvals)
    if reached is None:
        return None
    return (reached - request.created_at).total_seconds() / 3600


@traced_engine("approval_statistics", "1.0")
def compute_statistics(requests: Iterable[ApprovalRequest]) -> ApprovalStatistics:
    by_status = {status: 0 for status in ApprovalStatus}
    by_priority = {priority.value: 0 for priority in Priority}
    by_threshold: dict[str, int] = {}
    latencies: list[float] = []
    total = 0

    for request in requests:
        total += 1
        by_status[request.status] += 1
        by_priority[request.priority.value] = by_priority.get(request.priority.value, 0) + 1
        name = request.threshold.name
        by_threshold[name] = by_threshold.get(name, 0) + 1
        latency = approval_latency_hours(request)
        if latency is not None:
            latencies.append(latency)

    average = sum(latencies) / len(latencies) if latencies else 0.0
    return ApprovalStatistics(
        total_requests=total,
        by_status=by_status,
        by_priority=by_priority,
        by_threshold=by_threshold,
        average_approval_time_hours=average,
    )
