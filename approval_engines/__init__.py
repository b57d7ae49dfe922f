"""
Module: approval_engines
Responsibility:
    Pure calculation layer for the approval engine: threshold resolution,
    decision validation and quorum, business-day deadlines, escalation
    planning and statistics.

Architecture position:
    Engines -- zero I/O.  May only import approval_kernel.domain types and
    exceptions.  MUST NOT import approval_services or approval_config.

Invariants enforced:
    - Purity: engines never read the clock.  ``now`` is always a parameter.
    - Determinism: identical inputs give identical outputs.
"""

from approval_engines.deadlines import adjust_to_business_day, compute_deadline
from approval_engines.escalation import (
    EscalationOutcome,
    escalate,
    next_level,
    select_escalation_candidates,
)
from approval_engines.quorum import (
    QuorumEvaluation,
    apply_decision,
    evaluate_quorum,
    quorum_reached_at,
    validate_decision,
)
from approval_engines.statistics import approval_latency_hours, compute_statistics
from approval_engines.thresholds import (
    evaluate_condition,
    extract_condition_attributes,
    is_authorized,
    resolve_threshold,
    threshold_matches,
)

__all__ = [
    "EscalationOutcome",
    "QuorumEvaluation",
    "adjust_to_business_day",
    "apply_decision",
    "approval_latency_hours",
    "compute_deadline",
    "compute_statistics",
    "escalate",
    "evaluate_condition",
    "evaluate_quorum",
    "extract_condition_attributes",
    "is_authorized",
    "next_level",
    "quorum_reached_at",
    "resolve_threshold",
    "select_escalation_candidates",
    "threshold_matches",
    "validate_decision",
]
