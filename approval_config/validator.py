"""
Configuration Validator (``approval_config.validator``).

Responsibility
--------------
Checks a parsed ``ApprovalConfiguration`` for structural problems before
it is handed to the services.

Invariants enforced
-------------------
* Threshold sanity: non-empty unique ids and names, ``min_amount >= 0``,
  ``max_amount >= min_amount``, at least one required role,
  ``required_approvers >= 1``, non-negative escalation hours.
* Unambiguous routing: two active thresholds whose ranges overlap must be
  separable by their conditions.  Overlap with identical (or no)
  conditions is an error; overlap with differing conditions is a warning,
  since both may still match and the resolver's tie-break decides.
* Escalation table: levels numbered contiguously from 1, non-negative
  ``after_hours``.
* Settings: positive worker counts and timeouts, resolvable timezone.

Failure modes
-------------
* ``errors`` non-empty  -> configuration MUST NOT be used.
* ``warnings``  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from zoneinfo import ZoneInfoNotFoundError

from approval_config.schema import ApprovalConfiguration, EngineSettings
from approval_kernel.domain.approval import (
    ApprovalThreshold,
    EscalationPolicy,
    RecipientType,
)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ApprovalConfiguration) -> ConfigValidationResult:
    """Validate thresholds, escalation table and settings."""
    result = ConfigValidationResult()
    _validate_thresholds(config.thresholds, result)
    _validate_overlaps(config.thresholds, result)
    _validate_escalation(config.escalation, result)
    _validate_settings(config.settings, result)
    return result


def _validate_thresholds(
    thresholds: tuple[ApprovalThreshold, ...],
    result: ConfigValidationResult,
) -> None:
    if not thresholds:
        result.add_warning("No thresholds configured: no purchase order will require approval")

    seen_ids: set[str] = set()
    for t in thresholds:
        label = t.name or t.threshold_id or "<unnamed>"
        if not t.name or not t.name.strip():
            result.add_error(f"Threshold '{t.threshold_id}': name is required")
        if not t.threshold_id:
            result.add_error(f"Threshold '{label}': id is required")
        elif t.threshold_id in seen_ids:
            result.add_error(f"Duplicate threshold id '{t.threshold_id}'")
        seen_ids.add(t.threshold_id)

        if t.min_amount < 0:
            result.add_error(f"Threshold '{label}': min_amount cannot be negative")
        if t.max_amount is not None and t.max_amount < t.min_amount:
            result.add_error(
                f"Threshold '{label}': max_amount {t.max_amount} "
                f"is below min_amount {t.min_amount}"
            )
        if not t.required_roles:
            result.add_error(f"Threshold '{label}': at least one required role is needed")
        if t.required_approvers < 1:
            result.add_error(f"Threshold '{label}': required_approvers must be at least 1")
        if t.escalation_time_hours is not None and t.escalation_time_hours < 0:
            result.add_error(f"Threshold '{label}': escalation_time_hours cannot be negative")
        if t.auto_approve and t.escalation_time_hours:
            result.add_warning(
                f"Threshold '{label}': auto_approve threshold also sets escalation hours"
            )


def _ranges_overlap(a: ApprovalThreshold, b: ApprovalThreshold) -> bool:
    a_below_b_max = b.max_amount is None or a.min_amount <= b.max_amount
    b_below_a_max = a.max_amount is None or b.min_amount <= a.max_amount
    return a_below_b_max and b_below_a_max


def _validate_overlaps(
    thresholds: tuple[ApprovalThreshold, ...],
    result: ConfigValidationResult,
) -> None:
    active = [t for t in thresholds if t.is_active]
    for a, b in combinations(active, 2):
        if not _ranges_overlap(a, b):
            continue
        if set(a.conditions) == set(b.conditions):
            result.add_error(
                f"Thresholds '{a.name}' and '{b.name}' overlap and "
                f"their conditions cannot tell them apart"
            )
        else:
            result.add_warning(
                f"Thresholds '{a.name}' and '{b.name}' overlap; "
                f"orders matching both resolve to the narrower range"
            )


def _validate_escalation(policy: EscalationPolicy, result: ConfigValidationResult) -> None:
    numbers = [lvl.level for lvl in policy.levels]
    if numbers != list(range(1, len(numbers) + 1)):
        result.add_error(
            f"Escalation levels must be numbered 1..N without gaps, got {numbers}"
        )
    for lvl in policy.levels:
        if lvl.after_hours < 0:
            result.add_error(f"Escalation level {lvl.level}: after_hours cannot be negative")
        if not any(r.type == RecipientType.ROLE for r in lvl.recipients):
            result.add_warning(f"Escalation level {lvl.level} has no role recipients")
    if policy.enabled and not policy.levels:
        result.add_warning(
            "Escalation is enabled but no levels are configured: "
            "overdue requests will expire immediately"
        )


def _validate_settings(settings: EngineSettings, result: ConfigValidationResult) -> None:
    if settings.bulk_max_workers < 1:
        result.add_error("engine.bulk_max_workers must be at least 1")
    if settings.bulk_conflict_retries < 0:
        result.add_error("engine.bulk_conflict_retries cannot be negative")
    if settings.notification_timeout_seconds <= 0:
        result.add_error("engine.notification_timeout_seconds must be positive")
    if settings.audit_timeout_seconds <= 0:
        result.add_error("engine.audit_timeout_seconds must be positive")
    if settings.retention_days < 0:
        result.add_error("engine.retention_days cannot be negative")
    if settings.critical_after_days < settings.reminder_after_days:
        result.add_warning(
            "engine.critical_after_days is below reminder_after_days: "
            "every reminder will be critical"
        )
    try:
        settings.business_tzinfo
    except (ZoneInfoNotFoundError, ValueError):
        result.add_error(f"engine.business_timezone '{settings.business_timezone}' is unknown")
