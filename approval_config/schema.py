"""
Approval configuration schema.

The YAML source is parsed by the loader into these frozen types.  Threshold
and escalation records themselves are kernel domain types; this module
adds the engine tuning knobs and the configuration envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, tzinfo
from zoneinfo import ZoneInfo

from approval_kernel.domain.approval import ApprovalThreshold, EscalationPolicy
from approval_kernel.domain.calendar import StaticHolidayCalendar

# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Runtime tuning for the approval services."""

    notification_timeout_seconds: float = 5.0
    audit_timeout_seconds: float = 5.0
    bulk_max_workers: int = 8
    bulk_conflict_retries: int = 2
    retention_days: int = 90
    accept_decisions_when_escalated: bool = False
    default_currency: str = "PHP"
    business_timezone: str = "UTC"
    reminder_after_days: int = 3
    critical_after_days: int = 7

    @property
    def business_tzinfo(self) -> tzinfo:
        """Timezone in which weekends and holidays are judged."""
        if self.business_timezone.upper() == "UTC":
            return UTC
        return ZoneInfo(self.business_timezone)


# ---------------------------------------------------------------------------
# Configuration envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalConfiguration:
    """Everything the engine reads from configuration.

    ``checksum`` identifies the source document (see
    ``loader.compute_checksum``); ``source`` is the file it came from.
    """

    thresholds: tuple[ApprovalThreshold, ...] = ()
    escalation: EscalationPolicy = field(default_factory=EscalationPolicy)
    holidays: frozenset[date] = frozenset()
    settings: EngineSettings = field(default_factory=EngineSettings)
    checksum: str = ""
    source: str | None = None

    @property
    def active_thresholds(self) -> tuple[ApprovalThreshold, ...]:
        return tuple(t for t in self.thresholds if t.is_active)

    def holiday_calendar(self) -> StaticHolidayCalendar:
        return StaticHolidayCalendar(self.holidays)
