"""
approval_engines.deadlines -- Business-day deadline arithmetic.

Responsibility:
    Compute request deadlines and push them off weekends and holidays.

Invariants enforced:
    - Saturday moves forward two days, Sunday one day, a holiday one day;
      the check repeats until the date is a business day.
    - Time of day is preserved.
    - Weekday and holiday tests use the calendar date in the business
      timezone, not in UTC.
    - Purity: ``now`` is always passed in.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, tzinfo

from approval_kernel.domain.calendar import NO_HOLIDAYS, HolidayCalendar

SATURDAY = 5
SUNDAY = 6

# A calendar that marks every day a holiday must not loop forever.
_MAX_SHIFT_DAYS = 366


def adjust_to_business_day(
    moment: datetime,
    skip_weekends: bool,
    skip_holidays: bool,
    calendar: HolidayCalendar = NO_HOLIDAYS,
    business_tz: tzinfo = UTC,
) -> datetime:
    """Shift ``moment`` forward until it falls on a business day."""
    shifted = moment
    for _ in range(_MAX_SHIFT_DAYS):
        local_day = shifted.astimezone(business_tz).date()
        weekday = local_day.weekday()
        if skip_weekends and weekday == SATURDAY:
            shifted += timedelta(days=2)
        elif skip_weekends and weekday == SUNDAY:
            shifted += timedelta(days=1)
        elif skip_holidays and calendar.is_holiday(local_day):
            shifted += timedelta(days=1)
        else:
            return shifted
    raise ValueError(f"No business day within {_MAX_SHIFT_DAYS} days of {moment.isoformat()}")


def compute_deadline(
    start: datetime,
    hours: int | None,
    skip_weekends: bool = False,
    skip_holidays: bool = False,
    calendar: HolidayCalendar = NO_HOLIDAYS,
    business_tz: tzinfo = UTC,
) -> datetime | None:
    """``start + hours`` adjusted to a business day; None when hours is unset or 0."""
    if not hours or hours <= 0:
        return None
    return adjust_to_business_day(
        start + timedelta(hours=hours),
        skip_weekends,
        skip_holidays,
        calendar,
        business_tz,
    )
