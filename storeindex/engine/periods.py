"""
Period resolution for scheduled and backfill runs.

Weeks are ISO weeks (Monday to Sunday) and months are calendar months.
Custom periods have no calendar and can only be computed explicitly.
"""

from datetime import date, timedelta
from typing import Optional

from storeindex.models.enums import Granularity

Period = tuple[date, date]


def _require_calendar(granularity: Granularity) -> None:
    if granularity == Granularity.CUSTOM:
        raise ValueError("custom periods have no calendar; pass period_start and period_end")


def previous_period(granularity: Granularity, today: Optional[date] = None) -> Period:
    """
    Last completed period before ``today``.

    Example:
        >>> previous_period(Granularity.WEEK, date(2026, 10, 14))
        (datetime.date(2026, 10, 5), datetime.date(2026, 10, 11))
    """
    _require_calendar(granularity)
    today = today or date.today()
    if granularity == Granularity.WEEK:
        this_monday = today - timedelta(days=today.weekday())
        return this_monday - timedelta(days=7), this_monday - timedelta(days=1)

    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.replace(day=1), last_day


def period_before(granularity: Granularity, period: Period) -> Period:
    """Period immediately preceding ``period``."""
    _require_calendar(granularity)
    start, _ = period
    if granularity == Granularity.WEEK:
        return start - timedelta(days=7), start - timedelta(days=1)
    last_day = start - timedelta(days=1)
    return last_day.replace(day=1), last_day


def recent_periods(
    granularity: Granularity,
    count: int,
    today: Optional[date] = None,
) -> list[Period]:
    """The ``count`` most recent completed periods, oldest first."""
    if count < 1:
        return []
    periods = [previous_period(granularity, today)]
    while len(periods) < count:
        periods.append(period_before(granularity, periods[-1]))
    return list(reversed(periods))


def period_label(granularity: Granularity, period_start: date, period_end: date) -> str:
    """Human label: ``2026-W41`` for weeks, ``2026-10`` for months."""
    if granularity == Granularity.WEEK:
        iso_year, iso_week, _ = period_start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == Granularity.MONTH:
        return f"{period_start.year}-{period_start.month:02d}"
    return f"{period_start.isoformat()}..{period_end.isoformat()}"


def period_days(period_start: date, period_end: date) -> int:
    """Inclusive length of a period in days."""
    return (period_end - period_start).days + 1
