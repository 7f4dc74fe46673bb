# condor_stats/window.py
"""
Window selectors -> concrete time ranges.

Weekly windows follow the clan's civil calendar (fixed GMT-3, no DST), so the
weekday arithmetic is done on the shifted local date and never on the host
timezone.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional

from condor_stats.models import PlayerMatchStatRow, Window
from condor_stats.thresholds import DEFAULT_UTC_OFFSET_HOURS, PERIOD_DAYS
from condor_stats.validation import validate_window_selectors


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_week_number(monday: date) -> tuple[int, int]:
    """Return (week_number, week_year) for the week starting on ``monday``.

    The ISO week belongs to the year containing its Thursday.
    """
    thursday = monday + timedelta(days=3)
    week_number = (thursday.timetuple().tm_yday - 1) // 7 + 1
    return week_number, thursday.year


def iso_week_bounds(
    now: datetime,
    week_offset: int = 0,
    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
) -> Window:
    """
    Compute the Monday..Sunday week containing ``now - week_offset weeks``.

    Args:
        now: Reference instant
        week_offset: 0 for the current week, 1 for the previous one, ...
        utc_offset_hours: Fixed offset of the civil calendar

    Returns:
        Closed Window in UTC with week_number/week_year set
    """
    offset = timedelta(hours=utc_offset_hours)
    local_tz = timezone(offset)
    local_now = _as_utc(now).astimezone(local_tz) - timedelta(weeks=week_offset)
    local_date = local_now.date()
    monday = local_date - timedelta(days=local_date.weekday())
    sunday = monday + timedelta(days=6)

    start_local = datetime.combine(monday, time(0, 0, 0, 0), tzinfo=local_tz)
    end_local = datetime.combine(sunday, time(23, 59, 59, 999000), tzinfo=local_tz)
    week_number, week_year = iso_week_number(monday)

    return Window(
        start=start_local.astimezone(timezone.utc),
        end=end_local.astimezone(timezone.utc),
        week_number=week_number,
        week_year=week_year,
        label='week',
    )


def resolve_window(
    period: Optional[str] = None,
    days: Optional[int] = None,
    week_offset: Optional[int] = None,
    now: Optional[datetime] = None,
    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
) -> Window:
    """Resolve a time selector. No selector means all time."""
    validate_window_selectors(period=period, days=days, week_offset=week_offset)
    now = _as_utc(now) if now is not None else utc_now()

    if days is not None:
        return Window(start=now - timedelta(days=days), label=f"{days}d")
    if period is None or period == 'all':
        return Window.all_time()
    if period == 'week':
        return iso_week_bounds(now, week_offset or 0, utc_offset_hours)
    return Window(start=now - timedelta(days=PERIOD_DAYS[period]), label=period)


def resolve_recent_matches(rows: Iterable[PlayerMatchStatRow], count: int) -> Window:
    """
    Select the ``count`` most recently imported distinct matches among ``rows``.

    Rows are expected to be pre-filtered by identity and practice exclusion.
    """
    ordered = sorted(rows, key=lambda r: (r.imported_at, r.import_id), reverse=True)
    match_ids: List[str] = []
    for row in ordered:
        if row.import_id in match_ids:
            continue
        match_ids.append(row.import_id)
        if len(match_ids) >= count:
            break
    return Window(match_ids=tuple(match_ids), label=f"{count} events")
