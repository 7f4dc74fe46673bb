# condor_stats/validation.py
"""
Request validation for stats reports.

Everything here runs before any data is read, so a rejected request never
touches the data source.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from condor_stats.thresholds import (
    LEADERBOARD_METRICS,
    MAX_DAYS,
    MAX_EVENTS,
    MAX_LEADERBOARD_LIMIT,
    MAX_WEEK_OFFSET,
    MIN_DAYS,
    MIN_EVENTS,
    MIN_LEADERBOARD_LIMIT,
    MIN_WEEK_OFFSET,
    PERIODS,
)


class ValidationError(ValueError):
    """Raised for conflicting or out-of-range request parameters."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class MemberNotFoundError(LookupError):
    """Raised when a member reference does not resolve to a roster entry."""


def _check_int(field: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"must be an integer, got {value!r}")
    if value < low or value > high:
        raise ValidationError(field, f"must be between {low} and {high}, got {value}")
    return value


def validate_window_selectors(
    period: Optional[str] = None,
    days: Optional[int] = None,
    events: Optional[int] = None,
    week_offset: Optional[int] = None,
    max_events: int = MAX_EVENTS,
) -> None:
    """
    Check that at most one window selector is present and that it is in range.

    ``week_offset`` is only meaningful together with ``period='week'`` and is
    not counted as a separate selector.

    Raises:
        ValidationError: naming the offending field
    """
    supplied = [name for name, value in (('period', period), ('days', days), ('events', events))
                if value is not None]
    if len(supplied) > 1:
        raise ValidationError(supplied[1], f"cannot be combined with {supplied[0]}")

    if period is not None and period not in PERIODS:
        raise ValidationError('period', f"must be one of {', '.join(PERIODS)}")
    if days is not None:
        _check_int('days', days, MIN_DAYS, MAX_DAYS)
    if events is not None:
        _check_int('events', events, MIN_EVENTS, max_events)
    if week_offset is not None:
        if period != 'week':
            raise ValidationError('weekOffset', "requires period=week")
        _check_int('weekOffset', week_offset, MIN_WEEK_OFFSET, MAX_WEEK_OFFSET)


def validate_leaderboard_request(metric: str, limit: int) -> None:
    if metric not in LEADERBOARD_METRICS:
        raise ValidationError('metric', f"must be one of {', '.join(LEADERBOARD_METRICS)}")
    _check_int('limit', limit, MIN_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT)


def parse_timestamp(value: Any, field: str = 'timestamp') -> Optional[datetime]:
    """Parse an ISO-8601 value into an aware UTC datetime (naive input is taken as UTC)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(field, f"not an ISO-8601 timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
