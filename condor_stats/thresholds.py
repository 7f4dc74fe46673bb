# condor_stats/thresholds.py

import os
from dataclasses import dataclass
from typing import Optional

# Condor qualification gate
QUALIFIED_MIN_INFANTRY_KILLS = 40
QUALIFIED_MIN_KILL_DEATH_RATIO = 1.0

# Window selectors
PERIOD_DAYS = {
    '7d': 7,
    '30d': 30,
}
PERIODS = ('7d', '30d', 'all', 'week')
MIN_DAYS = 1
MAX_DAYS = 365
MIN_EVENTS = 1
MAX_EVENTS = 50
MIN_WEEK_OFFSET = 0
MAX_WEEK_OFFSET = 52

# Civil calendar used for weekly rankings (GMT-3)
DEFAULT_UTC_OFFSET_HOURS = -3

# Leaderboards
LEADERBOARD_METRICS = ('kills', 'score', 'kdr', 'combat', 'offense', 'defense', 'support', 'ascenso')
DEFAULT_LEADERBOARD_METRIC = 'kills'
DEFAULT_LEADERBOARD_LIMIT = 10
MIN_LEADERBOARD_LIMIT = 1
MAX_LEADERBOARD_LIMIT = 50

# Last events card
DEFAULT_LAST_EVENTS = 5
MAX_LAST_EVENTS = 10

# Gulag
DEFAULT_INACTIVITY_DAYS = 30

DEFAULT_DB_PATH = 'data/condor.db'


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""

    db_path: str = DEFAULT_DB_PATH
    inactivity_days: int = DEFAULT_INACTIVITY_DAYS
    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(db_path: Optional[str] = None) -> Settings:
    """Build settings from CONDOR_* environment variables."""
    env_db = os.getenv('CONDOR_DB_PATH', '').strip()
    inactivity_days = _env_int('CONDOR_GULAG_DAYS', DEFAULT_INACTIVITY_DAYS)
    if inactivity_days < 0:
        raise ValueError("CONDOR_GULAG_DAYS must be >= 0")
    return Settings(
        db_path=db_path or env_db or DEFAULT_DB_PATH,
        inactivity_days=inactivity_days,
        utc_offset_hours=_env_int('CONDOR_UTC_OFFSET_HOURS', DEFAULT_UTC_OFFSET_HOURS),
    )
