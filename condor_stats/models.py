# condor_stats/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional, Set, Tuple


@dataclass(frozen=True)
class GameAccount:
    """A platform account linked to a roster member."""

    account_id: str
    member_id: str
    provider_id: str
    provider: str = 'STEAM'


@dataclass(frozen=True)
class Member:
    member_id: str
    display_name: str
    discord_id: str
    is_active: bool = True
    joined_at: Optional[datetime] = None
    accounts: Tuple[GameAccount, ...] = ()

    @property
    def account_ids(self) -> Set[str]:
        return {a.account_id for a in self.accounts}

    @property
    def provider_ids(self) -> Set[str]:
        return {a.provider_id for a in self.accounts if a.provider_id}


@dataclass(frozen=True)
class MatchRecord:
    """One imported match (a CRCON scoreboard import)."""

    import_id: str
    game_id: str
    imported_at: datetime
    title: str = ''
    source_url: str = ''
    event_id: Optional[str] = None
    event_date: Optional[datetime] = None
    event_is_practice: bool = False

    @property
    def is_practice(self) -> bool:
        return self.event_id is not None and self.event_is_practice


@dataclass(frozen=True)
class PlayerMatchStatRow:
    """One player's line on one match scoreboard.

    ``imported_at`` and ``is_practice`` are copied from the owning
    MatchRecord by the data source.
    """

    import_id: str
    imported_at: datetime
    account_id: Optional[str] = None
    provider_id: Optional[str] = None
    player_name: str = ''
    kills: int = 0
    deaths: int = 0
    infantry_kills: int = 0
    kills_streak: int = 0
    teamkills: int = 0
    deaths_by_tk: int = 0
    kills_per_minute: float = 0.0
    deaths_per_minute: float = 0.0
    kill_death_ratio: float = 0.0
    score: int = 0
    combat: int = 0
    offense: int = 0
    defense: int = 0
    support: int = 0
    is_practice: bool = False


@dataclass(frozen=True)
class IdentitySet:
    account_ids: FrozenSet[str] = frozenset()
    provider_ids: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.account_ids and not self.provider_ids

    def matches(self, row: PlayerMatchStatRow) -> bool:
        if row.account_id is not None:
            return row.account_id in self.account_ids
        return row.provider_id is not None and row.provider_id in self.provider_ids


@dataclass(frozen=True)
class Window:
    """Resolved time window: open start, closed range, explicit matches or all time."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    match_ids: Optional[Tuple[str, ...]] = None
    week_number: Optional[int] = None
    week_year: Optional[int] = None
    label: str = 'all'

    @classmethod
    def all_time(cls) -> 'Window':
        return cls()

    @property
    def is_all_time(self) -> bool:
        return self.start is None and self.end is None and self.match_ids is None

    def contains(self, imported_at: datetime, import_id: Optional[str] = None) -> bool:
        if self.match_ids is not None:
            return import_id in self.match_ids
        if self.start is not None and imported_at < self.start:
            return False
        if self.end is not None and imported_at > self.end:
            return False
        return True


def _safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


@dataclass
class Accumulator:
    """Running per-member totals for one aggregation pass."""

    member_id: str
    kills: int = 0
    deaths: int = 0
    score: int = 0
    combat: int = 0
    offense: int = 0
    defense: int = 0
    support: int = 0
    teamkills: int = 0
    infantry_kills: int = 0
    ascenso: int = 0
    best_kills_streak: int = 0
    kills_per_minute_sum: float = 0.0
    deaths_per_minute_sum: float = 0.0
    kill_death_ratio_sum: float = 0.0
    match_ids: Set[str] = field(default_factory=set)
    last_imported_at: Optional[datetime] = None
    last_provider_id: Optional[str] = None

    @property
    def matches(self) -> int:
        return len(self.match_ids)

    # Rate metrics: sum of per-match rates over distinct matches
    @property
    def avg_kills_per_minute(self) -> float:
        return _safe_div(self.kills_per_minute_sum, self.matches)

    @property
    def avg_deaths_per_minute(self) -> float:
        return _safe_div(self.deaths_per_minute_sum, self.matches)

    @property
    def avg_kill_death_ratio(self) -> float:
        return _safe_div(self.kill_death_ratio_sum, self.matches)

    # Counting metrics per match
    @property
    def score_per_match(self) -> float:
        return _safe_div(self.score, self.matches)

    @property
    def combat_per_match(self) -> float:
        return _safe_div(self.combat, self.matches)

    @property
    def offense_per_match(self) -> float:
        return _safe_div(self.offense, self.matches)

    @property
    def defense_per_match(self) -> float:
        return _safe_div(self.defense, self.matches)

    @property
    def support_per_match(self) -> float:
        return _safe_div(self.support, self.matches)

    def aggregate_dict(self) -> Dict[str, Any]:
        return {
            'kills': self.kills,
            'deaths': self.deaths,
            'score': self.score,
            'matches': self.matches,
            'combat': self.combat,
            'offense': self.offense,
            'defense': self.defense,
            'support': self.support,
            'killDeathRatio': self.avg_kill_death_ratio,
        }

    def averages_dict(self) -> Dict[str, float]:
        return {
            'killsPerMinute': self.avg_kills_per_minute,
            'deathsPerMinute': self.avg_deaths_per_minute,
            'scorePerMatch': self.score_per_match,
            'combatPerMatch': self.combat_per_match,
            'offensePerMatch': self.offense_per_match,
            'defensePerMatch': self.defense_per_match,
            'supportPerMatch': self.support_per_match,
        }
