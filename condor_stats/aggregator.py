# condor_stats/aggregator.py

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional
import logging

from condor_stats.identity import IdentityIndex
from condor_stats.models import Accumulator, Member, PlayerMatchStatRow, Window
from condor_stats.qualification import ascenso_points, is_competitive, is_qualified

LOGGER = logging.getLogger(__name__)


class MatchAggregator:
    """
    Fold per-player match rows into per-member accumulators.

    Counting metrics are summed over every contributing row. Rate metrics are
    summed as well but averaged over distinct import ids, so duplicate rows
    for one match/member pair never inflate the divisor.
    """

    def __init__(
        self,
        index: IdentityIndex,
        window: Optional[Window] = None,
        exclude_practice: bool = True,
        qualified_only: bool = False,
    ):
        self.index = index
        self.window = window or Window.all_time()
        self.exclude_practice = exclude_practice
        self.qualified_only = qualified_only
        self.accumulators: Dict[str, Accumulator] = {}
        self.unattributed = 0
        self.filtered = 0

    def accepts(self, row: PlayerMatchStatRow) -> bool:
        """Window, practice and qualification gates (identity is checked separately)."""
        if not self.window.contains(row.imported_at, row.import_id):
            return False
        if self.exclude_practice and not is_competitive(row):
            return False
        if self.qualified_only and not is_qualified(row):
            return False
        return True

    def add(self, row: PlayerMatchStatRow) -> Optional[str]:
        """Fold one row. Returns the member id it was attributed to, if any."""
        member_id = self.index.resolve_row(row)
        if member_id is None:
            self.unattributed += 1
            LOGGER.debug(
                "Unattributed row import=%s account=%s provider=%s player=%s",
                row.import_id, row.account_id, row.provider_id, row.player_name,
            )
            return None
        if not self.accepts(row):
            self.filtered += 1
            return None

        acc = self.accumulators.get(member_id)
        if acc is None:
            acc = Accumulator(member_id=member_id)
            self.accumulators[member_id] = acc
        fold_row(acc, row)
        return member_id

    def add_all(self, rows: Iterable[PlayerMatchStatRow]) -> 'MatchAggregator':
        count = 0
        for row in rows:
            self.add(row)
            count += 1
        if self.unattributed:
            LOGGER.info("Aggregated %d rows, %d unattributed", count, self.unattributed)
        return self

    def get(self, member_id: str) -> Accumulator:
        """Accumulator for a member; empty (all zeros) when nothing contributed."""
        return self.accumulators.get(member_id) or Accumulator(member_id=member_id)


def fold_row(acc: Accumulator, row: PlayerMatchStatRow) -> None:
    acc.kills += row.kills
    acc.deaths += row.deaths
    acc.score += row.score
    acc.combat += row.combat
    acc.offense += row.offense
    acc.defense += row.defense
    acc.support += row.support
    acc.teamkills += row.teamkills
    acc.infantry_kills += row.infantry_kills
    if is_qualified(row):
        acc.ascenso += ascenso_points(row)
    acc.best_kills_streak = max(acc.best_kills_streak, row.kills_streak)

    acc.kills_per_minute_sum += row.kills_per_minute
    acc.deaths_per_minute_sum += row.deaths_per_minute
    acc.kill_death_ratio_sum += row.kill_death_ratio
    acc.match_ids.add(row.import_id)

    # Most recently imported contributing match drives "last used" identity
    if acc.last_imported_at is None or row.imported_at > acc.last_imported_at:
        acc.last_imported_at = row.imported_at
        if row.provider_id:
            acc.last_provider_id = row.provider_id
    elif row.imported_at == acc.last_imported_at and row.provider_id and acc.last_provider_id is None:
        acc.last_provider_id = row.provider_id


def aggregate_member(
    member: Member,
    rows: Iterable[PlayerMatchStatRow],
    index: Optional[IdentityIndex] = None,
    window: Optional[Window] = None,
    exclude_practice: bool = True,
    qualified_only: bool = False,
) -> Accumulator:
    """Aggregate rows for a single member. Rows attributed to other members are ignored."""
    if index is None:
        index = IdentityIndex.build([member])
    aggregator = MatchAggregator(
        index, window=window, exclude_practice=exclude_practice, qualified_only=qualified_only
    )
    for row in rows:
        if index.resolve_row(row) == member.member_id:
            aggregator.add(row)
    return aggregator.get(member.member_id)


def group_by_match(rows: Iterable[PlayerMatchStatRow]) -> "OrderedDict[str, List[PlayerMatchStatRow]]":
    """Group rows by import id, newest import first."""
    ordered = sorted(rows, key=lambda r: (r.imported_at, r.import_id), reverse=True)
    grouped: "OrderedDict[str, List[PlayerMatchStatRow]]" = OrderedDict()
    for row in ordered:
        grouped.setdefault(row.import_id, []).append(row)
    return grouped
