# condor_stats/inactivity.py
"""
Gulag report: members who have not played a competitive match for too long.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from condor_stats.aggregator import MatchAggregator
from condor_stats.identity import IdentityIndex
from condor_stats.models import MatchRecord, Member, PlayerMatchStatRow
from condor_stats.thresholds import DEFAULT_INACTIVITY_DAYS

DAY = timedelta(days=1)


def whole_days(now: datetime, then: Optional[datetime]) -> Optional[int]:
    if then is None:
        return None
    return int((now - then) // DAY)


@dataclass
class MemberActivity:
    member: Member
    joined_at: Optional[datetime]
    tenure_days: Optional[int]
    last_played_at: Optional[datetime]
    baseline_date: Optional[datetime]
    days_without_play: Optional[int]
    events_without_play: int
    in_gulag: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            'memberId': self.member.member_id,
            'discordId': self.member.discord_id,
            'displayName': self.member.display_name,
            'joinedAt': self.joined_at.isoformat() if self.joined_at else None,
            'tenureDays': self.tenure_days,
            'eventsWithoutPlay': self.events_without_play,
            'lastPlayedAt': self.last_played_at.isoformat() if self.last_played_at else None,
            'daysWithoutPlay': self.days_without_play,
            'status': 'GULAG' if self.in_gulag else 'ACTIVE',
        }


class InactivityEvaluator:
    """Compute baseline dates and flag members past the inactivity threshold."""

    def __init__(self, now: datetime, threshold_days: int = DEFAULT_INACTIVITY_DAYS):
        if threshold_days < 0:
            raise ValueError("threshold_days must be >= 0")
        self.now = now
        self.threshold = timedelta(days=threshold_days)
        self.threshold_days = threshold_days

    def last_played(
        self,
        members: Sequence[Member],
        rows: Iterable[PlayerMatchStatRow],
        index: Optional[IdentityIndex] = None,
    ) -> Dict[str, Optional[datetime]]:
        """Latest competitive import per member, identity matching only."""
        index = index or IdentityIndex.build(members)
        aggregator = MatchAggregator(index, exclude_practice=True).add_all(rows)
        return {m.member_id: aggregator.get(m.member_id).last_imported_at for m in members}

    def activity_for(
        self,
        member: Member,
        last_played_at: Optional[datetime],
        import_times: Sequence[datetime],
    ) -> MemberActivity:
        """``import_times`` must be sorted ascending and cover every match record."""
        joined_at = member.joined_at
        baseline = last_played_at or joined_at
        events_without_play = 0
        if baseline is not None:
            events_without_play = len(import_times) - bisect_right(import_times, baseline)
        # A baseline exactly threshold days old is still within grace
        in_gulag = baseline is not None and (self.now - baseline) > self.threshold
        return MemberActivity(
            member=member,
            joined_at=joined_at,
            tenure_days=whole_days(self.now, joined_at),
            last_played_at=last_played_at,
            baseline_date=baseline,
            days_without_play=whole_days(self.now, baseline),
            events_without_play=events_without_play,
            in_gulag=in_gulag,
        )

    def evaluate(
        self,
        members: Iterable[Member],
        rows: Iterable[PlayerMatchStatRow],
        records: Iterable[MatchRecord],
        index: Optional[IdentityIndex] = None,
    ) -> List[MemberActivity]:
        """
        Evaluate every active member and return the flagged ones.

        Returns:
            Flagged members sorted by days without play, descending
        """
        active = [m for m in members if m.is_active]
        last_played = self.last_played(active, rows, index=index)
        import_times = sorted(r.imported_at for r in records)

        flagged = []
        for member in active:
            activity = self.activity_for(member, last_played.get(member.member_id), import_times)
            if activity.in_gulag:
                flagged.append(activity)
        return sort_by_inactivity(flagged)


def sort_by_inactivity(rows: List[MemberActivity]) -> List[MemberActivity]:
    return sorted(
        rows,
        key=lambda a: (
            -(a.days_without_play if a.days_without_play is not None else -1),
            a.member.display_name.casefold(),
        ),
    )
