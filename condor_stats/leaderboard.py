# condor_stats/leaderboard.py

from typing import Any, Dict, Iterable, List, Mapping, Optional

from condor_stats.models import Accumulator, Member, Window
from condor_stats.thresholds import DEFAULT_LEADERBOARD_LIMIT, DEFAULT_LEADERBOARD_METRIC
from condor_stats.validation import validate_leaderboard_request


def metric_value(acc: Accumulator, metric: str) -> float:
    """Value a leaderboard sorts on. kdr and ascenso are derived, the rest are sums."""
    if metric == 'kdr':
        return acc.avg_kill_death_ratio
    if metric == 'ascenso':
        return acc.ascenso
    return getattr(acc, metric)


class LeaderboardRanker:
    """Rank member accumulators on one metric."""

    def __init__(self, metric: str = DEFAULT_LEADERBOARD_METRIC, limit: int = DEFAULT_LEADERBOARD_LIMIT):
        validate_leaderboard_request(metric, limit)
        self.metric = metric
        self.limit = limit

    def entry(self, acc: Accumulator, member: Optional[Member]) -> Dict[str, Any]:
        return {
            'memberId': acc.member_id,
            'displayName': member.display_name if member else 'Unknown',
            'discordId': member.discord_id if member else None,
            'matches': acc.matches,
            'kills': acc.kills,
            'deaths': acc.deaths,
            'score': acc.score,
            'combat': acc.combat,
            'offense': acc.offense,
            'defense': acc.defense,
            'support': acc.support,
            'ascenso': acc.ascenso,
            'kdr': acc.avg_kill_death_ratio,
            'value': metric_value(acc, self.metric),
        }

    def rank(
        self,
        accumulators: Iterable[Accumulator],
        members: Mapping[str, Member],
    ) -> List[Dict[str, Any]]:
        """
        Build sorted leaderboard entries.

        Members without contributing matches are skipped. Ties on ``value`` are
        broken by display name (case-insensitive), then member id.
        """
        entries = [
            self.entry(acc, members.get(acc.member_id))
            for acc in accumulators
            if acc.matches > 0
        ]
        entries.sort(key=lambda e: (-e['value'], e['displayName'].casefold(), e['memberId']))
        for position, entry in enumerate(entries[:self.limit], start=1):
            entry['rank'] = position
        return entries[:self.limit]


def leaderboard_payload(
    entries: List[Dict[str, Any]],
    metric: str,
    window: Window,
    limit: int,
    qualified: bool,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        'leaderboard': entries,
        'metric': metric,
        'period': window.label,
        'limit': limit,
        'qualified': qualified,
    }
    if window.week_number is not None:
        payload['weekNumber'] = window.week_number
        payload['year'] = window.week_year
        payload['weekStart'] = window.start.isoformat()
        payload['weekEnd'] = window.end.isoformat()
    return payload
