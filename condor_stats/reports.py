# condor_stats/reports.py
"""
Report service: runs a request through window resolution, identity
resolution, aggregation and ranking against a data source.

The data source is any object providing ``fetch_members``,
``fetch_match_stat_rows`` and ``fetch_match_records`` (see
``condor_stats.database.Database``). Every request is validated before the
first fetch.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from condor_stats.aggregator import MatchAggregator, aggregate_member, group_by_match
from condor_stats.identity import IdentityIndex
from condor_stats.inactivity import InactivityEvaluator, whole_days
from condor_stats.leaderboard import LeaderboardRanker, leaderboard_payload
from condor_stats.models import Member, Window
from condor_stats.thresholds import (
    DEFAULT_LAST_EVENTS,
    DEFAULT_LEADERBOARD_LIMIT,
    DEFAULT_LEADERBOARD_METRIC,
    MAX_LAST_EVENTS,
    Settings,
    load_settings,
)
from condor_stats.validation import MemberNotFoundError, ValidationError, validate_window_selectors
from condor_stats.window import _as_utc, resolve_recent_matches, resolve_window, utc_now

LOGGER = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _member_ref(member: Member) -> Dict[str, Any]:
    return {
        'id': member.member_id,
        'discordId': member.discord_id,
        'displayName': member.display_name,
    }


class StatsService:
    """Build leaderboard, rank, gulag and roster reports from a data source."""

    def __init__(self, source, now: Optional[datetime] = None, settings: Optional[Settings] = None):
        self.source = source
        self.settings = settings or load_settings()
        self._now = _as_utc(now) if now is not None else None
        self.unattributed_rows = 0

    def now(self) -> datetime:
        return self._now or utc_now()

    # --- Shared steps ---

    def _population(self) -> Tuple[List[Member], IdentityIndex]:
        """All members (inactive included, so attribution never shifts) and their index."""
        members = self.source.fetch_members()
        index = IdentityIndex.build(members)
        if index.provider_collisions:
            LOGGER.info("%d provider id collision(s) in roster", len(index.provider_collisions))
        return members, index

    @staticmethod
    def _check_discord_id(discord_id: Any) -> str:
        if not isinstance(discord_id, str) or not discord_id.strip():
            raise ValidationError('discordId', "must be a non-empty string")
        return discord_id.strip()

    @staticmethod
    def _find_member(members: List[Member], discord_id: str) -> Member:
        for member in members:
            if member.discord_id == discord_id:
                return member
        raise MemberNotFoundError(f"No member with discord id {discord_id}")

    def _member_rows(self, member: Member, index: IdentityIndex, window: Optional[Window]):
        """Competitive rows attributed to ``member``; no query when it has no identity."""
        identity = index.identity_of(member.member_id)
        if identity.is_empty:
            return []
        rows = self.source.fetch_match_stat_rows(identity=identity, window=window, exclude_practice=True)
        return [row for row in rows if index.resolve_row(row) == member.member_id]

    # --- Leaderboards ---

    def leaderboard(
        self,
        metric: str = DEFAULT_LEADERBOARD_METRIC,
        period: Optional[str] = None,
        days: Optional[int] = None,
        week_offset: Optional[int] = None,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
        qualified: bool = False,
        events: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Rank active members on one metric.

        Args:
            metric: kills, score, kdr, combat, offense, defense, support or ascenso
            period / days / week_offset: Time selector (at most one of period/days)
            limit: Max entries (1..50)
            qualified: Count only Condor-qualified rows
            events: Not supported for leaderboards; rejected when given

        Returns:
            Leaderboard payload dict
        """
        if events is not None:
            raise ValidationError('events', "only supported for member reports")
        ranker = LeaderboardRanker(metric, limit)
        window = resolve_window(
            period=period, days=days, week_offset=week_offset,
            now=self.now(), utc_offset_hours=self.settings.utc_offset_hours,
        )

        members, index = self._population()
        identity = index.identity_set()
        rows = []
        if not identity.is_empty:
            rows = self.source.fetch_match_stat_rows(
                identity=identity,
                window=window,
                exclude_practice=True,
                qualified=True if qualified else None,
            )
        aggregator = MatchAggregator(
            index, window=window, exclude_practice=True, qualified_only=qualified
        ).add_all(rows)
        self.unattributed_rows = aggregator.unattributed

        active = {m.member_id: m for m in members if m.is_active}
        accumulators = [acc for member_id, acc in aggregator.accumulators.items() if member_id in active]
        entries = ranker.rank(accumulators, active)
        return leaderboard_payload(entries, metric, window, limit, qualified)

    def condor_leaderboard(self, **kwargs) -> Dict[str, Any]:
        """Leaderboard over Condor-qualified rows only."""
        kwargs['qualified'] = True
        return self.leaderboard(**kwargs)

    def weekly_scores(self, week_offset: int = 0, limit: int = DEFAULT_LEADERBOARD_LIMIT) -> Dict[str, Any]:
        """Condor ascenso ranking for one ISO week (0 = current)."""
        return self.condor_leaderboard(
            metric='ascenso', period='week', week_offset=week_offset, limit=limit
        )

    # --- Member reports ---

    def my_rank(
        self,
        discord_id: str,
        period: Optional[str] = None,
        days: Optional[int] = None,
        events: Optional[int] = None,
        week_offset: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Personal rank card: aggregate sums, per-match averages and last used provider id."""
        discord_id = self._check_discord_id(discord_id)
        validate_window_selectors(period=period, days=days, events=events, week_offset=week_offset)

        members, index = self._population()
        member = self._find_member(members, discord_id)

        if events is not None:
            rows = self._member_rows(member, index, None)
            window = resolve_recent_matches(rows, events)
        else:
            window = resolve_window(
                period=period, days=days, week_offset=week_offset,
                now=self.now(), utc_offset_hours=self.settings.utc_offset_hours,
            )
            rows = self._member_rows(member, index, window)

        acc = aggregate_member(member, rows, index=index, window=window)
        return {
            'member': _member_ref(member),
            'period': window.label,
            'aggregate': acc.aggregate_dict(),
            'averages': acc.averages_dict(),
            'lastUsedProviderId': acc.last_provider_id,
        }

    def last_events(
        self,
        discord_id: str,
        events: Optional[int] = None,
        days: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Per-match breakdown of the member's most recent competitive matches."""
        discord_id = self._check_discord_id(discord_id)
        validate_window_selectors(days=days, events=events, max_events=MAX_LAST_EVENTS)
        count = events if events is not None else DEFAULT_LAST_EVENTS
        time_window = None
        if days is not None:
            count = MAX_LAST_EVENTS
            time_window = resolve_window(days=days, now=self.now())

        members, index = self._population()
        member = self._find_member(members, discord_id)

        rows = self._member_rows(member, index, time_window)
        window = resolve_recent_matches(rows, count)
        records = {}
        if window.match_ids:
            records = {r.import_id: r for r in self.source.fetch_match_records(window=window)}

        breakdown = []
        selected = [r for r in rows if window.contains(r.imported_at, r.import_id)]
        for import_id, match_rows in group_by_match(selected).items():
            acc = aggregate_member(member, match_rows, index=index)
            record = records.get(import_id)
            aggregate = acc.aggregate_dict()
            del aggregate['matches']
            breakdown.append({
                'importId': import_id,
                'eventId': record.event_id if record else None,
                'title': record.title if record else '',
                'eventDate': _iso(record.event_date) if record else None,
                'importedAt': _iso(match_rows[0].imported_at),
                'gameId': record.game_id if record else '',
                'sourceUrl': record.source_url if record else '',
                'aggregate': aggregate,
                'averages': {
                    'killsPerMinute': acc.avg_kills_per_minute,
                    'deathsPerMinute': acc.avg_deaths_per_minute,
                    'killDeathRatio': acc.avg_kill_death_ratio,
                },
            })

        return {
            'member': _member_ref(member),
            'period': time_window.label if time_window else window.label,
            'events': breakdown,
        }

    # --- Roster reports ---

    def gulag(self, threshold_days: Optional[int] = None) -> Dict[str, Any]:
        """Active members whose last competitive match (or join date) is too old."""
        if threshold_days is None:
            threshold_days = self.settings.inactivity_days
        if isinstance(threshold_days, bool) or not isinstance(threshold_days, int) or threshold_days < 0:
            raise ValidationError('inactivityDays', "must be a non-negative integer")
        now = self.now()

        members, index = self._population()
        identity = index.identity_set()
        rows = []
        if not identity.is_empty:
            rows = self.source.fetch_match_stat_rows(identity=identity, window=None, exclude_practice=True)
        records = self.source.fetch_match_records(window=None)

        evaluator = InactivityEvaluator(now, threshold_days)
        flagged = evaluator.evaluate(members, rows, records, index=index)
        return {
            'generatedAt': now.isoformat(),
            'inactivityDays': threshold_days,
            'totalMembersEvaluated': sum(1 for m in members if m.is_active),
            'gulag': [activity.as_dict() for activity in flagged],
        }

    def members_report(self) -> Dict[str, Any]:
        """Every active member with tenure, competitive participation and per-match averages."""
        now = self.now()
        members, index = self._population()
        identity = index.identity_set()
        rows = []
        if not identity.is_empty:
            rows = self.source.fetch_match_stat_rows(identity=identity, window=None, exclude_practice=True)
        aggregator = MatchAggregator(index, exclude_practice=True).add_all(rows)
        self.unattributed_rows = aggregator.unattributed

        report_rows = []
        for member in members:
            if not member.is_active:
                continue
            acc = aggregator.get(member.member_id)
            report_rows.append({
                'memberId': member.member_id,
                'discordId': member.discord_id,
                'id': acc.last_provider_id,
                'displayName': member.display_name,
                'joinedAt': _iso(member.joined_at),
                'tenureDays': whole_days(now, member.joined_at),
                'eventsParticipated': acc.matches,
                'kills': acc.kills,
                'deaths': acc.deaths,
                'avgKillDeathRatio': acc.avg_kill_death_ratio,
                'avgCombat': acc.combat_per_match,
                'avgOffense': acc.offense_per_match,
                'avgDefense': acc.defense_per_match,
                'avgSupport': acc.support_per_match,
                'avgDeathsPerMinute': acc.avg_deaths_per_minute,
                'lastPlayedAt': _iso(acc.last_imported_at),
            })
        report_rows.sort(key=lambda r: (-r['kills'], r['displayName'].casefold(), r['memberId']))
        return {
            'generatedAt': now.isoformat(),
            'totalMembers': len(report_rows),
            'rows': report_rows,
        }

    def qualified_matches(
        self,
        period: Optional[str] = None,
        days: Optional[int] = None,
        week_offset: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Competitive matches with at least one Condor-qualified member row."""
        window = resolve_window(
            period=period, days=days, week_offset=week_offset,
            now=self.now(), utc_offset_hours=self.settings.utc_offset_hours,
        )
        members, index = self._population()
        names = {m.member_id: m.display_name for m in members}
        identity = index.identity_set()
        rows = []
        if not identity.is_empty:
            rows = self.source.fetch_match_stat_rows(
                identity=identity, window=window, exclude_practice=True, qualified=True
            )

        qualified_by_match: Dict[str, set] = {}
        aggregator = MatchAggregator(index, window=window, exclude_practice=True, qualified_only=True)
        for row in rows:
            member_id = aggregator.add(row)
            if member_id is not None:
                qualified_by_match.setdefault(row.import_id, set()).add(member_id)
        self.unattributed_rows = aggregator.unattributed

        matches = []
        for record in self.source.fetch_match_records(window=window):
            if record.is_practice or record.import_id not in qualified_by_match:
                continue
            member_ids = qualified_by_match[record.import_id]
            matches.append({
                'importId': record.import_id,
                'gameId': record.game_id,
                'title': record.title,
                'importedAt': _iso(record.imported_at),
                'eventId': record.event_id,
                'sourceUrl': record.source_url,
                'qualifiedMembers': len(member_ids),
                'members': sorted((names.get(m, m) for m in member_ids), key=str.casefold),
            })
        return {'period': window.label, 'matches': matches}
