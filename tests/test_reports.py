# tests/test_reports.py

import pytest

from condor_stats.models import MatchRecord
from condor_stats.reports import StatsService
from condor_stats.validation import MemberNotFoundError, ValidationError
from tests.helpers import (
    NOW,
    SETTINGS,
    RecordingSource,
    create_test_db,
    make_member,
    make_row,
    seed_roster,
    utc,
)


@pytest.fixture
def db(tmp_path):
    database = create_test_db(tmp_path)
    yield database
    database.close()


@pytest.fixture
def ids(db):
    return seed_roster(db)


@pytest.fixture
def service(db, ids):
    return StatsService(db, now=NOW, settings=SETTINGS)


class TestEndToEnd:

    def test_condor_kills_only_counts_qualified_competitive_rows(self, service, ids):
        payload = service.condor_leaderboard(metric='kills')
        entries = payload['leaderboard']
        assert len(entries) == 1
        assert entries[0]['memberId'] == ids['a']
        assert entries[0]['value'] == 50
        assert entries[0]['matches'] == 1
        assert payload['qualified'] is True

    def test_plain_leaderboard_includes_non_qualified(self, service, ids):
        entries = service.leaderboard(metric='kills', period='all')['leaderboard']
        assert [e['memberId'] for e in entries] == [ids['a'], ids['b']]
        assert [e['value'] for e in entries] == [50, 20]

    def test_ascenso_leaderboard_ignores_non_qualified_rows(self, service, ids):
        # Bravo's only competitive row (combat 30 + offense 20) does not qualify
        entries = service.leaderboard(metric='ascenso')['leaderboard']
        values = {e['memberId']: e['value'] for e in entries}
        assert values[ids['a']] == 120
        assert values[ids['b']] == 0

    def test_gulag_threshold_zero_falls_back_to_joined_at(self, service, ids):
        report = service.gulag(threshold_days=0)
        rows = {row['memberId']: row for row in report['gulag']}

        charlie = rows[ids['c']]
        assert charlie['lastPlayedAt'] is None
        assert charlie['daysWithoutPlay'] == 45
        assert charlie['eventsWithoutPlay'] == 2
        assert charlie['status'] == 'GULAG'

        # Practice on 2026-03-10 does not count as played
        assert rows[ids['a']]['lastPlayedAt'].startswith('2026-03-12')
        assert report['totalMembersEvaluated'] == 3
        assert report['inactivityDays'] == 0
        assert report['gulag'][0]['memberId'] == ids['c']

    def test_gulag_default_threshold(self, service):
        # Charlie joined 45 days ago, Alpha and Bravo played 5 days ago
        report = service.gulag()
        assert report['inactivityDays'] == 30
        assert [row['displayName'] for row in report['gulag']] == ['Charlie']

    def test_period_and_days_rejected_before_data_read(self):
        source = RecordingSource(members=[make_member('a', providers=['PA'])])
        service = StatsService(source, now=NOW, settings=SETTINGS)
        with pytest.raises(ValidationError) as exc:
            service.leaderboard(period='7d', days=3)
        assert exc.value.field == 'days'
        with pytest.raises(ValidationError):
            service.my_rank('discord-a', days=7, events=3)
        with pytest.raises(ValidationError):
            service.leaderboard(metric='nope')
        assert source.calls == []


class TestRankCards:

    def test_my_rank(self, service, ids):
        card = service.my_rank('d-a', period='30d')
        assert card['member']['displayName'] == 'Alpha'
        assert card['period'] == '30d'
        assert card['aggregate']['kills'] == 50
        assert card['aggregate']['matches'] == 1
        assert card['averages']['killsPerMinute'] == pytest.approx(1.2)
        assert card['lastUsedProviderId'] == 'steam-a'

    def test_my_rank_unknown_member(self, service):
        with pytest.raises(MemberNotFoundError):
            service.my_rank('nobody')

    def test_my_rank_member_without_identity_never_queries_rows(self):
        source = RecordingSource(members=[make_member('c')])
        card = StatsService(source, now=NOW, settings=SETTINGS).my_rank('discord-c')
        assert card['aggregate']['matches'] == 0
        assert card['averages']['killsPerMinute'] == 0
        assert card['lastUsedProviderId'] is None
        assert 'fetch_match_stat_rows' not in source.calls

    def test_my_rank_last_events_selector(self):
        member = make_member('a', providers=['PA'])
        rows = [
            make_row(f"m{i}", utc(2026, 3, i), provider_id='PA', kills=i, kills_per_minute=float(i))
            for i in range(1, 6)
        ]
        rows.append(make_row('m6', utc(2026, 3, 6), provider_id='PA', kills=100, is_practice=True))
        service = StatsService(RecordingSource(members=[member], rows=rows), now=NOW, settings=SETTINGS)

        card = service.my_rank('discord-a', events=2)
        # m5 and m4; the practice match is not an event here
        assert card['aggregate']['matches'] == 2
        assert card['aggregate']['kills'] == 9
        assert card['averages']['killsPerMinute'] == pytest.approx(4.5)

    def test_last_events_breakdown(self, service, ids):
        report = service.last_events('d-a')
        assert len(report['events']) == 1
        event = report['events'][0]
        assert event['importId'] == ids['competitive_import']
        assert event['title'] == 'Liga Condor R1'
        assert event['gameId'] == 'game-2'
        assert event['aggregate']['kills'] == 50
        assert 'matches' not in event['aggregate']
        assert event['averages']['killDeathRatio'] == pytest.approx(5.0)

    def test_last_events_limit(self, service):
        with pytest.raises(ValidationError):
            service.last_events('d-a', events=11)


class TestRosterReports:

    def test_members_report(self, service, ids):
        report = service.members_report()
        assert report['totalMembers'] == 3
        rows = report['rows']
        assert [r['displayName'] for r in rows] == ['Alpha', 'Bravo', 'Charlie']
        alpha = rows[0]
        assert alpha['eventsParticipated'] == 1
        assert alpha['avgCombat'] == 80
        assert alpha['id'] == 'steam-a'
        assert rows[2]['eventsParticipated'] == 0
        assert rows[2]['lastPlayedAt'] is None
        assert rows[2]['tenureDays'] == 45

    def test_weekly_scores(self, db, ids):
        # Qualifying match inside the current week
        import_id = db.add_match_import('game-3', utc(2026, 3, 17, 1))
        db.add_player_stats(import_id, {
            'player_name': 'Alpha', 'provider_id': 'steam-a', 'kills': 60, 'deaths': 6,
            'infantry_kills': 55, 'kill_death_ratio': 10.0, 'combat': 70, 'offense': 30,
        })
        service = StatsService(db, now=NOW, settings=SETTINGS)
        payload = service.weekly_scores()
        assert payload['weekNumber'] == 12
        assert payload['year'] == 2026
        assert [(e['displayName'], e['value']) for e in payload['leaderboard']] == [('Alpha', 100)]

        assert service.weekly_scores(week_offset=1)['leaderboard'][0]['value'] == 120

    def test_qualified_matches(self, service, ids):
        payload = service.qualified_matches()
        assert [m['importId'] for m in payload['matches']] == [ids['competitive_import']]
        assert payload['matches'][0]['members'] == ['Alpha']

    def test_empty_source_gives_zero_reports(self):
        service = StatsService(RecordingSource(), now=NOW, settings=SETTINGS)
        assert service.leaderboard()['leaderboard'] == []
        assert service.gulag()['gulag'] == []
        assert service.members_report()['rows'] == []
        assert service.qualified_matches()['matches'] == []

    def test_inactive_members_left_out_of_leaderboard(self):
        members = [
            make_member('a', providers=['PA']),
            make_member('z', providers=['PZ'], is_active=False),
        ]
        rows = [
            make_row('m1', utc(2026, 3, 1), provider_id='PA', kills=5),
            make_row('m1', utc(2026, 3, 1), provider_id='PZ', kills=50),
        ]
        records = [MatchRecord(import_id='m1', game_id='g1', imported_at=utc(2026, 3, 1))]
        service = StatsService(RecordingSource(members, rows, records), now=NOW, settings=SETTINGS)
        entries = service.leaderboard()['leaderboard']
        assert [e['memberId'] for e in entries] == ['a']
        assert service.unattributed_rows == 0
