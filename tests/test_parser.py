# tests/test_parser.py

import pytest

from condor_stats.parser import CrconScoreboardParser


class TestCrconScoreboardParser:
    """Test suite for scoreboard normalization."""

    @pytest.fixture
    def parser(self):
        return CrconScoreboardParser()

    @pytest.fixture
    def v11_player(self):
        return {
            'player': 'Alpha',
            'player_id': '76561198000000001',
            'kills': 52,
            'deaths': 11,
            'kills_by_type': {'infantry': 45, 'armor': 5, 'artillery': 2},
            'kills_streak': 9,
            'teamkills': 1,
            'deaths_by_tk': 0,
            'kills_per_minute': 0.58,
            'deaths_per_minute': 0.12,
            'kill_death_ratio': 4.73,
            'combat': 210,
            'offense': 80,
            'defense': 140,
            'support': 60,
            'team': {'side': 'allies'},
        }

    def test_parse_v11_payload(self, parser, v11_player):
        rows = parser.parse({'result': {'player_stats': [v11_player]}})
        assert len(rows) == 1
        row = rows[0]
        assert row['player_name'] == 'Alpha'
        assert row['provider_id'] == '76561198000000001'
        assert row['kills'] == 52
        assert row['infantry_kills'] == 45
        assert row['kills_per_minute'] == pytest.approx(0.58)
        assert row['kill_death_ratio'] == pytest.approx(4.73)
        assert row['team_side'] == 'allies'

    def test_parse_legacy_shapes(self, parser, v11_player):
        for payload in ({'players': [v11_player]},
                        {'result': {'players': [v11_player]}},
                        {'data': {'players': [v11_player]}}):
            assert len(parser.parse(payload)) == 1

    def test_alternate_field_names(self, parser):
        row = parser.normalize_row({
            'name': 'Bravo',
            'playerId': 'abc',
            'kills': '20',
            'deaths': 10,
            'kpm': '0.4',
            'dpm': 0.2,
            'kdr': 2,
            'killStreak': 4,
            'teamKills': 2,
            'combat': 10,
        })
        assert row['provider_id'] == 'abc'
        assert row['kills'] == 20
        assert row['kills_per_minute'] == pytest.approx(0.4)
        assert row['deaths_per_minute'] == pytest.approx(0.2)
        assert row['kill_death_ratio'] == 2.0
        assert row['kills_streak'] == 4
        assert row['teamkills'] == 2

    def test_missing_numbers_default_to_zero(self, parser):
        row = parser.normalize_row({'player': 'C', 'kills': None, 'deaths': 'n/a', 'combat': 5})
        assert row['kills'] == 0
        assert row['deaths'] == 0
        assert row['kill_death_ratio'] == 0.0
        assert row['provider_id'] is None

    def test_non_finite_numbers_default_to_zero(self, parser):
        row = parser.normalize_row({
            'player': 'X', 'kills': 'inf', 'deaths': 1e400, 'kpm': float('nan'),
            'kill_death_ratio': '-inf', 'kdr': 1.5, 'combat': 10,
        })
        assert row['kills'] == 0
        assert row['deaths'] == 0
        assert row['kills_per_minute'] == 0.0
        assert row['kill_death_ratio'] == 1.5

    def test_idle_players_dropped(self, parser):
        assert parser.normalize_row({'player': 'Idle', 'kills': 0, 'deaths': 0}) is None
        assert parser.normalize_row({'player': 'Ghost', 'kills': 3, 'deaths': 1}) is None

    def test_nameless_and_non_dict_rows_dropped(self, parser, v11_player):
        rows = parser.parse({'players': [dict(v11_player, player=''), 'junk', None, v11_player]})
        assert len(rows) == 1

    def test_infantry_kills_never_negative(self, parser):
        row = parser.normalize_row({
            'player': 'Tanker', 'kills': 3, 'combat': 40,
            'kills_by_type': {'armor': 5, 'artillery': 1},
        })
        assert row['infantry_kills'] == 0

    def test_invalid_payload_raises_error(self, parser):
        with pytest.raises(ValueError):
            parser.parse(['not', 'a', 'dict'])

    def test_empty_payload(self, parser):
        assert parser.parse({}) == []
        assert parser.parse({'players': 'oops'}) == []
