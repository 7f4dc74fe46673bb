# condor_stats/parser.py

import math
from typing import Any, Dict, List, Optional


def _read_number(*values: Any) -> float:
    """First value that converts to a finite number, else 0."""
    for value in values:
        if value is None or isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            return number
    return 0.0


def _read_int(*values: Any) -> int:
    return int(_read_number(*values))


def _read_string(*values: Any) -> Optional[str]:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


class CrconScoreboardParser:
    """
    Normalize CRCON scoreboard payloads into typed stat-row fields.

    Handles:
    - CRCON v11 ``result.player_stats[]``
    - legacy ``players[]``, ``result.players[]`` and ``data.players[]``
    - alternate field spellings (``kpm``, ``kdr``, ``playerId``, ...)
    """

    def parse(self, payload: Any) -> List[Dict[str, Any]]:
        """
        Extract normalized player rows from a scoreboard payload.

        Args:
            payload: Decoded JSON scoreboard

        Returns:
            List of field dicts accepted by Database.add_player_stats

        Raises:
            ValueError: If the payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise ValueError("Scoreboard payload must be a JSON object")

        result = payload.get('result') if isinstance(payload.get('result'), dict) else {}
        data = payload.get('data') if isinstance(payload.get('data'), dict) else {}
        players = (
            result.get('player_stats')
            or payload.get('players')
            or result.get('players')
            or data.get('players')
            or []
        )
        if not isinstance(players, list):
            return []

        rows = []
        for raw in players:
            row = self.normalize_row(raw)
            if row is not None:
                rows.append(row)
        return rows

    def normalize_row(self, raw: Any) -> Optional[Dict[str, Any]]:
        """Normalize one player entry; returns None for unusable or idle players."""
        if not isinstance(raw, dict):
            return None

        player_name = _read_string(raw.get('player'), raw.get('name'), raw.get('player_name'), raw.get('playerName'))
        if not player_name:
            return None

        team = raw.get('team') if isinstance(raw.get('team'), dict) else {}
        kills_by_type = raw.get('kills_by_type') if isinstance(raw.get('kills_by_type'), dict) else {}
        kills = _read_int(raw.get('kills'))
        armor_kills = _read_int(kills_by_type.get('armor'))
        artillery_kills = _read_int(kills_by_type.get('artillery'))

        row = {
            'player_name': player_name,
            'provider_id': _read_string(raw.get('player_id'), raw.get('playerId'), raw.get('playerID'), raw.get('id')),
            'kills': kills,
            'deaths': _read_int(raw.get('deaths')),
            'infantry_kills': max(0, kills - armor_kills - artillery_kills),
            'kills_streak': _read_int(raw.get('kills_streak'), raw.get('kill_streak'),
                                      raw.get('killsStreak'), raw.get('killStreak')),
            'teamkills': _read_int(raw.get('teamkills'), raw.get('team_kills'), raw.get('teamKills')),
            'deaths_by_tk': _read_int(raw.get('deaths_by_tk'), raw.get('deathsByTk')),
            'kills_per_minute': _read_number(raw.get('kills_per_minute'), raw.get('killsPerMinute'), raw.get('kpm')),
            'deaths_per_minute': _read_number(raw.get('deaths_per_minute'), raw.get('deathsPerMinute'), raw.get('dpm')),
            'kill_death_ratio': _read_number(raw.get('kill_death_ratio'), raw.get('killDeathRatio'),
                                             raw.get('kd_ratio'), raw.get('kdr')),
            'score': _read_int(raw.get('score'), raw.get('combat_score'), raw.get('combatScore')),
            'combat': _read_int(raw.get('combat')),
            'offense': _read_int(raw.get('offense')),
            'defense': _read_int(raw.get('defense')),
            'support': _read_int(raw.get('support')),
            'team_side': _read_string(team.get('side'), raw.get('team_side'), raw.get('teamSide')),
        }

        # Players who connected but never did anything
        if row['combat'] + row['offense'] + row['defense'] == 0:
            return None
        if row['kills'] + row['deaths'] == 0 and row['combat'] == 0:
            return None
        return row
