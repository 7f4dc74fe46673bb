# tests/helpers.py

import os
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from condor_stats.database import Database
from condor_stats.models import GameAccount, Member, PlayerMatchStatRow
from condor_stats.thresholds import Settings

# A Wednesday: 12:00 in the clan's GMT-3 calendar
NOW = datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc)

SETTINGS = Settings(db_path=':memory:', inactivity_days=30, utc_offset_hours=-3)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def create_test_db(tmp_dir) -> Database:
    """Create a fresh test database inside ``tmp_dir``."""
    test_path = os.path.join(str(tmp_dir), 'condor_test.db')
    if os.path.exists(test_path):
        os.remove(test_path)
    return Database(db_path=test_path)


def make_member(
    member_id: str,
    providers: Iterable[str] = (),
    display_name: Optional[str] = None,
    discord_id: Optional[str] = None,
    joined_at: Optional[datetime] = None,
    is_active: bool = True,
) -> Member:
    accounts = tuple(
        GameAccount(account_id=f"acc-{member_id}-{i}", member_id=member_id, provider_id=provider_id)
        for i, provider_id in enumerate(providers)
    )
    return Member(
        member_id=member_id,
        display_name=display_name or member_id.upper(),
        discord_id=discord_id or f"discord-{member_id}",
        is_active=is_active,
        joined_at=joined_at,
        accounts=accounts,
    )


def make_row(import_id: str, imported_at: datetime, account_id=None, provider_id=None, **stats) -> PlayerMatchStatRow:
    return PlayerMatchStatRow(
        import_id=import_id,
        imported_at=imported_at,
        account_id=account_id,
        provider_id=provider_id,
        **stats,
    )


QUALIFYING_STATS = {
    'player_name': 'Alpha',
    'kills': 50,
    'deaths': 10,
    'infantry_kills': 45,
    'kills_streak': 9,
    'kills_per_minute': 1.2,
    'deaths_per_minute': 0.25,
    'kill_death_ratio': 5.0,
    'score': 150,
    'combat': 80,
    'offense': 40,
    'defense': 20,
    'support': 10,
}

NON_QUALIFYING_STATS = {
    'player_name': 'Bravo',
    'kills': 20,
    'deaths': 25,
    'infantry_kills': 20,
    'kills_streak': 3,
    'kills_per_minute': 0.4,
    'deaths_per_minute': 0.5,
    'kill_death_ratio': 0.8,
    'score': 90,
    'combat': 30,
    'offense': 20,
    'defense': 30,
    'support': 10,
}


def seed_roster(db: Database) -> Dict[str, str]:
    """
    Three members and two matches:

    - A (steam-a) and B (steam-b) play both; C has no linked account
    - the 2026-03-10 match belongs to a practice event
    - the 2026-03-12 match is competitive: A qualifies, B does not

    Returns:
        Ids keyed by short name
    """
    ids = {
        'a': db.upsert_member('d-a', 'Alpha', joined_at=utc(2026, 1, 1)),
        'b': db.upsert_member('d-b', 'Bravo', joined_at=utc(2026, 1, 1)),
        'c': db.upsert_member('d-c', 'Charlie', joined_at=utc(2026, 2, 1)),
    }
    db.add_game_account(ids['a'], 'steam-a')
    db.add_game_account(ids['b'], 'steam-b')

    practice = db.add_event('Tuesday practice', scheduled_at=utc(2026, 3, 10, 19), is_practice=True)
    ids['practice_import'] = db.add_match_import(
        'game-1', utc(2026, 3, 10, 20), title='Practice', event_id=practice
    )
    db.add_player_stats(ids['practice_import'], dict(QUALIFYING_STATS, provider_id='steam-a', kills=60))
    db.add_player_stats(ids['practice_import'], dict(NON_QUALIFYING_STATS, provider_id='steam-b'))

    ids['competitive_import'] = db.add_match_import(
        'game-2', utc(2026, 3, 12, 23), title='Liga Condor R1'
    )
    db.add_player_stats(ids['competitive_import'], dict(QUALIFYING_STATS, provider_id='steam-a'))
    db.add_player_stats(ids['competitive_import'], dict(NON_QUALIFYING_STATS, provider_id='steam-b'))
    return ids


class RecordingSource:
    """In-memory data source that records every fetch."""

    def __init__(self, members: List[Member] = None, rows: List[PlayerMatchStatRow] = None, records=None):
        self.members = list(members or [])
        self.rows = list(rows or [])
        self.records = list(records or [])
        self.calls: List[str] = []

    def fetch_members(self, active_only: bool = False) -> List[Member]:
        self.calls.append('fetch_members')
        return [m for m in self.members if m.is_active or not active_only]

    def fetch_match_stat_rows(self, identity=None, window=None, exclude_practice=True, qualified=None):
        self.calls.append('fetch_match_stat_rows')
        rows = self.rows
        if identity is not None:
            rows = [r for r in rows if identity.matches(r)]
        if window is not None:
            rows = [r for r in rows if window.contains(r.imported_at, r.import_id)]
        if exclude_practice:
            rows = [r for r in rows if not r.is_practice]
        return sorted(rows, key=lambda r: r.imported_at, reverse=True)

    def fetch_match_records(self, window=None):
        self.calls.append('fetch_match_records')
        records = self.records
        if window is not None:
            records = [r for r in records if window.contains(r.imported_at, r.import_id)]
        return sorted(records, key=lambda r: r.imported_at, reverse=True)
