# condor_stats/database.py

import logging
import os
import sqlite3
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from condor_stats.models import GameAccount, IdentitySet, MatchRecord, Member, PlayerMatchStatRow, Window
from condor_stats.parser import CrconScoreboardParser
from condor_stats.thresholds import (
    DEFAULT_DB_PATH,
    QUALIFIED_MIN_INFANTRY_KILLS,
    QUALIFIED_MIN_KILL_DEATH_RATIO,
)
from condor_stats.validation import parse_timestamp

LOGGER = logging.getLogger(__name__)

STAT_COLUMNS = (
    'player_name', 'kills', 'deaths', 'infantry_kills', 'kills_streak', 'teamkills',
    'deaths_by_tk', 'kills_per_minute', 'deaths_per_minute', 'kill_death_ratio',
    'score', 'combat', 'offense', 'defense', 'support', 'team_side',
)
NORMALIZED_KEYS = frozenset(STAT_COLUMNS) | {'provider_id'}


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC ISO string, so SQL comparisons order correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def _new_id() -> str:
    return uuid.uuid4().hex


class Database:
    """SQLite store for roster members, linked accounts and imported match stats."""

    def __init__(self, db_path: Optional[str] = None):
        env_db = os.getenv('CONDOR_DB_PATH', '').strip()
        self.db_path = self._resolve_db_path(db_path or env_db or DEFAULT_DB_PATH)
        self.conn = None
        self.parser = CrconScoreboardParser()
        self.init_database()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        """Return an absolute database path anchored to project root when relative."""
        if db_path == ':memory:':
            return db_path
        path = Path(db_path)
        if path.is_absolute():
            return str(path)

        project_root = Path(__file__).resolve().parents[1]
        return str(project_root / path)

    def init_database(self):
        """Create tables if they don't exist."""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise RuntimeError(f"Failed to create database directory '{db_dir}': {e}")

            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    member_id       TEXT PRIMARY KEY,
                    display_name    TEXT NOT NULL,
                    discord_id      TEXT UNIQUE NOT NULL,
                    is_active       INTEGER NOT NULL DEFAULT 1,
                    joined_at       TEXT,
                    created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS game_accounts (
                    account_id      TEXT PRIMARY KEY,
                    member_id       TEXT NOT NULL,
                    provider        TEXT NOT NULL DEFAULT 'STEAM',
                    provider_id     TEXT NOT NULL,
                    created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (member_id) REFERENCES members(member_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id        TEXT PRIMARY KEY,
                    title           TEXT NOT NULL,
                    scheduled_at    TEXT,
                    is_practice     INTEGER NOT NULL DEFAULT 0
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS match_imports (
                    import_id       TEXT PRIMARY KEY,
                    game_id         TEXT NOT NULL,
                    source_url      TEXT,
                    title           TEXT,
                    imported_at     TEXT NOT NULL,
                    event_id        TEXT,
                    FOREIGN KEY (event_id) REFERENCES events(event_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_match_stats (
                    stat_id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    import_id           TEXT NOT NULL,
                    game_account_id     TEXT,
                    provider_id         TEXT,
                    player_name         TEXT NOT NULL DEFAULT '',
                    kills               INTEGER NOT NULL DEFAULT 0,
                    deaths              INTEGER NOT NULL DEFAULT 0,
                    infantry_kills      INTEGER NOT NULL DEFAULT 0,
                    kills_streak        INTEGER NOT NULL DEFAULT 0,
                    teamkills           INTEGER NOT NULL DEFAULT 0,
                    deaths_by_tk        INTEGER NOT NULL DEFAULT 0,
                    kills_per_minute    REAL NOT NULL DEFAULT 0,
                    deaths_per_minute   REAL NOT NULL DEFAULT 0,
                    kill_death_ratio    REAL NOT NULL DEFAULT 0,
                    score               INTEGER NOT NULL DEFAULT 0,
                    combat              INTEGER NOT NULL DEFAULT 0,
                    offense             INTEGER NOT NULL DEFAULT 0,
                    defense             INTEGER NOT NULL DEFAULT 0,
                    support             INTEGER NOT NULL DEFAULT 0,
                    team_side           TEXT,
                    FOREIGN KEY (import_id) REFERENCES match_imports(import_id),
                    FOREIGN KEY (game_account_id) REFERENCES game_accounts(account_id)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_match_imports_imported_at
                ON match_imports (imported_at DESC)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_player_match_stats_account
                ON player_match_stats (game_account_id)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_player_match_stats_provider
                ON player_match_stats (provider_id)
            """)

            self._commit_with_retry(context="init schema commit")
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        raise RuntimeError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    LOGGER.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    # --- Roster writes ---

    def upsert_member(
        self,
        discord_id: str,
        display_name: str,
        joined_at: Optional[datetime] = None,
        is_active: bool = True,
        member_id: Optional[str] = None,
    ) -> str:
        """Insert a member or update the one with this discord id. Returns member_id."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT member_id FROM members WHERE discord_id = ?", (discord_id,))
            row = cursor.fetchone()
            if row:
                cursor.execute(
                    "UPDATE members SET display_name = ?, joined_at = ?, is_active = ? WHERE member_id = ?",
                    (display_name, _ts(joined_at), int(is_active), row['member_id']),
                )
                self._commit_with_retry(context="update member commit")
                return row['member_id']

            member_id = member_id or _new_id()
            cursor.execute(
                "INSERT INTO members (member_id, display_name, discord_id, is_active, joined_at) VALUES (?, ?, ?, ?, ?)",
                (member_id, display_name, discord_id, int(is_active), _ts(joined_at)),
            )
            self._commit_with_retry(context="insert member commit")
            return member_id
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to save member '{display_name}': {e}")

    def add_game_account(
        self,
        member_id: str,
        provider_id: str,
        provider: str = 'STEAM',
        account_id: Optional[str] = None,
    ) -> str:
        """Link a platform account to a member. Returns account_id.

        Raises:
            ValueError: If the provider id already belongs to another member
        """
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT account_id, member_id FROM game_accounts WHERE provider_id = ?",
            (provider_id,),
        )
        for row in cursor.fetchall():
            if row['member_id'] != member_id:
                raise ValueError(f"Provider id '{provider_id}' is already linked to another member")
            return row['account_id']

        account_id = account_id or _new_id()
        try:
            cursor.execute(
                "INSERT INTO game_accounts (account_id, member_id, provider, provider_id) VALUES (?, ?, ?, ?)",
                (account_id, member_id, provider, provider_id),
            )
            self._commit_with_retry(context="insert account commit")
            return account_id
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to link account '{provider_id}': {e}")

    def add_event(
        self,
        title: str,
        scheduled_at: Optional[datetime] = None,
        is_practice: bool = False,
        event_id: Optional[str] = None,
    ) -> str:
        event_id = event_id or _new_id()
        try:
            self.conn.execute(
                "INSERT INTO events (event_id, title, scheduled_at, is_practice) VALUES (?, ?, ?, ?)",
                (event_id, title, _ts(scheduled_at), int(is_practice)),
            )
            self._commit_with_retry(context="insert event commit")
            return event_id
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to add event '{title}': {e}")

    # --- Match imports ---

    def add_match_import(
        self,
        game_id: str,
        imported_at: datetime,
        title: str = '',
        source_url: str = '',
        event_id: Optional[str] = None,
        import_id: Optional[str] = None,
    ) -> str:
        import_id = import_id or _new_id()
        try:
            self.conn.execute(
                """
                INSERT INTO match_imports (import_id, game_id, source_url, title, imported_at, event_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (import_id, game_id, source_url, title, _ts(imported_at), event_id),
            )
            self._commit_with_retry(context="insert import commit")
            return import_id
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to add match import '{game_id}': {e}")

    def _account_for_provider(self, provider_id: Optional[str]) -> Optional[str]:
        if not provider_id:
            return None
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT account_id FROM game_accounts WHERE provider_id = ? ORDER BY rowid LIMIT 1",
            (provider_id,),
        )
        row = cursor.fetchone()
        return row['account_id'] if row else None

    def add_player_stats(
        self,
        import_id: str,
        stats: Dict[str, Any],
        game_account_id: Optional[str] = None,
        link_account: bool = True,
    ) -> int:
        """
        Store one player's scoreboard line.

        Args:
            import_id: Owning match import
            stats: Normalized field dict, or a raw CRCON player entry
            game_account_id: Explicit account link
            link_account: Resolve the account from provider_id when no explicit link

        Returns:
            stat_id of the inserted row

        Raises:
            ValueError: If a raw entry has no player name or no activity
        """
        if not set(stats) <= NORMALIZED_KEYS:
            normalized = self.parser.normalize_row(stats)
            if normalized is None:
                raise ValueError(f"Unusable player stats for import '{import_id}'")
            stats = normalized

        provider_id = stats.get('provider_id')
        if game_account_id is None and link_account:
            game_account_id = self._account_for_provider(provider_id)

        values = [stats.get(col) for col in STAT_COLUMNS]
        values[0] = values[0] or ''
        for i, col in enumerate(STAT_COLUMNS):
            if col not in ('player_name', 'team_side') and values[i] is None:
                values[i] = 0

        try:
            cursor = self.conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO player_match_stats (import_id, game_account_id, provider_id, {', '.join(STAT_COLUMNS)})
                VALUES (?, ?, ?, {', '.join('?' for _ in STAT_COLUMNS)})
                """,
                (import_id, game_account_id, provider_id, *values),
            )
            self._commit_with_retry(context="insert stats commit")
            return cursor.lastrowid
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to add stats for import '{import_id}': {e}")

    def import_scoreboard(
        self,
        game_id: str,
        payload: Dict[str, Any],
        imported_at: datetime,
        title: str = '',
        source_url: str = '',
        event_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store a whole scoreboard payload as one match import."""
        rows = self.parser.parse(payload)
        import_id = self.add_match_import(
            game_id, imported_at, title=title, source_url=source_url, event_id=event_id
        )
        linked = 0
        for row in rows:
            self.add_player_stats(import_id, row)
            if self._account_for_provider(row.get('provider_id')):
                linked += 1
        LOGGER.info("Imported game %s: %d rows (%d linked)", game_id, len(rows), linked)
        return {'import_id': import_id, 'rows': len(rows), 'linked': linked}

    # --- Reads ---

    def _accounts_by_member(self) -> Dict[str, List[GameAccount]]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT account_id, member_id, provider, provider_id FROM game_accounts ORDER BY rowid"
        )
        accounts: Dict[str, List[GameAccount]] = {}
        for row in cursor.fetchall():
            accounts.setdefault(row['member_id'], []).append(GameAccount(
                account_id=row['account_id'],
                member_id=row['member_id'],
                provider_id=row['provider_id'],
                provider=row['provider'],
            ))
        return accounts

    def _member_from_row(self, row: sqlite3.Row, accounts: Dict[str, List[GameAccount]]) -> Member:
        return Member(
            member_id=row['member_id'],
            display_name=row['display_name'],
            discord_id=row['discord_id'],
            is_active=bool(row['is_active']),
            joined_at=parse_timestamp(row['joined_at'], 'joined_at'),
            accounts=tuple(accounts.get(row['member_id'], [])),
        )

    def fetch_members(self, active_only: bool = False) -> List[Member]:
        """Members with their linked accounts, in roster insertion order."""
        try:
            cursor = self.conn.cursor()
            sql = "SELECT member_id, display_name, discord_id, is_active, joined_at FROM members"
            if active_only:
                sql += " WHERE is_active = 1"
            cursor.execute(sql + " ORDER BY rowid")
            accounts = self._accounts_by_member()
            return [self._member_from_row(row, accounts) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to fetch members: {e}")

    def get_member_by_discord_id(self, discord_id: str) -> Optional[Member]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT member_id, display_name, discord_id, is_active, joined_at FROM members WHERE discord_id = ?",
            (discord_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._member_from_row(row, self._accounts_by_member())

    @staticmethod
    def _window_clause(window: Optional[Window], params: List[Any]) -> List[str]:
        clauses = []
        if window is None or window.is_all_time:
            return clauses
        if window.match_ids is not None:
            if not window.match_ids:
                clauses.append("0")
            else:
                clauses.append(f"m.import_id IN ({', '.join('?' for _ in window.match_ids)})")
                params.extend(window.match_ids)
            return clauses
        if window.start is not None:
            clauses.append("m.imported_at >= ?")
            params.append(_ts(window.start))
        if window.end is not None:
            clauses.append("m.imported_at <= ?")
            params.append(_ts(window.end))
        return clauses

    def fetch_match_stat_rows(
        self,
        identity: Optional[IdentitySet] = None,
        window: Optional[Window] = None,
        exclude_practice: bool = True,
        qualified: Optional[bool] = None,
    ) -> List[PlayerMatchStatRow]:
        """
        Stat rows joined with their import, newest import first.

        Args:
            identity: Restrict to rows matching these accounts/providers (None = all rows)
            window: Time range or explicit import ids
            exclude_practice: Drop rows of imports linked to practice events
            qualified: True keeps only Condor-qualified rows, False only the rest
        """
        params: List[Any] = []
        clauses: List[str] = []

        if identity is not None:
            if identity.is_empty:
                return []
            identity_parts = []
            if identity.account_ids:
                accounts = sorted(identity.account_ids)
                identity_parts.append(f"s.game_account_id IN ({', '.join('?' for _ in accounts)})")
                params.extend(accounts)
            if identity.provider_ids:
                providers = sorted(identity.provider_ids)
                identity_parts.append(
                    f"(s.game_account_id IS NULL AND s.provider_id IN ({', '.join('?' for _ in providers)}))"
                )
                params.extend(providers)
            clauses.append("(" + " OR ".join(identity_parts) + ")")

        clauses.extend(self._window_clause(window, params))

        if exclude_practice:
            clauses.append("(m.event_id IS NULL OR COALESCE(e.is_practice, 0) = 0)")

        qualified_sql = "(s.infantry_kills >= ? AND (s.deaths = 0 OR s.kill_death_ratio >= ?))"
        if qualified is True:
            clauses.append(qualified_sql)
            params.extend([QUALIFIED_MIN_INFANTRY_KILLS, QUALIFIED_MIN_KILL_DEATH_RATIO])
        elif qualified is False:
            clauses.append(f"NOT {qualified_sql}")
            params.extend([QUALIFIED_MIN_INFANTRY_KILLS, QUALIFIED_MIN_KILL_DEATH_RATIO])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"""
            SELECT s.*, m.imported_at AS imported_at, m.event_id AS event_id,
                   COALESCE(e.is_practice, 0) AS event_is_practice
            FROM player_match_stats s
            JOIN match_imports m ON m.import_id = s.import_id
            LEFT JOIN events e ON e.event_id = m.event_id
            {where}
            ORDER BY m.imported_at DESC, s.stat_id ASC
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(sql, params)
            return [self._stat_row(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to fetch match stat rows: {e}")

    @staticmethod
    def _stat_row(row: sqlite3.Row) -> PlayerMatchStatRow:
        return PlayerMatchStatRow(
            import_id=row['import_id'],
            imported_at=parse_timestamp(row['imported_at'], 'imported_at'),
            account_id=row['game_account_id'],
            provider_id=row['provider_id'],
            player_name=row['player_name'],
            kills=row['kills'],
            deaths=row['deaths'],
            infantry_kills=row['infantry_kills'],
            kills_streak=row['kills_streak'],
            teamkills=row['teamkills'],
            deaths_by_tk=row['deaths_by_tk'],
            kills_per_minute=row['kills_per_minute'],
            deaths_per_minute=row['deaths_per_minute'],
            kill_death_ratio=row['kill_death_ratio'],
            score=row['score'],
            combat=row['combat'],
            offense=row['offense'],
            defense=row['defense'],
            support=row['support'],
            is_practice=row['event_id'] is not None and bool(row['event_is_practice']),
        )

    def fetch_match_records(self, window: Optional[Window] = None) -> List[MatchRecord]:
        """All imports (practice included) in the window, newest first."""
        params: List[Any] = []
        clauses = self._window_clause(window, params)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                f"""
                SELECT m.import_id, m.game_id, m.source_url, m.title, m.imported_at, m.event_id,
                       e.scheduled_at AS event_date, COALESCE(e.is_practice, 0) AS event_is_practice
                FROM match_imports m
                LEFT JOIN events e ON e.event_id = m.event_id
                {where}
                ORDER BY m.imported_at DESC, m.import_id
                """,
                params,
            )
            return [
                MatchRecord(
                    import_id=row['import_id'],
                    game_id=row['game_id'],
                    imported_at=parse_timestamp(row['imported_at'], 'imported_at'),
                    title=row['title'] or '',
                    source_url=row['source_url'] or '',
                    event_id=row['event_id'],
                    event_date=parse_timestamp(row['event_date'], 'event_date'),
                    event_is_practice=bool(row['event_is_practice']),
                )
                for row in cursor.fetchall()
            ]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to fetch match records: {e}")

    def count_rows(self, table_name: str) -> int:
        if table_name not in ('members', 'game_accounts', 'events', 'match_imports', 'player_match_stats'):
            raise ValueError(f"Unknown table '{table_name}'")
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT COUNT(*) FROM {table_name}")
        return int(cursor.fetchone()[0])

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
