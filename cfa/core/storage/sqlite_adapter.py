import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable

from cfa.utils.logger import get_logger

logger = get_logger("storage.sqlite")


# Columns that may be written through the generic update path, per table.
WRITABLE_COLUMNS: Dict[str, Iterable[str]] = {
    "games": ("name", "status", "joining_allowed"),
    "participants": ("team_name", "budget_remaining"),
    "cricketers": (
        "is_picked", "picked_by", "price_paid", "pick_order",
        "was_skipped", "auction_order",
    ),
    "auction_states": (
        "current_cricketer_id", "auction_status", "timer_end_time",
        "timer_paused_at", "current_high_bid", "current_high_bidder_id",
        "bidding_log", "last_win_message",
    ),
    "matches": ("scores_populated",),
    "sub_rounds": ("round_no", "turn_order", "position", "active"),
}


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Table-level insert/update/select helpers for game records.
    2. Nestable transactions: everything written inside the outermost
       `transaction()` block commits or rolls back together.
    3. Optimistic version checks for rows carrying a `version` column.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn_local.conn.execute("PRAGMA foreign_keys=ON;")
            self._conn_local.depth = 0
        return self._conn_local.conn

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS games (
                    game_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    created_by TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pre_auction',
                    joining_allowed INTEGER NOT NULL DEFAULT 1,
                    created_at INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS participants (
                    participant_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL REFERENCES games(game_id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    team_name TEXT NOT NULL,
                    budget_remaining REAL NOT NULL,
                    joined_at INTEGER NOT NULL,
                    UNIQUE (game_id, user_id)
                )
            """)

            # Player pool; picked_by is the owning participant
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cricketers (
                    cricketer_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL REFERENCES games(game_id) ON DELETE CASCADE,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    player_type TEXT NOT NULL,
                    is_foreign INTEGER NOT NULL DEFAULT 0,
                    ipl_team TEXT NOT NULL DEFAULT '',
                    is_picked INTEGER NOT NULL DEFAULT 0,
                    picked_by TEXT REFERENCES participants(participant_id),
                    price_paid REAL,
                    pick_order INTEGER,
                    was_skipped INTEGER NOT NULL DEFAULT 0,
                    auction_order INTEGER
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cricketer_game ON cricketers(game_id);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cricketer_owner ON cricketers(picked_by);")

            # One row per game; version drives optimistic locking
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auction_states (
                    state_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL UNIQUE REFERENCES games(game_id) ON DELETE CASCADE,
                    current_cricketer_id TEXT,
                    auction_status TEXT NOT NULL DEFAULT 'not_started',
                    timer_end_time INTEGER,
                    timer_paused_at INTEGER,
                    current_high_bid REAL NOT NULL DEFAULT 0,
                    current_high_bidder_id TEXT,
                    bidding_log TEXT NOT NULL DEFAULT '[]',
                    last_win_message TEXT,
                    version INTEGER NOT NULL DEFAULT 0
                )
            """)

            # Append-only bid audit trail
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    bid_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL,
                    cricketer_id TEXT NOT NULL,
                    participant_id TEXT NOT NULL,
                    amount REAL NOT NULL,
                    timestamp INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bid_lot ON bids(game_id, cricketer_id);")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS point_configs (
                    game_id TEXT PRIMARY KEY REFERENCES games(game_id) ON DELETE CASCADE,
                    data TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS matches (
                    match_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL REFERENCES games(game_id) ON DELETE CASCADE,
                    match_number INTEGER NOT NULL,
                    team1 TEXT NOT NULL,
                    team2 TEXT NOT NULL,
                    match_date TEXT NOT NULL,
                    scores_populated INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (game_id, match_number)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS player_match_scores (
                    match_id TEXT NOT NULL REFERENCES matches(match_id) ON DELETE CASCADE,
                    cricketer_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    calculated_points INTEGER NOT NULL,
                    PRIMARY KEY (match_id, cricketer_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS achievements (
                    participant_id TEXT NOT NULL,
                    achievement_type TEXT NOT NULL,
                    awarded_at INTEGER NOT NULL,
                    metadata TEXT,
                    PRIMARY KEY (participant_id, achievement_type)
                )
            """)

            # Substitution rounds (one row per game) and the turn log
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sub_rounds (
                    game_id TEXT PRIMARY KEY REFERENCES games(game_id) ON DELETE CASCADE,
                    round_no INTEGER NOT NULL,
                    turn_order TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    active INTEGER NOT NULL DEFAULT 1
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS substitutions (
                    sub_id TEXT PRIMARY KEY,
                    game_id TEXT NOT NULL,
                    participant_id TEXT NOT NULL,
                    round_no INTEGER NOT NULL,
                    outcome TEXT NOT NULL,
                    drop_cricketer_id TEXT,
                    add_cricketer_id TEXT,
                    created_at INTEGER NOT NULL
                )
            """)

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self):
        """
        Open (or join) a transaction on this thread's connection.

        Only the outermost block commits; an exception anywhere inside
        rolls back every write made since it opened.
        """
        conn = self._get_conn()
        local = self._conn_local
        if local.depth:
            local.depth += 1
            try:
                yield conn
            finally:
                local.depth -= 1
            return

        local.depth = 1
        try:
            with conn:
                yield conn
        finally:
            local.depth = 0

    # =========================================================================
    # Generic Row Operations
    # =========================================================================

    def insert(self, table: str, values: Dict[str, Any], replace: bool = False):
        """Insert a row."""
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        verb = "INSERT OR REPLACE" if replace else "INSERT"
        with self.transaction() as conn:
            conn.execute(
                f"{verb} INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )

    def insert_ignore(self, table: str, values: Dict[str, Any]) -> bool:
        """Insert a row unless its key exists. Returns True if inserted."""
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            return cursor.rowcount == 1

    def update(
        self,
        table: str,
        key_column: str,
        key: Any,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Update whitelisted columns of one row.

        With expected_version, the row must still carry that version; the
        version is bumped on success.

        Returns:
            Number of rows updated (0 or 1)
        """
        allowed = WRITABLE_COLUMNS.get(table, ())
        unknown = [col for col in patch if col not in allowed]
        if unknown:
            raise ValueError(f"Columns not writable on {table}: {unknown}")
        if not patch and expected_version is None:
            return 0

        assignments = [f"{col} = ?" for col in patch]
        params: List[Any] = list(patch.values())
        where = f"{key_column} = ?"
        if expected_version is not None:
            assignments.append("version = version + 1")
            where += " AND version = ?"
        params.append(key)
        if expected_version is not None:
            params.append(expected_version)

        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}",
                tuple(params),
            )
            return cursor.rowcount

    def fetch_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = self._get_conn()
        cursor = conn.execute(sql, params)
        return cursor.fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._get_conn()
        cursor = conn.execute(sql, params)
        return cursor.fetchall()

    def scalar(self, sql: str, params: tuple = ()) -> Any:
        row = self.fetch_one(sql, params)
        return row[0] if row else None
