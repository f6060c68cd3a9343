"""
Session persistence for DemakAI users.

One row per WhatsApp user holds the active mode, the bounded conversation
history and a few counters. Reads apply the idle auto-reset: a lookup mode
left untouched for longer than the idle timeout falls back to natural mode.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from . import config, lexicon
from .models.records import Mode, SessionState

logger = logging.getLogger(__name__)

_UPSERT_FIELDS = ("phone_number", "last_message", "is_blocked")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_mode(value: Optional[str]) -> Mode:
    try:
        return Mode(value)
    except ValueError:
        logger.warning(f"[SESSION] Unknown stored mode {value!r}, treating as natural")
        return Mode.NATURAL


class SessionStore:
    """sqlite-backed session store.

    Args:
        db_path: sqlite file path. Defaults to config.DB_PATH.
        idle_timeout_minutes: Lookup modes older than this are reset on read.
        history_max: Maximum conversation turns kept per user.
        clock: Callable returning an aware UTC datetime (overridable in tests).
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        idle_timeout_minutes: int = config.MODE_IDLE_MINUTES,
        history_max: int = lexicon.HISTORY_MAX,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db_path = db_path or config.DB_PATH
        self.idle_timeout = timedelta(minutes=idle_timeout_minutes)
        self.history_max = history_max
        self._now = clock or _utcnow

    @contextmanager
    def get_conn(self, isolation_level: Optional[str] = ""):
        conn = sqlite3.connect(self.db_path, isolation_level=isolation_level)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Creates the sessions table and its indexes if missing."""
        with self.get_conn() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                user_id TEXT PRIMARY KEY,
                phone_number TEXT,
                current_mode TEXT NOT NULL DEFAULT 'natural',
                mode_activated_at TEXT,
                last_query TEXT,
                last_message TEXT,
                message_count INTEGER NOT NULL DEFAULT 0,
                last_interaction TEXT,
                first_interaction TEXT,
                is_blocked INTEGER NOT NULL DEFAULT 0,
                conversation_history TEXT NOT NULL DEFAULT '[]'
            )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_last_interaction ON sessions(last_interaction DESC)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_mode ON sessions(current_mode)")
            conn.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch(self, user_id: str) -> Optional[SessionState]:
        with self.get_conn() as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM sessions WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return SessionState(
            user_id=row["user_id"],
            current_mode=_parse_mode(row["current_mode"]),
            mode_activated_at=_parse_ts(row["mode_activated_at"]),
            last_query=row["last_query"],
            message_count=row["message_count"] or 0,
            last_interaction=_parse_ts(row["last_interaction"]),
            first_interaction=_parse_ts(row["first_interaction"]),
            conversation_history=json.loads(row["conversation_history"] or "[]"),
            is_blocked=bool(row["is_blocked"]),
            phone_number=row["phone_number"],
            last_message=row["last_message"],
        )

    def get_session(self, user_id: str) -> Optional[SessionState]:
        """Returns the session for user_id, applying the idle auto-reset.

        When the reset fires, the returned state has ``auto_reset=True`` so the
        caller can deliver the one-time notice.
        """
        session = self._fetch(user_id)
        if session is None:
            return None

        if session.current_mode is not Mode.NATURAL and session.mode_activated_at is not None:
            idle = self._now() - session.mode_activated_at
            if idle > self.idle_timeout:
                logger.info(
                    f"[SESSION] Auto-reset mode for {user_id} "
                    f"({session.current_mode.value} idle {int(idle.total_seconds() // 60)} min)"
                )
                self.reset_mode(user_id)
                session.current_mode = Mode.NATURAL
                session.mode_activated_at = None
                session.last_query = None
                session.auto_reset = True

        return session

    def get_history(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT conversation_history FROM sessions WHERE user_id = ?", (user_id,)
            ).fetchone()
        history = json.loads(row[0]) if row and row[0] else []
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return history

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_session(self, user_id: str, **fields):
        """Creates the session on first contact or updates the given fields.

        Accepted fields: phone_number, last_message, is_blocked.
        ``last_interaction`` is always refreshed.
        """
        unknown = set(fields) - set(_UPSERT_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported session fields: {sorted(unknown)}")

        now = self._now().isoformat()
        columns = list(fields)
        values = [int(v) if k == "is_blocked" else v for k, v in fields.items()]
        insert_cols = ", ".join(["user_id", "first_interaction", "last_interaction"] + columns)
        placeholders = ", ".join(["?"] * (3 + len(columns)))
        updates = ", ".join(["last_interaction = excluded.last_interaction"] + [f"{c} = excluded.{c}" for c in columns])

        with self.get_conn() as conn:
            conn.execute(
                f"INSERT INTO sessions ({insert_cols}) VALUES ({placeholders}) "
                f"ON CONFLICT(user_id) DO UPDATE SET {updates}",
                [user_id, now, now] + values,
            )
            conn.commit()

    def set_mode(self, user_id: str, mode: Mode, query: Optional[str] = None):
        """Activates ``mode`` and records ``query`` as the last lookup query.

        ``mode_activated_at`` is refreshed for lookup modes and cleared for
        natural mode, so it is non-null exactly when the mode is not natural.
        """
        now = self._now().isoformat()
        activated_at = None if mode is Mode.NATURAL else now
        with self.get_conn() as conn:
            conn.execute("""
                INSERT INTO sessions (user_id, current_mode, mode_activated_at, last_query,
                                      first_interaction, last_interaction)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    current_mode = excluded.current_mode,
                    mode_activated_at = excluded.mode_activated_at,
                    last_query = excluded.last_query,
                    last_interaction = excluded.last_interaction
            """, (user_id, mode.value, activated_at, query, now, now))
            conn.commit()

    def reset_mode(self, user_id: str):
        self.set_mode(user_id, Mode.NATURAL, None)

    def increment_message_count(self, user_id: str):
        with self.get_conn() as conn:
            conn.execute(
                "UPDATE sessions SET message_count = message_count + 1, last_interaction = ? WHERE user_id = ?",
                (self._now().isoformat(), user_id),
            )
            conn.commit()

    def append_history(self, user_id: str, entries: List[Dict[str, str]]):
        """Appends conversation turns, keeping only the newest ``history_max``.

        Read, trim and write run inside one IMMEDIATE transaction so two
        concurrent appends for the same user cannot drop each other's turns.
        """
        now = self._now().isoformat()
        with self.get_conn(isolation_level=None) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT conversation_history FROM sessions WHERE user_id = ?", (user_id,)
                ).fetchone()
                history = json.loads(row[0]) if row and row[0] else []
                history.extend({"role": str(e["role"]), "content": str(e["content"])} for e in entries)
                history = history[-self.history_max:]
                conn.execute("""
                    INSERT INTO sessions (user_id, conversation_history, first_interaction, last_interaction)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        conversation_history = excluded.conversation_history,
                        last_interaction = excluded.last_interaction
                """, (user_id, json.dumps(history, ensure_ascii=False), now, now))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def clear_history(self, user_id: str):
        with self.get_conn() as conn:
            conn.execute("UPDATE sessions SET conversation_history = '[]' WHERE user_id = ?", (user_id,))
            conn.commit()

    # ------------------------------------------------------------------
    # Maintenance and statistics
    # ------------------------------------------------------------------

    def count_active_users(self, hours: int = 24) -> int:
        since = (self._now() - timedelta(hours=hours)).isoformat()
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM sessions WHERE last_interaction >= ? AND is_blocked = 0", (since,)
            ).fetchone()
        return row[0]

    def cleanup_old_sessions(self, days_inactive: int = config.SESSION_RETENTION_DAYS) -> int:
        """Deletes non-blocked sessions idle for more than ``days_inactive`` days."""
        cutoff = (self._now() - timedelta(days=days_inactive)).isoformat()
        with self.get_conn() as conn:
            cur = conn.execute(
                "DELETE FROM sessions WHERE last_interaction < ? AND is_blocked = 0", (cutoff,)
            )
            conn.commit()
        logger.info(f"[SESSION] Deleted {cur.rowcount} old sessions (> {days_inactive}d)")
        return cur.rowcount

    def cleanup_old_histories(self, hours_inactive: int = config.HISTORY_RETENTION_HOURS) -> int:
        """Empties the history of sessions idle for more than ``hours_inactive`` hours."""
        cutoff = (self._now() - timedelta(hours=hours_inactive)).isoformat()
        with self.get_conn() as conn:
            cur = conn.execute(
                "UPDATE sessions SET conversation_history = '[]' "
                "WHERE last_interaction < ? AND conversation_history != '[]'",
                (cutoff,),
            )
            conn.commit()
        logger.info(f"[SESSION] Cleared history of {cur.rowcount} sessions (> {hours_inactive}h idle)")
        return cur.rowcount

    def get_stats(self) -> Dict[str, object]:
        with self.get_conn() as conn:
            sessions, total_messages = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(message_count), 0) FROM sessions"
            ).fetchone()
            modes = conn.execute(
                "SELECT current_mode, COUNT(*) FROM sessions WHERE is_blocked = 0 GROUP BY current_mode"
            ).fetchall()
        return {
            "sessions": sessions,
            "total_messages": total_messages,
            "active_users_24h": self.count_active_users(24),
            "mode_distribution": {mode: count for mode, count in modes},
        }
