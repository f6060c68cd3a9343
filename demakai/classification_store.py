"""
KBLI / KBJI classification tables.

Each kind lives in a plain table keyed by code plus an FTS5 mirror used for
ranked full-text search. A regex OR-search over title and description is
the fallback when full-text search finds nothing.
"""
import logging
import re
import sqlite3
from contextlib import contextmanager
from typing import Iterable, List, Optional

from . import config, lexicon
from .models.records import ClassificationEntry, EntryKind

logger = logging.getLogger(__name__)

TABLES = {
    EntryKind.BUSINESS: "kbli",
    EntryKind.OCCUPATION: "kbji",
}

_FTS_TERM = re.compile(r"\w[\w-]*", re.UNICODE)


def _regexp(pattern: str, value: Optional[str]) -> bool:
    if value is None:
        return False
    return re.search(pattern, value, re.IGNORECASE) is not None


def build_match_query(query: str) -> str:
    """Turns free text into an FTS5 OR-expression of quoted terms.

    Quoting keeps user punctuation from being parsed as FTS syntax.
    """
    terms = []
    for term in _FTS_TERM.findall(query.lower()):
        quoted = '"' + term.replace('"', '""') + '"'
        if quoted not in terms:
            terms.append(quoted)
    return " OR ".join(terms)


class ClassificationStore:
    """sqlite store for the two classification dictionaries."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.DB_PATH

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.create_function("REGEXP", 2, _regexp, deterministic=True)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        with self.get_conn() as conn:
            for table in TABLES.values():
                conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    code TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT
                )
                """)
                conn.execute(f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS {table}_fts
                USING fts5(code UNINDEXED, title, description)
                """)
            conn.commit()

    def upsert_entries(self, entries: Iterable[ClassificationEntry]) -> int:
        """Inserts or replaces entries, keeping the FTS mirror in sync."""
        count = 0
        with self.get_conn() as conn:
            for entry in entries:
                table = TABLES[entry.kind]
                conn.execute(
                    f"INSERT OR REPLACE INTO {table} (code, title, description) VALUES (?, ?, ?)",
                    (entry.code, entry.title, entry.description),
                )
                conn.execute(f"DELETE FROM {table}_fts WHERE code = ?", (entry.code,))
                conn.execute(
                    f"INSERT INTO {table}_fts (code, title, description) VALUES (?, ?, ?)",
                    (entry.code, entry.title, entry.description),
                )
                count += 1
            conn.commit()
        logger.info(f"[CLASSIFICATION] Upserted {count} entries")
        return count

    def search_lexical(
        self, kind: EntryKind, query: str, limit: int = lexicon.TEXT_SEARCH_LIMIT
    ) -> List[ClassificationEntry]:
        """Full-text search ranked by bm25 relevance. Errors yield []."""
        match = build_match_query(query)
        if not match:
            return []
        table = TABLES[kind]
        try:
            with self.get_conn() as conn:
                rows = conn.execute(
                    f"SELECT code, title, description FROM {table}_fts "
                    f"WHERE {table}_fts MATCH ? ORDER BY bm25({table}_fts) LIMIT ?",
                    (match, limit),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"[CLASSIFICATION] Text search error on {table}: {e}")
            return []
        return [ClassificationEntry(code=r[0], title=r[1], description=r[2] or "", kind=kind) for r in rows]

    def search_regex(
        self, kind: EntryKind, keywords: List[str], limit: int = lexicon.TEXT_SEARCH_LIMIT
    ) -> List[ClassificationEntry]:
        """Unranked case-insensitive OR match of keywords over title/description."""
        if not keywords:
            return []
        table = TABLES[kind]
        clauses = []
        params: List[object] = []
        for kw in keywords:
            pattern = re.escape(kw)
            clauses.append("title REGEXP ? OR description REGEXP ?")
            params.extend([pattern, pattern])
        params.append(limit)
        try:
            with self.get_conn() as conn:
                rows = conn.execute(
                    f"SELECT code, title, description FROM {table} WHERE {' OR '.join(clauses)} LIMIT ?",
                    params,
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"[CLASSIFICATION] Regex search error on {table}: {e}")
            return []
        return [ClassificationEntry(code=r[0], title=r[1], description=r[2] or "", kind=kind) for r in rows]

    def count(self, kind: EntryKind) -> int:
        with self.get_conn() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {TABLES[kind]}").fetchone()[0]
