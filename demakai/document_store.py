"""
Publication document and chunk storage.

Documents carry title, year, source type and tags; each owns an ordered list
of text chunks. Chunk embeddings are stored as JSON arrays and may be NULL
until the indexer fills them in.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from . import config
from .models.records import Document, DocumentChunk

logger = logging.getLogger(__name__)

# Columns callers may filter list_documents() on.
FILTERABLE_FIELDS = ("year", "source_type", "title")


class DocumentStore:
    """sqlite store for publications and their chunks."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.DB_PATH

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        with self.get_conn() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                year TEXT,
                source_type TEXT,
                tags TEXT NOT NULL DEFAULT '[]'
            )
            """)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                text TEXT NOT NULL,
                embedding TEXT
            )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, position)")
            conn.commit()

    def add_document(
        self,
        title: str,
        year: str = "",
        source_type: str = "",
        tags: Optional[Sequence[str]] = None,
        chunks: Iterable[Tuple[str, Optional[List[float]]]] = (),
    ) -> int:
        """Stores a document with its ordered (text, embedding) chunks."""
        with self.get_conn() as conn:
            cur = conn.execute(
                "INSERT INTO documents (title, year, source_type, tags) VALUES (?, ?, ?, ?)",
                (title, year, source_type, json.dumps(list(tags or []), ensure_ascii=False)),
            )
            document_id = cur.lastrowid
            for position, (text, embedding) in enumerate(chunks):
                conn.execute(
                    "INSERT INTO chunks (document_id, position, text, embedding) VALUES (?, ?, ?, ?)",
                    (document_id, position, text, json.dumps(embedding) if embedding is not None else None),
                )
            conn.commit()
        logger.info(f"[DOCUMENTS] Stored '{title}' ({year}) as document {document_id}")
        return document_id

    def list_documents(
        self, filters: Optional[Dict[str, Any]] = None, include_chunks: bool = True
    ) -> List[Document]:
        """Lists documents matching equality ``filters``, optionally with chunks.

        Raises ValueError for an unsupported filter field. Store errors and
        corrupt JSON columns are logged and yield [].
        """
        filters = filters or {}
        unknown = set(filters) - set(FILTERABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported document filters: {sorted(unknown)}")

        where = " AND ".join(f"{field} = ?" for field in filters)
        sql = "SELECT id, title, year, source_type, tags FROM documents"
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY id"

        try:
            with self.get_conn() as conn:
                rows = conn.execute(sql, list(filters.values())).fetchall()
                documents = [
                    Document(
                        document_id=r[0], title=r[1], year=r[2] or "", source_type=r[3] or "",
                        tags=json.loads(r[4] or "[]"),
                    )
                    for r in rows
                ]
                if include_chunks:
                    for doc in documents:
                        chunk_rows = conn.execute(
                            "SELECT id, text, embedding FROM chunks WHERE document_id = ? ORDER BY position",
                            (doc.document_id,),
                        ).fetchall()
                        doc.chunks = [
                            DocumentChunk(
                                chunk_id=c[0],
                                parent_title=doc.title,
                                year=doc.year,
                                source_type=doc.source_type,
                                text=c[1] or "",
                                embedding=json.loads(c[2]) if c[2] else None,
                            )
                            for c in chunk_rows
                        ]
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"[DOCUMENTS] Failed to list documents: {e}")
            return []
        return documents

    def list_document_metadata(self) -> List[Dict[str, Any]]:
        """Title, year, source type and tags of every document, newest year first.

        Store errors are logged and yield [].
        """
        try:
            with self.get_conn() as conn:
                rows = conn.execute(
                    "SELECT title, year, source_type, tags FROM documents ORDER BY year DESC, id"
                ).fetchall()
            return [
                {"title": r[0], "year": r[1] or "", "source_type": r[2] or "", "tags": json.loads(r[3] or "[]")}
                for r in rows
            ]
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"[DOCUMENTS] Failed to list document metadata: {e}")
            return []

    def chunks_missing_embeddings(self) -> List[Tuple[int, str]]:
        with self.get_conn() as conn:
            rows = conn.execute(
                "SELECT id, text FROM chunks WHERE embedding IS NULL ORDER BY document_id, position"
            ).fetchall()
        return [(r[0], r[1]) for r in rows]

    def set_chunk_embedding(self, chunk_id: int, embedding: List[float]):
        with self.get_conn() as conn:
            conn.execute("UPDATE chunks SET embedding = ? WHERE id = ?", (json.dumps(embedding), chunk_id))
            conn.commit()

    def count(self) -> int:
        with self.get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
