"""
Summary store using SQLite.

Holds one row per (type, period_key) summary plus the embedding vectors
computed from each summary's index text. Vectors live in the same database
so that deleting a summary cascades to its vectors.
"""

import logging
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from .types import SummaryBody, SummaryRecord, parse_body, utc_now

logger = logging.getLogger(__name__)


@dataclass
class StoredVector:
    """An embedding row joined with its summary."""
    summary_id: int
    summary_type: str
    period_key: str
    body_json: str
    dim: int
    blob: bytes
    l2: float


def _iso(d) -> str:
    if isinstance(d, date):
        return d.isoformat()
    return str(d)


class SummaryStore:
    """
    SQLite-backed store for summaries and their embedding vectors.

    The (type, period_key) pair is unique; upsert keeps the row id and
    created_at of an existing row.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        # WAL for concurrent readers across processes
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS summaries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                period_key TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                json TEXT NOT NULL,
                index_text TEXT NOT NULL DEFAULT '',
                source_path TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                UNIQUE(type, period_key)
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS embeddings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                summary_id INTEGER NOT NULL,
                model TEXT NOT NULL,
                dim INTEGER NOT NULL,
                vec BLOB NOT NULL,
                l2 REAL NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(summary_id, model),
                FOREIGN KEY(summary_id) REFERENCES summaries(id) ON DELETE CASCADE
            )
        """)

        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_summaries_type_period
            ON summaries(type, period_key)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_summaries_range
            ON summaries(type, start_date, end_date)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_embeddings_model
            ON embeddings(model)
        """)
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Summaries
    # -------------------------------------------------------------------------

    def exists(self, summary_type: str, period_key: str) -> bool:
        """Check if a summary exists."""
        cursor = self._conn.execute("""
            SELECT 1 FROM summaries
            WHERE type = ? AND period_key = ?
        """, (summary_type, period_key))
        return cursor.fetchone() is not None

    def summary_id(self, summary_type: str, period_key: str) -> Optional[int]:
        """Row id of a summary, or None."""
        cursor = self._conn.execute("""
            SELECT id FROM summaries
            WHERE type = ? AND period_key = ?
        """, (summary_type, period_key))
        row = cursor.fetchone()
        return row["id"] if row else None

    def upsert(
        self,
        summary_type: str,
        period_key: str,
        start_date,
        end_date,
        body: SummaryBody,
        index_text: str,
        source_path: str = "",
    ) -> int:
        """
        Insert or update a summary.

        Preserves id and created_at on update.

        Returns:
            The summary row id
        """
        self._conn.execute("""
            INSERT INTO summaries
                (type, period_key, start_date, end_date, json, index_text, source_path, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(type, period_key) DO UPDATE SET
                start_date = excluded.start_date,
                end_date = excluded.end_date,
                json = excluded.json,
                index_text = excluded.index_text,
                source_path = excluded.source_path
        """, (
            summary_type, period_key, _iso(start_date), _iso(end_date),
            body.to_json(indent=None), index_text, str(source_path), utc_now(),
        ))
        self._conn.commit()

        sid = self.summary_id(summary_type, period_key)
        logger.debug("Upserted %s %s (id=%s)", summary_type, period_key, sid)
        return sid

    def delete(self, summary_type: str, period_key: str) -> bool:
        """
        Delete a summary and its vectors.

        Returns:
            True if a summary existed and was deleted
        """
        sid = self.summary_id(summary_type, period_key)
        if sid is None:
            return False
        with self._conn:
            self._conn.execute("DELETE FROM embeddings WHERE summary_id = ?", (sid,))
            self._conn.execute("DELETE FROM summaries WHERE id = ?", (sid,))
        return True

    def _row_to_record(self, row: sqlite3.Row) -> SummaryRecord:
        return SummaryRecord(
            id=row["id"],
            type=row["type"],
            period_key=row["period_key"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            body=parse_body(row["type"], row["json"]),
            index_text=row["index_text"],
            source_path=row["source_path"],
            created_at=row["created_at"],
        )

    def get(self, summary_type: str, period_key: str) -> Optional[SummaryRecord]:
        """Get a summary by (type, period_key)."""
        cursor = self._conn.execute("""
            SELECT * FROM summaries
            WHERE type = ? AND period_key = ?
        """, (summary_type, period_key))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def load_body(self, summary_type: str, period_key: str) -> Optional[SummaryBody]:
        """Parsed body of a summary, or None if absent."""
        cursor = self._conn.execute("""
            SELECT json FROM summaries
            WHERE type = ? AND period_key = ?
        """, (summary_type, period_key))
        row = cursor.fetchone()
        if row is None:
            return None
        return parse_body(summary_type, row["json"])

    def range_query(self, summary_type: str, start, end) -> list[SummaryBody]:
        """
        Bodies of one type whose date range overlaps [start, end].

        Ordered by start_date ascending.
        """
        cursor = self._conn.execute("""
            SELECT json FROM summaries
            WHERE type = ? AND start_date <= ? AND end_date >= ?
            ORDER BY start_date ASC, period_key ASC
        """, (summary_type, _iso(end), _iso(start)))
        return [parse_body(summary_type, row["json"]) for row in cursor]

    def list_summaries(self, summary_type: Optional[str] = None) -> list[SummaryRecord]:
        """All summaries (optionally of one type), ordered by type then period_key."""
        if summary_type:
            cursor = self._conn.execute("""
                SELECT * FROM summaries
                WHERE type = ?
                ORDER BY period_key
            """, (summary_type,))
        else:
            cursor = self._conn.execute("""
                SELECT * FROM summaries
                ORDER BY type, period_key
            """)
        return [self._row_to_record(row) for row in cursor]

    def count(self, summary_type: Optional[str] = None) -> int:
        """Count summaries."""
        if summary_type:
            cursor = self._conn.execute(
                "SELECT COUNT(*) FROM summaries WHERE type = ?", (summary_type,))
        else:
            cursor = self._conn.execute("SELECT COUNT(*) FROM summaries")
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------

    def has_embedding(self, summary_id: int, model: str) -> bool:
        """Check if a vector exists for (summary_id, model)."""
        cursor = self._conn.execute("""
            SELECT 1 FROM embeddings
            WHERE summary_id = ? AND model = ?
        """, (summary_id, model))
        return cursor.fetchone() is not None

    def insert_embedding(
        self,
        summary_id: int,
        model: str,
        dim: int,
        blob: bytes,
        l2: float,
    ) -> bool:
        """
        Store a vector for (summary_id, model).

        Returns:
            False if one was already stored (the existing row is kept)
        """
        cursor = self._conn.execute("""
            INSERT INTO embeddings (summary_id, model, dim, vec, l2, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(summary_id, model) DO NOTHING
        """, (summary_id, model, dim, sqlite3.Binary(blob), l2, utc_now()))
        self._conn.commit()
        return cursor.rowcount > 0

    def iter_embeddings(self, model: str) -> Iterator[StoredVector]:
        """Every stored vector of a model joined with its summary."""
        cursor = self._conn.execute("""
            SELECT e.summary_id, s.type, s.period_key, s.json, e.dim, e.vec, e.l2
            FROM embeddings e
            JOIN summaries s ON s.id = e.summary_id
            WHERE e.model = ?
        """, (model,))
        for row in cursor:
            yield StoredVector(
                summary_id=row["summary_id"],
                summary_type=row["type"],
                period_key=row["period_key"],
                body_json=row["json"],
                dim=row["dim"],
                blob=bytes(row["vec"]),
                l2=row["l2"],
            )

    def count_embeddings(self, model: Optional[str] = None) -> int:
        """Count stored vectors."""
        if model:
            cursor = self._conn.execute(
                "SELECT COUNT(*) FROM embeddings WHERE model = ?", (model,))
        else:
            cursor = self._conn.execute("SELECT COUNT(*) FROM embeddings")
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
