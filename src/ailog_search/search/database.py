"""SQLite FTS5 storage for indexed log documents."""

import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ailog_search.search.schema import (
    DROP_STATEMENTS,
    SCHEMA_STATEMENTS,
    LogDocument,
    from_micros,
    source_id_range,
)

INSERT_SQL = """
    INSERT INTO documents
    (doc_id, tool, log_type, category, level, project, timestamp_us, message, source_location, line_offset)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# Most recent first, untimestamped last, doc_id as tie breaker
ORDER_BY_SQL = "ORDER BY (d.timestamp_us IS NULL), d.timestamp_us DESC, d.doc_id ASC"


class IndexWriter:
    """Mutations applied inside one open transaction.

    Nothing is visible to readers until the enclosing ``Database.writer()``
    block exits without an exception.
    """

    def __init__(self, cursor: sqlite3.Cursor):
        self._cursor = cursor

    def reset(self, schema_version: str) -> None:
        """Drop everything and recreate an empty schema at schema_version."""
        for statement in DROP_STATEMENTS:
            self._cursor.execute(statement)
        for statement in SCHEMA_STATEMENTS:
            self._cursor.execute(statement)
        self.set_meta("schema_version", schema_version)

    def add_documents(self, documents: Iterable[LogDocument]) -> int:
        rows = [doc.to_row() for doc in documents]
        self._cursor.executemany(INSERT_SQL, rows)
        return len(rows)

    def delete_source(self, source_location: str) -> int:
        """Delete every document in the source's id range."""
        lo, hi = source_id_range(source_location)
        self._cursor.execute("DELETE FROM documents WHERE doc_id >= ? AND doc_id < ?", (lo, hi))
        return self._cursor.rowcount

    def set_meta(self, key: str, value: str) -> None:
        self._cursor.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))


class Database:
    """SQLite database holding the committed search index."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()

    def exists(self) -> bool:
        return self.db_path.exists()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode: transactions are opened explicitly by writer()
            conn = sqlite3.connect(str(self.db_path), timeout=30, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            self._local.conn = conn
        return self._local.conn

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @contextmanager
    def writer(self) -> Iterator[IndexWriter]:
        """Open a write transaction; commit on success, roll back on error."""
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                yield IndexWriter(cursor)
                cursor.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                cursor.close()

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    def schema_version(self) -> str | None:
        """Schema version recorded in the database, or None if there is none."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'meta'")
            if cursor.fetchone() is None:
                return None
            cursor.execute("SELECT value FROM meta WHERE key = 'schema_version'")
            row = cursor.fetchone()
            return row["value"] if row else None

    def count_documents(self, where: str = "1=1", params: Iterable = ()) -> int:
        with self._read_cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) AS n FROM documents d WHERE {where}", list(params))
            return cursor.fetchone()["n"]

    def count_for_source(self, source_location: str) -> int:
        lo, hi = source_id_range(source_location)
        return self.count_documents("d.doc_id >= ? AND d.doc_id < ?", (lo, hi))

    def list_sources(self) -> set[str]:
        """Source locations that currently have documents."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT DISTINCT source_location FROM documents")
            return {row["source_location"] for row in cursor.fetchall()}

    def select_documents(
        self,
        where: str,
        params: Iterable,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[LogDocument]:
        """Documents matching a WHERE clause in result order."""
        sql = f"SELECT d.* FROM documents d WHERE {where} {ORDER_BY_SQL}"
        args = list(params)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            args.extend([limit, offset])
        with self._read_cursor() as cursor:
            cursor.execute(sql, args)
            return [self._row_to_document(row) for row in cursor.fetchall()]

    def iter_documents(self, where: str, params: Iterable, batch_size: int = 1000) -> Iterator[LogDocument]:
        """Stream documents matching a WHERE clause in result order."""
        sql = f"SELECT d.* FROM documents d WHERE {where} {ORDER_BY_SQL}"
        with self._read_cursor() as cursor:
            cursor.execute(sql, list(params))
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    return
                for row in rows:
                    yield self._row_to_document(row)

    def size_bytes(self) -> int:
        """Size on disk including WAL and shared-memory files."""
        total = 0
        for suffix in ("", "-wal", "-shm"):
            path = Path(f"{self.db_path}{suffix}")
            if path.exists():
                total += path.stat().st_size
        return total

    def _row_to_document(self, row: sqlite3.Row) -> LogDocument:
        """Convert a database row to a LogDocument."""
        timestamp_us = row["timestamp_us"]
        return LogDocument(
            doc_id=row["doc_id"],
            tool=row["tool"],
            log_type=row["log_type"],
            category=row["category"],
            level=row["level"],
            project=row["project"],
            timestamp=from_micros(timestamp_us) if timestamp_us is not None else None,
            message=row["message"],
            source_location=row["source_location"],
            line_offset=row["line_offset"],
        )
