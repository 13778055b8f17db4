"""Tests for the SQLite index storage."""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from ailog_search.search.database import Database
from ailog_search.search.schema import SCHEMA_VERSION, LogDocument, make_doc_id


def make_doc(source: str, seq: int, message: str, timestamp: datetime | None = None) -> LogDocument:
    return LogDocument(
        doc_id=make_doc_id(source, seq),
        tool="cursor",
        log_type="debug",
        category="system_event",
        level="info",
        project="demo",
        timestamp=timestamp,
        message=message,
        source_location=source,
        line_offset=seq,
    )


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "index.db")
    with database.writer() as writer:
        writer.reset(SCHEMA_VERSION)
    yield database
    database.close()


class TestSchema:
    def test_reset_records_version(self, db: Database):
        assert db.schema_version() == SCHEMA_VERSION

    def test_version_none_for_empty_database(self, tmp_path: Path):
        empty = Database(tmp_path / "empty.db")
        try:
            assert empty.schema_version() is None
        finally:
            empty.close()

    def test_reset_clears_documents(self, db: Database):
        with db.writer() as writer:
            writer.add_documents([make_doc("/a.log", 0, "hello")])
        with db.writer() as writer:
            writer.reset(SCHEMA_VERSION)

        assert db.count_documents() == 0
        assert db.schema_version() == SCHEMA_VERSION


class TestWriter:
    def test_commit(self, db: Database):
        with db.writer() as writer:
            added = writer.add_documents([make_doc("/a.log", 0, "hello"), make_doc("/a.log", 1, "world")])

        assert added == 2
        assert db.count_documents() == 2

    def test_rollback_on_error(self, db: Database):
        with pytest.raises(RuntimeError):
            with db.writer() as writer:
                writer.add_documents([make_doc("/a.log", 0, "hello")])
                raise RuntimeError("interrupted")

        assert db.count_documents() == 0

    def test_duplicate_doc_id_rolls_back_batch(self, db: Database):
        with pytest.raises(sqlite3.IntegrityError):
            with db.writer() as writer:
                writer.add_documents([make_doc("/a.log", 0, "one"), make_doc("/a.log", 0, "again")])

        assert db.count_documents() == 0

    def test_delete_source_only_touches_that_source(self, db: Database):
        with db.writer() as writer:
            writer.add_documents([make_doc("/a.log", seq, f"a {seq}") for seq in range(3)])
            writer.add_documents([make_doc("/b.log", seq, f"b {seq}") for seq in range(2)])

        with db.writer() as writer:
            removed = writer.delete_source("/a.log")

        assert removed == 3
        assert db.list_sources() == {"/b.log"}
        assert db.count_for_source("/b.log") == 2

    def test_deleted_documents_leave_full_text_index(self, db: Database):
        with db.writer() as writer:
            writer.add_documents([make_doc("/a.log", 0, "needle")])
        with db.writer() as writer:
            writer.delete_source("/a.log")

        matches = db.count_documents(
            "d.id IN (SELECT rowid FROM documents_fts WHERE documents_fts MATCH ?)", ['"needle"']
        )
        assert matches == 0


class TestReads:
    def test_document_round_trip(self, db: Database):
        moment = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        doc = make_doc("/a.log", 0, "hello", moment)
        with db.writer() as writer:
            writer.add_documents([doc])

        assert db.select_documents("d.doc_id = ?", [doc.doc_id]) == [doc]
        assert db.select_documents("d.doc_id = ?", ["missing"]) == []

    def test_order_newest_first_untimestamped_last(self, db: Database):
        early = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = datetime(2024, 2, 1, tzinfo=timezone.utc)
        with db.writer() as writer:
            writer.add_documents(
                [
                    make_doc("/a.log", 0, "no time"),
                    make_doc("/a.log", 1, "early", early),
                    make_doc("/a.log", 2, "late", late),
                    make_doc("/a.log", 3, "late twin", late),
                ]
            )

        ordered = [doc.message for doc in db.select_documents("1=1", [])]
        assert ordered == ["late", "late twin", "early", "no time"]

    def test_iter_documents_matches_select(self, db: Database):
        with db.writer() as writer:
            writer.add_documents([make_doc("/a.log", seq, f"m {seq}") for seq in range(25)])

        streamed = [doc.doc_id for doc in db.iter_documents("1=1", [], batch_size=7)]
        assert streamed == [doc.doc_id for doc in db.select_documents("1=1", [])]

    def test_select_page(self, db: Database):
        with db.writer() as writer:
            writer.add_documents([make_doc("/a.log", seq, f"m {seq}") for seq in range(10)])

        page = db.select_documents("1=1", [], limit=3, offset=4)
        assert [doc.line_offset for doc in page] == [4, 5, 6]

    def test_size_bytes(self, db: Database):
        assert db.size_bytes() > 0
