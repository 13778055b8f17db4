"""Indexed document shape and the SQL schema backing it."""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ailog_search.models import EntryCategory, LogEntry, LogLevel, LogType

SCHEMA_VERSION = "2"

# Fields matched through the FTS5 tokenizer
TOKENIZED_FIELDS = ("message",)
# Fields filtered by exact value
EXACT_FIELDS = ("tool", "log_type", "category", "level", "project")
# Fields filtered by inclusive range
RANGE_FIELDS = ("timestamp",)

# Closed vocabularies for exact fields; tool and project are open.
VOCABULARIES: dict[str, frozenset[str]] = {
    "level": frozenset(level.value for level in LogLevel),
    "category": frozenset(category.value for category in EntryCategory),
    "log_type": frozenset(log_type.value for log_type in LogType),
}

SOURCE_KEY_LENGTH = 16

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        doc_id          TEXT NOT NULL UNIQUE,
        tool            TEXT NOT NULL,
        log_type        TEXT NOT NULL,
        category        TEXT NOT NULL,
        level           TEXT NOT NULL,
        project         TEXT NOT NULL,
        timestamp_us    INTEGER,
        message         TEXT NOT NULL,
        source_location TEXT NOT NULL,
        line_offset     INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_tool ON documents(tool)",
    "CREATE INDEX IF NOT EXISTS idx_documents_log_type ON documents(log_type)",
    "CREATE INDEX IF NOT EXISTS idx_documents_category ON documents(category)",
    "CREATE INDEX IF NOT EXISTS idx_documents_level ON documents(level)",
    "CREATE INDEX IF NOT EXISTS idx_documents_project ON documents(project)",
    "CREATE INDEX IF NOT EXISTS idx_documents_timestamp ON documents(timestamp_us DESC)",
    "CREATE INDEX IF NOT EXISTS idx_documents_source ON documents(source_location)",
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
        message,
        content='documents',
        content_rowid='id',
        tokenize='unicode61 remove_diacritics 2'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN
        INSERT INTO documents_fts(rowid, message) VALUES (NEW.id, NEW.message);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN
        INSERT INTO documents_fts(documents_fts, rowid, message)
        VALUES ('delete', OLD.id, OLD.message);
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS meta (
        key   TEXT PRIMARY KEY,
        value TEXT
    )
    """,
)

DROP_STATEMENTS = (
    "DROP TRIGGER IF EXISTS documents_ai",
    "DROP TRIGGER IF EXISTS documents_ad",
    "DROP TABLE IF EXISTS documents_fts",
    "DROP TABLE IF EXISTS documents",
    "DROP TABLE IF EXISTS meta",
)


def source_key(source_location: str) -> str:
    """Stable short key for a source location."""
    digest = hashlib.sha256(source_location.encode("utf-8")).hexdigest()
    return digest[:SOURCE_KEY_LENGTH]


def make_doc_id(source_location: str, seq: int) -> str:
    """Deterministic document id for the seq-th entry of a source."""
    return f"{source_key(source_location)}-{seq:010d}"


def source_id_range(source_location: str) -> tuple[str, str]:
    """Half-open [lo, hi) string range containing every doc id of a source.

    '.' sorts immediately after '-', so no other key can fall inside.
    """
    key = source_key(source_location)
    return f"{key}-", f"{key}."


def extract_project_name(path: Path) -> str:
    """
    Extract a project name from a log path.

    Examples:
        ~/.claude/projects/my-app/history.jsonl -> "my-app"
        .../saoudrizwan.claude-dev/tasks/1712/ui_messages.json -> "1712"
        ~/.cursor/main.log -> ".cursor"
    """
    parts = path.parts
    for marker in ("projects", "tasks"):
        if marker in parts:
            index = len(parts) - 1 - parts[::-1].index(marker)
            if index + 2 <= len(parts) - 1:
                return parts[index + 1]
    if path.parent.name:
        return path.parent.name
    return "unknown"


def to_micros(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    delta = timestamp - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_micros(value: int) -> datetime:
    return EPOCH + timedelta(microseconds=value)


@dataclass
class LogDocument:
    """One indexed log entry."""

    doc_id: str
    tool: str
    log_type: str
    category: str
    level: str
    project: str
    timestamp: datetime | None
    message: str
    source_location: str
    line_offset: int

    @classmethod
    def from_log_entry(
        cls,
        entry: LogEntry,
        seq: int,
        tool: str,
        log_type: str,
        source_location: Path,
    ) -> "LogDocument":
        location = str(source_location)
        return cls(
            doc_id=make_doc_id(location, seq),
            tool=tool,
            log_type=log_type,
            category=entry.category.value,
            level=entry.level.value,
            project=entry.project or extract_project_name(source_location),
            timestamp=entry.timestamp,
            message=entry.message,
            source_location=location,
            line_offset=entry.line_offset,
        )

    def to_row(self) -> tuple:
        return (
            self.doc_id,
            self.tool,
            self.log_type,
            self.category,
            self.level,
            self.project,
            to_micros(self.timestamp) if self.timestamp is not None else None,
            self.message,
            self.source_location,
            self.line_offset,
        )
