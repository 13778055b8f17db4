"""Common parser capability and helpers shared by the per-tool parsers."""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from ailog_search.models import EntryCategory, LogLevel, ParsedLog

DEFAULT_MAX_LINES = 10_000

# "2024-01-15 10:30:45.123", "2024-01-15T10:30:45Z", "[2024-01-15 10:30:45]"
TEXT_TIMESTAMP_PATTERN = re.compile(
    r"^\[?(\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?)\]?"
)
TEXT_LEVEL_PATTERN = re.compile(
    r"\[(trace|debug|info|warn|warning|error|fatal|critical)\]", re.IGNORECASE
)


class LogParser(ABC):
    """A parser for one tool's log format."""

    tool: str = "unknown"

    @abstractmethod
    def can_parse(self, path: Path) -> bool:
        """Return True if this parser understands the file at path."""

    @abstractmethod
    def parse(self, path: Path, max_lines: int = DEFAULT_MAX_LINES) -> ParsedLog:
        """Parse a source into normalized entries.

        Raises OSError or ValueError when the source is unreadable or malformed.
        """


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or an epoch number (seconds or ms) to aware UTC."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip().replace(",", ".")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_level(value: str | None, default: LogLevel = LogLevel.INFO) -> LogLevel:
    """Map a level name from a log record onto LogLevel."""
    if not value:
        return default
    lowered = value.lower()
    if lowered in ("error", "fatal", "critical"):
        return LogLevel.ERROR
    if lowered in ("warn", "warning"):
        return LogLevel.WARN
    if lowered in ("debug", "trace"):
        return LogLevel.DEBUG
    if lowered == "info":
        return LogLevel.INFO
    return default


def classify_level(text: str) -> LogLevel:
    """Keyword based level for unstructured lines."""
    lowered = text.lower()
    if "error" in lowered:
        return LogLevel.ERROR
    if "warn" in lowered:
        return LogLevel.WARN
    if "debug" in lowered:
        return LogLevel.DEBUG
    return LogLevel.UNKNOWN


def classify_category(text: str) -> EntryCategory:
    """Keyword based category for unstructured lines."""
    lowered = text.lower()
    if any(word in lowered for word in ("user", "prompt", "question")):
        return EntryCategory.USER_PROMPT
    if any(word in lowered for word in ("assistant", "response", "answer")):
        return EntryCategory.ASSISTANT_RESPONSE
    if any(word in lowered for word in ("tool", "function", "call")):
        return EntryCategory.TOOL_USE
    if any(word in lowered for word in ("file", "write", "read", "edit")):
        return EntryCategory.FILE_OPERATION
    if any(word in lowered for word in ("latency", "duration", "took", " ms")):
        return EntryCategory.PERFORMANCE
    if "error" in lowered or "exception" in lowered:
        return EntryCategory.ERROR
    return EntryCategory.SYSTEM_EVENT


class LineReader:
    """Iterates (0-based line number, line) over at most max_lines lines.

    After iteration, ``truncated`` tells whether the file had more lines.
    """

    def __init__(self, path: Path, max_lines: int):
        self.path = path
        self.max_lines = max_lines
        self.truncated = False

    def __iter__(self) -> Iterator[tuple[int, str]]:
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            for number, line in enumerate(handle):
                if number >= self.max_lines:
                    self.truncated = True
                    return
                yield number, line.rstrip("\n")


def load_json_document(path: Path) -> object:
    """Load a whole-file JSON document, raising ValueError when malformed."""
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        return json.load(handle)


def content_to_text(content: object) -> str:
    """Flatten a chat message content field (string or list of blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "\n".join(part for part in parts if part)
    return ""


def summarize_tool_use(block: dict) -> str:
    """One-line description of a tool_use block."""
    name = block.get("name", "tool")
    tool_input = block.get("input")
    if isinstance(tool_input, dict):
        detail = json.dumps(tool_input, ensure_ascii=False, sort_keys=True)
        if len(detail) > 500:
            detail = detail[:497] + "..."
        return f"{name}: {detail}"
    return str(name)
