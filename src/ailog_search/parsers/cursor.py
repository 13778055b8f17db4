"""Cursor log parser.

Cursor writes Electron-style text logs (``2024-01-15 10:30:45.123 [error] ...``)
with occasional JSON lines. Lines without a timestamp continue the previous
entry (stack traces, wrapped payloads).
"""

import json
from pathlib import Path

from ailog_search.models import EntryCategory, LogEntry, LogLevel, ParsedLog
from ailog_search.parsers.base import (
    DEFAULT_MAX_LINES,
    TEXT_LEVEL_PATTERN,
    TEXT_TIMESTAMP_PATTERN,
    LineReader,
    LogParser,
    classify_category,
    parse_level,
    parse_timestamp,
)


class CursorParser(LogParser):
    tool = "cursor"

    def can_parse(self, path: Path) -> bool:
        return "cursor" in str(path).lower()

    def parse(self, path: Path, max_lines: int = DEFAULT_MAX_LINES) -> ParsedLog:
        result = ParsedLog(tool=self.tool, size=path.stat().st_size)
        current: LogEntry | None = None

        reader = LineReader(path, max_lines)
        for number, line in reader:
            if not line.strip():
                continue

            if line.lstrip().startswith("{"):
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    record = None
                if isinstance(record, dict):
                    entry = parse_json_entry(record, number)
                    if entry is not None:
                        result.entries.append(entry)
                        current = None
                        continue

            entry = parse_text_entry(line, number)
            if entry is None:
                if current is not None:
                    current.message = f"{current.message}\n{line}"
                    continue
                entry = LogEntry(None, LogLevel.UNKNOWN, line.strip(), classify_category(line), line_offset=number)
            result.entries.append(entry)
            current = entry

        result.truncated = reader.truncated
        return result


def parse_json_entry(record: dict, line_number: int) -> LogEntry | None:
    timestamp = parse_timestamp(record.get("timestamp") or record.get("time") or record.get("ts"))
    level = parse_level(record.get("level"))

    if record.get("category") == "chat" or record.get("type") == "user_input":
        category = EntryCategory.USER_PROMPT
    elif record.get("type") in ("ai_response", "assistant"):
        category = EntryCategory.ASSISTANT_RESPONSE
    elif record.get("type") in ("tool_call", "tool"):
        category = EntryCategory.TOOL_USE
    elif level == LogLevel.ERROR:
        category = EntryCategory.ERROR
    else:
        category = EntryCategory.SYSTEM_EVENT

    message = record.get("message") or record.get("msg") or record.get("text")
    if not isinstance(message, str) or not message:
        return None
    return LogEntry(timestamp, level, message, category, line_offset=line_number)


def parse_text_entry(line: str, line_number: int) -> LogEntry | None:
    """Parse a timestamped text line, or None for a continuation line."""
    match = TEXT_TIMESTAMP_PATTERN.match(line.strip())
    if not match:
        return None
    timestamp = parse_timestamp(match.group(1))
    rest = line.strip()[match.end():].strip()

    level = LogLevel.INFO
    level_match = TEXT_LEVEL_PATTERN.search(rest)
    if level_match:
        level = parse_level(level_match.group(1))
        rest = (rest[: level_match.start()] + rest[level_match.end():]).strip()

    if level == LogLevel.ERROR:
        category = EntryCategory.ERROR
    else:
        category = classify_category(rest)
    return LogEntry(timestamp, level, rest, category, line_offset=line_number)
