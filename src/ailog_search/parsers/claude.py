"""Claude Code log parser.

Handles ~/.claude/history.jsonl (prompt history), per-project session
transcripts under ~/.claude/projects/ and todo lists under ~/.claude/todos/.
"""

import json
import logging
from pathlib import Path

from ailog_search.models import EntryCategory, LogEntry, LogLevel, ParsedLog
from ailog_search.parsers.base import (
    DEFAULT_MAX_LINES,
    LineReader,
    LogParser,
    content_to_text,
    load_json_document,
    parse_timestamp,
    summarize_tool_use,
)

logger = logging.getLogger(__name__)


class ClaudeParser(LogParser):
    tool = "claude"

    def can_parse(self, path: Path) -> bool:
        text = str(path)
        return ".claude" in text and "claude-dev" not in text

    def parse(self, path: Path, max_lines: int = DEFAULT_MAX_LINES) -> ParsedLog:
        result = ParsedLog(tool=self.tool, size=path.stat().st_size)

        if path.suffix == ".json":
            result.entries = self._parse_todos(path, max_lines)
            return result

        reader = LineReader(path, max_lines)
        for number, line in reader:
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed JSON at %s:%d", path, number + 1)
                continue
            if not isinstance(record, dict):
                continue
            if path.name == "history.jsonl":
                entry = parse_history_record(record, number)
                if entry is not None:
                    result.entries.append(entry)
            else:
                result.entries.extend(parse_session_record(record, number))
        result.truncated = reader.truncated
        return result

    def _parse_todos(self, path: Path, max_lines: int) -> list[LogEntry]:
        data = load_json_document(path)
        if not isinstance(data, list):
            raise ValueError(f"Expected a JSON array of todos in {path}")
        entries = []
        for index, item in enumerate(data[:max_lines]):
            if not isinstance(item, dict) or not item.get("content"):
                continue
            status = item.get("status", "pending")
            entries.append(
                LogEntry(
                    timestamp=None,
                    level=LogLevel.INFO,
                    message=f"[{status}] {item['content']}",
                    category=EntryCategory.SYSTEM_EVENT,
                    line_offset=index,
                )
            )
        return entries


def parse_history_record(record: dict, line_number: int) -> LogEntry | None:
    """Parse one line of history.jsonl."""
    timestamp = parse_timestamp(record.get("timestamp"))

    if "display" in record or "userMessage" in record or "prompt" in record:
        category = EntryCategory.USER_PROMPT
    elif "assistantMessage" in record or "response" in record:
        category = EntryCategory.ASSISTANT_RESPONSE
    elif "tool_use" in record or "toolUse" in record:
        category = EntryCategory.TOOL_USE
    elif "error" in record:
        category = EntryCategory.ERROR
    else:
        category = EntryCategory.SYSTEM_EVENT

    message = ""
    for key in ("display", "userMessage", "assistantMessage", "prompt", "response", "message", "error"):
        value = record.get(key)
        if isinstance(value, str) and value:
            message = value
            break
    if not message:
        return None

    if "error" in record:
        level = LogLevel.ERROR
    elif category == EntryCategory.USER_PROMPT:
        level = LogLevel.INFO
    else:
        level = LogLevel.DEBUG

    project = record.get("project")
    return LogEntry(
        timestamp=timestamp,
        level=level,
        message=message,
        category=category,
        line_offset=line_number,
        project=Path(project).name if isinstance(project, str) and project else None,
    )


def parse_session_record(record: dict, line_number: int) -> list[LogEntry]:
    """Parse one line of a project session transcript into zero or more entries."""
    record_type = record.get("type")
    timestamp = parse_timestamp(record.get("timestamp"))
    cwd = record.get("cwd")
    project = Path(cwd).name if isinstance(cwd, str) and cwd else None

    def entry(message: str, category: EntryCategory, level: LogLevel) -> LogEntry:
        return LogEntry(
            timestamp=timestamp,
            level=level,
            message=message,
            category=category,
            line_offset=line_number,
            project=project,
        )

    if record_type == "summary":
        summary = record.get("summary")
        return [entry(summary, EntryCategory.SYSTEM_EVENT, LogLevel.INFO)] if summary else []

    if record_type == "system":
        content = record.get("content")
        if not isinstance(content, str) or not content:
            return []
        level = LogLevel.ERROR if record.get("level") == "error" else LogLevel.INFO
        return [entry(content, EntryCategory.SYSTEM_EVENT, level)]

    if record_type not in ("user", "assistant"):
        return []

    message = record.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")

    entries: list[LogEntry] = []
    if record_type == "user":
        if isinstance(content, list):
            for block in content:
                if not isinstance(block, dict) or block.get("type") != "tool_result":
                    continue
                text = content_to_text(block.get("content"))
                if block.get("is_error"):
                    entries.append(entry(text or "tool error", EntryCategory.ERROR, LogLevel.ERROR))
                elif text:
                    entries.append(entry(text, EntryCategory.TOOL_USE, LogLevel.DEBUG))
        text = content_to_text(content)
        if text:
            entries.append(entry(text, EntryCategory.USER_PROMPT, LogLevel.INFO))
        return entries

    text = content_to_text(content)
    if text:
        entries.append(entry(text, EntryCategory.ASSISTANT_RESPONSE, LogLevel.INFO))
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "tool_use":
                category = EntryCategory.TOOL_USE
                if block.get("name") in ("Write", "Edit", "MultiEdit", "Read", "NotebookEdit"):
                    category = EntryCategory.FILE_OPERATION
                entries.append(entry(summarize_tool_use(block), category, LogLevel.DEBUG))
    return entries
