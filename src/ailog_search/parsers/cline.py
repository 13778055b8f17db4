"""Cline (saoudrizwan.claude-dev) log parser."""

import json
import logging
from pathlib import Path

from ailog_search.models import EntryCategory, LogEntry, LogLevel, ParsedLog
from ailog_search.parsers.base import (
    DEFAULT_MAX_LINES,
    TEXT_LEVEL_PATTERN,
    TEXT_TIMESTAMP_PATTERN,
    LineReader,
    LogParser,
    classify_category,
    content_to_text,
    load_json_document,
    parse_level,
    parse_timestamp,
    summarize_tool_use,
)

logger = logging.getLogger(__name__)

# ui_messages.json "say" values
_SAY_CATEGORIES = {
    "text": EntryCategory.ASSISTANT_RESPONSE,
    "user_feedback": EntryCategory.USER_PROMPT,
    "task": EntryCategory.USER_PROMPT,
    "error": EntryCategory.ERROR,
    "api_req_started": EntryCategory.PERFORMANCE,
    "command": EntryCategory.TOOL_USE,
    "command_output": EntryCategory.TOOL_USE,
    "tool": EntryCategory.TOOL_USE,
    "completion_result": EntryCategory.ASSISTANT_RESPONSE,
}


class ClineParser(LogParser):
    tool = "cline"

    def can_parse(self, path: Path) -> bool:
        text = str(path).lower()
        return "cline" in text or "claude-dev" in text

    def parse(self, path: Path, max_lines: int = DEFAULT_MAX_LINES) -> ParsedLog:
        result = ParsedLog(tool=self.tool, size=path.stat().st_size)

        if path.suffix == ".json":
            data = load_json_document(path)
            if not isinstance(data, list):
                raise ValueError(f"Expected a JSON array in {path}")
            result.truncated = len(data) > max_lines
            parse_item = parse_ui_message if path.name == "ui_messages.json" else parse_api_message
            for index, item in enumerate(data[:max_lines]):
                if isinstance(item, dict):
                    result.entries.extend(parse_item(item, index))
            return result

        reader = LineReader(path, max_lines)
        for number, line in reader:
            if not line.strip():
                continue
            if path.suffix == ".jsonl":
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed JSON at %s:%d", path, number + 1)
                    continue
                if isinstance(record, dict):
                    entry = parse_json_entry(record, number)
                    if entry is not None:
                        result.entries.append(entry)
            else:
                result.entries.append(parse_text_entry(line, number))
        result.truncated = reader.truncated
        return result


def parse_api_message(item: dict, index: int) -> list[LogEntry]:
    """Parse one message of api_conversation_history.json."""
    role = item.get("role")
    timestamp = parse_timestamp(item.get("ts"))
    content = item.get("content")
    entries: list[LogEntry] = []

    text = content_to_text(content)
    if text:
        category = EntryCategory.USER_PROMPT if role in ("user", "human") else EntryCategory.ASSISTANT_RESPONSE
        entries.append(LogEntry(timestamp, LogLevel.INFO, text, category, line_offset=index))

    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "tool_use":
                entries.append(
                    LogEntry(timestamp, LogLevel.DEBUG, summarize_tool_use(block), EntryCategory.TOOL_USE, line_offset=index)
                )
            elif block.get("type") == "tool_result" and block.get("is_error"):
                message = content_to_text(block.get("content")) or "tool error"
                entries.append(LogEntry(timestamp, LogLevel.ERROR, message, EntryCategory.ERROR, line_offset=index))
    return entries


def parse_ui_message(item: dict, index: int) -> list[LogEntry]:
    """Parse one message of ui_messages.json."""
    text = item.get("text")
    if not isinstance(text, str) or not text:
        return []
    timestamp = parse_timestamp(item.get("ts"))
    kind = item.get("say") or item.get("ask") or ""
    category = _SAY_CATEGORIES.get(kind, EntryCategory.SYSTEM_EVENT)
    if item.get("type") == "ask" and kind == "followup":
        category = EntryCategory.ASSISTANT_RESPONSE
    level = LogLevel.ERROR if category == EntryCategory.ERROR else LogLevel.INFO
    return [LogEntry(timestamp, level, text, category, line_offset=index)]


def parse_json_entry(record: dict, line_number: int) -> LogEntry | None:
    """Parse one line of a Cline JSONL log."""
    timestamp = parse_timestamp(record.get("timestamp") or record.get("ts") or record.get("time"))

    if record.get("type") == "user_message" or record.get("role") == "user":
        category = EntryCategory.USER_PROMPT
    elif record.get("type") == "assistant_message" or record.get("role") == "assistant":
        category = EntryCategory.ASSISTANT_RESPONSE
    elif "tool" in record or "tool_call" in record:
        category = EntryCategory.TOOL_USE
    else:
        category = EntryCategory.SYSTEM_EVENT

    message = ""
    for key in ("message", "content", "text"):
        value = record.get(key)
        if isinstance(value, str) and value:
            message = value
            break
    if not message:
        return None

    level = parse_level(record.get("level"))
    if "error" in record:
        level = LogLevel.ERROR
        category = EntryCategory.ERROR
    return LogEntry(timestamp, level, message, category, line_offset=line_number)


def parse_text_entry(line: str, line_number: int) -> LogEntry:
    """Parse one line of a plain-text Cline log."""
    timestamp = None
    rest = line
    match = TEXT_TIMESTAMP_PATTERN.match(line)
    if match:
        timestamp = parse_timestamp(match.group(1))
        rest = line[match.end():].strip()

    level = LogLevel.INFO
    level_match = TEXT_LEVEL_PATTERN.search(rest)
    if level_match:
        level = parse_level(level_match.group(1))
    category = EntryCategory.ERROR if level == LogLevel.ERROR else classify_category(rest)
    return LogEntry(timestamp, level, line.strip(), category, line_offset=line_number)
