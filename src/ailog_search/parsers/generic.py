"""Generic line-based parser, used as the last resort."""

from pathlib import Path

from ailog_search.models import LogEntry, ParsedLog, tool_from_path, tool_key
from ailog_search.parsers.base import (
    DEFAULT_MAX_LINES,
    TEXT_TIMESTAMP_PATTERN,
    LineReader,
    LogParser,
    classify_category,
    classify_level,
    parse_timestamp,
)


class GenericParser(LogParser):
    def can_parse(self, path: Path) -> bool:
        return True

    def parse(self, path: Path, max_lines: int = DEFAULT_MAX_LINES) -> ParsedLog:
        tool = tool_from_path(path) or tool_key(path.stem)
        result = ParsedLog(tool=tool, size=path.stat().st_size)

        reader = LineReader(path, max_lines)
        for number, line in reader:
            if not line.strip():
                continue
            result.entries.append(parse_generic_line(line, number))
        result.truncated = reader.truncated
        return result


def parse_generic_line(line: str, line_number: int) -> LogEntry:
    timestamp = None
    match = TEXT_TIMESTAMP_PATTERN.match(line.strip())
    if match:
        timestamp = parse_timestamp(match.group(1))
    return LogEntry(
        timestamp=timestamp,
        level=classify_level(line),
        message=line.strip(),
        category=classify_category(line),
        line_offset=line_number,
    )
