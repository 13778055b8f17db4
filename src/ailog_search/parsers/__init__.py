"""
Per-tool log parsers.

Parsers are tried in a fixed priority order; the first whose ``can_parse``
accepts a path wins, and the generic parser accepts everything.
"""

from pathlib import Path

from ailog_search.parsers.base import DEFAULT_MAX_LINES, LogParser
from ailog_search.parsers.claude import ClaudeParser
from ailog_search.parsers.cline import ClineParser
from ailog_search.parsers.cursor import CursorParser
from ailog_search.parsers.generic import GenericParser

PARSERS: tuple[LogParser, ...] = (
    ClaudeParser(),
    ClineParser(),
    CursorParser(),
    GenericParser(),
)


def select_parser(path: Path) -> LogParser:
    """Return the first parser that accepts path."""
    for parser in PARSERS:
        if parser.can_parse(path):
            return parser
    return PARSERS[-1]


__all__ = [
    "DEFAULT_MAX_LINES",
    "PARSERS",
    "ClaudeParser",
    "ClineParser",
    "CursorParser",
    "GenericParser",
    "LogParser",
    "select_parser",
]
