"""Query compilation and execution over the search index."""

import calendar
import logging
import re
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from ailog_search.errors import IndexNotFound, InvalidDate, InvalidFilter, InvalidPattern, InvalidQuery
from ailog_search.models import tool_key
from ailog_search.parsers.base import LineReader
from ailog_search.search.database import Database
from ailog_search.search.schema import EXACT_FIELDS, VOCABULARIES, LogDocument, to_micros

logger = logging.getLogger(__name__)

_RELATIVE_DATE = re.compile(r"^(\d+)([dmy])$")
# A double-quoted phrase or a run of non-space characters
_QUERY_PIECE = re.compile(r'"([^"]*)"|(\S+)')
_WORD_CHAR = re.compile(r"\w")


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    MARKDOWN = "markdown"


_FORMAT_ALIASES = {"md": OutputFormat.MARKDOWN}


def parse_output_format(name: str) -> OutputFormat:
    """Resolve an output format name; ``md`` is accepted for markdown."""
    lowered = name.strip().lower()
    if lowered in _FORMAT_ALIASES:
        return _FORMAT_ALIASES[lowered]
    try:
        return OutputFormat(lowered)
    except ValueError as e:
        choices = ", ".join(fmt.value for fmt in OutputFormat)
        raise InvalidQuery(f"Unknown output format '{name}' (expected one of: {choices}, md)") from e


def parse_date(value: str, now: datetime | None = None) -> datetime:
    """
    Parse an absolute or relative date into an aware UTC datetime.

    Accepted forms:
        YYYY-MM-DD  midnight UTC of that day
        <N>d        N days before now
        <N>m        N calendar months before now (day clamped to month end)
        <N>y        N calendar years before now

    Raises:
        InvalidDate: for anything else.
    """
    now = now or datetime.now(timezone.utc)
    text = value.strip()

    match = _RELATIVE_DATE.match(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if unit == "d":
            try:
                return now - timedelta(days=amount)
            except OverflowError as e:
                raise InvalidDate(f"Invalid date '{value}': {amount} days is out of range") from e
        months = amount if unit == "m" else amount * 12
        return _months_before(now, months, value)

    try:
        day = datetime.strptime(text, "%Y-%m-%d")
    except ValueError as e:
        raise InvalidDate(
            f"Invalid date '{value}': expected YYYY-MM-DD or a relative form like 7d, 1m, 1y"
        ) from e
    return day.replace(tzinfo=timezone.utc)


def _months_before(now: datetime, months: int, original: str) -> datetime:
    index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    if year < 1:
        raise InvalidDate(f"Invalid date '{original}': out of range")
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


@dataclass
class SearchQuery:
    """A structured search request."""

    text: str = ""
    tool: str | None = None
    log_type: str | None = None
    category: str | None = None
    level: str | None = None
    project: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    regex: bool = False
    limit: int = 100
    offset: int = 0
    format: OutputFormat = OutputFormat.TABLE
    context: int = 0


@dataclass
class SearchResult:
    """One matching document, as presented to callers."""

    doc_id: str
    tool: str
    log_type: str
    timestamp: datetime | None
    level: str
    category: str
    message: str
    source_location: str
    line_offset: int
    project: str
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: LogDocument) -> "SearchResult":
        return cls(
            doc_id=doc.doc_id,
            tool=doc.tool,
            log_type=doc.log_type,
            timestamp=doc.timestamp,
            level=doc.level,
            category=doc.category,
            message=doc.message,
            source_location=doc.source_location,
            line_offset=doc.line_offset,
            project=doc.project,
        )


@dataclass
class SearchResults:
    """A page of results plus the total match count."""

    query: str
    total_found: int
    showing: int
    offset: int
    limit: int
    results: list[SearchResult]
    search_time_ms: int

    @property
    def has_more(self) -> bool:
        # A zero limit pages nowhere
        return self.limit > 0 and self.offset + self.showing < self.total_found

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit


@dataclass
class _Plan:
    """A compiled query: SQL narrowing plus an optional regex post-filter."""

    where: str
    params: list
    pattern: re.Pattern | None = None


def _normalize_filter(name: str, value: str | None) -> str | None:
    """Validate a filter value against its vocabulary and normalize its case."""
    if value is None:
        return None
    if name == "tool":
        return tool_key(value)
    if name == "project":
        return value
    normalized = value.strip().lower()
    vocabulary = VOCABULARIES[name]
    if normalized not in vocabulary:
        allowed = ", ".join(sorted(vocabulary))
        raise InvalidFilter(f"Invalid {name} '{value}' (expected one of: {allowed})")
    return normalized


def _text_conditions(text: str) -> tuple[list[str], list]:
    """Compile free text into SQL conditions.

    Terms and quoted phrases become FTS5 phrases so that no query syntax is
    interpreted; pieces without word characters are matched as substrings.
    """
    phrases = []
    substrings = []
    for quoted, bare in _QUERY_PIECE.findall(text):
        piece = quoted if quoted else bare
        if not piece.strip():
            continue
        if _WORD_CHAR.search(piece):
            phrases.append('"' + piece.replace('"', '""') + '"')
        else:
            substrings.append(piece)

    conditions = []
    params: list = []
    if phrases:
        conditions.append("d.id IN (SELECT rowid FROM documents_fts WHERE documents_fts MATCH ?)")
        params.append(" AND ".join(phrases))
    for piece in substrings:
        conditions.append("instr(lower(d.message), lower(?)) > 0")
        params.append(piece)
    return conditions, params


class QueryExecutor:
    """Runs SearchQuery objects against the index under index_dir."""

    def __init__(self, index_dir: Path):
        self.index_dir = index_dir
        self.db_path = index_dir / "index.db"

    def compile(self, query: SearchQuery) -> _Plan:
        """
        Validate a query and compile it into a plan, without touching the index.

        Raises:
            InvalidPattern: regex mode with a pattern that does not compile
            InvalidFilter: a level, category or log type outside its vocabulary
            InvalidQuery: negative limit, offset or context, or an inverted date range
        """
        for name in ("limit", "offset", "context"):
            if getattr(query, name) < 0:
                raise InvalidQuery(f"{name} must be >= 0, got {getattr(query, name)}")
        if query.from_date and query.to_date and query.from_date > query.to_date:
            raise InvalidQuery("from date is after to date")

        pattern = None
        if query.regex:
            try:
                pattern = re.compile(query.text)
            except re.error as e:
                raise InvalidPattern(f"Invalid regex '{query.text}': {e}") from e

        conditions: list[str] = []
        params: list = []
        for name in EXACT_FIELDS:
            value = _normalize_filter(name, getattr(query, name))
            if value is not None:
                conditions.append(f"d.{name} = ?")
                params.append(value)

        if query.from_date is not None:
            conditions.append("d.timestamp_us >= ?")
            params.append(to_micros(query.from_date))
        if query.to_date is not None:
            conditions.append("d.timestamp_us <= ?")
            params.append(to_micros(query.to_date))

        if not query.regex:
            text_conditions, text_params = _text_conditions(query.text)
            conditions.extend(text_conditions)
            params.extend(text_params)

        where = " AND ".join(conditions) if conditions else "1=1"
        return _Plan(where=where, params=params, pattern=pattern)

    def execute(self, query: SearchQuery) -> SearchResults:
        """
        Execute a search.

        Results are ordered newest first, untimestamped entries last, with
        doc_id as tie breaker. ``total_found`` counts every match before
        pagination.

        Raises:
            QueryError: invalid input (see compile)
            IndexNotFound: no committed index at index_dir, or SQLite cannot read it
        """
        start = time.monotonic()
        plan = self.compile(query)
        db = Database(self.db_path)
        if not db.exists():
            raise IndexNotFound(f"No search index found at {self.index_dir}")

        try:
            if db.schema_version() is None:
                raise IndexNotFound(f"No committed search index at {self.index_dir}")
            if plan.pattern is None:
                total = db.count_documents(plan.where, plan.params)
                documents = db.select_documents(plan.where, plan.params, query.limit, query.offset)
            else:
                total, documents = self._regex_page(db, plan, query.offset, query.limit)
        except sqlite3.DatabaseError as e:
            raise IndexNotFound(f"Search index at {self.index_dir} is unreadable: {e}") from e
        finally:
            db.close()

        results = [SearchResult.from_document(doc) for doc in documents]
        if query.context > 0:
            attach_context(results, query.context)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Query %r matched %d documents in %dms", query.text, total, elapsed_ms)
        return SearchResults(
            query=query.text,
            total_found=total,
            showing=max(0, min(query.limit, total - query.offset)),
            offset=query.offset,
            limit=query.limit,
            results=results,
            search_time_ms=elapsed_ms,
        )

    def _regex_page(self, db: Database, plan: _Plan, offset: int, limit: int) -> tuple[int, list[LogDocument]]:
        """Stream SQL candidates through the pattern, keeping only the requested page."""
        total = 0
        page = []
        for doc in db.iter_documents(plan.where, plan.params):
            if plan.pattern.search(doc.message) is None:
                continue
            if offset <= total < offset + limit:
                page.append(doc)
            total += 1
        return total, page


def attach_context(results: list[SearchResult], context: int) -> None:
    """Fill context_before/context_after from the source files.

    Sources that no longer exist or cannot be read give empty context. JSON
    array sources give none either: their line_offset is an array index.
    """
    by_source: dict[str, list[SearchResult]] = {}
    for result in results:
        if Path(result.source_location).suffix == ".json":
            continue
        by_source.setdefault(result.source_location, []).append(result)

    for source, group in by_source.items():
        needed = max(result.line_offset for result in group) + context + 1
        try:
            lines = [line for _, line in LineReader(Path(source), needed)]
        except OSError as e:
            logger.debug("No context for %s: %s", source, e)
            continue
        for result in group:
            offset = result.line_offset
            result.context_before = lines[max(0, offset - context):offset]
            result.context_after = lines[offset + 1:offset + 1 + context]
