"""MCP tools for the ailog-search server.

This module defines the tools exposed by the MCP server:
- search_logs: Filtered full-text or regex search over indexed AI-assistant logs
- index_status: Size, freshness and schema version of the search index
"""

import logging

from fastmcp import FastMCP

from ailog_search.errors import IndexLocked, IndexNotFound, MetadataCorrupt, QueryError
from ailog_search.search.builder import IndexBuilder
from ailog_search.search.formatters import results_to_dict
from ailog_search.search.metadata import format_age, index_age, load_metadata
from ailog_search.search.query import QueryExecutor, SearchQuery, parse_date
from ailog_search.search.schema import SCHEMA_VERSION

logger = logging.getLogger(__name__)


def register_tools(mcp: FastMCP, builder: IndexBuilder) -> None:
    """Register the search tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        builder: Index builder whose index the tools read
    """
    executor = QueryExecutor(builder.index_dir)

    def run_query(search_query: SearchQuery):
        """Execute a query, building the index first when there is none."""
        try:
            return executor.execute(search_query)
        except IndexNotFound as e:
            logger.info("%s; building index before searching", e)
        builder.build_initial_index()
        return executor.execute(search_query)

    @mcp.tool()
    def search_logs(
        query: str = "",
        tool: str | None = None,
        log_type: str | None = None,
        category: str | None = None,
        level: str | None = None,
        project: str | None = None,
        from_date: str | None = None,
        to_date: str | None = None,
        regex: bool = False,
        limit: int = 20,
        offset: int = 0,
        context: int = 0,
    ) -> dict:
        """Search AI coding assistant logs (Claude Code, Cursor, Cline, ...).

        Results are ordered newest first. Without regex, the query is split
        into words and "quoted phrases" that must all appear (case-insensitive).
        With regex=True the query is a Python regular expression matched
        against the raw message text (case-sensitive).

        Args:
            query: Search text, or a regular expression when regex is true
            tool: Filter by tool (e.g. "claude", "cursor", "cline")
            log_type: Filter by log type (history, session, debug, ...)
            category: Filter by category (user_prompt, assistant_response, error, ...)
            level: Filter by level (debug, info, warn, error, unknown)
            project: Filter by project name
            from_date: Start date, YYYY-MM-DD or relative (7d, 1m, 1y)
            to_date: End date, YYYY-MM-DD or relative
            regex: Treat query as a regular expression
            limit: Maximum number of results to return (default: 20)
            offset: Number of results to skip
            context: Source lines to include before and after each match

        Returns:
            Dictionary with:
            - query, total_found, showing, offset, limit, search_time_ms
            - results: list of entries with tool, timestamp, level, category,
              project, message, source_location, line_offset and context
            - error: Error message if the request was invalid or the index
              could not be built
        """
        try:
            search_query = SearchQuery(
                text=query,
                tool=tool,
                log_type=log_type,
                category=category,
                level=level,
                project=project,
                from_date=parse_date(from_date) if from_date else None,
                to_date=parse_date(to_date) if to_date else None,
                regex=regex,
                limit=limit,
                offset=offset,
                context=context,
            )
            results = run_query(search_query)
        except QueryError as e:
            return {"query": query, "total_found": 0, "results": [], "error": str(e)}
        except IndexLocked as e:
            return {"query": query, "total_found": 0, "results": [], "error": f"{e}; try again shortly"}
        except (IndexNotFound, OSError) as e:
            logger.error("Search index unavailable: %s", e)
            return {"query": query, "total_found": 0, "results": [], "error": str(e)}

        return {**results_to_dict(results), "error": None}

    @mcp.tool()
    def index_status() -> dict:
        """Report the state of the search index.

        Returns:
            Dictionary with:
            - exists: Whether an index has been built
            - total_docs: Number of indexed log entries
            - sources: Number of indexed log files
            - skipped_sources: Files that failed to parse in the last run
            - tools: Indexed entry count per tool
            - last_indexed: ISO timestamp of the last build or update
            - age: Human-readable age ("5m ago")
            - schema_version: Schema version of the stored index
            - engine_schema_version: Schema version this server writes
        """
        try:
            metadata = load_metadata(builder.metadata_path)
        except MetadataCorrupt as e:
            return {
                "exists": False,
                "total_docs": 0,
                "sources": 0,
                "engine_schema_version": SCHEMA_VERSION,
                "error": str(e),
            }

        tools: dict[str, int] = {}
        for location in metadata.locations.values():
            tools[location.tool] = tools.get(location.tool, 0) + location.doc_count

        return {
            "exists": builder.index_exists(),
            "total_docs": metadata.total_docs,
            "sources": len(metadata.locations),
            "skipped_sources": metadata.skipped_sources,
            "tools": dict(sorted(tools.items())),
            "last_indexed": metadata.last_indexed.isoformat(),
            "age": format_age(index_age(metadata)),
            "schema_version": metadata.schema_version,
            "engine_schema_version": SCHEMA_VERSION,
            "error": None,
        }
