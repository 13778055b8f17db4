"""Search index: document schema, metadata, builder and query executor."""

from ailog_search.search.builder import IndexBuilder, IndexStats
from ailog_search.search.formatters import format_results, results_to_dict
from ailog_search.search.metadata import IndexMetadata, LocationMetadata, load_metadata
from ailog_search.search.query import (
    OutputFormat,
    QueryExecutor,
    SearchQuery,
    SearchResult,
    SearchResults,
    parse_date,
    parse_output_format,
)
from ailog_search.search.schema import SCHEMA_VERSION, LogDocument

__all__ = [
    "SCHEMA_VERSION",
    "IndexBuilder",
    "IndexMetadata",
    "IndexStats",
    "LocationMetadata",
    "LogDocument",
    "OutputFormat",
    "QueryExecutor",
    "SearchQuery",
    "SearchResult",
    "SearchResults",
    "format_results",
    "load_metadata",
    "parse_date",
    "parse_output_format",
    "results_to_dict",
]
