"""Command handlers for the search, index and status subcommands.

Each handler returns the process exit code: 0 on success, 1 when the index
cannot be written or read, 2 for invalid user input.
"""

import argparse
import logging
import sys

from ailog_search.config import Config
from ailog_search.errors import IndexLocked, IndexNotFound, MetadataCorrupt, QueryError
from ailog_search.models import format_bytes
from ailog_search.search.builder import IndexBuilder, IndexStats
from ailog_search.search.formatters import format_results
from ailog_search.search.metadata import format_age, index_age, load_metadata
from ailog_search.search.query import QueryExecutor, SearchQuery, parse_date, parse_output_format

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def make_builder(config: Config) -> IndexBuilder:
    return IndexBuilder(
        index_dir=config.index_dir,
        home_dir=config.home_dir,
        max_lines_per_source=config.max_lines_per_source,
        workers=config.workers,
    )


def _status(message: str) -> None:
    """Progress and summary lines go to stderr so stdout stays machine readable."""
    print(message, file=sys.stderr)


def build_query(args: argparse.Namespace) -> SearchQuery:
    """Turn parsed search arguments into a SearchQuery.

    Raises:
        QueryError: a date or output format is invalid
    """
    return SearchQuery(
        text=args.query,
        tool=args.tool,
        log_type=args.log_type,
        category=args.category,
        level=args.level,
        project=args.project,
        from_date=parse_date(args.from_date) if args.from_date else None,
        to_date=parse_date(args.to_date) if args.to_date else None,
        regex=args.regex,
        limit=args.limit,
        offset=args.offset,
        format=parse_output_format(args.format),
        context=args.context,
    )


def _run_build(builder: IndexBuilder, rebuild: bool) -> IndexStats:
    stats = builder.build_initial_index() if rebuild else builder.update_index()
    _status(stats.summary())
    return stats


def _print_cached_index_info(builder: IndexBuilder) -> None:
    try:
        metadata = load_metadata(builder.metadata_path)
    except MetadataCorrupt as e:
        logger.debug("No index metadata to report: %s", e)
        return
    _status(
        f"Using cached index ({metadata.total_docs} docs, "
        f"last updated {format_age(index_age(metadata))})"
    )


def handle_search(args: argparse.Namespace, config: Config) -> int:
    """Run a search, building or updating the index first when needed."""
    executor = QueryExecutor(config.index_dir)
    try:
        query = build_query(args)
        executor.compile(query)
    except QueryError as e:
        _status(f"Error: {e}")
        return EXIT_USAGE

    builder = make_builder(config)
    try:
        if args.rebuild:
            _status("Rebuilding search index...")
            _run_build(builder, rebuild=True)
        elif not builder.index_exists():
            _status("No search index found. Building index...")
            _run_build(builder, rebuild=True)
        elif args.update:
            _run_build(builder, rebuild=False)
        else:
            _print_cached_index_info(builder)
        results = executor.execute(query)
    except IndexLocked as e:
        _status(f"Error: {e}")
        return EXIT_FAILURE
    except IndexNotFound as e:
        _status(f"Error: {e}")
        return EXIT_FAILURE
    except OSError as e:
        _status(f"Error: cannot index logs under {config.home_dir}: {e}")
        return EXIT_FAILURE

    _status(f"Found {results.total_found} results in {results.search_time_ms}ms")
    print(format_results(results, query.format))

    if results.has_more:
        _status(
            f"Showing {results.showing}/{results.total_found} results. "
            "Use --limit and --offset for more."
        )
        _status(f"Next page: --offset {results.next_offset} --limit {results.limit}")
    return EXIT_OK


def handle_index(args: argparse.Namespace, config: Config) -> int:
    """Update the index incrementally, or rebuild it with --rebuild."""
    builder = make_builder(config)
    try:
        _run_build(builder, rebuild=args.rebuild)
    except IndexLocked as e:
        _status(f"Error: {e}")
        return EXIT_FAILURE
    except OSError as e:
        _status(f"Error: cannot index logs under {config.home_dir}: {e}")
        return EXIT_FAILURE
    return EXIT_OK


def handle_status(args: argparse.Namespace, config: Config) -> int:
    """Print a summary of the index state."""
    builder = make_builder(config)
    if not builder.index_exists():
        print(f"No search index found at {config.index_dir}")
        print("Run 'ailog-search index' to build it.")
        return EXIT_OK

    try:
        metadata = load_metadata(builder.metadata_path)
    except MetadataCorrupt as e:
        print(f"Index at {config.index_dir} has unusable metadata: {e}")
        print("The next 'ailog-search index' run will rebuild it.")
        return EXIT_OK

    print(f"Index:          {config.index_dir}")
    print(f"Documents:      {metadata.total_docs}")
    print(f"Sources:        {len(metadata.locations)}")
    if metadata.skipped_sources:
        print(f"Skipped:        {metadata.skipped_sources}")
    print(f"Last updated:   {format_age(index_age(metadata))} ({metadata.last_indexed.isoformat()})")
    print(f"Schema version: {metadata.schema_version}")
    print(f"Size on disk:   {format_bytes(builder.db_path.stat().st_size)}")
    return EXIT_OK
