"""Main entry point for ailog-search."""

import argparse
import logging
import sys

from fastmcp import FastMCP

from ailog_search.cli import EXIT_FAILURE, EXIT_USAGE, handle_index, handle_search, handle_status, make_builder
from ailog_search.config import Config
from ailog_search.errors import IndexLocked
from ailog_search.sync import SyncManager
from ailog_search.tools import register_tools

logger = logging.getLogger(__name__)


def create_server(config: Config) -> FastMCP:
    """Create and configure the MCP server.

    Builds the search index first when none exists yet.

    Args:
        config: Configuration instance with all settings.
    """
    mcp = FastMCP(
        name="ailog-search",
        instructions=(
            "ailog-search indexes local logs of AI coding assistants (Claude Code, "
            "Cursor, Cline and others). Use search_logs to find prompts, responses, "
            "tool calls and errors by text, tool, level, project or date, and "
            "index_status to check how fresh the index is."
        ),
    )

    builder = make_builder(config)
    if not builder.index_exists():
        logger.info("No search index found, performing initial index...")
        try:
            stats = builder.build_initial_index()
            logger.info("Initial index complete: %d entries indexed", stats.total_docs)
        except IndexLocked:
            logger.warning("Index is being built by another process; continuing")

    logger.info("Registering tools...")
    register_tools(mcp, builder)

    logger.info("Server configured successfully")
    return mcp


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ailog-search",
        description="Index and search local AI coding assistant logs",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search indexed logs")
    search.add_argument("query", nargs="?", default="", help="Search text, or a regex with --regex")
    search.add_argument("--tool", help="Filter by tool (claude, cursor, cline, ...)")
    search.add_argument("--log-type", dest="log_type", help="Filter by log type")
    search.add_argument("--category", help="Filter by category")
    search.add_argument("--level", help="Filter by level (debug, info, warn, error, unknown)")
    search.add_argument("--project", help="Filter by project name")
    search.add_argument("--from", dest="from_date", help="Start date: YYYY-MM-DD or 7d, 1m, 1y")
    search.add_argument("--to", dest="to_date", help="End date: YYYY-MM-DD or 7d, 1m, 1y")
    search.add_argument("--regex", action="store_true", help="Treat the query as a regular expression")
    search.add_argument("--limit", type=int, default=100, help="Maximum results (default: 100)")
    search.add_argument("--offset", type=int, default=0, help="Results to skip (default: 0)")
    search.add_argument("--format", default="table", help="table, json or markdown (default: table)")
    search.add_argument("--context", type=int, default=0, help="Source lines shown around each match")
    search.add_argument("--rebuild", action="store_true", help="Rebuild the index before searching")
    search.add_argument("--update", action="store_true", help="Update the index before searching")
    search.set_defaults(handler=handle_search)

    index = subparsers.add_parser("index", help="Update the search index")
    index.add_argument("--rebuild", action="store_true", help="Rebuild the index from scratch")
    index.set_defaults(handler=handle_index)

    status = subparsers.add_parser("status", help="Show the state of the search index")
    status.set_defaults(handler=handle_status)

    serve = subparsers.add_parser("serve", help="Run the MCP server")
    serve.add_argument("--port", type=int, help="Port to listen on (default: AILOG_PORT or 8080)")
    serve.add_argument(
        "--transport",
        choices=["sse", "stdio"],
        default="sse",
        help="MCP transport (default: sse)",
    )
    serve.set_defaults(handler=None)

    return parser


def serve(args: argparse.Namespace, config: Config) -> int:
    """Run the MCP server until interrupted."""
    port = args.port or config.port

    logger.info("=" * 50)
    logger.info("ailog-search starting...")
    logger.info("  AILOG_HOME:      %s", config.home_dir)
    logger.info("  AILOG_INDEX_DIR: %s", config.index_dir)
    logger.info("  AILOG_PORT:      %s", port)
    logger.info("  SYNC_INTERVAL:   %s", config.sync_interval or "disabled")
    logger.info("=" * 50)

    sync_manager: SyncManager | None = None
    try:
        mcp = create_server(config)
        if config.sync_interval > 0:
            sync_manager = SyncManager(make_builder(config), config.sync_interval)
            sync_manager.start()
        if args.transport == "stdio":
            mcp.run(transport="stdio")
        else:
            logger.info("Starting MCP server on port %s...", port)
            mcp.run(transport="sse", host="127.0.0.1", port=port)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Server error")
        return EXIT_FAILURE
    finally:
        if sync_manager is not None:
            sync_manager.stop()
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main function - parses arguments and dispatches to a command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    elif args.command == "serve":
        level = logging.INFO
    else:
        level = logging.WARNING
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = Config.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    if args.command == "serve":
        sys.exit(serve(args, config))
    sys.exit(args.handler(args, config))


if __name__ == "__main__":
    main()
