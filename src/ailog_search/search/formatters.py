"""Rendering of search results as a table, JSON or Markdown."""

import json

from rich.console import Console
from rich.table import Table

from ailog_search.search.query import OutputFormat, SearchResult, SearchResults

MESSAGE_WIDTH = 60
TABLE_WIDTH = 160


def result_to_dict(result: SearchResult) -> dict:
    return {
        "doc_id": result.doc_id,
        "tool": result.tool,
        "log_type": result.log_type,
        "timestamp": result.timestamp.isoformat() if result.timestamp else None,
        "level": result.level,
        "category": result.category,
        "message": result.message,
        "source_location": result.source_location,
        "line_offset": result.line_offset,
        "project": result.project,
        "context_before": result.context_before,
        "context_after": result.context_after,
    }


def results_to_dict(results: SearchResults) -> dict:
    """JSON-compatible view of a result page."""
    return {
        "query": results.query,
        "total_found": results.total_found,
        "showing": results.showing,
        "offset": results.offset,
        "limit": results.limit,
        "search_time_ms": results.search_time_ms,
        "results": [result_to_dict(result) for result in results.results],
    }


def _shorten(message: str, width: int = MESSAGE_WIDTH) -> str:
    flat = " ".join(message.split())
    if len(flat) > width:
        return flat[: width - 3] + "..."
    return flat


def format_table(results: SearchResults) -> str:
    table = Table()
    table.add_column("Tool", style="cyan")
    table.add_column("Date", style="blue")
    table.add_column("Level", style="magenta")
    table.add_column("Category", style="green")
    table.add_column("Message")

    for result in results.results:
        date = result.timestamp.strftime("%Y-%m-%d") if result.timestamp else "N/A"
        table.add_row(result.tool, date, result.level, result.category, _shorten(result.message))

    console = Console(width=TABLE_WIDTH)
    with console.capture() as capture:
        console.print(table)
    output = capture.get()

    with_context = [result for result in results.results if result.context_before or result.context_after]
    for result in with_context:
        output += f"\n{result.source_location}:{result.line_offset + 1}\n"
        output += "".join(f"  {line}\n" for line in result.context_before)
        output += f"> {result.message}\n"
        output += "".join(f"  {line}\n" for line in result.context_after)
    return output


def format_json(results: SearchResults) -> str:
    return json.dumps(results_to_dict(results), indent=2, ensure_ascii=False)


def format_markdown(results: SearchResults) -> str:
    lines = [
        "# Search Results",
        "",
        f"Query: `{results.query}`",
        f"Found {results.total_found} results in {results.search_time_ms}ms",
        "",
    ]
    for number, result in enumerate(results.results, start=results.offset + 1):
        lines.append(f"## Result {number}")
        lines.append("")
        lines.append(f"- **Tool**: {result.tool}")
        lines.append(f"- **Category**: {result.category}")
        lines.append(f"- **Level**: {result.level}")
        if result.timestamp:
            lines.append(f"- **Time**: {result.timestamp.isoformat()}")
        lines.append(f"- **Project**: {result.project}")
        lines.append(f"- **Source**: {result.source_location}:{result.line_offset + 1}")
        lines.append("")
        lines.append("```")
        lines.extend(result.context_before)
        lines.append(result.message)
        lines.extend(result.context_after)
        lines.append("```")
        lines.append("")
    return "\n".join(lines)


_FORMATTERS = {
    OutputFormat.TABLE: format_table,
    OutputFormat.JSON: format_json,
    OutputFormat.MARKDOWN: format_markdown,
}


def format_results(results: SearchResults, fmt: OutputFormat) -> str:
    """Render a result page; pure projection of its contents."""
    return _FORMATTERS[fmt](results)
