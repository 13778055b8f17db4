"""
ailog-search - search index for AI coding assistant logs.

Discovers the local logs of Claude Code, Cursor, Cline and other assistants,
keeps an incrementally updated SQLite FTS5 index of their entries, and answers
filtered full-text and regex queries from the command line or over MCP.

Stack:
- Python + FastMCP (MCP server)
- SQLite FTS5 (search index)
- Rich (table output)
- filelock (single index writer)
"""

__version__ = "0.1.0"
