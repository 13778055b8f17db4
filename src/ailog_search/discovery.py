"""Discovery of AI-assistant log files under a home directory."""

import logging
from collections.abc import Iterator
from pathlib import Path

from ailog_search.models import DiscoveryFindings, LogLocation, LogType, tool_from_path

logger = logging.getLogger(__name__)

_CLINE_TASKS = "Code/User/globalStorage/saoudrizwan.claude-dev/tasks"

# (directory relative to the base dir, glob inside it, log type or None to infer)
LOCATION_PATTERNS: list[tuple[str, str, LogType | None]] = [
    (".claude", "history.jsonl", LogType.HISTORY),
    (".claude/projects", "*/*.jsonl", LogType.SESSION),
    (".claude/todos", "*.json", LogType.TODO),
    (".cursor/logs", "**/*.log", LogType.DEBUG),
    (".config/Cursor/logs", "**/*.log", LogType.DEBUG),
    ("Library/Application Support/Cursor/logs", "**/*.log", LogType.DEBUG),
    (f".config/{_CLINE_TASKS}", "*/api_conversation_history.json", LogType.HISTORY),
    (f".config/{_CLINE_TASKS}", "*/ui_messages.json", LogType.SESSION),
    (f".var/app/com.visualstudio.code/config/{_CLINE_TASKS}", "*/api_conversation_history.json", LogType.HISTORY),
    (f".var/app/com.visualstudio.code/config/{_CLINE_TASKS}", "*/ui_messages.json", LogType.SESSION),
    (f"Library/Application Support/{_CLINE_TASKS}", "*/api_conversation_history.json", LogType.HISTORY),
    (f"Library/Application Support/{_CLINE_TASKS}", "*/ui_messages.json", LogType.SESSION),
    (".continue/logs", "*.log", None),
    (".codeium/windsurf/logs", "**/*.log", None),
    (".aider", "**/*.log", None),
]


def infer_log_type(path: Path) -> LogType:
    """Infer the log type from a file name."""
    name = path.name.lower()
    if "file-history" in str(path).lower():
        return LogType.FILE_HISTORY
    if "history" in name:
        return LogType.HISTORY
    if "telemetry" in name or "statsig" in name:
        return LogType.TELEMETRY
    if "todo" in name:
        return LogType.TODO
    if "session" in name or name.endswith(".jsonl"):
        return LogType.SESSION
    if name.endswith(".log"):
        return LogType.DEBUG
    return LogType.UNKNOWN


def iter_log_files(base_dir: Path) -> Iterator[tuple[Path, LogType]]:
    """Yield (path, log_type) for every file matching a known pattern."""
    for relative_dir, pattern, log_type in LOCATION_PATTERNS:
        root = base_dir / relative_dir
        if not root.is_dir():
            continue
        for file_path in sorted(root.glob(pattern)):
            if not file_path.is_file():
                continue
            yield file_path, log_type or infer_log_type(file_path)


def scan(base_dir: Path) -> DiscoveryFindings:
    """
    Scan a base directory (usually the user's home) for AI-assistant logs.

    Raises:
        FileNotFoundError: base_dir does not exist.
        NotADirectoryError: base_dir is not a directory.
        PermissionError: base_dir cannot be listed.
    """
    if not base_dir.exists():
        raise FileNotFoundError(f"Log base directory not found: {base_dir}")
    if not base_dir.is_dir():
        raise NotADirectoryError(f"Log base directory is not a directory: {base_dir}")
    # Fails early with PermissionError when unreadable
    next(base_dir.iterdir(), None)

    findings = DiscoveryFindings()
    seen: set[Path] = set()

    for file_path, log_type in iter_log_files(base_dir):
        try:
            resolved = file_path.resolve()
            size = file_path.stat().st_size
        except OSError as e:
            logger.debug("Skipping unreadable log file %s: %s", file_path, e)
            continue
        if resolved in seen:
            continue
        seen.add(resolved)

        tool = tool_from_path(file_path.relative_to(base_dir)) or "unknown"
        findings.locations.append(
            LogLocation(tool=tool, path=file_path, log_type=log_type, size_bytes=size)
        )

    logger.debug(
        "Discovery found %d log files (%d bytes) under %s",
        findings.total_files,
        findings.total_size_bytes,
        base_dir,
    )
    return findings
