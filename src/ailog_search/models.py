"""Data types shared by discovery, parsers and the index builder."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    UNKNOWN = "unknown"


class EntryCategory(str, Enum):
    USER_PROMPT = "user_prompt"
    ASSISTANT_RESPONSE = "assistant_response"
    SYSTEM_EVENT = "system_event"
    ERROR = "error"
    PERFORMANCE = "performance"
    TOOL_USE = "tool_use"
    FILE_OPERATION = "file_operation"
    UNKNOWN = "unknown"


class LogType(str, Enum):
    DEBUG = "debug"
    HISTORY = "history"
    FILE_HISTORY = "file_history"
    SESSION = "session"
    TELEMETRY = "telemetry"
    SHELL_SNAPSHOT = "shell_snapshot"
    TODO = "todo"
    CACHE = "cache"
    PLUGIN = "plugin"
    UNKNOWN = "unknown"


# Tool key -> display name. Order matters for path detection: first match wins.
KNOWN_TOOLS: dict[str, str] = {
    "claude": "Claude Code",
    "cline": "Cline",
    "cursor": "Cursor",
    "kiro": "Kiro",
    "roo": "Roo Code",
    "kilo": "Kilo",
    "copilot": "GitHub Copilot",
    "tabnine": "Tabnine",
    "codewhisperer": "AWS CodeWhisperer",
    "windsurf": "Windsurf",
    "continue": "Continue.dev",
    "aider": "Aider",
    "cody": "Sourcegraph Cody",
    "codegpt": "CodeGPT",
    "bito": "Bito AI",
    "amazonq": "Amazon Q",
    "supermaven": "Supermaven",
    "vscode": "VSCode",
}

# Path fragments that identify a tool, checked in order.
_TOOL_PATH_HINTS: list[tuple[str, str]] = [
    ("claude-dev", "cline"),  # saoudrizwan.claude-dev also contains ".claude"
    (".claude", "claude"),
    ("cline", "cline"),
    ("cursor", "cursor"),
    ("kiro", "kiro"),
    ("roocode", "roo"),
    ("roo-cline", "roo"),
    ("kilo", "kilo"),
    ("copilot", "copilot"),
    ("tabnine", "tabnine"),
    ("codewhisperer", "codewhisperer"),
    ("code-whisperer", "codewhisperer"),
    ("windsurf", "windsurf"),
    ("continue", "continue"),
    ("aider", "aider"),
    ("sourcegraph", "cody"),
    ("cody", "cody"),
    ("codegpt", "codegpt"),
    ("bito", "bito"),
    ("amazonq", "amazonq"),
    ("amazon-q", "amazonq"),
    ("supermaven", "supermaven"),
    (".vscode", "vscode"),
]


def tool_from_path(path: Path) -> str | None:
    """Guess the tool key from a log path, or None if nothing matches."""
    lowered = str(path).lower()
    for hint, key in _TOOL_PATH_HINTS:
        if hint in lowered:
            return key
    return None


def tool_key(name: str) -> str:
    """Normalize a tool name ("Claude Code", "other-tool.log") to a key."""
    lowered = name.strip().lower()
    for key, display in KNOWN_TOOLS.items():
        if lowered in (key, display.lower()):
            return key
    return re.sub(r"[^a-z0-9]+", "-", lowered).strip("-") or "unknown"


@dataclass
class LogEntry:
    """One normalized entry produced by a parser."""

    timestamp: datetime | None
    level: LogLevel
    message: str
    category: EntryCategory
    line_offset: int = 0
    project: str | None = None  # Overrides the path-derived project


@dataclass
class ParsedLog:
    """Result of parsing one source."""

    tool: str
    entries: list[LogEntry] = field(default_factory=list)
    size: int = 0
    truncated: bool = False

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def date_range(self) -> tuple[datetime | None, datetime | None]:
        stamps = [e.timestamp for e in self.entries if e.timestamp is not None]
        if not stamps:
            return None, None
        return min(stamps), max(stamps)


@dataclass
class LogLocation:
    """A discovered log file."""

    tool: str
    path: Path
    log_type: LogType
    size_bytes: int


@dataclass
class DiscoveryFindings:
    """Everything discovery found under the base directory."""

    locations: list[LogLocation] = field(default_factory=list)

    @property
    def total_size_bytes(self) -> int:
        return sum(loc.size_bytes for loc in self.locations)

    @property
    def total_files(self) -> int:
        return len(self.locations)

    @property
    def tools_found(self) -> list[str]:
        return sorted({loc.tool for loc in self.locations})


def format_bytes(size: int) -> str:
    """Human readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
