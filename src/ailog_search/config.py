"""Configuration module for ailog-search.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path


def _default_index_dir() -> Path:
    cache_home = os.getenv("XDG_CACHE_HOME")
    base = Path(cache_home).expanduser() if cache_home else Path.home() / ".cache"
    return base / "ailog-search" / "search_index"


def _int_from_env(name: str, default: str, minimum: int) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
        if value < minimum:
            raise ValueError(f"{name} must be >= {minimum}, got {value}")
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{raw}': {e}") from e
    return value


@dataclass
class Config:
    """Application configuration."""

    home_dir: Path
    index_dir: Path
    max_lines_per_source: int
    workers: int
    sync_interval: int
    port: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        home_dir = Path(os.getenv("AILOG_HOME", str(Path.home()))).expanduser()

        index_env = os.getenv("AILOG_INDEX_DIR")
        index_dir = Path(index_env).expanduser() if index_env else _default_index_dir()

        max_lines = _int_from_env("AILOG_MAX_LINES", "10000", 1)
        workers = _int_from_env("AILOG_WORKERS", "1", 1)
        sync_interval = _int_from_env("AILOG_SYNC_INTERVAL", "0", 0)

        port_str = os.getenv("AILOG_PORT", "8080")
        try:
            port = int(port_str)
            if not 1 <= port <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {port}")
        except ValueError as e:
            raise ValueError(f"Invalid AILOG_PORT value '{port_str}': {e}") from e

        return cls(
            home_dir=home_dir,
            index_dir=index_dir,
            max_lines_per_source=max_lines,
            workers=workers,
            sync_interval=sync_interval,
            port=port,
        )
