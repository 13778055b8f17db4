"""Shared fixtures: a fake home directory holding logs from three assistants."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ailog_search.search.builder import IndexBuilder

CLINE_TASKS = ".config/Code/User/globalStorage/saoudrizwan.claude-dev/tasks"


def _ago(now: datetime, days: float = 0, hours: float = 0) -> datetime:
    return now - timedelta(days=days, hours=hours)


def _text_stamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def write_claude_session(home: Path, now: datetime) -> Path:
    path = home / ".claude" / "projects" / "-home-me-webapp" / "session-1.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    records = [
        {
            "type": "system",
            "level": "error",
            "content": "error: build failed in webpack",
            "timestamp": _ago(now, hours=1).isoformat(),
            "cwd": "/home/me/webapp",
        },
        {
            "type": "user",
            "message": {"role": "user", "content": "fix the login error please"},
            "timestamp": _ago(now, days=1).isoformat(),
            "cwd": "/home/me/webapp",
        },
        {
            "type": "assistant",
            "message": {"role": "assistant", "content": [{"type": "text", "text": "Looking at the auth module"}]},
            "timestamp": _ago(now, days=2).isoformat(),
            "cwd": "/home/me/webapp",
        },
        {
            "type": "system",
            "content": "Session resumed",
            "timestamp": _ago(now, days=3).isoformat(),
            "cwd": "/home/me/webapp",
        },
        {
            "type": "system",
            "level": "error",
            "content": "error: disk quota exceeded",
            "timestamp": _ago(now, days=7).isoformat(),
            "cwd": "/home/me/webapp",
        },
    ]
    path.write_text("\n".join(json.dumps(record) for record in records) + "\n")
    return path


def write_cursor_log(home: Path, now: datetime) -> Path:
    path = home / ".cursor" / "logs" / "main.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [
        f"{_text_stamp(_ago(now, hours=2))} [error] Extension host error: connection refused",
        f"{_text_stamp(_ago(now, days=1))} [info] Window opened",
        f"{_text_stamp(_ago(now, days=2))} [warn] Slow reply from server",
        f"{_text_stamp(_ago(now, days=5))} [error] Failed to load error page",
        f"{_text_stamp(_ago(now, days=8))} [error] Crash error reported",
    ]
    path.write_text("\n".join(lines) + "\n")
    return path


def write_cline_task(home: Path, now: datetime) -> Path:
    path = home / CLINE_TASKS / "1712000000000" / "ui_messages.json"
    path.parent.mkdir(parents=True, exist_ok=True)

    def ms(moment: datetime) -> int:
        return int(moment.timestamp() * 1000)

    messages = [
        {"ts": ms(_ago(now, hours=3)), "type": "say", "say": "error", "text": "error: API request failed"},
        {"ts": ms(_ago(now, days=1)), "type": "say", "say": "task", "text": "Refactor the parser"},
        {"ts": ms(_ago(now, days=2)), "type": "say", "say": "text", "text": "I will start with the tokenizer"},
        {"ts": ms(_ago(now, days=4)), "type": "say", "say": "error", "text": "error: rate limit hit"},
        {"ts": ms(_ago(now, days=6, hours=12)), "type": "say", "say": "error", "text": "error: old timeout"},
    ]
    path.write_text(json.dumps(messages))
    return path


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def sample_home(tmp_path: Path, now: datetime) -> Path:
    """Home directory with 5 Claude, 5 Cursor and 5 Cline entries spread over eight days."""
    home = tmp_path / "home"
    home.mkdir()
    write_claude_session(home, now)
    write_cursor_log(home, now)
    write_cline_task(home, now)
    return home


@pytest.fixture
def index_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "search_index"


@pytest.fixture
def builder(sample_home: Path, index_dir: Path) -> IndexBuilder:
    return IndexBuilder(index_dir=index_dir, home_dir=sample_home)


@pytest.fixture
def built_index(builder: IndexBuilder) -> IndexBuilder:
    """Builder whose index has already been built once."""
    builder.build_initial_index()
    return builder
