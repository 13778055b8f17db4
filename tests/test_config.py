"""Tests for config module."""

from pathlib import Path

import pytest

from ailog_search.config import Config

ENV_VARS = (
    "AILOG_HOME",
    "AILOG_INDEX_DIR",
    "AILOG_MAX_LINES",
    "AILOG_WORKERS",
    "AILOG_SYNC_INTERVAL",
    "AILOG_PORT",
    "XDG_CACHE_HOME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_config_defaults():
    """Test config loads with defaults when no env vars set."""
    config = Config.from_env()
    assert config.home_dir == Path.home()
    assert config.index_dir == Path.home() / ".cache" / "ailog-search" / "search_index"
    assert config.max_lines_per_source == 10000
    assert config.workers == 1
    assert config.sync_interval == 0
    assert config.port == 8080


def test_config_from_env(monkeypatch):
    """Test config loads from environment variables."""
    monkeypatch.setenv("AILOG_HOME", "/custom/home")
    monkeypatch.setenv("AILOG_INDEX_DIR", "/custom/index")
    monkeypatch.setenv("AILOG_MAX_LINES", "500")
    monkeypatch.setenv("AILOG_WORKERS", "4")
    monkeypatch.setenv("AILOG_SYNC_INTERVAL", "60")
    monkeypatch.setenv("AILOG_PORT", "9000")

    config = Config.from_env()
    assert config.home_dir == Path("/custom/home")
    assert config.index_dir == Path("/custom/index")
    assert config.max_lines_per_source == 500
    assert config.workers == 4
    assert config.sync_interval == 60
    assert config.port == 9000


def test_config_xdg_cache_home(monkeypatch, tmp_path):
    """Test the default index directory follows XDG_CACHE_HOME."""
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    config = Config.from_env()
    assert config.index_dir == tmp_path / "ailog-search" / "search_index"


def test_config_from_env_creates_new_instances():
    """Test Config.from_env() creates new instances each time."""
    config1 = Config.from_env()
    config2 = Config.from_env()
    assert config1 is not config2


def test_config_tilde_expansion(monkeypatch):
    """Test config expands tilde in paths."""
    monkeypatch.setenv("AILOG_HOME", "~/logs")
    monkeypatch.setenv("AILOG_INDEX_DIR", "~/index")
    config = Config.from_env()
    assert "~" not in str(config.home_dir)
    assert config.home_dir.is_absolute()
    assert config.index_dir.is_absolute()


def test_config_invalid_port_non_numeric(monkeypatch):
    """Test config raises error for non-numeric port."""
    monkeypatch.setenv("AILOG_PORT", "not_a_number")
    with pytest.raises(ValueError, match="Invalid AILOG_PORT"):
        Config.from_env()


def test_config_invalid_port_out_of_range(monkeypatch):
    """Test config raises error for port out of valid range."""
    monkeypatch.setenv("AILOG_PORT", "70000")
    with pytest.raises(ValueError, match="Port must be between 1 and 65535"):
        Config.from_env()


def test_config_sync_interval_disabled(monkeypatch):
    """Test sync_interval can be set to 0 to disable."""
    monkeypatch.setenv("AILOG_SYNC_INTERVAL", "0")
    config = Config.from_env()
    assert config.sync_interval == 0


def test_config_sync_interval_invalid_non_numeric(monkeypatch):
    """Test config raises error for non-numeric sync interval."""
    monkeypatch.setenv("AILOG_SYNC_INTERVAL", "fast")
    with pytest.raises(ValueError, match="Invalid AILOG_SYNC_INTERVAL"):
        Config.from_env()


def test_config_sync_interval_invalid_negative(monkeypatch):
    """Test config raises error for negative sync interval."""
    monkeypatch.setenv("AILOG_SYNC_INTERVAL", "-5")
    with pytest.raises(ValueError, match="AILOG_SYNC_INTERVAL must be >= 0"):
        Config.from_env()


@pytest.mark.parametrize("name", ["AILOG_MAX_LINES", "AILOG_WORKERS"])
def test_config_counts_must_be_positive(monkeypatch, name):
    """Test line cap and worker count reject zero."""
    monkeypatch.setenv(name, "0")
    with pytest.raises(ValueError, match=f"Invalid {name} value '0'"):
        Config.from_env()
