"""Tests for query compilation and execution."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ailog_search.errors import IndexNotFound, InvalidDate, InvalidFilter, InvalidPattern, InvalidQuery
from ailog_search.search.builder import IndexBuilder
from ailog_search.search.query import (
    OutputFormat,
    QueryExecutor,
    SearchQuery,
    parse_date,
    parse_output_format,
)


@pytest.fixture
def executor(built_index: IndexBuilder) -> QueryExecutor:
    return QueryExecutor(built_index.index_dir)


def messages(results) -> list[str]:
    return [result.message for result in results.results]


class TestParseDate:
    def test_absolute_date_is_midnight_utc(self):
        assert parse_date("2024-03-05") == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_days(self):
        now = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert parse_date("7d", now=now) == datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc)

    def test_months_clamp_to_month_end(self):
        now = datetime(2024, 3, 31, 8, 30, tzinfo=timezone.utc)
        assert parse_date("1m", now=now) == datetime(2024, 2, 29, 8, 30, tzinfo=timezone.utc)

    def test_months_cross_year(self):
        now = datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert parse_date("3m", now=now) == datetime(2023, 10, 15, tzinfo=timezone.utc)

    def test_years(self):
        now = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert parse_date("1y", now=now) == datetime(2023, 2, 28, tzinfo=timezone.utc)

    def test_zero_days_is_now(self):
        now = datetime(2024, 3, 10, tzinfo=timezone.utc)
        assert parse_date("0d", now=now) == now

    @pytest.mark.parametrize("value", ["yesterday", "5w", "-3d", "2024-13-01", "2024/01/01", ""])
    def test_invalid(self, value):
        with pytest.raises(InvalidDate):
            parse_date(value)


class TestParseOutputFormat:
    def test_names(self):
        assert parse_output_format("table") == OutputFormat.TABLE
        assert parse_output_format("JSON") == OutputFormat.JSON
        assert parse_output_format("markdown") == OutputFormat.MARKDOWN

    def test_md_alias(self):
        assert parse_output_format("md") == OutputFormat.MARKDOWN

    def test_unknown(self):
        with pytest.raises(InvalidQuery, match="Unknown output format"):
            parse_output_format("xml")


class TestValidation:
    """Invalid input is rejected before the index is opened."""

    def test_invalid_regex(self, tmp_path: Path):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(InvalidPattern):
            executor.execute(SearchQuery(text="(unclosed", regex=True))

    def test_invalid_level(self, tmp_path: Path):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(InvalidFilter, match="level"):
            executor.execute(SearchQuery(level="loud"))

    def test_invalid_category(self, tmp_path: Path):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(InvalidFilter, match="category"):
            executor.execute(SearchQuery(category="chit-chat"))

    def test_invalid_log_type(self, tmp_path: Path):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(InvalidFilter, match="log_type"):
            executor.execute(SearchQuery(log_type="diary"))

    @pytest.mark.parametrize("field", ["limit", "offset", "context"])
    def test_negative_numbers(self, tmp_path: Path, field):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(InvalidQuery, match=field):
            executor.execute(SearchQuery(**{field: -1}))

    def test_inverted_date_range(self, tmp_path: Path):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(InvalidQuery):
            executor.execute(
                SearchQuery(
                    from_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
                    to_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
                )
            )

    def test_missing_index(self, tmp_path: Path):
        executor = QueryExecutor(tmp_path / "missing")
        with pytest.raises(IndexNotFound):
            executor.execute(SearchQuery(text="error"))

    def test_database_without_schema(self, tmp_path: Path):
        (tmp_path / "index.db").touch()
        with pytest.raises(IndexNotFound):
            QueryExecutor(tmp_path).execute(SearchQuery(text="error"))

    def test_unreadable_database(self, tmp_path: Path):
        (tmp_path / "index.db").write_bytes(b"not a sqlite database" * 100)
        with pytest.raises(IndexNotFound, match="unreadable"):
            QueryExecutor(tmp_path).execute(SearchQuery(text="error"))


class TestExampleScenario:
    def test_recent_errors_across_tools(self, executor: QueryExecutor, now: datetime):
        query = SearchQuery(text="error", level="error", from_date=parse_date("6d"), limit=10)
        results = executor.execute(query)

        assert results.total_found == 5
        assert results.showing == 5
        assert messages(results) == [
            "error: build failed in webpack",
            "Extension host error: connection refused",
            "error: API request failed",
            "error: rate limit hit",
            "Failed to load error page",
        ]
        assert [r.tool for r in results.results] == ["claude", "cursor", "cline", "cline", "cursor"]
        for result in results.results:
            assert result.level == "error"
            assert "error" in result.message.lower()
            assert result.timestamp >= now - timedelta(days=6)


class TestFilters:
    def test_match_all(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery())
        assert results.total_found == 15

    def test_tool(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(tool="cursor"))
        assert results.total_found == 5
        assert {r.tool for r in results.results} == {"cursor"}

    def test_tool_display_name(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(tool="Claude Code"))
        assert results.total_found == 5
        assert {r.tool for r in results.results} == {"claude"}

    def test_level_is_case_insensitive(self, executor: QueryExecutor):
        lower = executor.execute(SearchQuery(level="error"))
        upper = executor.execute(SearchQuery(level="ERROR"))
        assert lower.total_found == upper.total_found == 8

    def test_category(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(category="user_prompt"))
        assert sorted(messages(results)) == ["Refactor the parser", "fix the login error please"]

    def test_project(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(project="webapp"))
        assert results.total_found == 5
        assert {r.tool for r in results.results} == {"claude"}

    def test_log_type(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(log_type="debug"))
        assert {r.tool for r in results.results} == {"cursor"}

    def test_filters_are_anded(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(tool="cline", level="error", text="rate"))
        assert messages(results) == ["error: rate limit hit"]

    def test_unknown_project_matches_nothing(self, executor: QueryExecutor):
        assert executor.execute(SearchQuery(project="nope")).total_found == 0


class TestTextMatching:
    def test_terms_are_anded(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text="failed webpack"))
        assert messages(results) == ["error: build failed in webpack"]

    def test_case_insensitive(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text="WEBPACK"))
        assert results.total_found == 1

    def test_quoted_phrase(self, executor: QueryExecutor):
        assert executor.execute(SearchQuery(text='"build failed"')).total_found == 1
        assert executor.execute(SearchQuery(text='"failed build"')).total_found == 0

    def test_operators_are_literal(self, executor: QueryExecutor):
        # FTS5 syntax must not be interpreted
        assert executor.execute(SearchQuery(text="error OR window")).total_found == 0
        assert executor.execute(SearchQuery(text="NOT")).total_found == 0

    def test_regex_metacharacters_without_regex_mode(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text="(API"))
        assert messages(results) == ["error: API request failed"]

    def test_punctuation_is_substring_match(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text=":"))
        assert results.total_found == 6
        assert all(":" in message for message in messages(results))


class TestRegex:
    def test_matches_raw_message(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text=r"error: (API|rate)", regex=True))
        assert messages(results) == ["error: API request failed", "error: rate limit hit"]

    def test_case_sensitive(self, executor: QueryExecutor):
        assert executor.execute(SearchQuery(text="WEBPACK", regex=True)).total_found == 0
        assert executor.execute(SearchQuery(text="(?i)WEBPACK", regex=True)).total_found == 1

    def test_combined_with_filters(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text=r"^error:", regex=True, tool="claude"))
        assert messages(results) == ["error: build failed in webpack", "error: disk quota exceeded"]

    def test_counts_all_matches_but_returns_page(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text="error", regex=True, limit=2, offset=1))
        full = executor.execute(SearchQuery(text="error", regex=True))

        assert results.total_found == full.total_found
        assert messages(results) == messages(full)[1:3]


class TestOrderingAndPagination:
    def test_newest_first(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery())
        stamps = [r.timestamp for r in results.results]
        assert stamps == sorted(stamps, reverse=True)

    def test_untimestamped_last(self, built_index: IndexBuilder, sample_home: Path):
        todos = sample_home / ".claude" / "todos" / "abc.json"
        todos.parent.mkdir(parents=True)
        todos.write_text(json.dumps([{"content": "write docs", "status": "pending"}]))
        built_index.update_index()
        executor = QueryExecutor(built_index.index_dir)

        results = executor.execute(SearchQuery())

        assert results.total_found == 16
        assert results.results[-1].message == "[pending] write docs"
        assert results.results[-1].timestamp is None

    def test_dated_query_excludes_untimestamped(self, built_index: IndexBuilder, sample_home: Path):
        todos = sample_home / ".claude" / "todos" / "abc.json"
        todos.parent.mkdir(parents=True)
        todos.write_text(json.dumps([{"content": "write docs", "status": "pending"}]))
        built_index.update_index()
        executor = QueryExecutor(built_index.index_dir)

        results = executor.execute(SearchQuery(text="docs", from_date=parse_date("30d")))

        assert results.total_found == 0

    def test_pages_partition_results(self, executor: QueryExecutor):
        full = executor.execute(SearchQuery(limit=100))
        pages = []
        for offset in range(0, 15, 4):
            page = executor.execute(SearchQuery(limit=4, offset=offset))
            assert page.total_found == 15
            assert page.showing == min(4, 15 - offset)
            pages.extend(r.doc_id for r in page.results)

        assert pages == [r.doc_id for r in full.results]

    def test_offset_past_end(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(offset=50))
        assert results.total_found == 15
        assert results.showing == 0
        assert results.results == []
        assert results.has_more is False

    def test_limit_zero(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(limit=0))
        assert results.total_found == 15
        assert results.showing == 0
        assert results.has_more is False

    def test_next_page(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(limit=10))
        assert results.has_more is True
        assert results.next_offset == 10


class TestDateRange:
    def test_bounds_are_inclusive(self, executor: QueryExecutor):
        target = executor.execute(SearchQuery(text="rate limit")).results[0]

        at = executor.execute(SearchQuery(from_date=target.timestamp, to_date=target.timestamp))
        assert messages(at) == ["error: rate limit hit"]

    def test_window(self, executor: QueryExecutor, now: datetime):
        results = executor.execute(
            SearchQuery(from_date=now - timedelta(days=2, hours=1), to_date=now - timedelta(hours=12))
        )
        assert sorted(messages(results)) == sorted(
            [
                "fix the login error please",
                "Looking at the auth module",
                "Window opened",
                "Slow reply from server",
                "Refactor the parser",
                "I will start with the tokenizer",
            ]
        )


class TestContext:
    def test_lines_around_match(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text="Window opened", context=1))
        result = results.results[0]

        assert len(result.context_before) == 1
        assert result.context_before[0].endswith("Extension host error: connection refused")
        assert len(result.context_after) == 1
        assert result.context_after[0].endswith("Slow reply from server")

    def test_first_line_has_no_before(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(text="connection refused", context=2))
        result = results.results[0]
        assert result.context_before == []
        assert len(result.context_after) == 2

    def test_missing_source_gives_empty_context(self, built_index: IndexBuilder, sample_home: Path):
        (sample_home / ".cursor" / "logs" / "main.log").unlink()
        executor = QueryExecutor(built_index.index_dir)

        results = executor.execute(SearchQuery(text="Window opened", context=3))

        assert results.results[0].context_before == []
        assert results.results[0].context_after == []

    def test_json_array_sources_have_no_context(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(tool="cline", context=2))

        assert results.total_found == 5
        assert all(r.context_before == [] and r.context_after == [] for r in results.results)

    def test_jsonl_sources_have_context(self, executor: QueryExecutor):
        results = executor.execute(SearchQuery(tool="claude", context=1))
        assert any(r.context_before or r.context_after for r in results.results)

    def test_no_context_by_default(self, executor: QueryExecutor):
        result = executor.execute(SearchQuery(text="Window opened")).results[0]
        assert result.context_before == []
        assert result.context_after == []
