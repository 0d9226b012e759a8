"""
Unit tests for date bounds and result ordering.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from mcp_memory_graph.errors import InvalidArgument
from mcp_memory_graph.search.filters import DateFilter, apply_order, order_key_values, parse_date_bound

NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)


class TestParseDateBound:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("12h", "2025-03-31T00:00:00+00:00"),
            ("7d", "2025-03-24T12:00:00+00:00"),
            ("1m", "2025-02-28T12:00:00+00:00"),
            ("1y", "2024-03-31T12:00:00+00:00"),
            ("7D", "2025-03-24T12:00:00+00:00"),
        ],
    )
    def test_relative_offsets(self, value, expected):
        assert parse_date_bound(value, now=NOW) == expected

    def test_date_only_is_midnight_utc(self):
        assert parse_date_bound("2025-01-01") == "2025-01-01T00:00:00+00:00"

    def test_offset_converted_to_utc(self):
        assert parse_date_bound("2025-01-01T10:00:00+02:00") == "2025-01-01T08:00:00+00:00"

    def test_zulu_suffix(self):
        assert parse_date_bound("2025-01-01T10:00:00Z") == "2025-01-01T10:00:00+00:00"

    @pytest.mark.parametrize("value", ["yesterday", "7 days", "2025-13-01", "d7", ""])
    def test_invalid(self, value):
        with pytest.raises(InvalidArgument, match="Invalid date"):
            parse_date_bound(value, now=NOW)


class TestDateFilter:
    def test_no_bounds_is_none(self):
        assert DateFilter.parse() is None
        assert DateFilter.parse(created_after="", accessed_since=None) is None

    def test_clause_and_params_cover_set_bounds(self):
        date_filter = DateFilter.parse(created_after="2025-01-01", modified_since="2025-02-01")
        assert date_filter.clause("c") == (
            " AND c.createdAt >= $created_after AND c.modifiedAt >= $modified_since"
        )
        assert date_filter.params() == {
            "created_after": "2025-01-01T00:00:00+00:00",
            "modified_since": "2025-02-01T00:00:00+00:00",
        }

    def test_accessed_bound_uses_last_accessed(self):
        assert DateFilter.parse(accessed_since="1d").clause() == " AND m.lastAccessed >= $accessed_since"

    def test_error_names_the_field(self):
        with pytest.raises(InvalidArgument, match="Invalid created_before"):
            DateFilter.parse(created_before="soon")

    @pytest.mark.parametrize("after,before", [("2025-02-01", "2025-01-01"), ("2025-01-01", "2025-01-01")])
    def test_empty_created_window_rejected(self, after, before):
        with pytest.raises(InvalidArgument, match="earlier than"):
            DateFilter.parse(created_after=after, created_before=before)


class TestOrdering:
    @pytest.fixture
    def rows(self):
        return [
            {"id": "a", "createdAt": "2025-01-02", "modifiedAt": "2025-03-01", "lastAccessed": "2025-06-01",
             "previousAccess": "2025-01-05"},
            {"id": "b", "createdAt": "2025-01-03", "modifiedAt": "2025-02-01", "lastAccessed": "2025-06-01",
             "previousAccess": None},
            {"id": "c", "createdAt": "2025-01-02", "modifiedAt": "2025-01-01", "lastAccessed": "2025-06-01",
             "previousAccess": "2025-04-01"},
        ]

    @pytest.fixture
    def items(self):
        return [SimpleNamespace(id=i) for i in ["c", "a", "b"]]

    def test_relevance_keeps_order(self, rows, items):
        assert apply_order(items, "relevance", order_key_values(rows, "relevance")) is items

    def test_created_newest_first_ties_by_id(self, rows, items):
        ordered = apply_order(items, "created", order_key_values(rows, "created"))
        assert [i.id for i in ordered] == ["b", "a", "c"]

    def test_modified(self, rows, items):
        ordered = apply_order(items, "modified", order_key_values(rows, "modified"))
        assert [i.id for i in ordered] == ["a", "b", "c"]

    def test_accessed_prefers_previous_access(self, rows, items):
        values = order_key_values(rows, "accessed")
        assert values == {"a": "2025-01-05", "b": "2025-06-01", "c": "2025-04-01"}
        assert [i.id for i in apply_order(items, "accessed", values)] == ["b", "c", "a"]
