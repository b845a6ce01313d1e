"""
Unit tests for the decode-with-default helpers.
"""

import math

from splunk_mcp.shared.decoding import (
    as_bool,
    as_counter_str,
    as_list,
    as_mapping,
    as_number,
    as_optional_str,
    as_str,
    as_str_list,
    entries,
    entry_content,
    is_absent,
)


class TestScalarOrArray:
    """Roles and capabilities arrive as a list, a bare string or not at all."""

    def test_sequence_is_returned_unchanged(self):
        assert as_str_list(["user", "admin", "power"]) == ["user", "admin", "power"]

    def test_lone_scalar_becomes_single_item(self):
        assert as_str_list("admin") == ["admin"]

    def test_absent_becomes_empty(self):
        assert as_str_list(None) == []
        assert as_str_list("") == []

    def test_tuple_is_accepted_as_sequence(self):
        assert as_str_list(("a", "b")) == ["a", "b"]


class TestStrings:
    def test_absent_values_use_default(self):
        assert is_absent(None)
        assert is_absent("")
        assert not is_absent(0)
        assert as_str(None, "N/A") == "N/A"
        assert as_str("", "N/A") == "N/A"

    def test_non_strings_are_rendered(self):
        assert as_str(42) == "42"
        assert as_str(12.0) == "12"
        assert as_str(1.5) == "1.5"
        assert as_str(True) == "true"

    def test_optional_str(self):
        assert as_optional_str(None) is None
        assert as_optional_str("") is None
        assert as_optional_str("alice") == "alice"

    def test_counter_str(self):
        """Counters stay decimal strings; zero and missing both read as "0"."""
        assert as_counter_str(None) == "0"
        assert as_counter_str(0) == "0"
        assert as_counter_str(1234) == "1234"
        assert as_counter_str("98765") == "98765"


class TestNumbers:
    def test_numbers_pass_through(self):
        assert as_number(3) == 3
        assert as_number(2.5) == 2.5

    def test_numeric_strings_are_parsed(self):
        assert as_number("17") == 17
        assert as_number("0.25") == 0.25

    def test_garbage_uses_default(self):
        assert as_number("abc") == 0
        assert as_number(None, 7) == 7
        assert as_number(True) == 0
        assert as_number({"n": 1}) == 0

    def test_non_finite_uses_default(self):
        assert as_number(math.inf) == 0
        assert as_number("nan") == 0


class TestBooleansAndContainers:
    def test_bool(self):
        assert as_bool(True) is True
        assert as_bool("true") is True
        assert as_bool("False") is False
        assert as_bool(None) is False
        assert as_bool("yes", default=True) is True

    def test_mapping_and_list(self):
        assert as_mapping({"a": 1}) == {"a": 1}
        assert as_mapping(["a"]) == {}
        assert as_list([1, 2]) == [1, 2]
        assert as_list("x") == []
        assert as_list(None) == []

    def test_entries_and_content(self):
        payload = {"entry": [{"name": "main", "content": {"x": 1}}]}
        items = entries(payload)
        assert items == [{"name": "main", "content": {"x": 1}}]
        assert entry_content(items[0]) == {"x": 1}
        assert entries({"entry": None}) == []
        assert entries("not json object") == []
        assert entry_content({"name": "no-content"}) == {}
