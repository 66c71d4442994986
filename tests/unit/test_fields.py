"""
Unit tests for the issue payload field accessor
"""

from datetime import date, datetime, timezone
from ingestion.transformers.fields import (
    FieldAccessor,
    align_to,
    get_field,
    get_name,
    parse_datetime,
)


class TestGetField:

    def test_flat_key_wins(self):
        issue = {"status": "Open", "fields": {"status": "Closed"}}
        assert get_field(issue, "status") == "Open"

    def test_falls_back_to_nested_fields(self):
        issue = {"fields": {"summary": "Broken printer"}}
        assert get_field(issue, "summary") == "Broken printer"

    def test_unwraps_value_objects(self):
        issue = {"fields": {"customfield_1": {"value": "Gold"}}}
        assert get_field(issue, "customfield_1") == "Gold"

    def test_missing_field_is_none(self):
        assert get_field({"fields": {}}, "summary") is None
        assert get_field({}, "summary") is None
        assert get_field(None, "summary") is None


def test_get_name():
    assert get_name("Done") == "Done"
    assert get_name({"name": "High"}) == "High"
    assert get_name({"id": 3}) is None
    assert get_name(None) is None


class TestParseDatetime:

    def test_iso_with_z(self):
        parsed = parse_datetime("2024-01-15T10:00:00Z")
        assert parsed == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_compact_offset(self):
        parsed = parse_datetime("2024-01-15T10:00:00.000+0000")
        assert parsed == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_date_only(self):
        assert parse_datetime("2024-01-15") == datetime(2024, 1, 15)
        assert parse_datetime(date(2024, 1, 15)) == datetime(2024, 1, 15)

    def test_invalid_values(self):
        assert parse_datetime("not a date") is None
        assert parse_datetime("") is None
        assert parse_datetime(None) is None
        assert parse_datetime(True) is None


def test_align_to_naive_reference():
    aware = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
    aligned = align_to(aware, datetime(2024, 1, 15))
    assert aligned.tzinfo is None


def test_field_accessor():
    issue = FieldAccessor({
        "key": "NT-1",
        "fields": {"status": {"name": "Open"}, "created": "2024-01-15T10:00:00Z"},
    })

    assert issue.get("key") == "NT-1"
    assert issue.get("missing", "fallback") == "fallback"
    assert issue.name("status") == "Open"
    assert issue.datetime("created").year == 2024
    assert FieldAccessor(None).get("anything") is None
