"""Tests for business hours parsing and the hours service."""

import pytest
from fastapi import HTTPException

from northstar.domain.scheduling.hours import (
    DEFAULT_BUSINESS_HOURS,
    parse_hours_span,
    parse_time_to_minutes,
    parsed_hours_table,
)
from northstar.domain.scheduling.schemas import BusinessHoursUpdate
from northstar.domain.scheduling.service import BusinessHoursService


class TestParseTime:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("9am", 540),
            ("9 am", 540),
            ("5:30pm", 1050),
            ("5:30 PM", 1050),
            ("12am", 0),
            ("12pm", 720),
            ("12:15am", 15),
            ("09:00", 540),
            ("17", 1020),
            ("23:59", 1439),
        ],
    )
    def test_valid_times(self, value, expected):
        assert parse_time_to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "9:75", "noon", "", "13pm", "9:5am", "9.30am"])
    def test_malformed_times(self, value):
        assert parse_time_to_minutes(value) is None


class TestParseSpan:
    def test_twelve_hour_span(self):
        assert parse_hours_span("9am - 5pm") == (540, 1020)

    def test_twenty_four_hour_span(self):
        assert parse_hours_span("09:00-17:30") == (540, 1050)

    def test_mixed_forms(self):
        assert parse_hours_span("8:30am - 17") == (510, 1020)

    def test_extra_separator_is_malformed(self):
        assert parse_hours_span("9am - 12pm - 5pm") is None

    def test_single_time_is_malformed(self):
        assert parse_hours_span("9am") is None

    def test_bad_part_is_malformed(self):
        assert parse_hours_span("9am - late") is None

    def test_parsed_table_skips_unparseable_days(self):
        table = parsed_hours_table({"Monday": "9am - 5pm", "tuesday": "whenever"})
        assert table == {"monday": {"raw": "9am - 5pm", "startMinutes": 540, "endMinutes": 1020}}

    def test_defaults_all_parse(self):
        for span in DEFAULT_BUSINESS_HOURS.values():
            assert parse_hours_span(span) is not None


class TestBusinessHoursService:
    def test_defaults_when_table_is_empty(self, db):
        source, table = BusinessHoursService(db).get_hours_table()
        assert source == "default"
        assert table["thursday"] == "9am - 6pm"

    def test_public_hours_are_parsed(self, db):
        result = BusinessHoursService(db).get_public_hours()
        assert result["source"] == "default"
        assert result["hours"]["monday"]["startMinutes"] == 420
        assert result["hours"]["monday"]["endMinutes"] == 1020

    def test_update_day_stores_minutes(self, db):
        row = BusinessHoursService(db).update_day(
            "monday", BusinessHoursUpdate(open_time="9am", close_time="5:30pm")
        )
        assert row.display_format == "9am - 5:30pm"
        assert row.start_minutes == 540
        assert row.end_minutes == 1050
        assert row.is_closed is False

    def test_closed_day_ignores_times(self, db):
        service = BusinessHoursService(db)
        service.update_day("monday", BusinessHoursUpdate(open_time="9am", close_time="5pm"))
        row = service.update_day("sunday", BusinessHoursUpdate(open_time="bogus", close_time="", is_closed=True))

        assert row.is_closed is True
        source, table = service.get_hours_table()
        assert source == "database"
        assert "sunday" not in table
        assert table["monday"] == "9am - 5pm"

    def test_invalid_time_is_rejected(self, db):
        with pytest.raises(HTTPException) as exc:
            BusinessHoursService(db).update_day(
                "monday", BusinessHoursUpdate(open_time="9am", close_time="25:00")
            )
        assert exc.value.status_code == 400

    def test_close_before_open_is_rejected(self, db):
        with pytest.raises(HTTPException) as exc:
            BusinessHoursService(db).update_day("monday", BusinessHoursUpdate(open_time="5pm", close_time="9am"))
        assert exc.value.status_code == 400

    def test_missing_times_fail_validation(self):
        with pytest.raises(ValueError):
            BusinessHoursUpdate(open_time="9am")

    def test_initialize_defaults_once(self, db):
        service = BusinessHoursService(db)
        rows = service.initialize_defaults()
        assert len(rows) == 7

        source, table = service.get_hours_table()
        assert source == "database"
        assert table == DEFAULT_BUSINESS_HOURS

        with pytest.raises(HTTPException) as exc:
            service.initialize_defaults()
        assert exc.value.status_code == 400
