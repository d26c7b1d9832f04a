"""
Tests for local-date helpers and recurring pattern parsing.
"""
import pytest
from datetime import date, datetime, timedelta, timezone

from core.exceptions import InvalidInputError
from services.timeutils import (
    ALL_WEEKDAYS,
    ensure_utc,
    iter_days,
    local_date,
    local_day_start_utc,
    local_today_start_utc,
    month_bounds,
    parse_local_date,
    parse_month,
    parse_recurring_pattern,
    validate_tz_offset,
    weekday_name,
)


class TestRecurringPattern:
    def test_daily_variants(self):
        for pattern in ("Daily", "daily", " every day ", "Everyday"):
            assert parse_recurring_pattern(pattern) == ALL_WEEKDAYS

    def test_weekday_list_is_case_insensitive(self):
        assert parse_recurring_pattern("Mon,wed, FRI") == frozenset({0, 2, 4})

    def test_full_names_and_aliases(self):
        assert parse_recurring_pattern("Tuesday,Thurs,sun") == frozenset({1, 3, 6})

    def test_unknown_tokens_are_ignored(self):
        assert parse_recurring_pattern("Mon,Funday") == frozenset({0})

    def test_empty_and_meaningless(self):
        assert parse_recurring_pattern("") == frozenset()
        assert parse_recurring_pattern(None) == frozenset()
        assert parse_recurring_pattern("whenever") == frozenset()

    def test_weekday_name_is_locale_independent(self):
        assert weekday_name(date(2024, 1, 1)) == "Mon"
        assert weekday_name(date(2024, 1, 7)) == "Sun"


class TestLocalDates:
    def test_local_date_shifts_by_offset(self):
        instant = datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
        assert local_date(instant, 0) == date(2024, 1, 1)
        assert local_date(instant, 60) == date(2024, 1, 2)
        assert local_date(datetime(2024, 1, 1, 3, tzinfo=timezone.utc), -300) == date(2023, 12, 31)

    def test_naive_values_are_treated_as_utc(self):
        assert ensure_utc(datetime(2024, 1, 1, 12)) == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert ensure_utc(None) is None

    def test_aware_values_are_converted(self):
        plus_two = timezone(timedelta(hours=2))
        assert ensure_utc(datetime(2024, 1, 1, 12, tzinfo=plus_two)).hour == 10

    def test_day_start(self):
        assert local_day_start_utc(date(2024, 1, 2), 120) == datetime(2024, 1, 1, 22, tzinfo=timezone.utc)
        assert local_today_start_utc(datetime(2024, 1, 1, 23, tzinfo=timezone.utc), 120) == datetime(
            2024, 1, 1, 22, tzinfo=timezone.utc
        )

    def test_iter_days_is_inclusive(self):
        assert list(iter_days(date(2024, 2, 28), date(2024, 3, 1))) == [
            date(2024, 2, 28),
            date(2024, 2, 29),
            date(2024, 3, 1),
        ]
        assert list(iter_days(date(2024, 3, 2), date(2024, 3, 1))) == []

    @pytest.mark.parametrize("offset", [-721, 841, 1.5, True, "60"])
    def test_invalid_offsets(self, offset):
        with pytest.raises(InvalidInputError):
            validate_tz_offset(offset)

    def test_parse_local_date(self):
        assert parse_local_date("2024-02-29") == date(2024, 2, 29)
        with pytest.raises(InvalidInputError) as exc_info:
            parse_local_date("2023-02-29", field="before")
        assert exc_info.value.error_code == "INVALID_INPUT_BEFORE"


class TestMonths:
    def test_parse_month(self):
        assert parse_month("2024-02") == date(2024, 2, 1)

    @pytest.mark.parametrize("value", ["2024-2", "2024-00", "2024-13", "24-02", "2024-02-01", "2024/02", None])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidInputError):
            parse_month(value)

    def test_month_bounds(self):
        assert month_bounds(date(2024, 2, 1)) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds(date(2023, 12, 1)) == (date(2023, 12, 1), date(2023, 12, 31))
