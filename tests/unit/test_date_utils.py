"""Unit tests for date helpers"""

from datetime import date, datetime, timedelta, timezone

from invest_ledger.utils.date_utils import add_months, ensure_utc, generate_date_range, start_of_day


def test_generate_date_range_is_inclusive():
    days = generate_date_range(date(2025, 1, 30), date(2025, 2, 2))
    assert days == [date(2025, 1, 30), date(2025, 1, 31), date(2025, 2, 1), date(2025, 2, 2)]


def test_generate_date_range_single_day():
    assert generate_date_range(date(2025, 1, 1), date(2025, 1, 1)) == [date(2025, 1, 1)]


def test_add_months_clamps_to_month_end():
    jan_31 = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)
    assert add_months(jan_31, 1) == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert add_months(datetime(2024, 1, 31, tzinfo=timezone.utc), 1).day == 29


def test_add_months_rolls_year():
    assert add_months(datetime(2025, 12, 15, tzinfo=timezone.utc), 1) == datetime(2026, 1, 15, tzinfo=timezone.utc)


def test_ensure_utc():
    naive = datetime(2025, 1, 1, 8, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc

    plus_two = datetime(2025, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(plus_two) == datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


def test_start_of_day_is_utc_midnight():
    assert start_of_day(date(2025, 5, 6)) == datetime(2025, 5, 6, tzinfo=timezone.utc)
