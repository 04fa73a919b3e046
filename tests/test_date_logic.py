from datetime import date

import pytest

from birthday_crm.date_logic import (
    InvalidBirthdayError,
    age_on,
    birthday_date_for_year,
    days_until_birthday,
    format_birthday,
    format_month_day,
    next_birthday,
    parse_birthday_text,
    parse_iso_birthday,
    turning_age,
)


def test_days_until_future_date_same_year() -> None:
    today = date(2024, 6, 1)

    assert next_birthday(date(1990, 6, 15), today, "feb28") == date(2024, 6, 15)
    assert days_until_birthday(date(1990, 6, 15), today, "feb28") == 14


def test_days_until_next_year_after_passed() -> None:
    today = date(2024, 6, 1)

    assert next_birthday(date(1990, 5, 20), today, "feb28") == date(2025, 5, 20)
    assert days_until_birthday(date(1990, 5, 20), today, "feb28") == (date(2025, 5, 20) - today).days


def test_birthday_today_is_zero_days_away() -> None:
    today = date(2024, 6, 1)

    assert next_birthday(date(1990, 6, 1), today, "feb28") == today
    assert days_until_birthday(date(1990, 6, 1), today, "feb28") == 0


def test_birthday_yesterday_wraps_to_next_year() -> None:
    today = date(2024, 6, 1)

    assert days_until_birthday(date(1990, 5, 31), today, "feb28") == 364


def test_feb_29_maps_to_feb_28_on_non_leap_year() -> None:
    today = date(2025, 2, 27)

    assert next_birthday(date(2000, 2, 29), today, "feb28") == date(2025, 2, 28)
    assert days_until_birthday(date(2000, 2, 29), today, "feb28") == 1


def test_feb_29_maps_to_mar_1_when_configured() -> None:
    today = date(2025, 2, 27)

    assert next_birthday(date(2000, 2, 29), today, "mar1") == date(2025, 3, 1)
    assert days_until_birthday(date(2000, 2, 29), today, "mar1") == 2


def test_feb_29_keeps_date_on_leap_year() -> None:
    today = date(2028, 2, 27)

    assert next_birthday(date(2000, 2, 29), today, "feb28") == date(2028, 2, 29)


def test_unknown_leap_day_rule_rejected() -> None:
    with pytest.raises(InvalidBirthdayError):
        birthday_date_for_year(date(2000, 2, 29), 2025, "nearest")


def test_age_counts_completed_years_only() -> None:
    assert age_on(date(1990, 6, 15), date(2024, 6, 14)) == 33
    assert age_on(date(1990, 6, 15), date(2024, 6, 15)) == 34
    assert age_on(date(2000, 2, 29), date(2025, 2, 28)) == 24
    assert age_on(date(2000, 2, 29), date(2025, 3, 1)) == 25


def test_turning_age_uses_occurrence_year() -> None:
    assert turning_age(date(1990, 6, 15), date(2024, 6, 15)) == 34


def test_parse_iso_birthday_accepts_valid_dates() -> None:
    assert parse_iso_birthday("1990-03-14") == date(1990, 3, 14)
    assert parse_iso_birthday(" 2000-02-29 ") == date(2000, 2, 29)
    assert parse_iso_birthday(date(1990, 3, 14)) == date(1990, 3, 14)


@pytest.mark.parametrize("value", [None, "", "03/14/1990", "1990-3-14", "2023-02-29", "1990-13-01", 19900314])
def test_parse_iso_birthday_returns_none_for_unusable_values(value: object) -> None:
    assert parse_iso_birthday(value) is None


def test_parse_birthday_text_full_date() -> None:
    assert parse_birthday_text("1990-03-14", date(2024, 6, 1)) == date(1990, 3, 14)


def test_parse_birthday_text_rejects_short_date() -> None:
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        parse_birthday_text("03-14", date(2024, 6, 1))


def test_parse_birthday_text_invalid_real_date() -> None:
    with pytest.raises(ValueError):
        parse_birthday_text("2023-02-29", date(2024, 6, 1))


def test_parse_birthday_text_rejects_future_and_ancient_dates() -> None:
    with pytest.raises(ValueError, match="future"):
        parse_birthday_text("2024-06-02", date(2024, 6, 1))
    with pytest.raises(ValueError, match="1900"):
        parse_birthday_text("1899-12-31", date(2024, 6, 1))


def test_format_birthday_is_locale_independent() -> None:
    assert format_birthday(date(1990, 3, 4)) == "Mar 04, 1990"
    assert format_month_day(date(2024, 12, 25)) == "Dec 25"
