from __future__ import annotations

import re
from datetime import date

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

MIN_BIRTH_YEAR = 1900

_ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


class InvalidBirthdayError(ValueError):
    pass


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def birthday_date_for_year(birthday: date, year: int, leap_day_rule: str) -> date:
    """Re-anchor the birth month/day onto ``year``.

    Feb 29 births land on Feb 28 or Mar 1 in non-leap years, depending on
    ``leap_day_rule``.
    """
    if birthday.month == 2 and birthday.day == 29 and not is_leap_year(year):
        if leap_day_rule == "feb28":
            return date(year, 2, 28)
        if leap_day_rule == "mar1":
            return date(year, 3, 1)
        raise InvalidBirthdayError(f"Unsupported leap day rule: {leap_day_rule}")
    return date(year, birthday.month, birthday.day)


def next_birthday(birthday: date, today: date, leap_day_rule: str) -> date:
    this_year = birthday_date_for_year(birthday, today.year, leap_day_rule)
    if this_year >= today:
        return this_year
    return birthday_date_for_year(birthday, today.year + 1, leap_day_rule)


def days_until_birthday(birthday: date, today: date, leap_day_rule: str) -> int:
    nxt = next_birthday(birthday, today, leap_day_rule)
    return (nxt - today).days


def turning_age(birthday: date, birthday_occurrence: date) -> int:
    return birthday_occurrence.year - birthday.year


def age_on(birthday: date, today: date) -> int:
    years = today.year - birthday.year
    if (today.month, today.day) < (birthday.month, birthday.day):
        years -= 1
    return years


def parse_iso_birthday(value: object) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    match = _ISO_DATE_RE.fullmatch(value.strip())
    if not match:
        return None

    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def parse_birthday_text(raw_text: str, today: date) -> date:
    value = raw_text.strip()
    if not _ISO_DATE_RE.fullmatch(value):
        raise InvalidBirthdayError("Birthday must use YYYY-MM-DD")

    parsed = parse_iso_birthday(value)
    if parsed is None:
        raise InvalidBirthdayError(f"{value} is not a real calendar date")
    if parsed.year < MIN_BIRTH_YEAR:
        raise InvalidBirthdayError(f"Birth year must be {MIN_BIRTH_YEAR} or later")
    if parsed > today:
        raise InvalidBirthdayError("Birthday cannot be in the future")
    return parsed


def format_month_day(value: date) -> str:
    return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.day:02d}"


def format_birthday(value: date) -> str:
    return f"{format_month_day(value)}, {value.year:04d}"
