from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from birthday_crm.date_logic import days_until_birthday, next_birthday, turning_age
from birthday_crm.models import UPCOMING_HORIZON_DAYS, Contact


@dataclass(frozen=True)
class UpcomingBirthday:
    contact: Contact
    next_date: date
    days_until: int
    turning_age: int


def upcoming_birthdays(
    contacts: Iterable[Contact],
    today: date,
    *,
    horizon_days: int = UPCOMING_HORIZON_DAYS,
    leap_day_rule: str = "feb28",
) -> list[UpcomingBirthday]:
    """Contacts whose next birthday falls within ``horizon_days`` of ``today``.

    Contacts without a birthday are skipped. The result is ordered by days
    until the birthday, then by name.
    """
    upcoming: list[UpcomingBirthday] = []

    for contact in contacts:
        if contact.birthday is None:
            continue

        days_until = days_until_birthday(contact.birthday, today, leap_day_rule)
        if days_until > horizon_days:
            continue

        next_date = next_birthday(contact.birthday, today, leap_day_rule)
        upcoming.append(
            UpcomingBirthday(
                contact=contact,
                next_date=next_date,
                days_until=days_until,
                turning_age=turning_age(contact.birthday, next_date),
            )
        )

    upcoming.sort(key=lambda item: (item.days_until, item.contact.full_name.lower()))
    return upcoming


def days_until_label(days_until: int) -> str:
    if days_until == 0:
        return "Today!"
    return f"{days_until} days"
