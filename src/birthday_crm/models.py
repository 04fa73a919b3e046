from __future__ import annotations

from dataclasses import dataclass
from datetime import date


UPCOMING_HORIZON_DAYS = 30
DEFAULT_PAGE_SIZE = 10

CONTACT_FIELD_NAMES = ("first_name", "last_name", "email", "phone", "birthday", "notes")


@dataclass(frozen=True)
class ContactFields:
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    birthday: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Contact:
    contact_id: str
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    birthday: date | None = None
    notes: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class AppConfig:
    timezone: str
    leap_day_rule: str
    page_size: int
