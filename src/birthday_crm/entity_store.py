from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import uuid
from dataclasses import asdict, replace
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Protocol

from birthday_crm.date_logic import parse_iso_birthday
from birthday_crm.models import CONTACT_FIELD_NAMES, Contact, ContactFields

LOGGER = logging.getLogger(__name__)

STORE_VERSION = 1

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


class StoreError(RuntimeError):
    pass


class ContactNotFoundError(StoreError):
    pass


class InvalidContactError(StoreError, ValueError):
    pass


class ContactStore(Protocol):
    """List/create/update/delete access to contacts, independent of transport."""

    def list_contacts(self) -> list[Contact]:
        ...

    def create_contact(self, fields: ContactFields) -> Contact:
        ...

    def update_contact(self, contact_id: str, changes: Mapping[str, Any]) -> Contact:
        ...

    def delete_contact(self, contact_id: str) -> None:
        ...


def is_valid_email(value: str) -> bool:
    return _EMAIL_RE.fullmatch(value.strip()) is not None


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def validate_contact(contact: Contact) -> Contact:
    if not isinstance(contact.first_name, str) or not isinstance(contact.last_name, str):
        raise InvalidContactError("first and last name must be text")

    first_name = contact.first_name.strip()
    last_name = contact.last_name.strip()
    if not first_name:
        raise InvalidContactError("first name must not be empty")
    if not last_name:
        raise InvalidContactError("last name must not be empty")

    email = _clean_optional(contact.email)
    if email is not None and not is_valid_email(email):
        raise InvalidContactError(f"Invalid email address: {email}")

    birthday = contact.birthday
    if birthday is not None and not isinstance(birthday, date):
        birthday = parse_iso_birthday(birthday)
        if birthday is None:
            raise InvalidContactError(f"Invalid birthday: {contact.birthday!r}")

    return replace(
        contact,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=_clean_optional(contact.phone),
        birthday=birthday,
        notes=_clean_optional(contact.notes),
    )


def contact_to_record(contact: Contact) -> dict[str, Any]:
    return {
        "_id": contact.contact_id,
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "birthday": contact.birthday.isoformat() if contact.birthday is not None else None,
        "notes": contact.notes,
    }


def contact_from_record(row: Mapping[str, Any]) -> Contact:
    contact_id = str(row.get("_id", ""))
    raw_birthday = row.get("birthday")
    birthday = parse_iso_birthday(raw_birthday)
    if raw_birthday and birthday is None:
        LOGGER.warning("Ignoring unreadable birthday %r for contact %s", raw_birthday, contact_id)

    return Contact(
        contact_id=contact_id,
        first_name=str(row.get("firstName", "")),
        last_name=str(row.get("lastName", "")),
        email=_clean_optional(row.get("email")),
        phone=_clean_optional(row.get("phone")),
        birthday=birthday,
        notes=_clean_optional(row.get("notes")),
    )


class JsonContactStore:
    """Contact store backed by a single JSON document on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def list_contacts(self) -> list[Contact]:
        return self._load()

    def create_contact(self, fields: ContactFields) -> Contact:
        contacts = self._load()
        contact = validate_contact(Contact(contact_id=str(uuid.uuid4()), **asdict(fields)))
        self._save([*contacts, contact])
        LOGGER.info("Created contact %s", contact.contact_id)
        return contact

    def update_contact(self, contact_id: str, changes: Mapping[str, Any]) -> Contact:
        unknown = sorted(set(changes) - set(CONTACT_FIELD_NAMES))
        if unknown:
            raise InvalidContactError(f"Unknown contact fields: {', '.join(unknown)}")

        contacts = self._load()
        index = self._index_of(contacts, contact_id)
        updated = validate_contact(replace(contacts[index], **dict(changes)))
        contacts[index] = updated
        self._save(contacts)
        LOGGER.info("Updated contact %s", contact_id)
        return updated

    def delete_contact(self, contact_id: str) -> None:
        contacts = self._load()
        index = self._index_of(contacts, contact_id)
        del contacts[index]
        self._save(contacts)
        LOGGER.info("Deleted contact %s", contact_id)

    @staticmethod
    def _index_of(contacts: list[Contact], contact_id: str) -> int:
        for index, contact in enumerate(contacts):
            if contact.contact_id == contact_id:
                return index
        raise ContactNotFoundError(f"No contact with id {contact_id}")

    def _load(self) -> list[Contact]:
        if not self._path.exists():
            return []

        try:
            with self._path.open("r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read contacts from {self._path}") from exc

        rows = data.get("contacts", []) if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise StoreError(f"Malformed contacts file: {self._path}")

        return [contact_from_record(row) for row in rows if isinstance(row, dict)]

    def _save(self, contacts: list[Contact]) -> None:
        payload = {
            "version": STORE_VERSION,
            "contacts": [contact_to_record(contact) for contact in contacts],
        }

        temp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                delete=False,
            ) as temp_file:
                temp_name = temp_file.name
                json.dump(payload, temp_file, indent=2)
                temp_file.write("\n")

            os.replace(temp_name, self._path)
        except (OSError, TypeError, ValueError) as exc:
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise StoreError(f"Could not write contacts to {self._path}") from exc
