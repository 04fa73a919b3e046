from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from birthday_crm.models import DEFAULT_PAGE_SIZE, AppConfig

ALLOWED_LEAP_DAY_RULES = {"feb28", "mar1"}
MAX_PAGE_SIZE = 100


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _validate_timezone(value: str) -> str:
    timezone = value.strip()
    if not timezone:
        raise ValueError("timezone must not be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {timezone}") from exc
    return timezone


def validate_config(config: AppConfig) -> AppConfig:
    timezone = _validate_timezone(config.timezone)

    leap_day_rule = config.leap_day_rule.strip().lower()
    if leap_day_rule not in ALLOWED_LEAP_DAY_RULES:
        raise ValueError(f"leap_day_rule must be one of {sorted(ALLOWED_LEAP_DAY_RULES)}")

    if isinstance(config.page_size, bool) or not isinstance(config.page_size, int):
        raise ValueError("page_size must be an integer")
    if config.page_size < 1 or config.page_size > MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    return AppConfig(
        timezone=timezone,
        leap_day_rule=leap_day_rule,
        page_size=config.page_size,
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("rb") as file_obj:
        data = tomllib.load(file_obj)

    config = AppConfig(
        timezone=str(data.get("timezone", "")),
        leap_day_rule=str(data.get("leap_day_rule", "feb28")),
        page_size=data.get("page_size", DEFAULT_PAGE_SIZE),
    )
    return validate_config(config)


def render_config(config: AppConfig) -> str:
    validated = validate_config(config)

    lines: list[str] = [
        f'timezone = "{_toml_escape(validated.timezone)}"',
        "",
        "# Feb 29 birthdays fall on feb28 or mar1 in non-leap years.",
        f'leap_day_rule = "{validated.leap_day_rule}"',
        "",
        "# Contacts shown per /list page.",
        f"page_size = {validated.page_size}",
    ]

    return "\n".join(lines) + "\n"


def save_config_atomic(path: Path, config: AppConfig) -> None:
    rendered = render_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        temp_file.write(rendered)
        temp_name = temp_file.name

    os.replace(temp_name, path)


def ensure_default_config(path: Path) -> None:
    if path.exists():
        return

    default_config = AppConfig(
        timezone="America/Los_Angeles",
        leap_day_rule="feb28",
        page_size=DEFAULT_PAGE_SIZE,
    )
    save_config_atomic(path, default_config)
