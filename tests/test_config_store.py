from pathlib import Path

import pytest

from birthday_crm.config_store import ensure_default_config, load_config, save_config_atomic
from birthday_crm.models import AppConfig


def test_roundtrip_config(tmp_path: Path) -> None:
    path = tmp_path / "crm.toml"
    config = AppConfig(timezone="Europe/Berlin", leap_day_rule="mar1", page_size=25)

    save_config_atomic(path, config)
    loaded = load_config(path)

    assert loaded == config


def test_default_config_written_once(tmp_path: Path) -> None:
    path = tmp_path / "config" / "crm.toml"

    ensure_default_config(path)
    loaded = load_config(path)

    assert loaded == AppConfig(timezone="America/Los_Angeles", leap_day_rule="feb28", page_size=10)

    path.write_text('timezone = "UTC"\n', encoding="utf-8")
    ensure_default_config(path)
    assert load_config(path).timezone == "UTC"


def test_missing_keys_use_defaults(tmp_path: Path) -> None:
    path = tmp_path / "crm.toml"
    path.write_text('timezone = "UTC"\n', encoding="utf-8")

    loaded = load_config(path)

    assert loaded.leap_day_rule == "feb28"
    assert loaded.page_size == 10


def test_leap_day_rule_is_normalized(tmp_path: Path) -> None:
    path = tmp_path / "crm.toml"
    path.write_text('timezone = "UTC"\nleap_day_rule = " MAR1 "\n', encoding="utf-8")

    assert load_config(path).leap_day_rule == "mar1"


@pytest.mark.parametrize(
    "body",
    [
        'timezone = ""\n',
        'timezone = "Mars/Olympus_Mons"\n',
        'timezone = "UTC"\nleap_day_rule = "nearest"\n',
        'timezone = "UTC"\npage_size = 0\n',
        'timezone = "UTC"\npage_size = "ten"\n',
    ],
)
def test_invalid_config_rejected(tmp_path: Path, body: str) -> None:
    path = tmp_path / "crm.toml"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.toml")
