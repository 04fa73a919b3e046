from pathlib import Path

import pytest

from birthday_crm.settings import load_settings


def test_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", " token ")
    monkeypatch.setenv("TELEGRAM_ALLOWED_USER_ID", "111")
    monkeypatch.setenv("TELEGRAM_ALLOWED_CHAT_ID", "-222")
    monkeypatch.setenv("CONTACT_STORE_PATH", str(tmp_path / "people.json"))
    monkeypatch.delenv("CRM_CONFIG_PATH", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert settings.telegram_bot_token == "token"
    assert settings.telegram_allowed_user_id == 111
    assert settings.telegram_allowed_chat_id == -222
    assert settings.contact_store_path == tmp_path / "people.json"
    assert settings.crm_config_path == Path.cwd() / "config" / "crm.toml"
    assert settings.log_level == "DEBUG"


def test_missing_token_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

    with pytest.raises(ValueError, match="TELEGRAM_BOT_TOKEN"):
        load_settings()


def test_non_numeric_user_id_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv("TELEGRAM_ALLOWED_USER_ID", "owner")
    monkeypatch.setenv("TELEGRAM_ALLOWED_CHAT_ID", "222")

    with pytest.raises(ValueError, match="TELEGRAM_ALLOWED_USER_ID"):
        load_settings()
