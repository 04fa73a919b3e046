from __future__ import annotations

import logging
from pathlib import Path

from telegram.ext import Application

from birthday_crm.bot_handlers import HandlerDependencies, build_handlers
from birthday_crm.config_store import ensure_default_config, load_config
from birthday_crm.entity_store import JsonContactStore
from birthday_crm.settings import load_settings

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every Bot API poll at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    _ensure_parent(settings.crm_config_path)
    _ensure_parent(settings.contact_store_path)

    ensure_default_config(settings.crm_config_path)
    config = load_config(settings.crm_config_path)
    LOGGER.info(
        "Starting CRM bot (timezone=%s, leap_day_rule=%s, store=%s)",
        config.timezone,
        config.leap_day_rule,
        settings.contact_store_path,
    )

    application = Application.builder().token(settings.telegram_bot_token).build()
    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        store=JsonContactStore(settings.contact_store_path),
    )

    for handler in build_handlers():
        application.add_handler(handler)

    application.run_polling()


if __name__ == "__main__":
    main()
