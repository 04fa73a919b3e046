from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import (
    CallbackContext,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
)

from birthday_crm.birthdays import UpcomingBirthday, days_until_label, upcoming_birthdays
from birthday_crm.config_store import load_config
from birthday_crm.date_logic import age_on, format_birthday, format_month_day, parse_birthday_text
from birthday_crm.entity_store import ContactNotFoundError, ContactStore, StoreError, is_valid_email
from birthday_crm.models import UPCOMING_HORIZON_DAYS, AppConfig, Contact, ContactFields
from birthday_crm.settings import Settings

LOGGER = logging.getLogger(__name__)

(
    STATE_ADD_FIELD,
    STATE_ADD_CONFIRM,
    STATE_EDIT_SELECT,
    STATE_EDIT_FIELD,
    STATE_EDIT_CONFIRM,
    STATE_DELETE_SELECT,
    STATE_DELETE_CONFIRM,
) = range(7)

PENDING_ADD_KEY = "pending_add_contact"
PENDING_EDIT_KEY = "pending_edit_contact"
PENDING_DELETE_KEY = "pending_delete_contact"

LOAD_FAILED_TEXT = "Failed to load people"
SAVE_FAILED_TEXT = "Failed to save person"
DELETE_FAILED_TEXT = "Failed to delete person"
MISSING_CONTACT_TEXT = "That person no longer exists. Send /list to refresh."


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    store: ContactStore


@dataclass(frozen=True)
class FieldStep:
    key: str
    label: str
    prompt: str
    required: bool


FIELD_STEPS = (
    FieldStep("first_name", "First name", "Send the person's first name", True),
    FieldStep("last_name", "Last name", "Send the last name", True),
    FieldStep("email", "Email", "Send the email address", False),
    FieldStep("phone", "Phone", "Send the phone number", False),
    FieldStep("birthday", "Birthday", "Send the birthday as YYYY-MM-DD", True),
    FieldStep("notes", "Notes", "Send any notes about this person", False),
)

ADD_TOTAL_STEPS = len(FIELD_STEPS) + 1
EDIT_TOTAL_STEPS = len(FIELD_STEPS) + 2


@dataclass(frozen=True)
class ContactPage:
    contacts: list[Contact]
    page: int
    page_count: int
    total: int
    start_index: int


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def today_for(config: AppConfig) -> date:
    return datetime.now(ZoneInfo(config.timezone)).date()


def parse_field_value(step: FieldStep, raw_text: str, today: date) -> Any:
    value = raw_text.strip()

    if step.key == "birthday":
        return parse_birthday_text(value, today)

    if not value:
        if step.required:
            raise ValueError(f"{step.label} cannot be empty")
        return None

    if step.key == "email" and not is_valid_email(value):
        raise ValueError("Please enter a valid email")

    return value


def parse_page_arg(args: list[str] | None) -> int:
    if not args:
        return 1
    raw = args[0].strip()
    if not raw.isdigit():
        return 1
    return int(raw)


def paginate(contacts: list[Contact], page: int, page_size: int) -> ContactPage:
    total = len(contacts)
    page_count = max(1, -(-total // page_size))
    page = min(max(page, 1), page_count)
    start = (page - 1) * page_size
    return ContactPage(
        contacts=contacts[start : start + page_size],
        page=page,
        page_count=page_count,
        total=total,
        start_index=start + 1,
    )


def _is_skip(value: str) -> bool:
    return value.strip().lower() == "skip"


def _is_clear(value: str) -> bool:
    return value.strip().lower() == "clear"


def _parse_decision(value: str) -> bool | None:
    decision = value.strip().lower()
    if decision in {"yes", "y"}:
        return True
    if decision in {"no", "n"}:
        return False
    return None


def _format_field_value(key: str, value: Any) -> str:
    if value is None:
        return "-"
    if key == "birthday":
        return format_birthday(value)
    return str(value)


def _contact_values(contact: Contact) -> dict[str, Any]:
    return {step.key: getattr(contact, step.key) for step in FIELD_STEPS}


def _render_help() -> str:
    return (
        "Commands:\n"
        "/list [page] - Show people, upcoming birthdays, and ages\n"
        "/upcoming - Show birthdays in the next 30 days\n"
        "/add - Add a person\n"
        "/edit - Edit an existing person\n"
        "/delete - Delete a person\n"
        "/help - Show this help message\n"
        "/cancel - Cancel the active wizard\n\n"
        "Birthday format example: 1990-03-14\n"
        "Send skip to leave an optional field empty."
    )


def _render_upcoming_card(rows: list[UpcomingBirthday]) -> str:
    lines = [f"Upcoming Birthdays (Next {UPCOMING_HORIZON_DAYS} Days)"]
    for row in rows:
        lines.append(f"- {row.contact.full_name}")
        lines.append(f"   {format_month_day(row.next_date)} • {days_until_label(row.days_until)}")
    return "\n".join(lines)


def _render_contact_row(index: int, contact: Contact, today: date) -> list[str]:
    lines = [f"{index}. {contact.full_name}"]
    if contact.email:
        lines.append(f"   {contact.email}")

    details = [f"Phone {contact.phone or '-'}"]
    if contact.birthday is None:
        details.append("Birthday -")
    else:
        details.append(f"Birthday {format_birthday(contact.birthday)}")
        age = age_on(contact.birthday, today)
        if age > 0:
            details.append(f"Age: {age}")
    lines.append(f"   {' | '.join(details)}")
    return lines


def _render_list_message(upcoming: list[UpcomingBirthday], page: ContactPage, today: date) -> str:
    lines = ["CRM - People & Birthdays", ""]

    if upcoming:
        lines.append(_render_upcoming_card(upcoming))
        lines.append("")

    if page.total == 0:
        lines.append("No people yet. Send /add to create one.")
        return "\n".join(lines)

    for offset, contact in enumerate(page.contacts):
        lines.extend(_render_contact_row(page.start_index + offset, contact, today))
        lines.append("")

    lines.append(f"Page {page.page}/{page.page_count} • Total {page.total} people")
    return "\n".join(lines)


def _render_selection(contacts: list[Contact], heading: str) -> str:
    lines = [heading]
    for index, contact in enumerate(contacts, start=1):
        birthday = format_birthday(contact.birthday) if contact.birthday else "-"
        lines.append(f"{index}. {contact.full_name} | {birthday}")
    return "\n".join(lines)


def _add_prompt(step_index: int) -> str:
    step = FIELD_STEPS[step_index]
    suffix = ", or skip to leave it empty." if not step.required else "."
    return f"Step {step_index + 1}/{ADD_TOTAL_STEPS}: {step.prompt}{suffix}"


def _edit_prompt(step_index: int, values: dict[str, Any]) -> str:
    step = FIELD_STEPS[step_index]
    current = _format_field_value(step.key, values.get(step.key))
    prompt = f"Step {step_index + 2}/{EDIT_TOTAL_STEPS}: {step.prompt}, or skip to keep {current}."
    if not step.required:
        prompt += " Send clear to remove it."
    return prompt


def _render_add_summary(values: dict[str, Any]) -> str:
    lines = [f"Step {ADD_TOTAL_STEPS}/{ADD_TOTAL_STEPS}: Confirm this person:"]
    for step in FIELD_STEPS:
        lines.append(f"{step.label}: {_format_field_value(step.key, values.get(step.key))}")
    lines.append("")
    lines.append("Reply with yes to save, or no to cancel.")
    return "\n".join(lines)


def _render_edit_summary(pending: dict[str, Any]) -> str:
    original = pending["original"]
    values = pending["values"]
    lines = [f"Step {EDIT_TOTAL_STEPS}/{EDIT_TOTAL_STEPS}: Confirm these edits:"]
    for step in FIELD_STEPS:
        before = _format_field_value(step.key, original.get(step.key))
        after = _format_field_value(step.key, values.get(step.key))
        lines.append(f"{step.label}: {before} -> {after}")
    lines.append("")
    lines.append("Reply with yes to save, or no to cancel.")
    return "\n".join(lines)


def _load_contacts(deps: HandlerDependencies) -> list[Contact] | None:
    try:
        return deps.store.list_contacts()
    except StoreError:
        LOGGER.exception(LOAD_FAILED_TEXT)
        return None


async def help_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return
    await update.effective_message.reply_text(_render_help())


async def list_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return

    contacts = _load_contacts(deps)
    if contacts is None:
        await update.effective_message.reply_text(LOAD_FAILED_TEXT)
        return

    config = load_config(settings.crm_config_path)
    today = today_for(config)
    upcoming = upcoming_birthdays(contacts, today, leap_day_rule=config.leap_day_rule)
    page = paginate(contacts, parse_page_arg(context.args), config.page_size)

    await update.effective_message.reply_text(_render_list_message(upcoming, page, today))


async def upcoming_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return

    contacts = _load_contacts(deps)
    if contacts is None:
        await update.effective_message.reply_text(LOAD_FAILED_TEXT)
        return

    config = load_config(settings.crm_config_path)
    upcoming = upcoming_birthdays(contacts, today_for(config), leap_day_rule=config.leap_day_rule)
    if not upcoming:
        await update.effective_message.reply_text(
            f"No birthdays in the next {UPCOMING_HORIZON_DAYS} days."
        )
        return

    await update.effective_message.reply_text(_render_upcoming_card(upcoming))


async def add_start(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data[PENDING_ADD_KEY] = {"step": 0, "values": {}}
    await update.effective_message.reply_text(f"Add person wizard started.\n{_add_prompt(0)}")
    return STATE_ADD_FIELD


async def add_field(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = context.user_data.get(PENDING_ADD_KEY)
    if not isinstance(pending, dict) or "step" not in pending:
        await update.effective_message.reply_text("Add session expired. Send /add to start again.")
        return ConversationHandler.END

    step_index = int(pending["step"])
    step = FIELD_STEPS[step_index]
    raw_text = (update.effective_message.text or "").strip()

    if not step.required and _is_skip(raw_text):
        value = None
    else:
        today = today_for(load_config(settings.crm_config_path))
        try:
            value = parse_field_value(step, raw_text, today)
        except ValueError as exc:
            await update.effective_message.reply_text(f"{exc}. {_add_prompt(step_index)}")
            return STATE_ADD_FIELD

    pending["values"][step.key] = value
    pending["step"] = step_index + 1
    context.user_data[PENDING_ADD_KEY] = pending

    if pending["step"] < len(FIELD_STEPS):
        await update.effective_message.reply_text(_add_prompt(pending["step"]))
        return STATE_ADD_FIELD

    await update.effective_message.reply_text(_render_add_summary(pending["values"]))
    return STATE_ADD_CONFIRM


async def add_confirm(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    decision = _parse_decision(update.effective_message.text or "")
    if decision is None:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_ADD_CONFIRM

    pending = context.user_data.pop(PENDING_ADD_KEY, None)
    if not decision:
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    if not isinstance(pending, dict) or "values" not in pending:
        await update.effective_message.reply_text("Add session expired. Send /add to start again.")
        return ConversationHandler.END

    values = pending["values"]
    fields = ContactFields(**{step.key: values.get(step.key) for step in FIELD_STEPS})
    try:
        contact = deps.store.create_contact(fields)
    except StoreError:
        LOGGER.exception(SAVE_FAILED_TEXT)
        await update.effective_message.reply_text(SAVE_FAILED_TEXT)
        return ConversationHandler.END

    await update.effective_message.reply_text("Person added successfully")
    LOGGER.info("Added person %s", contact.full_name)
    return ConversationHandler.END


async def edit_start(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    contacts = _load_contacts(deps)
    if contacts is None:
        await update.effective_message.reply_text(LOAD_FAILED_TEXT)
        return ConversationHandler.END
    if not contacts:
        await update.effective_message.reply_text("No people are currently tracked.")
        return ConversationHandler.END

    context.user_data[PENDING_EDIT_KEY] = {}
    await update.effective_message.reply_text(
        _render_selection(
            contacts,
            f"Edit person wizard started.\nStep 1/{EDIT_TOTAL_STEPS}: Reply with the number of the person to edit:",
        )
    )
    return STATE_EDIT_SELECT


async def _select_contact(update: Update, deps: HandlerDependencies) -> Contact | None:
    raw_text = (update.effective_message.text or "").strip()
    if not raw_text.isdigit():
        await update.effective_message.reply_text("Please send the entry number shown in the list.")
        return None

    contacts = _load_contacts(deps)
    if contacts is None:
        raise StoreError(LOAD_FAILED_TEXT)

    selected = int(raw_text)
    if selected < 1 or selected > len(contacts):
        await update.effective_message.reply_text(f"Entry must be between 1 and {len(contacts)}.")
        return None
    return contacts[selected - 1]


async def edit_select(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    try:
        contact = await _select_contact(update, deps)
    except StoreError:
        context.user_data.pop(PENDING_EDIT_KEY, None)
        await update.effective_message.reply_text(LOAD_FAILED_TEXT)
        return ConversationHandler.END
    if contact is None:
        return STATE_EDIT_SELECT

    values = _contact_values(contact)
    pending: dict[str, Any] = {
        "contact_id": contact.contact_id,
        "step": 0,
        "original": dict(values),
        "values": dict(values),
    }
    context.user_data[PENDING_EDIT_KEY] = pending

    await update.effective_message.reply_text(_edit_prompt(0, pending["values"]))
    return STATE_EDIT_FIELD


async def edit_field(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    pending = context.user_data.get(PENDING_EDIT_KEY)
    if not isinstance(pending, dict) or "contact_id" not in pending:
        await update.effective_message.reply_text("Edit session expired. Send /edit to start again.")
        return ConversationHandler.END

    step_index = int(pending["step"])
    step = FIELD_STEPS[step_index]
    raw_text = (update.effective_message.text or "").strip()

    if _is_clear(raw_text):
        if step.required:
            await update.effective_message.reply_text(
                f"{step.label} is required and cannot be cleared. {_edit_prompt(step_index, pending['values'])}"
            )
            return STATE_EDIT_FIELD
        pending["values"][step.key] = None
    elif not _is_skip(raw_text):
        today = today_for(load_config(settings.crm_config_path))
        try:
            value = parse_field_value(step, raw_text, today)
        except ValueError as exc:
            await update.effective_message.reply_text(
                f"{exc}. {_edit_prompt(step_index, pending['values'])}"
            )
            return STATE_EDIT_FIELD
        pending["values"][step.key] = value

    pending["step"] = step_index + 1
    context.user_data[PENDING_EDIT_KEY] = pending

    if pending["step"] < len(FIELD_STEPS):
        await update.effective_message.reply_text(_edit_prompt(pending["step"], pending["values"]))
        return STATE_EDIT_FIELD

    await update.effective_message.reply_text(_render_edit_summary(pending))
    return STATE_EDIT_CONFIRM


async def edit_confirm(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    decision = _parse_decision(update.effective_message.text or "")
    if decision is None:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_EDIT_CONFIRM

    pending = context.user_data.pop(PENDING_EDIT_KEY, None)
    if not decision:
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    if not isinstance(pending, dict) or "contact_id" not in pending:
        await update.effective_message.reply_text("Edit session expired. Send /edit to start again.")
        return ConversationHandler.END

    changes = {
        key: value
        for key, value in pending["values"].items()
        if value != pending["original"].get(key)
    }
    if not changes:
        await update.effective_message.reply_text("Nothing changed. No changes were made.")
        return ConversationHandler.END

    try:
        contact = deps.store.update_contact(pending["contact_id"], changes)
    except ContactNotFoundError:
        await update.effective_message.reply_text(MISSING_CONTACT_TEXT)
        return ConversationHandler.END
    except StoreError:
        LOGGER.exception(SAVE_FAILED_TEXT)
        await update.effective_message.reply_text(SAVE_FAILED_TEXT)
        return ConversationHandler.END

    await update.effective_message.reply_text("Person updated successfully")
    LOGGER.info("Updated person %s", contact.full_name)
    return ConversationHandler.END


async def delete_start(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    contacts = _load_contacts(deps)
    if contacts is None:
        await update.effective_message.reply_text(LOAD_FAILED_TEXT)
        return ConversationHandler.END
    if not contacts:
        await update.effective_message.reply_text("No people are currently tracked.")
        return ConversationHandler.END

    context.user_data[PENDING_DELETE_KEY] = {}
    await update.effective_message.reply_text(
        _render_selection(contacts, "Reply with the number of the person to delete:")
    )
    return STATE_DELETE_SELECT


async def delete_select(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    try:
        contact = await _select_contact(update, deps)
    except StoreError:
        context.user_data.pop(PENDING_DELETE_KEY, None)
        await update.effective_message.reply_text(LOAD_FAILED_TEXT)
        return ConversationHandler.END
    if contact is None:
        return STATE_DELETE_SELECT

    context.user_data[PENDING_DELETE_KEY] = {
        "contact_id": contact.contact_id,
        "name": contact.full_name,
    }
    await update.effective_message.reply_text(
        "Are you sure you want to delete this person?\n"
        f"{contact.full_name}\n\n"
        "Reply with yes to delete, or no to cancel."
    )
    return STATE_DELETE_CONFIRM


async def delete_confirm(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    decision = _parse_decision(update.effective_message.text or "")
    if decision is None:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_DELETE_CONFIRM

    pending = context.user_data.pop(PENDING_DELETE_KEY, None)
    if not decision:
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    if not isinstance(pending, dict) or "contact_id" not in pending:
        await update.effective_message.reply_text("Delete session expired. Send /delete to start again.")
        return ConversationHandler.END

    try:
        deps.store.delete_contact(pending["contact_id"])
    except ContactNotFoundError:
        await update.effective_message.reply_text(MISSING_CONTACT_TEXT)
        return ConversationHandler.END
    except StoreError:
        LOGGER.exception(DELETE_FAILED_TEXT)
        await update.effective_message.reply_text(DELETE_FAILED_TEXT)
        return ConversationHandler.END

    await update.effective_message.reply_text("Person deleted successfully")
    LOGGER.info("Deleted person %s", pending["name"])
    return ConversationHandler.END


async def cancel_command(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data.pop(PENDING_ADD_KEY, None)
    context.user_data.pop(PENDING_EDIT_KEY, None)
    context.user_data.pop(PENDING_DELETE_KEY, None)
    await update.effective_message.reply_text("Wizard canceled.")
    return ConversationHandler.END


def build_handlers() -> list:
    text_only = filters.TEXT & ~filters.COMMAND

    add_conversation = ConversationHandler(
        entry_points=[CommandHandler("add", add_start)],
        states={
            STATE_ADD_FIELD: [MessageHandler(text_only, add_field)],
            STATE_ADD_CONFIRM: [MessageHandler(text_only, add_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="add_contact_conversation",
        persistent=False,
    )

    edit_conversation = ConversationHandler(
        entry_points=[CommandHandler("edit", edit_start)],
        states={
            STATE_EDIT_SELECT: [MessageHandler(text_only, edit_select)],
            STATE_EDIT_FIELD: [MessageHandler(text_only, edit_field)],
            STATE_EDIT_CONFIRM: [MessageHandler(text_only, edit_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="edit_contact_conversation",
        persistent=False,
    )

    delete_conversation = ConversationHandler(
        entry_points=[CommandHandler("delete", delete_start)],
        states={
            STATE_DELETE_SELECT: [MessageHandler(text_only, delete_select)],
            STATE_DELETE_CONFIRM: [MessageHandler(text_only, delete_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="delete_contact_conversation",
        persistent=False,
    )

    return [
        CommandHandler("help", help_command),
        CommandHandler("list", list_command),
        CommandHandler("upcoming", upcoming_command),
        CommandHandler("cancel", cancel_command),
        add_conversation,
        edit_conversation,
        delete_conversation,
    ]
