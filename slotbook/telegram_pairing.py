"""
Telegram chat pairing.

A tenant owner or customer sends ``/start <tenant-slug|email>`` to the bot;
the chat id is stored on the matching account so booking alerts,
confirmations and reminders can reach it.
"""

from html import escape
from typing import Any

import structlog

from .errors import DeliveryFailure
from .ports import BookingRepository, MessageSender

logger = structlog.get_logger("slotbook.telegram")

WELCOME_TEXT = (
    "Welcome to Booking SaaS Bot! 🤖\n\n"
    "To link this chat to your account and receive notifications, send me your "
    "email or tenant slug like this:\n\n<code>/start john@example.com</code>"
)


def parse_start_command(update: dict[str, Any]) -> tuple[str, str | None] | None:
    """``(chat_id, identifier)`` for a ``/start`` message, ``None`` otherwise."""
    message = update.get("message") or {}
    text = str(message.get("text") or "").strip()
    chat_id = (message.get("chat") or {}).get("id")
    if not text or chat_id is None:
        return None
    if text == "/start":
        return str(chat_id), None
    if text.startswith("/start "):
        identifier = text[len("/start "):].strip()
        return str(chat_id), identifier or None
    return None


class PairTelegramChat:
    def __init__(self, repository: BookingRepository, message_sender: MessageSender):
        self.repository = repository
        self.message_sender = message_sender

    async def execute(self, update: dict[str, Any]) -> str:
        parsed = parse_start_command(update)
        if parsed is None:
            return "ignored"
        chat_id, identifier = parsed

        if identifier is None:
            await self._reply(chat_id, WELCOME_TEXT)
            return "welcome"

        matched = await self.repository.link_telegram_chat(identifier, chat_id)
        shown = escape(identifier)
        if matched == "tenant":
            text = (
                f"✅ Successfully linked this chat to your Tenant account ({shown}). "
                "You will now receive booking alerts here."
            )
        elif matched == "customer":
            text = (
                f"✅ Successfully linked this chat to your Customer account ({shown}). "
                "You will now receive booking confirmations here."
            )
        else:
            text = (
                f'❌ Could not find a Tenant or Customer matching "{shown}". \n\n'
                "Please use <code>/start your-slug</code> or <code>/start your-email@domain.com</code>"
            )
        logger.info("telegram_pairing", chat_id=chat_id, matched=matched or "none")
        await self._reply(chat_id, text)
        return matched or "unmatched"

    async def _reply(self, chat_id: str, text: str) -> None:
        try:
            await self.message_sender.send_message(chat_id, text)
        except DeliveryFailure as exc:
            logger.warning("telegram_pairing_reply_failed", chat_id=chat_id, error=str(exc))
