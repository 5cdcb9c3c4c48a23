"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from src.ports.notification_port import DeliveryError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=user_id, text=text, parse_mode=ParseMode.MARKDOWN)
        except TelegramError as exc:
            raise DeliveryError(f"Telegram send to {user_id} failed: {exc}") from exc
        logger.debug("Message sent to chat %d", user_id)
