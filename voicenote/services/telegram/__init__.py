"""Telegram service package for bot communication."""

from voicenote.services.telegram.adapter import TelegramEvent
from voicenote.services.telegram.bot import TelegramBotAdapter

__all__ = ["TelegramEvent", "TelegramBotAdapter"]
