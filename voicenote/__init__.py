"""Telegram bot that converts media attachments into Opus voice notes."""

__version__ = "0.1.0"
