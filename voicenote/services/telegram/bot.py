"""Telegram bot adapter using python-telegram-bot.

The bot handles:
- Incoming messages: normalized to TelegramEvent and forwarded
- Outbound: text replies, voice notes, file lookups and session log-out
"""

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    ContextTypes,
    MessageHandler,
    filters,
)

from voicenote.lib.config import BotConfig
from voicenote.lib.exceptions import RemoteAPIError
from voicenote.services.telegram.adapter import TelegramEvent

logger = logging.getLogger(__name__)


class TelegramBotAdapter:
    """
    Telegram bot adapter using python-telegram-bot library.

    Implements the adapter pattern to isolate Telegram protocol details.
    All Telegram messages are normalized to TelegramEvent objects.
    """

    def __init__(self, config: BotConfig):
        """
        Initialize the Telegram bot adapter.

        Args:
            config: Bot configuration with token and endpoint templates
        """
        self.config = config
        self._app: Optional[Application] = None
        self._event_handler: Optional[Callable[[TelegramEvent], Awaitable[None]]] = None
        self._running = False

    def on_event(self, handler: Callable[[TelegramEvent], Awaitable[None]]) -> None:
        """
        Register event handler callback.

        The handler will be called for every normalized message event.

        Args:
            handler: Async function that processes TelegramEvent
        """
        self._event_handler = handler

    async def start(self) -> None:
        """Connect to the Bot API and start long polling."""
        if self._running:
            logger.warning("Bot already running")
            return

        logger.info("Initializing Telegram bot...")

        self._app = (
            ApplicationBuilder()
            .token(self.config.bot_token)
            .base_url(self.config.base_url)
            .base_file_url(self.config.base_file_url)
            .build()
        )

        # New messages only; edits and channel posts are not conversion requests
        self._app.add_handler(
            MessageHandler(filters.UpdateType.MESSAGE, self._handle_message)
        )

        await self._app.initialize()
        logger.info(f"Authorized on account {self._app.bot.username}")

        await self._app.start()
        await self._app.updater.start_polling(
            timeout=self.config.poll_timeout,
            allowed_updates=[Update.MESSAGE],
        )

        self._running = True
        logger.info("Telegram bot started and listening for messages")

    async def stop_polling(self) -> None:
        """Stop receiving new updates while keeping the bot usable for sends."""
        if self._app and self._app.updater and self._app.updater.running:
            logger.info("Stopping update polling...")
            await self._app.updater.stop()

    async def stop(self) -> None:
        """
        Stop the bot gracefully.

        Also releases a partially started application, e.g. when start()
        failed after initialize().
        """
        if not self._app:
            return

        logger.info("Stopping Telegram bot...")

        await self.stop_polling()
        if self._app.running:
            await self._app.stop()
        await self._app.shutdown()

        self._app = None
        self._running = False
        logger.info("Telegram bot stopped")

    async def _dispatch_event(self, event: TelegramEvent) -> None:
        """Dispatch event to registered handler."""
        if self._event_handler:
            try:
                await self._event_handler(event)
            except Exception as e:
                logger.exception(f"Error handling event: {e}")

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Normalize an incoming message and dispatch it."""
        message = update.message
        if message is None:
            return

        event = TelegramEvent.from_message(message)
        logger.debug(f"Received {event.event_type} event from chat {event.chat_id}")
        await self._dispatch_event(event)

    # Outbound calls

    def _require_app(self) -> Application:
        if not self._app:
            raise RuntimeError("Bot not started")
        return self._app

    async def send_message(self, chat_id: int, text: str) -> None:
        """
        Send text message to user.

        Args:
            chat_id: Target chat ID
            text: Message text
        """
        app = self._require_app()
        try:
            await app.bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as e:
            raise RemoteAPIError(str(e), operation="send_message", original_error=e) from e

    async def get_file_path(self, file_id: str) -> str:
        """
        Look up a file's storage path.

        For a local Bot API server this is an absolute path on this machine;
        otherwise python-telegram-bot returns the direct download URL.

        Raises:
            RemoteAPIError: If the lookup fails
        """
        app = self._require_app()
        try:
            file = await app.bot.get_file(file_id)
        except TelegramError as e:
            raise RemoteAPIError(str(e), operation="get_file", original_error=e) from e

        if not file.file_path:
            raise RemoteAPIError(f"No file path returned for {file_id}", operation="get_file")
        return file.file_path

    async def send_voice(self, chat_id: int, file_path: Path) -> None:
        """
        Send a local file to the user as a voice message.

        Raises:
            RemoteAPIError: If the file cannot be read or the upload fails
        """
        app = self._require_app()
        try:
            with open(file_path, "rb") as f:
                await app.bot.send_voice(
                    chat_id=chat_id,
                    voice=f,
                    write_timeout=self.config.download_timeout,
                )
        except (TelegramError, OSError) as e:
            raise RemoteAPIError(str(e), operation="send_voice", original_error=e) from e

    async def log_out(self) -> None:
        """
        Invalidate the bot session on the Bot API server.

        Raises:
            RemoteAPIError: If the request fails
        """
        app = self._require_app()
        try:
            await app.bot.log_out()
        except TelegramError as e:
            raise RemoteAPIError(str(e), operation="log_out", original_error=e) from e
