"""Telegram event normalization layer.

This module defines normalized events from Telegram, isolating the
Telegram protocol details from the rest of the application.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from telegram.constants import MessageEntityType

from voicenote.models.job import MediaKind, MediaReference


@dataclass
class TelegramEvent:
    """
    Normalized message from Telegram.

    Attributes:
        event_type: "command", "media", or "text"
        chat_id: Telegram chat ID
        timestamp: When the event was received
        payload: Event-specific data (command args, media reference, or text)
        message_id: Telegram message ID, if known
    """

    event_type: str  # "command" | "media" | "text"
    chat_id: int
    timestamp: datetime
    payload: dict
    message_id: Optional[int] = None

    @classmethod
    def command(
        cls,
        chat_id: int,
        command: str,
        args: Optional[str] = None,
        message_id: Optional[int] = None,
    ) -> "TelegramEvent":
        """Create a command event."""
        return cls(
            event_type="command",
            chat_id=chat_id,
            timestamp=datetime.now(),
            payload={
                "command": command,
                "args": args,
            },
            message_id=message_id,
        )

    @classmethod
    def media(
        cls,
        chat_id: int,
        media: MediaReference,
        message_id: Optional[int] = None,
    ) -> "TelegramEvent":
        """Create a media event carrying exactly one attachment."""
        return cls(
            event_type="media",
            chat_id=chat_id,
            timestamp=datetime.now(),
            payload={"media": media},
            message_id=message_id,
        )

    @classmethod
    def text(
        cls,
        chat_id: int,
        text: str = "",
        message_id: Optional[int] = None,
    ) -> "TelegramEvent":
        """Create a text event (any message without a usable attachment)."""
        return cls(
            event_type="text",
            chat_id=chat_id,
            timestamp=datetime.now(),
            payload={"text": text},
            message_id=message_id,
        )

    @classmethod
    def from_message(cls, message: Any) -> "TelegramEvent":
        """
        Normalize a python-telegram-bot Message.

        Commands win over attachments, attachments win over text.
        """
        chat_id = message.chat.id
        message_id = getattr(message, "message_id", None)

        command = parse_command(message)
        if command is not None:
            name, args = command
            return cls.command(chat_id, name, args, message_id=message_id)

        media = extract_media(message)
        if media is not None:
            return cls.media(chat_id, media, message_id=message_id)

        return cls.text(chat_id, message.text or "", message_id=message_id)

    @property
    def is_command(self) -> bool:
        """Check if this is a command event."""
        return self.event_type == "command"

    @property
    def is_media(self) -> bool:
        """Check if this is a media event."""
        return self.event_type == "media"

    @property
    def is_text(self) -> bool:
        """Check if this is a text event."""
        return self.event_type == "text"

    @property
    def command_name(self) -> Optional[str]:
        """Get command name if this is a command event."""
        if self.is_command:
            return self.payload.get("command")
        return None

    @property
    def command_args(self) -> Optional[str]:
        """Get command arguments if this is a command event."""
        if self.is_command:
            return self.payload.get("args")
        return None

    @property
    def media_ref(self) -> Optional[MediaReference]:
        """Get the media reference if this is a media event."""
        if self.is_media:
            return self.payload.get("media")
        return None


def parse_command(message: Any) -> Optional[tuple[str, Optional[str]]]:
    """
    Return (command, args) if the message starts with a bot command entity.

    "/start@MyBot hello" -> ("start", "hello")
    """
    text = message.text or ""
    entities = message.entities or ()
    if not text or not entities:
        return None

    first = entities[0]
    if first.type != MessageEntityType.BOT_COMMAND or first.offset != 0:
        return None

    name = text[1:first.length].split("@", 1)[0]
    args = text[first.length:].strip() or None
    return name, args


def extract_media(message: Any) -> Optional[MediaReference]:
    """Return the first populated attachment, in MediaKind order."""
    for kind in MediaKind:
        attachment = getattr(message, kind.value, None)
        if attachment is None or not getattr(attachment, "file_id", None):
            continue
        return MediaReference(
            file_id=attachment.file_id,
            kind=kind,
            file_unique_id=getattr(attachment, "file_unique_id", None),
            file_size=getattr(attachment, "file_size", None),
            mime_type=getattr(attachment, "mime_type", None),
            file_name=getattr(attachment, "file_name", None),
        )
    return None
