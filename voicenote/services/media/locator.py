"""Resolve a media reference to something the pipeline can read."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from voicenote.lib.config import BotConfig, format_template
from voicenote.models.job import MediaReference

logger = logging.getLogger(__name__)


class FileLookupClient(Protocol):
    """The part of the bot adapter the locator needs."""

    async def get_file_path(self, file_id: str) -> str: ...


@dataclass(frozen=True)
class FileLocation:
    """
    Where a file's bytes can be read from.

    Attributes:
        file_path: Storage path reported by the Bot API
        url: Direct download URL (empty when cached)
        cached: True if file_path already exists on the local filesystem
    """

    file_path: str
    url: str
    cached: bool

    @property
    def local_path(self) -> Path:
        return Path(self.file_path)


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


class FileLocator:
    """
    Locates media files.

    A local Bot API server stores downloaded files on its own disk and
    reports their absolute path; when that path exists here the download
    step is skipped.
    """

    def __init__(self, client: FileLookupClient, config: BotConfig):
        self.client = client
        self.config = config

    async def locate(self, media: MediaReference) -> FileLocation:
        """
        Resolve media to a cached local path or a direct URL.

        Raises:
            RemoteAPIError: If the Bot API lookup fails
        """
        file_path = await self.client.get_file_path(media.file_id)

        if not _is_url(file_path) and Path(file_path).is_file():
            return FileLocation(file_path=file_path, url="", cached=True)

        if _is_url(file_path):
            url = file_path
        else:
            url = format_template(self.config.file_url, self.config.bot_token, file_path)

        return FileLocation(file_path=file_path, url=url, cached=False)
