"""HTTP downloader for Telegram file URLs using httpx."""

import logging
from pathlib import Path
from typing import Optional

import httpx

from voicenote.lib.exceptions import FilesystemError, RemoteAPIError
from voicenote.lib.redact import redact_secret

logger = logging.getLogger(__name__)


class Downloader:
    """
    Streams a remote file to disk.

    The destination is created or truncated before the request so an
    existing file never survives a download attempt.
    """

    DEFAULT_TIMEOUT = 60
    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        timeout: float | None = None,
        debug: bool = False,
        secret: str | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the downloader.

        Args:
            timeout: Request timeout in seconds (default: 60)
            debug: Log URL, destination and byte count after each download
            secret: Value to redact from logged URLs (the bot token)
            transport: Optional httpx transport, used by tests
        """
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._debug = debug
        self._secret = secret
        self._transport = transport

    async def download(self, url: str, destination: Path) -> int:
        """
        Download url into destination, overwriting it.

        Args:
            url: Direct file URL
            destination: Local file to write

        Returns:
            Number of bytes written

        Raises:
            RemoteAPIError: On HTTP status or transport errors
            FilesystemError: If the destination cannot be written
        """
        written = 0
        safe_url = redact_secret(url, self._secret)

        try:
            with open(destination, "wb") as out:
                async with httpx.AsyncClient(
                    timeout=self._timeout,
                    transport=self._transport,
                    follow_redirects=True,
                ) as client:
                    async with client.stream("GET", url) as response:
                        response.raise_for_status()
                        async for chunk in response.aiter_bytes(self.CHUNK_SIZE):
                            out.write(chunk)
                            written += len(chunk)

        except httpx.HTTPStatusError as e:
            raise RemoteAPIError(
                f"HTTP {e.response.status_code} downloading {safe_url}",
                operation="download",
                original_error=e,
            ) from e

        except httpx.TimeoutException as e:
            raise RemoteAPIError(
                f"Timed out after {self._timeout}s downloading {safe_url}",
                operation="download",
                original_error=e,
            ) from e

        except httpx.HTTPError as e:
            raise RemoteAPIError(
                f"Request failed downloading {safe_url}: {redact_secret(str(e), self._secret)}",
                operation="download",
                original_error=e,
            ) from e

        except OSError as e:
            raise FilesystemError(
                f"Cannot write {destination}: {e}",
                path=str(destination),
                operation="write",
            ) from e

        finally:
            if self._debug:
                logger.debug(f"Downloaded {written} bytes from {safe_url} to {destination}")

        return written
