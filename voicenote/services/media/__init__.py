"""Media retrieval, conversion and cleanup."""

from voicenote.services.media.cleanup import CleanupResult, cleanup_files
from voicenote.services.media.downloader import Downloader
from voicenote.services.media.locator import FileLocation, FileLocator
from voicenote.services.media.transcoder import Transcoder

__all__ = [
    "CleanupResult",
    "cleanup_files",
    "Downloader",
    "FileLocation",
    "FileLocator",
    "Transcoder",
]
