"""Shared pytest fixtures for all test types."""

import asyncio
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from voicenote.lib.config import reset_all_configs
from voicenote.models.job import MediaKind, MediaReference, ProcessDiagnostics

CONFIG_ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_SERVER_URL",
    "TELEGRAM_FILE_URL",
    "TELEGRAM_POLL_TIMEOUT",
    "TELEGRAM_DOWNLOAD_TIMEOUT",
    "DEBUG",
    "FFMPEG_BIN",
    "VOICENOTE_WORK_DIR",
    "MAX_CONCURRENT_JOBS",
    "MAX_PENDING_JOBS",
    "JOB_TIMEOUT_SECONDS",
    "TRANSCODE_TIMEOUT_SECONDS",
    "SHUTDOWN_GRACE_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch, tmp_path):
    """Isolate every test from the host environment and any .env file."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_all_configs()
    yield
    reset_all_configs()


@pytest.fixture
def work_dir(tmp_path) -> Path:
    """Directory for transient job files."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def audio_ref() -> MediaReference:
    """A typical audio attachment."""
    return MediaReference(file_id="AwACAgIAAxkBAAIB", kind=MediaKind.AUDIO)


@pytest.fixture
def mock_client():
    """Stand-in for TelegramBotAdapter's outbound methods."""
    client = MagicMock()
    client.send_message = AsyncMock(return_value=None)
    client.send_voice = AsyncMock(return_value=None)
    client.get_file_path = AsyncMock(return_value="voice/file_1.oga")
    client.log_out = AsyncMock(return_value=None)
    client.stop_polling = AsyncMock(return_value=None)
    client.stop = AsyncMock(return_value=None)
    return client


class FakeDownloader:
    """Writes fixed bytes to the destination instead of fetching a URL."""

    def __init__(self, content: bytes = b"fake-audio", error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[tuple[str, Path]] = []

    async def download(self, url: str, destination: Path) -> int:
        self.calls.append((url, destination))
        destination.write_bytes(self.content[: len(self.content) // 2])
        if self.error is not None:
            raise self.error
        destination.write_bytes(self.content)
        return len(self.content)


class FakeTranscoder:
    """Writes an output file and reports a clean exit."""

    def __init__(self, error: Exception | None = None, delay: float = 0):
        self.error = error
        self.delay = delay
        self.calls: list[tuple[Path, Path]] = []

    async def convert(self, input_path: Path, output_path: Path) -> ProcessDiagnostics:
        self.calls.append((input_path, output_path))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        output_path.write_bytes(b"OggS-opus")
        return ProcessDiagnostics(returncode=0)


@pytest.fixture
def fake_downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def downloader_factory():
    return FakeDownloader


@pytest.fixture
def transcoder_factory():
    return FakeTranscoder


def make_message(chat_id: int = 42, message_id: int = 1, text=None, entities=None, **attachments):
    """Build a Message-like object with only the attributes the adapter reads."""
    fields = {kind.value: None for kind in MediaKind}
    fields.update(attachments)
    return SimpleNamespace(
        chat=SimpleNamespace(id=chat_id),
        message_id=message_id,
        text=text,
        entities=entities or (),
        **fields,
    )


@pytest.fixture
def message_factory():
    return make_message
