"""Integration tests for the conversion flow.

Real dispatcher, pipeline and locator; the Bot API client, downloader
and transcoder are test doubles that touch only the temp directory.
"""

import asyncio
import signal

import pytest

from voicenote.lib.config import BotConfig
from voicenote.lib.exceptions import JobTimeoutError, ProcessError, RemoteAPIError
from voicenote.models.job import JobState, MediaKind, MediaReference, ProcessDiagnostics
from voicenote.services.dispatcher import BUSY_TEXT, USAGE_TEXT, UpdateDispatcher
from voicenote.services.media.locator import FileLocator
from voicenote.services.pipeline import PROGRESS_CONVERTING, PROGRESS_RECEIVED, JobPipeline
from voicenote.services.shutdown import ShutdownCoordinator
from voicenote.services.telegram.adapter import TelegramEvent

CHAT_ID = 42


@pytest.fixture
def bot_config():
    return BotConfig(TELEGRAM_BOT_TOKEN="123:ABC")


@pytest.fixture
def make_pipeline(mock_client, bot_config, work_dir, fake_downloader, fake_transcoder):
    def factory(downloader=None, transcoder=None, debug=False, job_timeout_seconds=0):
        return JobPipeline(
            client=mock_client,
            locator=FileLocator(mock_client, bot_config),
            downloader=downloader or fake_downloader,
            transcoder=transcoder or fake_transcoder,
            work_dir=work_dir,
            debug=debug,
            job_timeout_seconds=job_timeout_seconds,
        )

    return factory


def sent_texts(mock_client) -> list[str]:
    return [c.args[1] for c in mock_client.send_message.await_args_list]


class TestSuccessfulConversion:
    @pytest.mark.asyncio
    async def test_audio_is_converted_and_delivered(
        self, make_pipeline, mock_client, fake_downloader, fake_transcoder, work_dir, audio_ref
    ):
        """Two progress messages, one voice note, no files left behind."""
        ctx = await make_pipeline().run(CHAT_ID, audio_ref, message_id=10)

        assert ctx.state == JobState.CLEANED_UP
        assert ctx.history == [
            JobState.RECEIVED,
            JobState.LOCATED,
            JobState.DOWNLOADED,
            JobState.CONVERTED,
            JobState.DELIVERED,
            JobState.CLEANED_UP,
        ]
        assert ctx.delivered is True
        assert sent_texts(mock_client) == [PROGRESS_RECEIVED, PROGRESS_CONVERTING]
        mock_client.send_voice.assert_awaited_once_with(CHAT_ID, ctx.paths.output_path)

        url, destination = fake_downloader.calls[0]
        assert url == "https://api.telegram.org/file/bot123:ABC/voice/file_1.oga"
        assert destination == ctx.paths.input_path
        assert fake_transcoder.calls == [(ctx.paths.input_path, ctx.paths.output_path)]
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(MediaKind))
    async def test_every_media_kind_reaches_cleaned_up(self, make_pipeline, work_dir, kind):
        media = MediaReference(file_id=f"id-{kind.value}", kind=kind)

        ctx = await make_pipeline().run(CHAT_ID, media)

        assert ctx.state == JobState.CLEANED_UP
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cached_file_is_not_downloaded_or_deleted(
        self, make_pipeline, mock_client, fake_downloader, fake_transcoder, tmp_path, work_dir, audio_ref
    ):
        """A file already on local disk (local Bot API server) is converted in place."""
        cached = tmp_path / "bot-api" / "music" / "file_3.mp3"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"ID3")
        mock_client.get_file_path.return_value = str(cached)

        ctx = await make_pipeline().run(CHAT_ID, audio_ref)

        assert JobState.CACHED in ctx.history
        assert JobState.DOWNLOADED not in ctx.history
        assert fake_downloader.calls == []
        assert fake_transcoder.calls[0][0] == cached
        assert cached.exists()
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_debug_mode_keeps_files(self, make_pipeline, work_dir, audio_ref):
        ctx = await make_pipeline(debug=True).run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.CLEANED_UP
        assert ctx.paths.input_path.exists()
        assert ctx.paths.output_path.exists()

    @pytest.mark.asyncio
    async def test_progress_send_failure_does_not_fail_job(self, make_pipeline, mock_client, audio_ref):
        mock_client.send_message.side_effect = RemoteAPIError("Forbidden", operation="send_message")

        ctx = await make_pipeline().run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.CLEANED_UP
        assert ctx.delivered is True

    @pytest.mark.asyncio
    async def test_voice_send_failure_still_cleans_up(self, make_pipeline, mock_client, work_dir, audio_ref):
        mock_client.send_voice.side_effect = RemoteAPIError("Request Entity Too Large", operation="send_voice")

        ctx = await make_pipeline().run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.CLEANED_UP
        assert ctx.delivered is False
        assert list(work_dir.iterdir()) == []


class TestFailures:
    @pytest.mark.asyncio
    async def test_download_failure_stops_after_first_progress_message(
        self, make_pipeline, mock_client, downloader_factory, fake_transcoder, work_dir, audio_ref
    ):
        """A mid-stream failure leaves no partial file and sends nothing else."""
        downloader = downloader_factory(
            error=RemoteAPIError("connection reset", operation="download")
        )

        ctx = await make_pipeline(downloader=downloader).run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.FAILED
        assert isinstance(ctx.error, RemoteAPIError)
        assert sent_texts(mock_client) == [PROGRESS_RECEIVED]
        mock_client.send_voice.assert_not_called()
        assert fake_transcoder.calls == []
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_download_failure_in_debug_keeps_partial_file(
        self, make_pipeline, downloader_factory, audio_ref
    ):
        downloader = downloader_factory(
            error=RemoteAPIError("connection reset", operation="download")
        )

        ctx = await make_pipeline(downloader=downloader, debug=True).run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.FAILED
        assert ctx.paths.input_path.exists()

    @pytest.mark.asyncio
    async def test_lookup_failure(self, make_pipeline, mock_client, fake_downloader, audio_ref):
        mock_client.get_file_path.side_effect = RemoteAPIError("file is too big", operation="get_file")

        ctx = await make_pipeline().run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.FAILED
        assert ctx.history == [JobState.RECEIVED, JobState.FAILED]
        assert fake_downloader.calls == []
        assert sent_texts(mock_client) == [PROGRESS_RECEIVED]

    @pytest.mark.asyncio
    async def test_transcoder_failure_keeps_diagnostics(
        self, make_pipeline, mock_client, transcoder_factory, work_dir, audio_ref
    ):
        diagnostics = ProcessDiagnostics(returncode=1, stderr="Invalid data found")
        transcoder = transcoder_factory(error=ProcessError("ffmpeg exited with status 1", diagnostics))

        ctx = await make_pipeline(transcoder=transcoder).run(CHAT_ID, audio_ref)

        assert ctx.state == JobState.FAILED
        assert ctx.diagnostics is diagnostics
        mock_client.send_voice.assert_not_called()
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_job_timeout(self, make_pipeline, transcoder_factory, work_dir, audio_ref):
        transcoder = transcoder_factory(delay=5)

        ctx = await make_pipeline(transcoder=transcoder, job_timeout_seconds=0.05).run(
            CHAT_ID, audio_ref
        )

        assert ctx.state == JobState.FAILED
        assert isinstance(ctx.error, JobTimeoutError)
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancelled_job_removes_files(self, make_pipeline, transcoder_factory, work_dir, audio_ref):
        transcoder = transcoder_factory(delay=5)
        task = asyncio.create_task(make_pipeline(transcoder=transcoder).run(CHAT_ID, audio_ref))
        await asyncio.sleep(0.05)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert list(work_dir.iterdir()) == []


class TestDispatchFlow:
    """Events from the adapter through dispatcher and pipeline."""

    @pytest.mark.asyncio
    async def test_start_command_only_gets_usage(self, make_pipeline, mock_client, fake_downloader, fake_transcoder):
        dispatcher = UpdateDispatcher(mock_client, make_pipeline())

        await dispatcher.handle_event(TelegramEvent.command(chat_id=CHAT_ID, command="start"))
        await dispatcher.drain(grace_seconds=1)

        mock_client.send_message.assert_awaited_once_with(CHAT_ID, USAGE_TEXT)
        mock_client.get_file_path.assert_not_called()
        assert fake_downloader.calls == []
        assert fake_transcoder.calls == []

    @pytest.mark.asyncio
    async def test_plain_text_gets_usage(self, make_pipeline, mock_client):
        dispatcher = UpdateDispatcher(mock_client, make_pipeline())

        await dispatcher.handle_event(TelegramEvent.text(chat_id=CHAT_ID, text="hello"))

        mock_client.send_message.assert_awaited_once_with(CHAT_ID, USAGE_TEXT)

    @pytest.mark.asyncio
    async def test_concurrent_jobs_in_same_chat_do_not_collide(
        self, make_pipeline, mock_client, transcoder_factory, work_dir
    ):
        transcoder = transcoder_factory(delay=0.02)
        dispatcher = UpdateDispatcher(mock_client, make_pipeline(transcoder=transcoder))

        for message_id in (1, 2, 3):
            media = MediaReference(file_id=f"f{message_id}", kind=MediaKind.VOICE)
            await dispatcher.handle_event(
                TelegramEvent.media(chat_id=CHAT_ID, media=media, message_id=message_id)
            )
        await dispatcher.drain(grace_seconds=2)

        inputs = {c[0] for c in transcoder.calls}
        outputs = {c[1] for c in transcoder.calls}
        assert len(inputs) == 3
        assert len(outputs) == 3
        assert mock_client.send_voice.await_count == 3
        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_signal_while_idle_logs_out_once(self, make_pipeline, mock_client):
        dispatcher = UpdateDispatcher(mock_client, make_pipeline())
        coordinator = ShutdownCoordinator(mock_client, dispatcher, grace_seconds=1)

        coordinator.request_shutdown(signal.SIGTERM)
        await coordinator.wait()
        cancelled = await coordinator.shutdown()

        assert cancelled == 0
        mock_client.log_out.assert_awaited_once()
        mock_client.stop.assert_awaited_once()

        await dispatcher.handle_event(
            TelegramEvent.media(chat_id=CHAT_ID, media=MediaReference(file_id="late", kind=MediaKind.AUDIO))
        )
        assert mock_client.send_message.await_args.args == (CHAT_ID, BUSY_TEXT)
        mock_client.get_file_path.assert_not_called()
