"""Conversion job pipeline.

Runs one media message through locate → download → convert → deliver →
cleanup, sending progress notices to the user along the way. Every job error
is contained here; only task cancellation propagates.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from voicenote.lib.exceptions import (
    JobTimeoutError,
    ProcessError,
    RemoteAPIError,
    VoiceNoteError,
)
from voicenote.models.job import JobContext, JobState, MediaReference
from voicenote.services.media.cleanup import cleanup_files
from voicenote.services.media.downloader import Downloader
from voicenote.services.media.locator import FileLocator
from voicenote.services.media.transcoder import Transcoder

logger = logging.getLogger(__name__)

PROGRESS_RECEIVED = "Request received, starting download..."
PROGRESS_CONVERTING = "Download complete, starting conversion..."


class MessagingClient(Protocol):
    """The part of the bot adapter the pipeline talks to."""

    async def send_message(self, chat_id: int, text: str) -> None: ...

    async def send_voice(self, chat_id: int, file_path: Path) -> None: ...


class JobPipeline:
    """
    Orchestrates a single conversion job.

    Collaborators are passed in explicitly so each job works against the
    same immutable set of services.
    """

    def __init__(
        self,
        client: MessagingClient,
        locator: FileLocator,
        downloader: Downloader,
        transcoder: Transcoder,
        work_dir: Path,
        debug: bool = False,
        job_timeout_seconds: float = 0,
    ):
        """
        Initialize the pipeline.

        Args:
            client: Sends progress text and the resulting voice note
            locator: Resolves media to a cached path or URL
            downloader: Fetches remote files
            transcoder: Runs ffmpeg
            work_dir: Directory for transient files
            debug: Keep files and log diagnostics
            job_timeout_seconds: Deadline for a whole job (0 = none)
        """
        self.client = client
        self.locator = locator
        self.downloader = downloader
        self.transcoder = transcoder
        self.work_dir = work_dir
        self.debug = debug
        self.job_timeout_seconds = job_timeout_seconds

    async def run(
        self,
        chat_id: int,
        media: MediaReference,
        message_id: Optional[int] = None,
    ) -> JobContext:
        """
        Run a job to a terminal state.

        Returns:
            The finished JobContext (CLEANED_UP or FAILED)

        Raises:
            asyncio.CancelledError: Only if the job task itself is cancelled;
                files are still cleaned up first
        """
        ctx = JobContext.create(
            chat_id=chat_id,
            media=media,
            work_dir=self.work_dir,
            debug=self.debug,
            message_id=message_id,
        )
        logger.info(f"Job {ctx.job_id}: {media.kind.value} from chat {chat_id}")

        try:
            if self.job_timeout_seconds:
                await asyncio.wait_for(self._execute(ctx), timeout=self.job_timeout_seconds)
            else:
                await self._execute(ctx)

        except asyncio.TimeoutError:
            error = JobTimeoutError(
                f"Job {ctx.job_id} exceeded {self.job_timeout_seconds}s in state {ctx.state.value}",
                timeout_seconds=self.job_timeout_seconds,
            )
            logger.error(error.message)
            ctx.fail(error)

        except VoiceNoteError as e:
            logger.error(f"Job {ctx.job_id} failed after {ctx.state.value}: {e}")
            if isinstance(e, ProcessError):
                ctx.diagnostics = e.diagnostics
            ctx.fail(e)

        except asyncio.CancelledError as e:
            logger.warning(f"Job {ctx.job_id} cancelled in state {ctx.state.value}")
            ctx.fail(e)
            raise

        except Exception as e:
            logger.exception(f"Job {ctx.job_id} crashed after {ctx.state.value}: {e}")
            ctx.fail(e)

        finally:
            self._release(ctx)

        return ctx

    async def _execute(self, ctx: JobContext) -> None:
        """Steps in pipeline order. Raises on the first failing step."""
        await self._notify(ctx, PROGRESS_RECEIVED)

        location = await self.locator.locate(ctx.media)
        ctx.transition(JobState.LOCATED)

        if ctx.debug:
            logger.debug(
                f"Job {ctx.job_id}: file_id={ctx.media.file_id} "
                f"file_path={location.file_path} cached={location.cached} "
                f"input={ctx.paths.input_path} output={ctx.paths.output_path}"
            )

        if location.cached:
            ctx.source_path = location.local_path
            ctx.transition(JobState.CACHED)
        else:
            # Tracked before writing so a partial download is removed too
            ctx.track_file(ctx.paths.input_path)
            ctx.bytes_downloaded = await self.downloader.download(
                location.url, ctx.paths.input_path
            )
            ctx.source_path = ctx.paths.input_path
            ctx.transition(JobState.DOWNLOADED)

        await self._notify(ctx, PROGRESS_CONVERTING)

        ctx.track_file(ctx.paths.output_path)
        ctx.diagnostics = await self.transcoder.convert(ctx.source_path, ctx.paths.output_path)
        ctx.transition(JobState.CONVERTED)

        try:
            await self.client.send_voice(ctx.chat_id, ctx.paths.output_path)
            ctx.delivered = True
        except RemoteAPIError as e:
            logger.error(f"Job {ctx.job_id}: failed to send voice message: {e}")
        ctx.transition(JobState.DELIVERED)

    async def _notify(self, ctx: JobContext, text: str) -> None:
        """Send a progress notice; failures are logged only."""
        try:
            await self.client.send_message(ctx.chat_id, text)
        except RemoteAPIError as e:
            logger.warning(f"Job {ctx.job_id}: progress message not sent: {e}")

    def _release(self, ctx: JobContext) -> None:
        """Remove the job's files unless debug mode keeps them."""
        if ctx.debug:
            if ctx.created_files:
                logger.debug(
                    f"Job {ctx.job_id}: debug mode, keeping "
                    f"{', '.join(str(p) for p in ctx.created_files)}"
                )
        elif ctx.created_files:
            result = cleanup_files(ctx.created_files)
            if not result.ok:
                logger.warning(
                    f"Job {ctx.job_id}: {len(result.failed)} file(s) could not be removed"
                )

        if ctx.state == JobState.DELIVERED:
            ctx.transition(JobState.CLEANED_UP)

        logger.info(
            f"Job {ctx.job_id} finished: {ctx.state.value} "
            f"in {ctx.elapsed_seconds():.1f}s"
        )

