"""Update dispatcher with a bounded job admission gate.

For every incoming message the dispatcher either replies with usage
text or admits a conversion job. Jobs run as independent asyncio tasks;
at most max_concurrent_jobs execute at once and at most max_pending_jobs
wait for a slot. Anything beyond that is rejected with a busy notice.
"""

import asyncio
import logging
from typing import Optional, Protocol

from voicenote.lib.exceptions import QueueFullError, RemoteAPIError
from voicenote.models.job import JobContext, MediaReference
from voicenote.services.pipeline import JobPipeline
from voicenote.services.telegram.adapter import TelegramEvent

logger = logging.getLogger(__name__)

USAGE_TEXT = "To use this bot, send any audio file and it will be converted to opus format."
BUSY_TEXT = "Too many files are being converted right now. Please try again in a moment."


class ReplyClient(Protocol):
    async def send_message(self, chat_id: int, text: str) -> None: ...


class UpdateDispatcher:
    """
    Routes normalized Telegram events.

    Example:
        dispatcher = UpdateDispatcher(bot, pipeline, max_concurrent_jobs=4)
        bot.on_event(dispatcher.handle_event)
        ...
        await dispatcher.drain(grace_seconds=10)
    """

    def __init__(
        self,
        client: ReplyClient,
        pipeline: JobPipeline,
        max_concurrent_jobs: int = 4,
        max_pending_jobs: int = 32,
    ):
        """
        Initialize the dispatcher.

        Args:
            client: Used for usage/busy replies
            pipeline: Runs admitted jobs
            max_concurrent_jobs: Jobs allowed to run at once
            max_pending_jobs: Jobs allowed to wait for a slot
        """
        self.client = client
        self.pipeline = pipeline
        self._max_concurrent = max(1, max_concurrent_jobs)
        self._max_pending = max(0, max_pending_jobs)
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._tasks: set[asyncio.Task] = set()
        self._active = 0
        self._accepting = True

    async def handle_event(self, event: TelegramEvent) -> None:
        """Handle one incoming message."""
        if event.is_command:
            logger.debug(f"Command /{event.command_name} from chat {event.chat_id}")
            await self._reply(event.chat_id, USAGE_TEXT)
            return

        media = event.media_ref
        if media is None:
            await self._reply(event.chat_id, USAGE_TEXT)
            return

        try:
            self.submit(event.chat_id, media, message_id=event.message_id)
        except QueueFullError as e:
            logger.warning(f"Rejected job from chat {event.chat_id}: {e}")
            await self._reply(event.chat_id, BUSY_TEXT)

    def submit(
        self,
        chat_id: int,
        media: MediaReference,
        message_id: Optional[int] = None,
    ) -> asyncio.Task:
        """
        Admit a job and start it as a background task.

        Returns:
            The job task

        Raises:
            QueueFullError: If shutting down or all running and waiting slots are taken
        """
        if not self._accepting:
            raise QueueFullError("Dispatcher is shutting down")

        capacity = self._max_concurrent + self._max_pending
        if len(self._tasks) >= capacity:
            raise QueueFullError(
                f"Job queue is full ({self.active_jobs} running, {self.pending_jobs} waiting)"
            )

        task = asyncio.create_task(
            self._run_job(chat_id, media, message_id),
            name=f"job-{chat_id}-{message_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_job_done)

        logger.debug(
            f"Job admitted for chat {chat_id}: "
            f"running={self.active_jobs}, in_flight={self.in_flight}"
        )
        return task

    async def _run_job(
        self,
        chat_id: int,
        media: MediaReference,
        message_id: Optional[int],
    ) -> JobContext:
        async with self._semaphore:
            self._active += 1
            try:
                return await self.pipeline.run(chat_id, media, message_id=message_id)
            finally:
                self._active -= 1

    def _on_job_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Job task {task.get_name()} ended with error: {error!r}")

    async def _reply(self, chat_id: int, text: str) -> None:
        try:
            await self.client.send_message(chat_id, text)
        except RemoteAPIError as e:
            logger.warning(f"Failed to reply to chat {chat_id}: {e}")

    @property
    def active_jobs(self) -> int:
        """Jobs currently holding a slot."""
        return self._active

    @property
    def in_flight(self) -> int:
        """All admitted jobs that have not finished."""
        return len(self._tasks)

    @property
    def pending_jobs(self) -> int:
        """Jobs waiting for a slot."""
        return max(0, len(self._tasks) - self._active)

    def close(self) -> None:
        """Stop admitting new jobs."""
        self._accepting = False

    async def drain(self, grace_seconds: float) -> int:
        """
        Stop admitting jobs and wait for in-flight ones.

        Jobs still running after grace_seconds are cancelled; cancellation
        kills their ffmpeg process and removes their files.

        Returns:
            Number of jobs that had to be cancelled
        """
        self.close()

        tasks = set(self._tasks)
        if not tasks:
            return 0

        logger.info(f"Waiting up to {grace_seconds}s for {len(tasks)} job(s) to finish...")
        _, pending = await asyncio.wait(tasks, timeout=grace_seconds)

        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelling {len(pending)} unfinished job(s)")
            await asyncio.gather(*pending, return_exceptions=True)

        return len(pending)
