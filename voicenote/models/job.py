"""Job models for media-to-voice-note conversion.

A JobContext is created for every media-bearing message and lives
for exactly one pipeline run. Nothing here is persisted.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

OUTPUT_EXTENSION = ".opus"
INPUT_BASE = "input"
OUTPUT_BASE = "output"

_job_counter = itertools.count(1)


class MediaKind(str, Enum):
    """Attachment kinds accepted for conversion, in lookup priority order."""

    AUDIO = "audio"
    VOICE = "voice"
    DOCUMENT = "document"
    VIDEO = "video"
    VIDEO_NOTE = "video_note"


class JobState(str, Enum):
    """
    Job lifecycle states.

    State transitions:
        RECEIVED → LOCATED → CACHED | DOWNLOADED → CONVERTED → DELIVERED → CLEANED_UP
        Any non-terminal state → FAILED
    """

    RECEIVED = "RECEIVED"
    LOCATED = "LOCATED"
    CACHED = "CACHED"
    DOWNLOADED = "DOWNLOADED"
    CONVERTED = "CONVERTED"
    DELIVERED = "DELIVERED"

    # Terminal states
    CLEANED_UP = "CLEANED_UP"
    FAILED = "FAILED"

    @classmethod
    def allowed_transitions(cls) -> dict["JobState", list["JobState"]]:
        """Return allowed state transitions."""
        return {
            cls.RECEIVED: [cls.LOCATED, cls.FAILED],
            cls.LOCATED: [cls.CACHED, cls.DOWNLOADED, cls.FAILED],
            cls.CACHED: [cls.CONVERTED, cls.FAILED],
            cls.DOWNLOADED: [cls.CONVERTED, cls.FAILED],
            cls.CONVERTED: [cls.DELIVERED, cls.FAILED],
            cls.DELIVERED: [cls.CLEANED_UP, cls.FAILED],
            cls.CLEANED_UP: [],
            cls.FAILED: [],
        }

    def can_transition_to(self, new_state: "JobState") -> bool:
        """Check if transition to new_state is allowed."""
        return new_state in self.allowed_transitions().get(self, [])

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.CLEANED_UP, JobState.FAILED)


class InvalidTransitionError(Exception):
    """Raised when a job is moved to a state it cannot reach."""

    def __init__(self, current: JobState, requested: JobState) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition job from {current.value} to {requested.value}")


@dataclass(frozen=True)
class MediaReference:
    """
    Remote file handle plus the attachment kind it came from.

    Attributes:
        file_id: Telegram file ID used for getFile
        kind: Which attachment field carried the file
        file_unique_id: Stable identifier across bots (informational)
        file_size: Size reported by Telegram, if any
        mime_type: MIME type reported by Telegram, if any
        file_name: Original file name (audio/document/video only)
    """

    file_id: str
    kind: MediaKind
    file_unique_id: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


@dataclass(frozen=True)
class JobPaths:
    """Transient file locations for one job."""

    input_path: Path
    output_path: Path

    @classmethod
    def for_job(cls, work_dir: Path, chat_id: int, job_id: str) -> "JobPaths":
        """
        Derive input and output paths from the chat and job identifiers.

        The job identifier makes paths unique even for concurrent jobs
        in the same chat.
        """
        suffix = f"{chat_id}_{job_id}"
        return cls(
            input_path=work_dir / f"{INPUT_BASE}_{suffix}",
            output_path=work_dir / f"{OUTPUT_BASE}_{suffix}{OUTPUT_EXTENSION}",
        )


@dataclass
class ProcessDiagnostics:
    """Captured result of one transcoder invocation."""

    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def generate_job_id(message_id: Optional[int] = None) -> str:
    """
    Generate a process-unique job identifier.

    Combines a monotonic counter with the Telegram message id when known,
    e.g. "7-1042".
    """
    seq = next(_job_counter)
    if message_id is None:
        return str(seq)
    return f"{seq}-{message_id}"


@dataclass
class JobContext:
    """
    State of a single conversion job.

    Attributes:
        job_id: Process-unique identifier
        chat_id: Conversation to reply to
        media: The attachment being converted
        paths: Transient input/output paths owned by this job
        debug: Retain files and log diagnostics when True
        state: Current lifecycle state
        source_path: File fed to the transcoder (cached or downloaded)
        created_files: Files this job may have written; removed on cleanup
        bytes_downloaded: Bytes written by the downloader
        delivered: Whether the voice note upload succeeded
        diagnostics: Transcoder diagnostics, if it ran
        error: Error that moved the job to FAILED
        created_at: When the job was received
        history: States visited, in order
    """

    job_id: str
    chat_id: int
    media: MediaReference
    paths: JobPaths
    debug: bool = False
    state: JobState = JobState.RECEIVED
    source_path: Optional[Path] = None
    created_files: list[Path] = field(default_factory=list)
    bytes_downloaded: int = 0
    delivered: bool = False
    diagnostics: Optional[ProcessDiagnostics] = None
    error: Optional[BaseException] = None
    created_at: datetime = field(default_factory=datetime.now)
    history: list[JobState] = field(default_factory=lambda: [JobState.RECEIVED])

    @classmethod
    def create(
        cls,
        chat_id: int,
        media: MediaReference,
        work_dir: Path,
        debug: bool = False,
        message_id: Optional[int] = None,
    ) -> "JobContext":
        """Create a new job in RECEIVED state with unique paths."""
        job_id = generate_job_id(message_id)
        return cls(
            job_id=job_id,
            chat_id=chat_id,
            media=media,
            paths=JobPaths.for_job(work_dir, chat_id, job_id),
            debug=debug,
        )

    def transition(self, new_state: JobState) -> None:
        """Move to new_state, enforcing the lifecycle."""
        if not self.state.can_transition_to(new_state):
            raise InvalidTransitionError(self.state, new_state)
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: BaseException) -> None:
        """Record error and move to FAILED (no-op if already terminal)."""
        self.error = error
        if not self.state.is_terminal:
            self.transition(JobState.FAILED)

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds since the job was created."""
        return ((now or datetime.now()) - self.created_at).total_seconds()

    def track_file(self, path: Path) -> None:
        """Register a file this job writes so cleanup can remove it."""
        if path not in self.created_files:
            self.created_files.append(path)
