"""Exception hierarchy for the voice note bot.

All custom exceptions inherit from VoiceNoteError to enable
selective catching at different levels.

Hierarchy:
    VoiceNoteError (base)
    ├── ConfigError - Missing/invalid token or server URL at startup
    ├── DependencyUnavailableError - Transcoder binary not invocable
    ├── RemoteAPIError - File lookup, download or upload failures
    ├── ProcessError - Transcoder exited non-zero, failed to spawn or timed out
    ├── FilesystemError - Local file write/remove failures
    ├── JobTimeoutError - A job exceeded its deadline
    └── QueueFullError - Admission gate rejected a job
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from voicenote.models.job import ProcessDiagnostics


class VoiceNoteError(Exception):
    """
    Base exception for all bot errors.

    Catching this will catch all custom exceptions from this module.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigError(VoiceNoteError):
    """
    Configuration error.

    Raised when required configuration is missing or invalid.
    Examples: missing bot token, server URL without substitution slots.

    CLI Exit Code: 2
    """

    pass


class DependencyUnavailableError(VoiceNoteError):
    """
    External dependency missing.

    Raised at startup when the transcoding binary cannot be invoked.

    CLI Exit Code: 3

    Attributes:
        dependency: Name of the missing program
    """

    def __init__(self, message: str, dependency: str = "ffmpeg"):
        self.dependency = dependency
        super().__init__(message)


class RemoteAPIError(VoiceNoteError):
    """
    Transport communication error.

    Raised when a file lookup, download or upload against Telegram fails.

    Attributes:
        operation: Operation that failed (get_file, download, send_voice, ...)
        original_error: Original exception if wrapping
    """

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        original_error: Exception | None = None,
    ):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"[{operation}] {message}")


class ProcessError(VoiceNoteError):
    """
    Transcoder process error.

    Attributes:
        diagnostics: Captured exit code and output streams, if the process ran
    """

    def __init__(
        self,
        message: str,
        diagnostics: Optional["ProcessDiagnostics"] = None,
    ):
        self.diagnostics = diagnostics
        super().__init__(message)


class FilesystemError(VoiceNoteError):
    """
    Local file read/write/remove error.

    Attributes:
        path: Path that caused the error
        operation: Operation that failed (write, remove)
    """

    def __init__(self, message: str, path: str | None = None, operation: str | None = None):
        self.path = path
        self.operation = operation
        super().__init__(message)


class JobTimeoutError(VoiceNoteError):
    """Raised when a job does not finish within its deadline."""

    def __init__(self, message: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(message)


class QueueFullError(VoiceNoteError):
    """Raised when the job admission gate is at capacity."""

    pass
