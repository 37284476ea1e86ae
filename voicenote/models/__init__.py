"""Domain models for media conversion jobs."""

from voicenote.models.job import (
    JobContext,
    JobPaths,
    JobState,
    InvalidTransitionError,
    MediaKind,
    MediaReference,
    ProcessDiagnostics,
)

__all__ = [
    "JobContext",
    "JobPaths",
    "JobState",
    "InvalidTransitionError",
    "MediaKind",
    "MediaReference",
    "ProcessDiagnostics",
]
