"""Shared utilities and configuration."""

from voicenote.lib.config import BotConfig, PipelineConfig
from voicenote.lib.exceptions import (
    VoiceNoteError,
    ConfigError,
    DependencyUnavailableError,
    RemoteAPIError,
    ProcessError,
    FilesystemError,
    JobTimeoutError,
    QueueFullError,
)

__all__ = [
    "BotConfig",
    "PipelineConfig",
    "VoiceNoteError",
    "ConfigError",
    "DependencyUnavailableError",
    "RemoteAPIError",
    "ProcessError",
    "FilesystemError",
    "JobTimeoutError",
    "QueueFullError",
]
