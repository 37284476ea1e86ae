"""Configuration management via environment variables and pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_FILE_URL = "https://api.telegram.org/file/bot%s/%s"

# Recognized substitution slots in URL templates, in (token, method) order
_SLOT_STYLES = (("%s", "%s"), ("{token}", "{method}"))


def _split_template(template: str) -> tuple[str, str, str] | None:
    """Split a two-slot URL template into (prefix, middle, suffix)."""
    for first, second in _SLOT_STYLES:
        head, sep, rest = template.partition(first)
        if not sep:
            continue
        middle, sep2, tail = rest.partition(second)
        if sep2:
            return head, middle, tail
    return None


def template_base(template: str) -> str:
    """
    Return the part of a URL template before the token slot.

    python-telegram-bot appends the token to its base URLs, so
    "https://api.telegram.org/bot%s/%s" becomes "https://api.telegram.org/bot".
    """
    parts = _split_template(template)
    if parts is None:
        return template
    return parts[0]


def format_template(template: str, token: str, value: str) -> str:
    """Substitute token and method (or file path) into a URL template."""
    parts = _split_template(template)
    if parts is None:
        return template
    head, middle, tail = parts
    return f"{head}{token}{middle}{value}{tail}"


class BotConfig(BaseSettings):
    """Configuration for the Telegram side of the bot."""

    bot_token: str = Field(
        default="",
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token from @BotFather",
    )

    server_url: str = Field(
        default="",
        alias="TELEGRAM_SERVER_URL",
        description="Bot API endpoint template with token and method slots, "
        "e.g. https://api.telegram.org/bot%s/%s",
    )

    file_url: str = Field(
        default=DEFAULT_FILE_URL,
        alias="TELEGRAM_FILE_URL",
        description="File download endpoint template with token and file path slots",
    )

    poll_timeout: int = Field(
        default=60,
        alias="TELEGRAM_POLL_TIMEOUT",
        description="Server-side long-poll timeout in seconds",
    )

    download_timeout: int = Field(
        default=60,
        alias="TELEGRAM_DOWNLOAD_TIMEOUT",
        description="Timeout for file downloads in seconds",
    )

    debug: str = Field(
        default="",
        alias="DEBUG",
        description="Any non-empty value enables debug mode",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is on for any non-empty toggle."""
        return len(self.debug) > 0

    @property
    def base_url(self) -> str:
        """Bot API base URL in the form python-telegram-bot expects."""
        return template_base(self.server_url)

    @property
    def base_file_url(self) -> str:
        """File download base URL in the form python-telegram-bot expects."""
        return template_base(self.file_url)

    def validate_required(self) -> None:
        """
        Validate that the bot can be started.

        Raises:
            ConfigError: If the token or server URL is missing or malformed
        """
        from voicenote.lib.exceptions import ConfigError

        if not self.bot_token:
            raise ConfigError(
                "Telegram bot token is required. "
                "Set TELEGRAM_BOT_TOKEN or pass --token."
            )

        if not self.server_url:
            raise ConfigError(
                "Telegram server URL is required. "
                "Set TELEGRAM_SERVER_URL or pass --server."
            )

        if _split_template(self.server_url) is None:
            raise ConfigError(
                f"Telegram server URL must contain two substitution slots "
                f"(%s/%s or {{token}}/{{method}}): {self.server_url}"
            )


class PipelineConfig(BaseSettings):
    """Configuration for the conversion job pipeline."""

    ffmpeg_bin: str = Field(
        default="ffmpeg",
        alias="FFMPEG_BIN",
        description="Path or name of the ffmpeg executable",
    )

    work_dir: str = Field(
        default=".",
        alias="VOICENOTE_WORK_DIR",
        description="Directory for transient input/output files",
    )

    max_concurrent_jobs: int = Field(
        default=4,
        alias="MAX_CONCURRENT_JOBS",
        description="Maximum number of conversion jobs running at once",
    )

    max_pending_jobs: int = Field(
        default=32,
        alias="MAX_PENDING_JOBS",
        description="Maximum number of jobs waiting for a slot before rejecting",
    )

    job_timeout_seconds: float = Field(
        default=600,
        alias="JOB_TIMEOUT_SECONDS",
        description="Deadline for a whole job in seconds (0 disables)",
    )

    transcode_timeout_seconds: float = Field(
        default=300,
        alias="TRANSCODE_TIMEOUT_SECONDS",
        description="Deadline for one ffmpeg run in seconds (0 disables)",
    )

    shutdown_grace_seconds: float = Field(
        default=10,
        alias="SHUTDOWN_GRACE_SECONDS",
        description="How long in-flight jobs may finish after a shutdown signal",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def work_path(self) -> Path:
        """Get work directory as Path."""
        return Path(self.work_dir)


# Config instances (lazy loaded)
_bot_config: BotConfig | None = None
_pipeline_config: PipelineConfig | None = None


def get_bot_config() -> BotConfig:
    """Get the bot configuration instance."""
    global _bot_config
    if _bot_config is None:
        _bot_config = BotConfig()
    return _bot_config


def get_pipeline_config() -> PipelineConfig:
    """Get the pipeline configuration instance."""
    global _pipeline_config
    if _pipeline_config is None:
        _pipeline_config = PipelineConfig()
    return _pipeline_config


def reset_all_configs() -> None:
    """Reset all configuration instances (useful for testing)."""
    global _bot_config, _pipeline_config
    _bot_config = None
    _pipeline_config = None
