"""Voice note bot daemon entry point.

Long-polls Telegram for messages, converts every media attachment to an
Opus voice note with ffmpeg and sends it back to the same chat. Stops
gracefully on SIGINT, SIGTERM or SIGQUIT.

Usage:
    python -m voicenote.cli.daemon
    python -m voicenote.cli.daemon --server "https://api.telegram.org/bot%s/%s"
    python -m voicenote.cli.daemon -t 123:ABC -s "http://localhost:8081/bot%s/%s" --debug
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from voicenote import __version__
from voicenote.lib.config import (
    BotConfig,
    PipelineConfig,
    get_bot_config,
    get_pipeline_config,
)
from voicenote.lib.exceptions import ConfigError, DependencyUnavailableError
from voicenote.services.dispatcher import UpdateDispatcher
from voicenote.services.media.downloader import Downloader
from voicenote.services.media.locator import FileLocator
from voicenote.services.media.transcoder import Transcoder
from voicenote.services.pipeline import JobPipeline
from voicenote.services.shutdown import ShutdownCoordinator
from voicenote.services.telegram.bot import TelegramBotAdapter

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_INTERNAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_DEPENDENCY_ERROR = 3


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the daemon."""
    parser = argparse.ArgumentParser(
        prog="voicenote-bot",
        description="Telegram bot that converts media files into voice notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables:
  TELEGRAM_BOT_TOKEN     Bot token (overridden by --token)
  TELEGRAM_SERVER_URL    API URL template, required (overridden by --server)
  DEBUG                  Any non-empty value enables debug mode
""",
    )
    parser.add_argument(
        "-t", "--token",
        help="Telegram bot token",
    )
    parser.add_argument(
        "-s", "--server",
        help="Bot API URL template with token and method slots, "
             "e.g. https://api.telegram.org/bot%%s/%%s",
    )
    parser.add_argument(
        "-d", "--debug",
        nargs="?",
        const="1",
        metavar="VALUE",
        help="Keep transient files and log job diagnostics; "
             "any non-empty value enables, -d \"\" disables",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the daemon."""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "[%(asctime)s] %(levelname)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request URL, which carries the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)


def resolve_bot_config(args: argparse.Namespace) -> BotConfig:
    """
    Environment configuration with command-line overrides applied.

    A flag that was given replaces the environment value, even when empty.
    """
    config = get_bot_config()

    overrides = {}
    if args.token is not None:
        overrides["bot_token"] = args.token
    if args.server is not None:
        overrides["server_url"] = args.server
    if args.debug is not None:
        overrides["debug"] = args.debug

    if overrides:
        config = config.model_copy(update=overrides)
    return config


def validate_configuration(bot_config: BotConfig, pipeline_config: PipelineConfig) -> None:
    """
    Validate configuration before serving.

    Raises:
        ConfigError: If the token or server URL is unusable
    """
    bot_config.validate_required()

    work_path = pipeline_config.work_path
    if not work_path.exists():
        logger.info(f"Creating work directory: {work_path}")
        try:
            work_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create work directory {work_path}: {e}") from e

    logger.info(f"Bot API: {bot_config.base_url}")
    logger.info(f"Work directory: {work_path.absolute()}")
    logger.info(
        f"Jobs: {pipeline_config.max_concurrent_jobs} concurrent, "
        f"{pipeline_config.max_pending_jobs} waiting"
    )
    if bot_config.debug_enabled:
        logger.info("Debug mode: transient files are kept")


def check_transcoder(transcoder: Transcoder) -> None:
    """
    Make sure ffmpeg can be invoked.

    Raises:
        DependencyUnavailableError: If it cannot
    """
    version = transcoder.check_available()
    logger.info(f"Transcoder: {version}")


def build_transcoder(bot_config: BotConfig, pipeline_config: PipelineConfig) -> Transcoder:
    return Transcoder(
        ffmpeg_bin=pipeline_config.ffmpeg_bin,
        timeout_seconds=pipeline_config.transcode_timeout_seconds,
        debug=bot_config.debug_enabled,
    )


async def run_daemon(
    bot_config: BotConfig,
    pipeline_config: PipelineConfig,
    transcoder: Optional[Transcoder] = None,
) -> int:
    """
    Main daemon loop.

    Returns after a termination signal has been handled.

    Returns:
        Number of jobs cancelled during shutdown
    """
    logger.info("Starting voice note bot...")

    debug = bot_config.debug_enabled
    bot = TelegramBotAdapter(bot_config)

    pipeline = JobPipeline(
        client=bot,
        locator=FileLocator(bot, bot_config),
        downloader=Downloader(
            timeout=bot_config.download_timeout,
            debug=debug,
            secret=bot_config.bot_token,
        ),
        transcoder=transcoder or build_transcoder(bot_config, pipeline_config),
        work_dir=pipeline_config.work_path,
        debug=debug,
        job_timeout_seconds=pipeline_config.job_timeout_seconds,
    )

    dispatcher = UpdateDispatcher(
        bot,
        pipeline,
        max_concurrent_jobs=pipeline_config.max_concurrent_jobs,
        max_pending_jobs=pipeline_config.max_pending_jobs,
    )
    bot.on_event(dispatcher.handle_event)

    coordinator = ShutdownCoordinator(
        bot,
        dispatcher,
        grace_seconds=pipeline_config.shutdown_grace_seconds,
    )
    coordinator.install()

    try:
        await bot.start()
        logger.info("Daemon running. Press Ctrl+C to stop.")
        await coordinator.wait()
    finally:
        cancelled = await coordinator.shutdown()

    logger.info("Daemon stopped.")
    return cancelled


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the daemon."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        bot_config = resolve_bot_config(args)
        pipeline_config = get_pipeline_config()
    except ValueError as e:
        # pydantic ValidationError for malformed environment values
        setup_logging(verbose=args.verbose)
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    setup_logging(verbose=args.verbose or bot_config.debug_enabled)

    try:
        validate_configuration(bot_config, pipeline_config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e.message}")
        return EXIT_CONFIG_ERROR

    transcoder = build_transcoder(bot_config, pipeline_config)
    try:
        check_transcoder(transcoder)
    except DependencyUnavailableError as e:
        logger.error(e.message)
        return EXIT_DEPENDENCY_ERROR

    try:
        asyncio.run(run_daemon(bot_config, pipeline_config, transcoder=transcoder))
    except Exception as e:
        logger.exception(f"Daemon failed with error: {e}")
        return EXIT_INTERNAL_ERROR

    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
