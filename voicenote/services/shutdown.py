"""Signal-driven graceful shutdown.

On SIGINT, SIGTERM or SIGQUIT the daemon stops polling, lets in-flight
jobs finish for a grace period, cancels the rest, logs the bot out of
the Bot API server once and stops the application.
"""

import asyncio
import logging
import signal
from typing import Optional, Protocol

from voicenote.lib.exceptions import RemoteAPIError
from voicenote.services.dispatcher import UpdateDispatcher

logger = logging.getLogger(__name__)


def shutdown_signals() -> tuple[signal.Signals, ...]:
    """Termination signals available on this platform."""
    signals = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGQUIT"):
        signals.append(signal.SIGQUIT)
    return tuple(signals)


class BotLifecycle(Protocol):
    async def stop_polling(self) -> None: ...

    async def log_out(self) -> None: ...

    async def stop(self) -> None: ...


class ShutdownCoordinator:
    """
    Waits for a termination signal and tears the daemon down in order.

    Example:
        coordinator = ShutdownCoordinator(bot, dispatcher, grace_seconds=10)
        coordinator.install()
        await bot.start()
        await coordinator.wait()
        await coordinator.shutdown()
    """

    def __init__(
        self,
        bot: BotLifecycle,
        dispatcher: UpdateDispatcher,
        grace_seconds: float = 10,
    ):
        self.bot = bot
        self.dispatcher = dispatcher
        self.grace_seconds = grace_seconds
        self._stop_event = asyncio.Event()
        self._received: Optional[signal.Signals] = None
        self._installed: list[signal.Signals] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_started = False
        self._logged_out = False

    @property
    def received_signal(self) -> Optional[signal.Signals]:
        """The first signal received, if any."""
        return self._received

    @property
    def logged_out(self) -> bool:
        return self._logged_out

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register signal handlers on the running event loop."""
        self._loop = loop or asyncio.get_running_loop()

        for sig in shutdown_signals():
            try:
                self._loop.add_signal_handler(sig, self.request_shutdown, sig)
                self._installed.append(sig)
            except (NotImplementedError, RuntimeError) as e:
                logger.warning(f"Cannot handle {sig.name} on this platform: {e}")

    def uninstall(self) -> None:
        """Remove the handlers registered by install()."""
        if self._loop is None:
            return
        for sig in self._installed:
            self._loop.remove_signal_handler(sig)
        self._installed.clear()

    def request_shutdown(self, sig: signal.Signals) -> None:
        """Signal handler: record the first signal and wake wait()."""
        if self._stop_event.is_set():
            logger.info(f"Received {sig.name} again, shutdown already in progress")
            return
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        self._received = sig
        self._stop_event.set()

    async def wait(self) -> signal.Signals:
        """Block until a termination signal arrives."""
        await self._stop_event.wait()
        return self._received

    async def shutdown(self) -> int:
        """
        Tear down the daemon. Safe to call more than once.

        The bot session is only logged out when shutdown was triggered
        by a signal.

        Returns:
            Number of jobs cancelled because the grace period ran out
        """
        if self._shutdown_started:
            return 0
        self._shutdown_started = True

        await self.bot.stop_polling()

        cancelled = await self.dispatcher.drain(self.grace_seconds)
        if cancelled:
            logger.warning(f"{cancelled} job(s) cancelled during shutdown")

        if self._received is not None:
            await self._log_out()

        await self.bot.stop()
        self.uninstall()
        return cancelled

    async def _log_out(self) -> None:
        if self._logged_out:
            return
        self._logged_out = True

        try:
            await self.bot.log_out()
            logger.info("Logged out successfully.")
        except RemoteAPIError as e:
            logger.error(f"Failed to log out: {e}")
