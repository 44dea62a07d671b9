"""OS signal handling for the orchestration pass."""

import asyncio
import signal
from typing import Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)

# SIGKILL cannot be handled, so SIGTERM stands in as the kill-class signal
TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownSignal:
    """A one-shot "terminate now" event fed by OS signals.

    Usage:
        shutdown = ShutdownSignal()
        shutdown.install()
        sig = await shutdown.wait()
    """

    def __init__(self, signals: Iterable[signal.Signals] = TERMINATION_SIGNALS):
        self._signals = tuple(signals)
        self._event = asyncio.Event()
        self._received: Optional[signal.Signals] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def received(self) -> Optional[signal.Signals]:
        return self._received

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        for sig in self._signals:
            self._loop.add_signal_handler(sig, self.trigger, sig)

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for sig in self._signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def trigger(self, sig: int) -> None:
        if self._received is not None:
            return
        self._received = signal.Signals(sig)
        logger.debug("Termination signal caught", signal=self._received.name)
        self._event.set()

    async def wait(self) -> signal.Signals:
        await self._event.wait()
        return self._received
