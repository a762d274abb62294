"""
Playback subscription bus.

Listeners take no arguments: they are told *that* playback state changed
and read the current state themselves. Notification is synchronous and
happens once per mutation; a failing listener is logged and skipped.

Elapsed time changes too often to be worth a broadcast per tick, so
surfaces that render a progress bar or idle fade poll the state with a
`StatePoller` instead. That is the one deliberate exception to
event-driven delivery.
"""
import asyncio
import logging
from contextlib import suppress
from typing import Callable, Optional

from mixtape_player.config.settings import settings

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class SubscriptionBus:
    def __init__(self) -> None:
        self._listeners: set[Listener] = set()

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that unsubscribes it."""
        self._listeners.add(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.discard(listener)

    def notify_all(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Playback listener failed", extra={"listener": repr(listener)})


class StatePoller:
    """Calls `callback` every `interval` seconds until stopped."""

    def __init__(
        self,
        callback: Listener,
        interval: float = settings.PLAYBACK_POLL_INTERVAL_SECONDS,
    ):
        self._callback = callback
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                self._callback()
            except Exception:
                logger.exception("State poll callback failed")
            await asyncio.sleep(self._interval)
