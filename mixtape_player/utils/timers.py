"""
Cancellable one-shot timers.

A `TimerSlot` owns at most one pending callback for a single purpose
(e.g. "forget the last track"). Arming the slot cancels whatever was
pending before, so a stale timer can never clear state it no longer owns.
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


CallLater = Callable[[float, Callable[[], None]], TimerHandle]


def loop_call_later(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Schedule on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class TimerSlot:
    def __init__(self, name: str, call_later: CallLater = loop_call_later):
        self.name = name
        self._call_later = call_later
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> bool:
        """Cancel any pending callback, then schedule `callback` after `delay` seconds.

        Returns False when nothing could be scheduled (no event loop).
        """
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        try:
            self._handle = self._call_later(delay, _fire)
        except RuntimeError:
            logger.warning("No event loop to schedule timer", extra={"timer": self.name})
            return False
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
