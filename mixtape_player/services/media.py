"""
Media resource contract.

A media resource wraps one loaded audio source (a browser audio element,
an mpv instance, ...). The playback controller creates one per track,
binds handlers to its events, and tears it down before creating the next.
Concrete backends subclass `MediaResource` and call `emit()` when the
underlying player reports progress.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class MediaEvent(str, Enum):
    READY = "canplay"
    PLAY = "play"
    PAUSE = "pause"
    PROGRESS = "timeupdate"
    DURATION = "loadedmetadata"
    ENDED = "ended"
    ERROR = "error"


class MediaResource(ABC):
    def __init__(self, locator: str):
        self.locator = locator
        # 0.0 to 1.0; backends with a real mixer override this with a property
        self.volume = 1.0
        self._handlers: dict[MediaEvent, Callable[[], None]] = {}

    def on(self, event: MediaEvent, handler: Callable[[], None]) -> None:
        self._handlers[event] = handler

    def unbind_all(self) -> None:
        self._handlers.clear()

    def emit(self, event: MediaEvent) -> None:
        handler = self._handlers.get(event)
        if handler is not None:
            handler()

    @property
    @abstractmethod
    def paused(self) -> bool: ...

    @property
    @abstractmethod
    def current_time(self) -> float: ...

    @property
    @abstractmethod
    def duration(self) -> float: ...

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def seek(self, seconds: float) -> None: ...

    @abstractmethod
    def release(self) -> None:
        """Free the underlying source. The resource is unusable afterwards."""


MediaFactory = Callable[[str], MediaResource]
