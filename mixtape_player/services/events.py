"""
Typed process-wide broadcast channel.

Each event kind is a dataclass; handlers subscribe per kind and receive
the event instance. Delivery is synchronous and fire-and-forget: a
handler that raises is logged and does not stop delivery to the others.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Optional, Union

from mixtape_player.services.models import (
    EnhancementTypes,
    EnrichmentStatus,
    ProductKey,
    TracklistEntry,
)

logger = logging.getLogger(__name__)


@dataclass
class TracklistUpdated:
    channel: ClassVar[str] = "tracklistUpdated"

    tracklist: list[TracklistEntry]
    product_key: ProductKey
    reason: EnrichmentStatus
    enhancement_types: Optional[EnhancementTypes] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class SanityDataUpdated:
    """Legacy compatibility event emitted after a tracklist was persisted."""

    channel: ClassVar[str] = "sanityDataUpdated"

    document_id: str
    swell_product_id: Optional[str]
    tracklist: list[TracklistEntry]
    type: str = "tracklistUpdate"
    timestamp: float = field(default_factory=time.time)

    @property
    def product_key(self) -> ProductKey:
        return ProductKey(self.swell_product_id, self.document_id)


@dataclass
class EnhancedTracklistAvailable:
    channel: ClassVar[str] = "enhancedTracklistAvailable"

    product_id: Optional[str]
    product_identifiers: ProductKey
    enhanced_tracklist: list[TracklistEntry]
    enhancement_types: EnhancementTypes = field(default_factory=EnhancementTypes)
    timestamp: float = field(default_factory=time.time)


Event = Union[TracklistUpdated, SanityDataUpdated, EnhancedTracklistAvailable]
Handler = Callable[[Any], None]


class EventChannel:
    def __init__(self) -> None:
        self._handlers: dict[type, set[Handler]] = {}

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(event_type, set()).add(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers:
            handlers.discard(handler)

    def publish(self, event: Event) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"channel": event.channel, "handler": repr(handler)},
                )
