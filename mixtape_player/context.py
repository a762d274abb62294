"""
Application-owned playback context.

Create one at startup, hand it (or its parts) to every surface, and close
it at shutdown. It replaces any module-level player singleton.
"""
import logging
from typing import Optional

import aiohttp

from mixtape_player.services.bus import StatePoller, SubscriptionBus
from mixtape_player.services.cache import CacheManager, build_default_cache
from mixtape_player.services.content_store import build_content_store
from mixtape_player.services.discogs import DiscogsClient
from mixtape_player.services.events import EventChannel
from mixtape_player.services.media import MediaFactory
from mixtape_player.services.persistence import build_persistence_client
from mixtape_player.services.pipeline import EnrichmentOptions, EnrichmentPipeline
from mixtape_player.services.playback import PlaybackController
from mixtape_player.utils.http_client import build_session

logger = logging.getLogger(__name__)


class PlaybackContext:
    def __init__(
        self,
        media_factory: Optional[MediaFactory] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[CacheManager] = None,
        options: Optional[EnrichmentOptions] = None,
    ):
        self._owns_session = session is None
        self.session = session or build_session()
        self.cache = cache or build_default_cache()
        self.bus = SubscriptionBus()
        self.events = EventChannel()
        self.player = PlaybackController(media_factory, self.bus)
        self.pipeline = EnrichmentPipeline(
            self.cache,
            self.events,
            catalog=DiscogsClient(self.session),
            persist=build_persistence_client(self.session, self.events),
            content_store=build_content_store(self.session),
            playback=self.player,
            options=options,
        )
        self._pollers: list[StatePoller] = []

    def poll(self, callback, interval: Optional[float] = None) -> StatePoller:
        """Start a fixed-interval poller for fast-changing values such as elapsed time."""
        poller = StatePoller(callback) if interval is None else StatePoller(callback, interval)
        poller.start()
        self._pollers.append(poller)
        return poller

    async def start(self) -> None:
        self.cache.start_sweeper()
        logger.info("Playback context started")

    async def close(self) -> None:
        for poller in self._pollers:
            await poller.stop()
        self._pollers.clear()
        await self.cache.stop_sweeper()
        self.player.shutdown()
        if self._owns_session:
            await self.session.close()
        logger.info("Playback context closed")

    async def __aenter__(self) -> "PlaybackContext":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
