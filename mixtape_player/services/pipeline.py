"""
Enrichment pipeline, high-level flow:
  tracklist → short-circuit checks → catalog fetch/merge or persistence call
            → cache → patch live playback → broadcast

Every invocation ends with a broadcast carrying a tracklist, so a surface
waiting on the event always has something to render. Failures fall back
to the original tracklist and are cached so they do not retry on every
render; `retry_update()` clears that memory for one product.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from mixtape_player.config.settings import settings
from mixtape_player.services.cache import CacheManager, NamespaceConfig
from mixtape_player.services.enrichment import merge_tracklists, tracklist_needs_update
from mixtape_player.services.events import (
    EnhancedTracklistAvailable,
    EventChannel,
    SanityDataUpdated,
    TracklistUpdated,
)
from mixtape_player.services.models import (
    CatalogRelease,
    EnhancementTypes,
    EnrichmentRequest,
    EnrichmentResult,
    EnrichmentStatus,
    PersistResult,
    ProductKey,
    TracklistEntry,
)
from mixtape_player.services.playback import PlaybackController

logger = logging.getLogger(__name__)

DATA_NAMESPACE = "tracklists"
GUARD_NAMESPACE = "tracklistsProcessed"
_PROCESSED = "PROCESSED"

PersistFn = Callable[[ProductKey, Sequence[TracklistEntry]], Awaitable[PersistResult]]


class CatalogSource(Protocol):
    async def get_release(self, release_id: str) -> CatalogRelease: ...


class TracklistStore(Protocol):
    async def save_tracklist(self, document_id: str, tracklist: Sequence[TracklistEntry]) -> bool: ...


@dataclass(frozen=True)
class EnrichmentOptions:
    enhance_titles: bool = field(default_factory=lambda: settings.ENRICH_TITLES)
    enhance_artists: bool = field(default_factory=lambda: settings.ENRICH_ARTISTS)
    require_release_id: bool = field(default_factory=lambda: settings.ENRICH_REQUIRE_RELEASE_ID)
    skip_if_already_enhanced: bool = field(
        default_factory=lambda: settings.ENRICH_SKIP_IF_ALREADY_ENHANCED
    )


class EnrichmentPipeline:
    def __init__(
        self,
        cache: CacheManager,
        channel: EventChannel,
        *,
        catalog: Optional[CatalogSource] = None,
        persist: Optional[PersistFn] = None,
        content_store: Optional[TracklistStore] = None,
        playback: Optional[PlaybackController] = None,
        options: Optional[EnrichmentOptions] = None,
    ):
        self._cache = cache
        self._channel = channel
        self._catalog = catalog
        self._persist = persist
        self._content_store = content_store
        self._playback = playback
        self._options = options or EnrichmentOptions()
        self._in_flight: dict[ProductKey, asyncio.Task] = {}
        self._persisting: dict[str, ProductKey] = {}

        ttl = settings.ENRICHMENT_CACHE_TTL_SECONDS
        cache.create_namespace(
            DATA_NAMESPACE,
            NamespaceConfig(
                ttl, settings.ENRICHMENT_CACHE_MAX_ENTRIES, settings.mb(settings.ENRICHMENT_CACHE_MAX_MEMORY_MB)
            ),
        )
        cache.create_namespace(
            GUARD_NAMESPACE,
            NamespaceConfig(
                ttl, settings.ENRICHMENT_CACHE_MAX_ENTRIES, settings.mb(settings.ENRICHMENT_GUARD_MAX_MEMORY_MB)
            ),
        )
        channel.subscribe(SanityDataUpdated, self._on_persisted)

    async def enrich(self, request: EnrichmentRequest) -> EnrichmentResult:
        """Run the pipeline for one product.

        Concurrent calls for the same product join the one already running.
        """
        key = request.product_key
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run(request))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("Joining in-flight enrichment", extra={"product": key})
        return await asyncio.shield(task)

    def retry_update(self, product_key: ProductKey) -> None:
        """Forget the cached result and processed mark so the next call starts over."""
        self._cache.delete(DATA_NAMESPACE, product_key)
        self._cache.delete(GUARD_NAMESPACE, product_key)

    def clear_processed(self, product_key: ProductKey) -> None:
        self._cache.delete(GUARD_NAMESPACE, product_key)

    def clear_all(self) -> None:
        self._cache.clear(DATA_NAMESPACE)
        self._cache.clear(GUARD_NAMESPACE)

    def is_processed(self, product_key: ProductKey) -> bool:
        return self._cache.get(GUARD_NAMESPACE, product_key) is not None

    # ── Pipeline ─────────────────────────────────────────────────────────────

    async def _run(self, request: EnrichmentRequest) -> EnrichmentResult:
        key = request.product_key
        tracklist = list(request.tracklist)
        opts = self._options

        if not tracklist:
            return self._finish(key, EnrichmentStatus.NO_TRACKLIST, [])

        cached = self._cache.get(DATA_NAMESPACE, key)
        if cached is not None:
            return self._finish(key, EnrichmentStatus.CACHED, list(cached))

        if opts.skip_if_already_enhanced and request.already_enhanced:
            self._cache.set(DATA_NAMESPACE, key, list(tracklist))
            return self._finish(key, EnrichmentStatus.ALREADY_ENHANCED, tracklist)

        if self.is_processed(key):
            return self._finish(key, EnrichmentStatus.ALREADY_PROCESSED, tracklist)

        if opts.require_release_id and not request.release_id:
            self._cache.set(DATA_NAMESPACE, key, list(tracklist))
            return self._finish(key, EnrichmentStatus.NO_DISCOGS_ID, tracklist)

        if not tracklist_needs_update(tracklist, request.product_artist):
            self._cache.set(DATA_NAMESPACE, key, list(tracklist))
            return self._finish(key, EnrichmentStatus.SKIPPED, tracklist)

        try:
            if self._persist is not None and request.document_id:
                return await self._enrich_via_persistence(request, tracklist)
            return await self._enrich_from_catalog(request, tracklist)
        except Exception:
            logger.exception("Tracklist enrichment failed", extra={"product": key})
            self._cache.set(DATA_NAMESPACE, key, list(tracklist))
            return self._finish(key, EnrichmentStatus.DISCOGS_ERROR, tracklist)
        finally:
            self._mark_processed(key)

    async def _enrich_via_persistence(
        self, request: EnrichmentRequest, tracklist: list[TracklistEntry]
    ) -> EnrichmentResult:
        key = request.product_key
        document_id = request.document_id
        self._persisting[document_id] = key
        try:
            result = await self._persist(key, tracklist)
        finally:
            self._persisting.pop(document_id, None)

        if not result.success:
            self._cache.set(DATA_NAMESPACE, key, list(tracklist))
            return self._finish(key, EnrichmentStatus.API_ERROR, tracklist)

        enhanced = result.tracklist or tracklist
        types = EnhancementTypes(
            titles=result.title_enhancements_applied,
            artists=result.artist_enhancements_applied,
        )
        logger.info("Tracklist enriched and persisted", extra={"product": key})
        self._announce(key, enhanced, types)
        return EnrichmentResult(EnrichmentStatus.DISCOGS_SUCCESS, enhanced, types)

    async def _enrich_from_catalog(
        self, request: EnrichmentRequest, tracklist: list[TracklistEntry]
    ) -> EnrichmentResult:
        key = request.product_key
        release = None
        if self._catalog is not None and request.release_id:
            release = await self._catalog.get_release(request.release_id)

        if release is None or not release.tracklist:
            self._cache.set(DATA_NAMESPACE, key, list(tracklist))
            return self._finish(key, EnrichmentStatus.NO_DATA, tracklist)

        merged, types = merge_tracklists(
            tracklist,
            release.tracklist,
            request.product_artist,
            enhance_titles=self._options.enhance_titles,
            enhance_artists=self._options.enhance_artists,
        )
        self._cache.set(DATA_NAMESPACE, key, list(merged))

        if self._content_store is not None and request.document_id:
            await self._content_store.save_tracklist(request.document_id, merged)

        self._announce(key, merged, types)
        return self._finish(key, EnrichmentStatus.DISCOGS_SUCCESS, merged, types)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _finish(
        self,
        key: ProductKey,
        status: EnrichmentStatus,
        tracklist: list[TracklistEntry],
        types: Optional[EnhancementTypes] = None,
    ) -> EnrichmentResult:
        logger.info("Tracklist enrichment status", extra={"product": key, "status": status.value})
        self._channel.publish(
            TracklistUpdated(
                tracklist=tracklist,
                product_key=key,
                reason=status,
                enhancement_types=types,
            )
        )
        return EnrichmentResult(status, tracklist, types)

    def _announce(
        self, key: ProductKey, tracklist: list[TracklistEntry], types: EnhancementTypes
    ) -> None:
        if self._playback is not None and self._playback.is_product_loaded(key):
            self._playback.apply_enriched_tracklist(key, tracklist)
        self._channel.publish(
            EnhancedTracklistAvailable(
                product_id=key.commerce_id or key.content_id,
                product_identifiers=key,
                enhanced_tracklist=tracklist,
                enhancement_types=types,
            )
        )

    def _mark_processed(self, key: ProductKey) -> None:
        self._cache.set(GUARD_NAMESPACE, key, _PROCESSED)

    def _on_persisted(self, event: SanityDataUpdated) -> None:
        if not event.tracklist:
            return
        key = self._persisting.get(event.document_id, event.product_key)
        self._cache.set(DATA_NAMESPACE, key, list(event.tracklist))

    def _release(self, key: ProductKey, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
