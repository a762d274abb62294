"""
Tracklist persistence endpoint client.

The endpoint fetches catalog data, merges it and saves the result to the
content store in one request, so from the caller's side enrichment and
persistence succeed or fail together. On success the updated tracklist
is broadcast on the event channel; listeners (including the enrichment
pipeline's cache) pick it up from there.
"""
import asyncio
import logging
import re
import time
from typing import Sequence

import aiohttp

from mixtape_player.config.settings import settings
from mixtape_player.services.events import EventChannel, SanityDataUpdated, TracklistUpdated
from mixtape_player.services.models import (
    EnhancementTypes,
    EnrichmentStatus,
    PersistResult,
    ProductKey,
    TracklistEntry,
)
from mixtape_player.utils.http_client import HttpError, post_json

logger = logging.getLogger(__name__)

_TRACK_N_RE = re.compile(r"^Track \d+$", re.IGNORECASE)


def build_persist_request(document_id: str, tracklist: Sequence[TracklistEntry]) -> dict:
    return {
        "documentId": document_id,
        "tracklist": [t.to_dict() for t in tracklist],
        "enhancementRequest": {
            "enhanceTitles": any(_TRACK_N_RE.match(t.title or "") for t in tracklist),
            "enhanceArtists": any(
                not (t.artist or "").strip() or t.artist.strip() == "Various" for t in tracklist
            ),
            "timestamp": int(time.time() * 1000),
        },
    }


class TracklistPersistenceClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        channel: EventChannel,
        url: str,
    ):
        self._session = session
        self._channel = channel
        self._url = url

    async def __call__(self, product_key: ProductKey, tracklist: Sequence[TracklistEntry]) -> PersistResult:
        return await self.persist(product_key, tracklist)

    async def persist(self, product_key: ProductKey, tracklist: Sequence[TracklistEntry]) -> PersistResult:
        """Send the tracklist for the product's content document.

        Broadcasts are keyed by `product_key` as given, whatever commerce id
        the endpoint reports back.
        """
        document_id = product_key.content_id
        if not document_id:
            return PersistResult.failed()
        body = build_persist_request(document_id, tracklist)
        try:
            data = await post_json(
                self._session,
                self._url,
                body,
                headers={"Accept": "application/json"},
            )
        except (HttpError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning(
                "Tracklist persistence failed",
                extra={"document_id": document_id, "error": str(exc)},
            )
            return PersistResult.failed()

        result = PersistResult.from_response(data)
        if result.success:
            self._broadcast(product_key, result)
        else:
            logger.warning("Tracklist persistence rejected", extra={"document_id": document_id})
        return result

    def _broadcast(self, product_key: ProductKey, result: PersistResult) -> None:
        self._channel.publish(
            TracklistUpdated(
                tracklist=result.tracklist,
                product_key=product_key,
                reason=EnrichmentStatus.DISCOGS_SUCCESS,
                enhancement_types=EnhancementTypes(
                    titles=result.title_enhancements_applied,
                    artists=result.artist_enhancements_applied,
                ),
            )
        )
        self._channel.publish(
            SanityDataUpdated(
                document_id=product_key.content_id,
                swell_product_id=result.commerce_product_id or product_key.commerce_id,
                tracklist=result.tracklist,
            )
        )


def build_persistence_client(session: aiohttp.ClientSession, channel: EventChannel):
    if not settings.TRACKLIST_UPDATE_URL:
        return None
    return TracklistPersistenceClient(session, channel, settings.TRACKLIST_UPDATE_URL)
