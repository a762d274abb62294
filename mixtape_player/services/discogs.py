"""
Discogs service.
- Release lookup via the Discogs REST API.
- A personal access token is optional; unauthenticated requests work at a
  lower rate limit.
"""
import asyncio
import logging
from typing import Optional

import aiohttp

from mixtape_player.config.settings import settings
from mixtape_player.services.models import CatalogArtist, CatalogRelease, CatalogTrack
from mixtape_player.utils.http_client import HttpError, fetch_json

logger = logging.getLogger(__name__)


class DiscogsError(Exception):
    pass


class DiscogsClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: Optional[str] = settings.DISCOGS_TOKEN,
        api_base: str = settings.DISCOGS_API_BASE,
    ):
        self._session = session
        self._token = token
        self._api_base = api_base

    async def get_release(self, release_id: str) -> CatalogRelease:
        headers = {"User-Agent": settings.DISCOGS_USER_AGENT}
        if self._token:
            headers["Authorization"] = f"Discogs token={self._token}"

        try:
            data = await fetch_json(
                self._session,
                f"{self._api_base}/releases/{release_id}",
                headers=headers,
            )
        except (HttpError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise DiscogsError(f"Discogs release {release_id} unavailable: {exc}") from exc

        release = _parse_release(release_id, data)
        logger.info(
            "Fetched Discogs release",
            extra={"release_id": release_id, "tracks": len(release.tracklist)},
        )
        return release


def _parse_release(release_id: str, data: dict) -> CatalogRelease:
    tracks = [
        _parse_track(t)
        for t in (data or {}).get("tracklist") or []
        if t.get("type_", "track") != "heading"
    ]
    return CatalogRelease(release_id=str(release_id), tracklist=tracks)


def _parse_track(data: dict) -> CatalogTrack:
    return CatalogTrack(
        title=data.get("title") or "",
        duration=data.get("duration") or "",
        position=data.get("position") or "",
        artists=[_parse_artist(a) for a in data.get("artists") or []],
        extraartists=[_parse_artist(a) for a in data.get("extraartists") or []],
    )


def _parse_artist(data: dict) -> CatalogArtist:
    return CatalogArtist(name=data.get("name") or "", role=data.get("role") or "")
