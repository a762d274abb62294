"""
Sanity content store client (HTTP mutation API).
Used by the enrichment fallback path to save a merged tracklist.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

import aiohttp

from mixtape_player.config.settings import settings
from mixtape_player.services.models import TracklistEntry
from mixtape_player.utils.http_client import HttpError, post_json

logger = logging.getLogger(__name__)


class ContentStoreClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        project_id: str,
        token: str,
        dataset: str = settings.SANITY_DATASET,
        api_version: str = settings.SANITY_API_VERSION,
    ):
        self._session = session
        self._token = token
        self._url = f"https://{project_id}.api.sanity.io/v{api_version}/data/mutate/{dataset}"

    async def save_tracklist(self, document_id: str, tracklist: Sequence[TracklistEntry]) -> bool:
        if not document_id:
            return False

        mutation = {
            "mutations": [
                {
                    "patch": {
                        "id": document_id,
                        "set": {
                            "tracklist": [t.to_dict() for t in tracklist],
                            "tracklistEnhanced": True,
                            "tracklistLastUpdated": datetime.now(timezone.utc).isoformat(),
                        },
                    }
                }
            ]
        }
        try:
            await post_json(
                self._session,
                self._url,
                mutation,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except (HttpError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning(
                "Content store update failed",
                extra={"document_id": document_id, "error": str(exc)},
            )
            return False

        logger.info("Saved enriched tracklist", extra={"document_id": document_id})
        return True


def build_content_store(session: aiohttp.ClientSession) -> Optional[ContentStoreClient]:
    if not settings.sanity_enabled:
        return None
    return ContentStoreClient(session, settings.SANITY_PROJECT_ID, settings.SANITY_API_TOKEN)
