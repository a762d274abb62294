"""
Shared aiohttp plumbing for the catalog, persistence and content-store clients.

Requests are retried on rate limiting (429), upstream 5xx and dropped
connections. A `Retry-After` header from the catalog API wins over the
exponential backoff.
"""
import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import aiohttp
from aiohttp import ClientResponse, ClientSession, TCPConnector

from mixtape_player.config.settings import settings

logger = logging.getLogger(__name__)

_RETRY_ON = frozenset({429, 500, 502, 503, 504})
_MAX_RETRY_AFTER = 60.0


class HttpError(Exception):
    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(f"HTTP {status}: {message}")


def build_session() -> ClientSession:
    return ClientSession(
        connector=TCPConnector(limit=20),
        timeout=aiohttp.ClientTimeout(total=settings.HTTP_TIMEOUT_SECONDS),
        raise_for_status=False,
    )


async def fetch_json(
    session: ClientSession,
    url: str,
    *,
    headers: Optional[dict] = None,
    params: Optional[dict] = None,
) -> Any:
    return await _send(session, "GET", url, headers=headers, params=params)


async def post_json(
    session: ClientSession,
    url: str,
    body: Any,
    *,
    headers: Optional[dict] = None,
) -> Any:
    """POST `body` as JSON. Returns the decoded response, or None for an empty one."""
    return await _send(session, "POST", url, headers=headers, json_body=body)


def _retry_delay(resp: Optional[ClientResponse], attempt: int, backoff: float) -> float:
    if resp is not None:
        header = resp.headers.get("Retry-After")
        if header:
            try:
                return min(float(header), _MAX_RETRY_AFTER)
            except ValueError:
                pass
    return backoff ** attempt


async def _decode(resp: ClientResponse) -> Any:
    if resp.status == 204:
        return None
    text = await resp.text()
    if not text.strip():
        return None
    return json.loads(text)


async def _send(
    session: ClientSession,
    method: str,
    url: str,
    *,
    headers: Optional[dict] = None,
    params: Optional[dict] = None,
    json_body: Any = None,
    attempts: int = settings.HTTP_RETRY_ATTEMPTS,
    backoff: float = settings.HTTP_RETRY_BACKOFF,
) -> Any:
    host = urlsplit(url).netloc
    error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        last = attempt == attempts
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                max_redirects=settings.HTTP_MAX_REDIRECTS,
            ) as resp:
                if resp.status in _RETRY_ON and not last:
                    wait = _retry_delay(resp, attempt, backoff)
                    logger.warning(
                        "Upstream asked us to back off",
                        extra={"host": host, "status": resp.status, "attempt": attempt, "wait": wait},
                    )
                    await asyncio.sleep(wait)
                    continue
                if resp.status >= 400:
                    raise HttpError(resp.status, (await resp.text())[:200])
                return await _decode(resp)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as exc:
            error = exc
            if last:
                break
            wait = _retry_delay(None, attempt, backoff)
            logger.warning(
                "Request to %s failed, retrying",
                host,
                extra={"error": repr(exc), "attempt": attempt, "wait": wait},
            )
            await asyncio.sleep(wait)

    raise error or HttpError(0, f"{method} {url}: no attempts made")
