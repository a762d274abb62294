"""
Mixtape Player - Main Entrypoint
Enriches the tracklist of one product document and logs the outcome.

Usage: python main.py product.json [commerce_product_id]
"""
import asyncio
import json
import logging
import sys
from pathlib import Path

from mixtape_player.context import PlaybackContext
from mixtape_player.services.models import EnrichmentRequest
from mixtape_player.utils.logging import setup_logging


async def main(argv: list[str]) -> int:
    setup_logging()
    logger = logging.getLogger(__name__)

    if not argv:
        logger.error("Usage: main.py product.json [commerce_product_id]")
        return 2

    document = json.loads(Path(argv[0]).read_text(encoding="utf-8"))
    commerce_id = argv[1] if len(argv) > 1 else None
    request = EnrichmentRequest.from_content(document, commerce_id)

    async with PlaybackContext() as ctx:
        result = await ctx.pipeline.enrich(request)

    logger.info(
        "Enrichment finished",
        extra={
            "status": result.status.value,
            "tracks": [t.to_dict() for t in result.tracklist],
        },
    )
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main(sys.argv[1:])))
    except KeyboardInterrupt:
        sys.exit(0)
