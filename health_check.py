# health_check.py
"""
Smoke check of the streaming resolver against known episode ids.

Usage: python health_check.py [episode-id ...]
Exits with status 1 when any id yields no sources or fails outright.
"""
import asyncio
import logging
import sys
from typing import List, Sequence

from cache import MemoryCache
from config import settings
from errors import ScrapeError
from http_client import build_client
from streaming import scrape_episode_streaming

logger = logging.getLogger("health_check")

TEST_CASES = ["bleach-1x1", "black-clover-1x28"]


async def check_health(episode_ids: Sequence[str]) -> List[str]:
    """Return the ids that failed."""
    failed = []
    cache = MemoryCache()
    async with build_client() as client:
        for episode_id in episode_ids:
            logger.info(f"Checking {episode_id}...")
            try:
                data = await scrape_episode_streaming(episode_id, client, cache)
            except ScrapeError as e:
                logger.error(f"[FAIL] {episode_id} - Error: {e}")
                failed.append(episode_id)
                continue

            if data.sources:
                logger.info(f"[PASS] {episode_id} - Found {len(data.sources)} sources, {len(data.servers)} servers")
            else:
                logger.error(f"[FAIL] {episode_id} - No sources found")
                failed.append(episode_id)
    return failed


def main(argv: Sequence[str]) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(message)s")
    episode_ids = list(argv) or TEST_CASES

    failed = asyncio.run(check_health(episode_ids))
    if failed:
        logger.error(f"Health check FAILED for: {', '.join(failed)}")
        return 1
    logger.info("Health check PASSED. All systems operational.")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
