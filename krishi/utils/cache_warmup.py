# krishi/utils/cache_warmup.py
import asyncio
import logging
from typing import Iterable, Optional, Tuple

from krishi.core.cache import AdvisoryCache
from krishi.core.config import settings
from krishi.core.logging_config import setup_logging
from krishi.core.retrieval import DataRetrievalOrchestrator
from krishi.models.advisory import CropInfo, Location, QueryContext

logger = logging.getLogger(__name__)

# Major agricultural districts to pre-fetch
MAJOR_LOCATIONS = [
    Location(state="Punjab", district="Ludhiana"),
    Location(state="Haryana", district="Karnal"),
    Location(state="Uttar Pradesh", district="Meerut"),
    Location(state="Maharashtra", district="Pune"),
    Location(state="Maharashtra", district="Nashik"),
    Location(state="Delhi", district="Delhi"),
    Location(state="Gujarat", district="Ahmedabad"),
    Location(state="Madhya Pradesh", district="Indore"),
]

WARMUP_CROPS = ["Wheat", "Rice", "Onion", "Potato", "Tomato"]


async def warmup_cache(
    cache: Optional[AdvisoryCache] = None,
    retriever: Optional[DataRetrievalOrchestrator] = None,
    locations: Iterable[Location] = MAJOR_LOCATIONS,
    crops: Iterable[str] = WARMUP_CROPS,
) -> Tuple[int, int]:
    """Pre-fetch weather and market datasets into the dataset cache.

    Returns (succeeded, failed) location/crop pairs.
    """
    logger.info("Starting cache warmup...")
    owns_cache = cache is None
    cache = cache or AdvisoryCache.create(settings)
    retriever = retriever or DataRetrievalOrchestrator.create(settings, cache=cache)

    succeeded = failed = 0
    try:
        for location in locations:
            for crop in crops:
                ctx = QueryContext(
                    location=location,
                    crop=CropInfo(name=crop, season="perennial"),
                    topics={"weather", "market"},
                )
                try:
                    records = await retriever.retrieve_all(ctx)
                    if any(r.freshness == "stale" for r in records):
                        failed += 1
                        logger.warning(f"No live data for {crop} in {location.label()}")
                    else:
                        succeeded += 1
                        logger.info(f"Cached {len(records)} records for {crop} in {location.label()}")
                except Exception as e:
                    failed += 1
                    logger.error(f"Failed to warm {crop} in {location.label()}: {e}")
    finally:
        if owns_cache:
            await cache.close()

    logger.info(f"Cache warmup completed: {succeeded} succeeded, {failed} failed")
    return succeeded, failed


if __name__ == "__main__":
    setup_logging()
    asyncio.run(warmup_cache())
