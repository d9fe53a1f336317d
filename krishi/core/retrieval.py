# krishi/core/retrieval.py - Concurrent multi-source retrieval with retry, cache and fallback
import asyncio
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from krishi.core.cache import AdvisoryCache
from krishi.core.errors import NoDataAvailable, TransientSourceError
from krishi.core.sources import DataSource, build_default_sources
from krishi.models.advisory import AdvisoryPayload, QueryContext, RetrievedRecord

logger = logging.getLogger(__name__)

ALWAYS_FETCHED = ["weather", "market", "advisory"]
# Records in these categories depend on the requested crop
CROP_SPECIFIC = {"market", "advisory"}


class DataRetrievalOrchestrator:
    """Fans out to every relevant data source and collects whatever succeeds.

    Sources run concurrently under one overall timeout. Each source call goes
    through the dataset cache first, then a bounded retry loop for transient
    failures. ``retrieve_all`` never raises: if nothing at all comes back, a
    single stale placeholder record says so.
    """

    def __init__(
        self,
        sources: Dict[str, DataSource],
        cache: Optional[AdvisoryCache] = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        backoff_max_seconds: float = 4.0,
    ):
        self.sources = sources
        self.cache = cache
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max_seconds = backoff_max_seconds
        self.stats = {"calls": 0, "failures": 0, "cache_hits": 0, "timeouts": 0}

    @classmethod
    def create(cls, settings, cache: Optional[AdvisoryCache] = None,
               sources: Optional[Dict[str, DataSource]] = None) -> "DataRetrievalOrchestrator":
        return cls(
            sources=sources or build_default_sources(settings),
            cache=cache,
            timeout_seconds=settings.RETRIEVAL_TIMEOUT_SECONDS,
            max_attempts=settings.SOURCE_MAX_ATTEMPTS,
            backoff_multiplier=settings.SOURCE_BACKOFF_MULTIPLIER,
            backoff_max_seconds=settings.SOURCE_BACKOFF_MAX_SECONDS,
        )

    @staticmethod
    def categories_for(ctx: QueryContext) -> List[str]:
        categories = list(ALWAYS_FETCHED)
        if ctx.topics & {"soil", "fertilizer", "general"}:
            categories.append("soil")
        if ctx.topics & {"scheme", "general"}:
            categories.append("scheme")
        return categories

    async def retrieve_all(self, ctx: QueryContext) -> List[RetrievedRecord]:
        start_time = time.time()
        try:
            records = await self._gather(ctx)
        except Exception as e:
            logger.error(f"Retrieval failed unexpectedly: {e}", exc_info=True)
            records = []

        if not records:
            logger.warning("⚠️ No source returned data, using unavailable-data placeholder")
            return [self.unavailable_record(ctx)]

        logger.info(f"Retrieved {len(records)} records in {time.time() - start_time:.2f}s")
        return records

    async def _gather(self, ctx: QueryContext) -> List[RetrievedRecord]:
        tasks = {}
        for category in self.categories_for(ctx):
            source = self.sources.get(category)
            if source is None:
                logger.debug(f"No source configured for {category}")
                continue
            task = asyncio.create_task(self._fetch_source(category, source, ctx))
            tasks[task] = category

        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks.keys(), timeout=self.timeout_seconds)
        for task in pending:
            logger.warning(f"⏱️ {tasks[task]} source timed out after {self.timeout_seconds}s")
            self.stats["timeouts"] += 1
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        records: List[RetrievedRecord] = []
        for task in done:
            category = tasks[task]
            error = task.exception()
            if error is not None:
                self.stats["failures"] += 1
                if isinstance(error, NoDataAvailable):
                    logger.info(f"No {category} data: {error}")
                else:
                    logger.warning(f"❌ {category} source failed: {error}")
                continue
            records.extend(task.result())

        # Keep a stable category order regardless of completion order
        order = {c: i for i, c in enumerate(self.categories_for(ctx))}
        records.sort(key=lambda r: order.get(r.category, len(order)))
        return records

    async def _fetch_source(self, category: str, source: DataSource, ctx: QueryContext) -> List[RetrievedRecord]:
        crop_key = ctx.crop.name if ctx.crop and category in CROP_SPECIFIC else None

        if self.cache is not None:
            cached = await self.cache.get_dataset(category, ctx.location, crop_key)
            if cached:
                self.stats["cache_hits"] += 1
                logger.info(f"✅ Dataset cache hit for {category}")
                return [r.model_copy(update={"freshness": "cached"}) for r in cached]

        records = await self._fetch_with_retry(category, source, ctx)

        if self.cache is not None and records:
            await self.cache.set_dataset(category, ctx.location, crop_key, records)
        return records

    async def _fetch_with_retry(self, category: str, source: DataSource, ctx: QueryContext) -> List[RetrievedRecord]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max_seconds),
            retry=retry_if_exception_type(TransientSourceError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                self.stats["calls"] += 1
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info(f"Retrying {category} source (attempt {number}/{self.max_attempts})")
                return await source.fetch_category(category, ctx.location, ctx.crop)
        return []

    @staticmethod
    def unavailable_record(ctx: QueryContext) -> RetrievedRecord:
        payload = AdvisoryPayload(
            title="Live data unavailable",
            advice=[
                "Live agricultural data could not be retrieved right now.",
                "Please try again later or contact your local Krishi Vigyan Kendra.",
            ],
            severity="low",
            issued_by="Krishi Sakha",
        )
        return RetrievedRecord(
            source_id="system_fallback",
            source_name="System Fallback",
            category="advisory",
            payload=payload,
            confidence=0.3,
            fetched_at=datetime.now(),
            location=ctx.location,
            freshness="stale",
            reliability="low",
        )
