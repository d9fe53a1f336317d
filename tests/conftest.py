# tests/conftest.py - Shared fixtures: memory-only caches, fake generator, stub connectivity
import os

# Keep the app's module-level settings off disk during tests
os.environ.setdefault("USE_DISK_CACHE", "false")

import asyncio
import logging
from typing import List, Optional

import pytest

from krishi.core.answer_validator import ResponseValidator
from krishi.core.cache import AdvisoryCache, TTLCache
from krishi.core.config import Settings
from krishi.core.demo_questions import DemoQuestionMatcher
from krishi.core.errors import OfflineMode, ValidationServiceUnavailable
from krishi.core.offline_knowledge import OfflineKnowledgeBase
from krishi.core.price_fetcher import MandiPriceFetcher
from krishi.core.query_context import QueryPreprocessor
from krishi.core.rag_pipeline import AdvisoryRAGPipeline
from krishi.core.retrieval import DataRetrievalOrchestrator
from krishi.core.sources import build_default_sources

logging.basicConfig(level=logging.INFO)


class FakeGenerator:
    """Stands in for GenerationClient; returns canned text or fails on demand."""

    def __init__(self, reply: str = "", fail: bool = False, delay: float = 0.0, timeout_seconds: float = 0.0):
        self.reply = reply
        self.fail = fail
        self.delay = delay
        self.timeout_seconds = timeout_seconds
        self.prompts: List[str] = []
        self.available = True

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ValidationServiceUnavailable("fake generator down")
        return self.reply

    async def close(self):
        self.available = False


class StubConnectivity:
    def __init__(self, online: bool = True):
        self.online = online

    async def is_online(self) -> bool:
        return self.online

    async def require_online(self):
        if not self.online:
            raise OfflineMode("stubbed offline")

    def status(self) -> dict:
        return {"online": self.online, "forced_offline": False, "last_checked": None}


@pytest.fixture
def settings():
    return Settings(
        USE_DISK_CACHE=False,
        FORCE_OFFLINE=False,
        GOOGLE_API_KEY="",
        OPENWEATHER_API_KEY="",
        DATA_GOV_API_KEY="",
        SIMULATED_UNAVAILABLE_CROPS=[],
    )


@pytest.fixture
def memory_cache(settings):
    return AdvisoryCache(
        datasets=TTLCache("datasets", max_entries=100),
        responses=TTLCache("responses", max_entries=100),
        category_ttls=settings.category_ttls(),
        response_ttl=settings.RESPONSE_CACHE_TTL_SECONDS,
    )


def build_pipeline(
    settings: Settings,
    online: bool = True,
    generator: Optional[FakeGenerator] = None,
    unavailable_crops=(),
    sources=None,
    request_timeout: float = 10.0,
) -> AdvisoryRAGPipeline:
    cache = AdvisoryCache(
        datasets=TTLCache("datasets", max_entries=100),
        responses=TTLCache("responses", max_entries=100),
        category_ttls=settings.category_ttls(),
        response_ttl=settings.RESPONSE_CACHE_TTL_SECONDS,
    )
    fetcher = MandiPriceFetcher(unavailable_crops=unavailable_crops)
    retriever = DataRetrievalOrchestrator(
        sources=sources if sources is not None else build_default_sources(settings, fetcher),
        cache=cache,
        timeout_seconds=5.0,
        backoff_multiplier=0,
        backoff_max_seconds=0,
    )
    return AdvisoryRAGPipeline(
        preprocessor=QueryPreprocessor(),
        cache=cache,
        retriever=retriever,
        validator=ResponseValidator(generator),
        demo_matcher=DemoQuestionMatcher(),
        knowledge_base=OfflineKnowledgeBase(),
        connectivity=StubConnectivity(online),
        generator=generator,
        price_fetcher=fetcher,
        request_timeout=request_timeout,
    )


@pytest.fixture
def pipeline_factory(settings):
    def factory(**kwargs):
        return build_pipeline(settings, **kwargs)
    return factory
