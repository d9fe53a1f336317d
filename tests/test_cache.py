# tests/test_cache.py
import logging

from krishi.core.cache import AdvisoryCache, TTLCache, normalize_query, word_overlap
from krishi.models.advisory import AdvisoryPayload, AdvisoryResponse, Location, RetrievedRecord

logger = logging.getLogger(__name__)

PUNE = Location(state="Maharashtra", district="Pune")


def _record() -> RetrievedRecord:
    return RetrievedRecord(
        source_id="kvk_advisory",
        source_name="Agricultural Advisory Services",
        category="advisory",
        payload=AdvisoryPayload(title="Field Operations", advice=["Keep drains clear."]),
        confidence=0.8,
        location=PUNE,
        reliability="high",
    )


async def test_set_get_and_stats():
    cache = TTLCache("test", max_entries=10)
    await cache.set("a", {"value": 1})

    assert await cache.get("a") == {"value": 1}
    assert await cache.get("missing") is None

    stats = cache.get_stats()
    logger.info(f"📊 Cache stats: {stats}")
    assert stats["count"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0
    assert stats["oldest"] is not None


async def test_expired_entry_is_a_miss_and_dropped():
    cache = TTLCache("test", max_entries=10)
    await cache.set("short", "gone", ttl=0)

    assert await cache.get("short") is None
    assert len(cache) == 0
    assert cache.misses == 1


async def test_set_replaces_value_and_ttl():
    cache = TTLCache("test", max_entries=10)
    await cache.set("k", "old", ttl=0)
    await cache.set("k", "new", ttl=60)
    assert await cache.get("k") == "new"


async def test_lru_eviction_keeps_recently_read_entries():
    cache = TTLCache("test", max_entries=10)
    for i in range(10):
        await cache.set(f"k{i}", i)
    assert await cache.get("k0") == 0

    await cache.set("k10", 10)
    await cache.set("k11", 11)

    assert len(cache) == 10
    assert cache.evictions == 2
    assert await cache.get("k0") == 0
    assert await cache.get("k1") is None
    assert await cache.get("k2") is None


async def test_cleanup_removes_expired():
    cache = TTLCache("test", max_entries=10)
    await cache.set("live", 1, ttl=60)
    await cache.set("dead", 2, ttl=0)
    assert await cache.cleanup() == 1
    assert len(cache) == 1


async def test_disk_persistence(tmp_path):
    first = TTLCache("responses", max_entries=10, disk_dir=str(tmp_path))
    await first.set("persisted", {"answer": "x" * 2000, "n": 3}, ttl=60)
    await first.close()

    second = TTLCache("responses", max_entries=10, disk_dir=str(tmp_path))
    try:
        assert await second.get("persisted") == {"answer": "x" * 2000, "n": 3}
        assert second.get_stats()["disk"]["entries"] == 1
    finally:
        await second.close()


def test_query_normalization():
    assert normalize_query("  Wheat   Fertilizer?? ") == "wheat fertilizer"
    assert AdvisoryCache.response_key("Wheat Fertilizer?", "en") == AdvisoryCache.response_key("wheat fertilizer", "en")
    assert AdvisoryCache.response_key("wheat", "en") != AdvisoryCache.response_key("wheat", "hi")
    assert word_overlap("fertilizer advice for wheat", "wheat fertilizer advice ludhiana") == 0.75


def test_dataset_keys():
    assert AdvisoryCache.dataset_key("weather", PUNE) == "weather:maharashtra/pune"
    assert AdvisoryCache.dataset_key("market", PUNE, "Onion") == "market:maharashtra/pune:onion"
    assert AdvisoryCache.dataset_key("scheme", None) == "scheme:general"


async def test_dataset_round_trip(memory_cache):
    await memory_cache.set_dataset("advisory", PUNE, "Wheat", [_record()])
    restored = await memory_cache.get_dataset("advisory", PUNE, "Wheat")

    assert len(restored) == 1
    assert restored[0].payload.title == "Field Operations"
    assert restored[0].location == PUNE
    assert await memory_cache.get_dataset("advisory", PUNE, "Rice") is None


async def test_response_round_trip_and_similarity(memory_cache):
    response = AdvisoryResponse(answer_text="Apply 120:60:40 NPK.", confidence=0.8, factual_basis="high")
    await memory_cache.set_response("Wheat fertilizer advice Ludhiana", "en", response)

    cached = await memory_cache.get_response("wheat fertilizer advice ludhiana", "en")
    assert cached.answer_text == response.answer_text

    similar = await memory_cache.find_similar_response("fertilizer advice for wheat", "en")
    assert similar is not None
    assert similar.confidence == 0.8

    assert await memory_cache.find_similar_response("fertilizer advice for wheat", "hi") is None
    assert await memory_cache.find_similar_response("onion price today", "en") is None


async def test_clear_resets_both_namespaces(memory_cache):
    await memory_cache.set_dataset("advisory", PUNE, None, [_record()])
    await memory_cache.set_response("q", "en", AdvisoryResponse(answer_text="a", confidence=0.5))
    memory_cache.clear()

    stats = memory_cache.get_stats()
    assert stats["datasets"]["count"] == 0
    assert stats["responses"]["count"] == 0
