# tests/test_pipeline.py - End-to-end advisory scenarios
import asyncio
import logging

from conftest import FakeGenerator

from krishi.core.answer_validator import OFFLINE_VALIDATION_DISCLAIMER
from krishi.core.generation import GenerationClient
from krishi.core.performance_monitor import PerformanceMonitor
from krishi.core.rag_pipeline import (
    CACHED_DISCLAIMER,
    FALLBACK_DISCLAIMER,
    OFFLINE_DISCLAIMER,
    OFFLINE_PREFIX,
    STALE_DISCLAIMER,
    TIMEOUT_DISCLAIMER,
)
from krishi.models.advisory import AdvisoryResponse, Query

logger = logging.getLogger(__name__)

DRAFT_REPLY = (
    "🌾 **Fertilizer Advisory**\n"
    "✅ Apply nitrogen in two or three split doses for wheat.\n"
    "- Test your soil before the next sowing."
)


async def test_demo_question_answered_directly(pipeline_factory):
    pipeline = pipeline_factory()
    response = await pipeline.advise("What is the weather forecast for Pune tomorrow")

    assert response.confidence == 0.95
    assert response.factual_basis == "high"
    assert "Pune" in response.answer_text
    assert len(pipeline.cache.responses) == 0


async def test_missing_price_data_is_reported_not_invented(pipeline_factory):
    pipeline = pipeline_factory(unavailable_crops=["onion"])
    response = await pipeline.advise("Current onion price in Nashik")

    logger.info(f"📋 Answer:\n{response.answer_text}")
    assert response.language == "en"
    assert "No current price data" in response.answer_text
    assert "Related crops you can ask about" in response.answer_text
    for line in response.answer_text.split("\n"):
        assert not ("onion" in line.lower() and "₹" in line)
    assert "No current data available for Onion." in response.disclaimers
    assert all(r.category != "market" for r in response.sources)
    assert 0.0 <= response.confidence <= 0.95


async def test_price_question_for_other_crop_skips_demo_answer(pipeline_factory):
    pipeline = pipeline_factory(unavailable_crops=["garlic", "onion"])
    response = await pipeline.advise("What is the price of garlic in Delhi mandi?")

    logger.info(f"📋 Answer:\n{response.answer_text}")
    assert "No current price data" in response.answer_text
    assert "potato" not in response.answer_text.lower()
    for line in response.answer_text.split("\n"):
        assert not ("garlic" in line.lower() and "₹" in line)
    assert "No current data available for Garlic." in response.disclaimers

    onion = await pipeline.advise("What is the price of onion in Nashik mandi?")
    assert "₹18-22" not in onion.answer_text
    assert "No current price data" in onion.answer_text


async def test_available_price_data_is_cited(pipeline_factory):
    pipeline = pipeline_factory()
    response = await pipeline.advise("Current onion price in Nashik")

    market = [r for r in response.sources if r.category == "market"]
    assert market
    assert market[0].payload.requested_crop == "Onion"
    assert "Onion at Nashik Mandi" in response.answer_text
    assert response.factual_basis == "high"
    assert response.confidence == 0.95


async def test_offline_without_cache_gives_generic_guidance(pipeline_factory):
    pipeline = pipeline_factory(online=False)
    response = await pipeline.advise("How do I improve my soil?")

    assert response.confidence == 0.4
    assert response.factual_basis == "low"
    assert OFFLINE_DISCLAIMER in response.disclaimers
    assert response.suggested_questions
    assert "**You can try asking:**" in response.answer_text
    assert "Soil Health Card" in response.answer_text


async def test_offline_reuses_similar_cached_answer(pipeline_factory):
    pipeline = pipeline_factory()
    await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    pipeline.connectivity.online = False
    response = await pipeline.advise("fertilizer advice for wheat in Ludhiana please")

    assert response.answer_text.startswith(OFFLINE_PREFIX)
    assert response.cached
    assert response.confidence <= 0.4
    assert OFFLINE_DISCLAIMER in response.disclaimers


async def test_repeated_question_is_served_from_cache_unchanged(pipeline_factory):
    pipeline = pipeline_factory()
    first = await pipeline.advise("Wheat fertilizer advice for Ludhiana")
    second = await pipeline.advise("Wheat fertilizer advice for Ludhiana")
    third = await pipeline.advise("wheat   fertilizer advice for ludhiana!")

    assert not first.cached
    assert second.cached and third.cached
    assert second.answer_text == first.answer_text
    assert third.answer_text == first.answer_text
    assert CACHED_DISCLAIMER in second.disclaimers
    assert second.confidence == first.confidence


async def test_concurrent_identical_questions_compute_once(pipeline_factory):
    pipeline = pipeline_factory()
    first, second = await asyncio.gather(
        pipeline.advise("Wheat fertilizer advice for Ludhiana"),
        pipeline.advise("Wheat fertilizer advice for Ludhiana"),
    )

    assert len(pipeline.cache.responses) == 1
    assert sorted([first.cached, second.cached]) == [False, True]
    assert first.answer_text == second.answer_text
    assert pipeline._key_locks == {}


async def test_generator_drafts_and_validates(pipeline_factory):
    generator = FakeGenerator(reply=DRAFT_REPLY)
    pipeline = pipeline_factory(generator=generator)
    response = await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    assert len(generator.prompts) == 2
    assert "Ludhiana, Punjab" in generator.prompts[0]
    assert "CURRENT VERIFIED DATA" in generator.prompts[1]
    assert response.answer_text == DRAFT_REPLY
    assert OFFLINE_VALIDATION_DISCLAIMER not in response.disclaimers


async def test_failing_generator_degrades_to_offline_knowledge(pipeline_factory):
    pipeline = pipeline_factory(generator=FakeGenerator(fail=True))
    response = await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    assert "soil test" in response.answer_text.lower()
    assert OFFLINE_VALIDATION_DISCLAIMER in response.disclaimers


async def test_all_sources_down_reports_stale_data(pipeline_factory):
    pipeline = pipeline_factory(sources={})
    response = await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    assert STALE_DISCLAIMER in response.disclaimers
    assert response.factual_basis == "low"
    assert response.sources[0].source_id == "system_fallback"
    assert response.confidence < 0.95


async def test_hindi_question_keeps_language(pipeline_factory):
    pipeline = pipeline_factory()
    response = await pipeline.advise("पुणे में प्याज का भाव")

    assert response.language == "hi"
    assert any(r.category == "market" for r in response.sources)
    assert 0.0 <= response.confidence <= 0.95


async def test_invalid_query(pipeline_factory):
    pipeline = pipeline_factory()
    response = await pipeline.advise("ab")

    assert response.confidence == 0.1
    assert response.factual_basis == "low"
    assert "valid farming question" in response.answer_text
    assert response.suggested_questions


async def test_pipeline_never_raises(pipeline_factory, monkeypatch):
    pipeline = pipeline_factory()
    pipeline.monitor = PerformanceMonitor()

    async def explode(*args, **kwargs):
        raise RuntimeError("database on fire")

    monkeypatch.setattr(pipeline, "_grounded_answer", explode)
    response = await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    assert isinstance(response, AdvisoryResponse)
    assert response.confidence == 0.2
    assert FALLBACK_DISCLAIMER in response.disclaimers
    assert pipeline.monitor.error_count == 1
    assert pipeline.monitor.degraded["fatal"] == 1


async def test_slow_request_times_out_with_fallback(pipeline_factory):
    pipeline = pipeline_factory(generator=FakeGenerator(reply=DRAFT_REPLY, delay=1.0), request_timeout=0.05)
    pipeline.monitor = PerformanceMonitor()
    response = await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    assert response.confidence == 0.2
    assert TIMEOUT_DISCLAIMER in response.disclaimers
    assert pipeline.monitor.degraded["timeout"] == 1


class HangingModel:
    def __init__(self):
        self.calls = 0

    async def generate_content_async(self, prompt, generation_config=None):
        self.calls += 1
        await asyncio.sleep(10)


async def test_hung_generation_service_degrades_to_local_validation(pipeline_factory):
    model = HangingModel()
    generator = GenerationClient(timeout_seconds=0.3)
    generator.model = model
    pipeline = pipeline_factory(generator=generator, request_timeout=0.5)

    response = await pipeline.advise("Wheat fertilizer advice for Ludhiana")

    assert model.calls == 1
    assert TIMEOUT_DISCLAIMER not in response.disclaimers
    assert OFFLINE_VALIDATION_DISCLAIMER in response.disclaimers
    assert "soil test" in response.answer_text.lower()
    assert response.confidence > 0.2


async def test_confidence_always_within_bounds(pipeline_factory):
    pipeline = pipeline_factory(unavailable_crops=["tomato"])
    queries = [
        "Tomato price in Pune",
        "PM-KISAN scheme eligibility",
        "How much urea for rice in Punjab",
        "Will it rain in Chennai this week",
        "aloo ka bhav",
    ]
    for query in queries:
        response = await pipeline.advise(query)
        assert 0.0 <= response.confidence <= 0.95, query
        assert response.answer_text


async def test_stats(pipeline_factory):
    pipeline = pipeline_factory()
    await pipeline.advise("Wheat fertilizer advice for Ludhiana")
    stats = pipeline.get_stats()

    assert stats["cache"]["responses"]["count"] == 1
    assert stats["retrieval"]["calls"] >= 3
    assert stats["connectivity"]["online"] is True
    assert stats["generation_available"] is False


def test_price_wording_in_any_script_marks_market_topic(pipeline_factory):
    pipeline = pipeline_factory()
    text = "कांद्याची किंमत"
    parsed = Query(raw_text=text, cleaned_text=text, translated_text=text, detected_language="mr")

    assert pipeline.preprocessor.extract_context(parsed).topics == {"general"}
    assert pipeline.context_for(parsed).topics == {"market"}
