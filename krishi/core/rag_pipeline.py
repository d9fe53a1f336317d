# krishi/core/rag_pipeline.py - Retrieval-augmented advisory pipeline with graceful degradation
import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from krishi.core.answer_validator import ResponseValidator
from krishi.core.cache import AdvisoryCache
from krishi.core.connectivity import ConnectivityMonitor
from krishi.core.demo_questions import DemoQuestionMatcher
from krishi.core.errors import InvalidQuery, OfflineMode, ValidationServiceUnavailable
from krishi.core.formatter import compose_answer
from krishi.core.generation import GenerationClient
from krishi.core.grounding import filter_relevant, should_ground
from krishi.core.offline_knowledge import DEFAULT_ENTRY, OfflineKnowledgeBase, suggested_questions
from krishi.core.performance_monitor import PerformanceMonitor
from krishi.core.price_fetcher import MandiPriceFetcher
from krishi.core.query_context import QueryPreprocessor
from krishi.core.retrieval import DataRetrievalOrchestrator
from krishi.core.scoring import identify_generated_content, score
from krishi.core.sources import build_default_sources
from krishi.models.advisory import (
    AdvisoryResponse,
    MarketPayload,
    Query,
    QueryContext,
    RelevanceResult,
    RetrievedRecord,
    ValidationRequest,
)

logger = logging.getLogger(__name__)

CACHED_DISCLAIMER = "This answer was served from cache and may not reflect the very latest data."
OFFLINE_DISCLAIMER = "You are offline. This guidance is based on stored knowledge, not live data."
STALE_DISCLAIMER = "Live data could not be retrieved; this answer uses general knowledge only."
TIMEOUT_DISCLAIMER = "The request took too long to process. Showing basic guidance only."
FALLBACK_DISCLAIMER = "A system error occurred. Showing basic guidance only."
OFFLINE_PREFIX = "Based on similar offline query: "
OFFLINE_MAX_CONFIDENCE = 0.4

DRAFT_PROMPT = """You are an agricultural advisor for Indian farmers. Answer the question below in 4-6 short sentences of practical guidance.
Do not state any prices, dates or weather figures; live data is added separately.

Question: {question}
Location: {location}
Crop: {crop}
"""

FALLBACK_TEXT = (
    "🌾 **Agricultural Advisory**\n\n"
    "We could not complete your request right now.\n\n"
    "📞 **Additional Support**\n"
    "- Kisan Call Center: 1800-180-1551\n"
    "- Local Krishi Vigyan Kendra"
)


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(i for i in items if i))


class AdvisoryRAGPipeline:
    """Answers farmer questions end to end: demo match, cache, retrieval, validation.

    Every path returns an ``AdvisoryResponse``. Degradation (cache, offline,
    missing data, timeout, system error) is reported through the response's
    confidence, factual basis and disclaimers rather than raised.
    """

    def __init__(
        self,
        preprocessor: QueryPreprocessor,
        cache: AdvisoryCache,
        retriever: DataRetrievalOrchestrator,
        validator: ResponseValidator,
        demo_matcher: DemoQuestionMatcher,
        knowledge_base: OfflineKnowledgeBase,
        connectivity: ConnectivityMonitor,
        generator: Optional[GenerationClient] = None,
        price_fetcher: Optional[MandiPriceFetcher] = None,
        monitor: Optional[PerformanceMonitor] = None,
        request_timeout: float = 25.0,
        offline_similarity_threshold: float = 0.6,
    ):
        self.preprocessor = preprocessor
        self.cache = cache
        self.retriever = retriever
        self.validator = validator
        self.demo_matcher = demo_matcher
        self.knowledge_base = knowledge_base
        self.connectivity = connectivity
        self.generator = generator
        self.price_fetcher = price_fetcher or MandiPriceFetcher()
        self.monitor = monitor
        self.request_timeout = request_timeout
        self.offline_similarity_threshold = offline_similarity_threshold

        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._key_waiters: Dict[str, int] = defaultdict(int)

    @classmethod
    def create(cls, settings, monitor: Optional[PerformanceMonitor] = None) -> "AdvisoryRAGPipeline":
        cache = AdvisoryCache.create(settings)
        generator = GenerationClient.create(settings)
        price_fetcher = MandiPriceFetcher.create(settings)
        retriever = DataRetrievalOrchestrator.create(
            settings, cache=cache, sources=build_default_sources(settings, price_fetcher)
        )
        return cls(
            preprocessor=QueryPreprocessor(),
            cache=cache,
            retriever=retriever,
            validator=ResponseValidator(generator),
            demo_matcher=DemoQuestionMatcher(threshold=settings.DEMO_MATCH_THRESHOLD),
            knowledge_base=OfflineKnowledgeBase(),
            connectivity=ConnectivityMonitor.create(settings),
            generator=generator,
            price_fetcher=price_fetcher,
            monitor=monitor,
            request_timeout=settings.REQUEST_TIMEOUT_SECONDS,
            offline_similarity_threshold=settings.OFFLINE_SIMILARITY_THRESHOLD,
        )

    async def advise(self, query: str, language: Optional[str] = None) -> AdvisoryResponse:
        """Answer one question. Never raises."""
        start_time = time.time()
        deadline = asyncio.get_running_loop().time() + self.request_timeout
        logger.info(f"📝 Advisory request: {(query or '')[:80]}")

        try:
            response, degradation = await asyncio.wait_for(
                self._advise(query, language, deadline), timeout=self.request_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Advisory request timed out after {self.request_timeout}s")
            response, degradation = self.fatal_fallback(language, TIMEOUT_DISCLAIMER), "timeout"
        except Exception as e:
            logger.error(f"Advisory pipeline failed: {e}", exc_info=True)
            response, degradation = self.fatal_fallback(language, FALLBACK_DISCLAIMER), "fatal"

        elapsed = time.time() - start_time
        if self.monitor is not None:
            self.monitor.record_request(elapsed, success=degradation != "fatal", degradation=degradation)
        logger.info(f"Answered in {elapsed:.2f}s (confidence {response.confidence:.2f}, "
                    f"basis {response.factual_basis}{', ' + degradation if degradation else ''})")
        return response

    async def _advise(
        self, query: str, language: Optional[str], deadline: float
    ) -> Tuple[AdvisoryResponse, Optional[str]]:
        demo = self.demo_matcher.respond(query or "")
        if demo is not None:
            return demo, None

        parsed = self.preprocessor.preprocess(query)
        language = language or parsed.detected_language
        try:
            self.preprocessor.ensure_valid(parsed)
        except InvalidQuery as e:
            logger.info(f"Invalid query rejected: {e}")
            return self.invalid_query_response(str(e), language), "invalid"

        key = self.cache.response_key(parsed.cleaned_text, language)
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_waiters[key] += 1
        try:
            async with lock:
                return await self._answer_once(parsed, language, deadline)
        finally:
            self._key_waiters[key] -= 1
            if self._key_waiters[key] <= 0:
                self._key_waiters.pop(key, None)
                self._key_locks.pop(key, None)

    async def _answer_once(
        self, parsed: Query, language: str, deadline: float
    ) -> Tuple[AdvisoryResponse, Optional[str]]:
        cached = await self.cache.get_response(parsed.cleaned_text, language)
        if cached is not None:
            logger.info("✅ Response cache hit")
            return await self._revalidate_cached(cached, parsed), "cached"

        try:
            await self.connectivity.require_online()
        except OfflineMode as e:
            logger.warning(f"📴 {e}")
            return await self.offline_response(parsed, language), "offline"

        ctx = self.context_for(parsed)
        response, degradation = await self._grounded_answer(parsed, ctx, language, deadline)
        await self.cache.set_response(parsed.cleaned_text, language, response)
        return response, degradation

    def context_for(self, parsed: Query) -> QueryContext:
        """Query context, with price wording in any script marking a market question."""
        ctx = self.preprocessor.extract_context(parsed)
        if "market" not in ctx.topics and self.price_fetcher.is_price_query(parsed.cleaned_text):
            ctx = ctx.model_copy(update={"topics": (ctx.topics - {"general"}) | {"market"}})
        return ctx

    @staticmethod
    def _time_left(deadline: float) -> float:
        return deadline - asyncio.get_running_loop().time()

    def _generation_fits(self, deadline: float) -> bool:
        """Whether a generation call can time out on its own before the request does."""
        if self.generator is None or not self.generator.available:
            return False
        left = self._time_left(deadline)
        if left > self.generator.timeout_seconds:
            return True
        logger.warning(f"⏱️ Only {left:.1f}s left, skipping the generation service")
        return False

    async def _draft(self, parsed: Query, ctx: QueryContext, deadline: float) -> str:
        if self._generation_fits(deadline):
            prompt = DRAFT_PROMPT.format(
                question=parsed.translated_text,
                location=ctx.location.label() if ctx.location else "India",
                crop=ctx.crop.name if ctx.crop else "not specified",
            )
            try:
                return await self.generator.generate(prompt)
            except ValidationServiceUnavailable as e:
                logger.warning(f"Draft generation unavailable, using offline knowledge: {e}")
        return self.knowledge_base.draft(parsed.translated_text, ctx.timestamp)

    async def _grounded_answer(
        self, parsed: Query, ctx: QueryContext, language: str, deadline: float
    ) -> Tuple[AdvisoryResponse, Optional[str]]:
        draft = await self._draft(parsed, ctx, deadline)

        relevance = RelevanceResult()
        if should_ground(ctx, draft):
            records = await self.retriever.retrieve_all(ctx)
            relevance = filter_relevant(records, ctx)
        else:
            logger.info("Answer does not need live data, skipping retrieval")

        result_score = score(relevance.records, ctx)
        text = compose_answer(
            draft,
            relevance.records,
            ctx,
            relevance.missing_data_notes,
            self._related_crops(relevance.rejected),
        )

        enhanced = await self.validator.validate(ValidationRequest(
            draft=text,
            original_query=parsed.raw_text,
            translated_query=parsed.translated_text,
            records=relevance.records,
            context=ctx,
            missing_data_notes=relevance.missing_data_notes,
            confidence=result_score.confidence,
            basis=result_score.basis,
        ), use_service=self._generation_fits(deadline))

        disclaimers = [enhanced.disclaimer]
        degradation = None
        if relevance.missing_data_notes:
            disclaimers.append(f"No current data available for {ctx.crop.name if ctx.crop else 'the requested crop'}.")
            degradation = "no_data"
        if any(r.freshness == "stale" for r in relevance.records):
            disclaimers.append(STALE_DISCLAIMER)
            degradation = "stale"

        response = AdvisoryResponse(
            answer_text=enhanced.text,
            sources=enhanced.sources,
            confidence=min(enhanced.confidence, 0.95),
            factual_basis=enhanced.basis,
            disclaimers=_unique(disclaimers),
            language=language,
            cached=False,
            generated_content=identify_generated_content(enhanced.text),
        )
        return response, degradation

    @staticmethod
    def _related_crops(rejected: List[RetrievedRecord]) -> List[str]:
        related = []
        for record in rejected:
            if isinstance(record.payload, MarketPayload):
                related.extend(record.payload.related_crops)
        return _unique(related)

    async def _revalidate_cached(self, cached: AdvisoryResponse, parsed: Query) -> AdvisoryResponse:
        ctx = self.context_for(parsed)
        enhanced = await self.validator.validate(
            ValidationRequest(
                draft=cached.answer_text,
                original_query=parsed.raw_text,
                translated_query=parsed.translated_text,
                records=cached.sources,
                context=ctx,
                confidence=cached.confidence,
                basis=cached.factual_basis,
            ),
            allow_rewrite=False,
        )
        return cached.model_copy(update={
            "answer_text": enhanced.text,
            "cached": True,
            "disclaimers": _unique(list(cached.disclaimers) + [CACHED_DISCLAIMER]),
        })

    async def offline_response(self, parsed: Query, language: str) -> AdvisoryResponse:
        logger.warning("📴 Offline, answering from stored knowledge")
        similar = await self.cache.find_similar_response(
            parsed.cleaned_text, language, threshold=self.offline_similarity_threshold
        )
        if similar is not None:
            return similar.model_copy(update={
                "answer_text": f"{OFFLINE_PREFIX}{similar.answer_text}",
                "cached": True,
                "confidence": min(similar.confidence, OFFLINE_MAX_CONFIDENCE),
                "disclaimers": _unique(list(similar.disclaimers) + [OFFLINE_DISCLAIMER]),
            })

        text = self.knowledge_base.generic_guidance(language)
        entry = self.knowledge_base.lookup(parsed.translated_text)
        if entry is not DEFAULT_ENTRY:
            text = f"{text}\n\n✅ **Related Guidance**\n- {entry.advice}"
        suggestions = suggested_questions(language)
        text += "\n\n**You can try asking:**\n" + "\n".join(f'- "{q}"' for q in suggestions)

        return AdvisoryResponse(
            answer_text=text,
            confidence=OFFLINE_MAX_CONFIDENCE,
            factual_basis="low",
            disclaimers=[OFFLINE_DISCLAIMER],
            language=language,
            generated_content=["General agricultural guidance"],
            suggested_questions=suggestions,
        )

    @staticmethod
    def invalid_query_response(message: str, language: str) -> AdvisoryResponse:
        return AdvisoryResponse(
            answer_text=message,
            confidence=0.1,
            factual_basis="low",
            disclaimers=["Please rephrase your question."],
            language=language,
            suggested_questions=suggested_questions(language),
        )

    @staticmethod
    def fatal_fallback(language: Optional[str], disclaimer: str) -> AdvisoryResponse:
        language = language or "en"
        return AdvisoryResponse(
            answer_text=FALLBACK_TEXT,
            confidence=0.2,
            factual_basis="low",
            disclaimers=[disclaimer],
            language=language,
            suggested_questions=suggested_questions(language),
        )

    def get_stats(self) -> dict:
        return {
            "cache": self.cache.get_stats(),
            "retrieval": dict(self.retriever.stats),
            "connectivity": self.connectivity.status(),
            "generation_available": bool(self.generator and self.generator.available),
        }

    async def close(self):
        await self.cache.close()
        if self.generator is not None:
            await self.generator.close()
        logger.info("Advisory pipeline closed")
