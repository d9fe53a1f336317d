# krishi/core/answer_validator.py - Response validation, enhancement and price honesty checks
import json
import logging
import re
from typing import List, Optional, Tuple

from rapidfuzz import fuzz

from krishi.core.errors import ValidationServiceUnavailable
from krishi.core.formatter import build_factual_context, detect_topic, is_structured, structure_response
from krishi.core.generation import GenerationClient
from krishi.models.advisory import EnhancedResponse, ValidationRequest

logger = logging.getLogger(__name__)

VALIDATION_PROMPT = """You are Krishi Sakha, an agricultural advisor for Indian farmers. Validate and improve the candidate answer under a STRICT NO-HALLUCINATION policy.

ABSOLUTE PROHIBITIONS:
- NEVER invent prices, mandi names, dates or weather figures
- NEVER replace missing price data with generic advice or helpline numbers
- Use ONLY the numbers present in the verified data below

REQUIREMENTS:
1. For price questions show only real data: mandi, crop, price, date and source.
2. If price data for the requested crop is missing, say clearly: "No current price data available for [crop] in [location]".
3. Keep the structure: a header, the current data, recommendations, then support contacts.
4. Answer in plain language a farmer can act on. Keep it under 250 words.

Original question: {original_query}
English rendering: {translated_query}
Missing data: {missing}

{factual_context}

Candidate answer:
{draft}

Return only the corrected answer."""

BASIS_DISCLAIMERS = {
    "high": None,
    "medium": "This advice is based on available data; please verify locally for your specific conditions.",
    "low": "This response is based on general agricultural knowledge. Please consult local experts for location-specific advice.",
}
OFFLINE_VALIDATION_DISCLAIMER = "Checked by offline validation. Connect to the internet for the latest data."
REDUCED_VALIDATION_DISCLAIMER = "This answer could not be fully validated. Please verify with your local agriculture office."

PRICE_CLAIM = re.compile(
    r"(₹|\brs\.?|\binr\b|rupees?)\s*\d|\d[\d,]*(?:\.\d+)?\s*(?:/|per\s+)(?:kg|quintal|qtl)",
    re.IGNORECASE,
)
NO_PRICE_DATA = "no current price data"
ACTION_MARKERS = ("- ", "✅", "should", "चाहिए")
_WORD_SPLIT = re.compile(r"\s+")


def enforce_price_honesty(text: str, crop: Optional[str], notes: List[str]) -> Tuple[str, List[str]]:
    """Remove price claims for a crop whose data is missing and state the absence.

    Applying it twice gives the same text as applying it once.
    """
    if not crop or not notes:
        return text, []

    corrections = []
    kept_lines = []
    for line in text.split("\n"):
        if crop.lower() in line.lower() and PRICE_CLAIM.search(line):
            corrections.append(f"Removed unsupported price claim for {crop}: {line.strip()}")
            continue
        kept_lines.append(line)
    text = "\n".join(kept_lines)

    if NO_PRICE_DATA not in text.lower():
        statement = "\n".join(f"- {note}" for note in notes)
        text = f"{text.rstrip()}\n\n⚠️ **Price Data Status**\n{statement}"
        corrections.append("Added missing price data statement")
    return text, corrections


def keyword_overlap(draft: str, query: str) -> float:
    """Share of meaningful query words that fuzzily appear in the draft."""
    query_words = [w for w in _WORD_SPLIT.split(query.lower()) if len(w) > 3]
    if not query_words:
        return 1.0
    draft_lower = draft.lower()
    matched = sum(1 for w in query_words if fuzz.partial_ratio(w, draft_lower) > 80)
    return matched / len(query_words)


class ResponseValidator:
    """Validates drafts with the generation service, falling back to local heuristics."""

    def __init__(self, generator: Optional[GenerationClient] = None, min_overlap: float = 0.3):
        self.generator = generator
        self.min_overlap = min_overlap

    async def validate(
        self, request: ValidationRequest, allow_rewrite: bool = True, use_service: bool = True
    ) -> EnhancedResponse:
        try:
            if allow_rewrite and use_service and self.generator is not None and self.generator.available:
                try:
                    return await self._validate_with_service(request)
                except ValidationServiceUnavailable as e:
                    logger.warning(f"Validation service unavailable, using local checks: {e}")
            return self._validate_locally(request, allow_rewrite)
        except Exception as e:
            logger.error(f"Validation failed, returning unvalidated draft: {e}", exc_info=True)
            return EnhancedResponse(
                text=request.draft,
                confidence=request.confidence,
                basis=request.basis,
                sources=request.records,
                disclaimer=REDUCED_VALIDATION_DISCLAIMER,
                is_accurate=False,
                is_complete=False,
            )

    def _crop(self, request: ValidationRequest) -> Optional[str]:
        if request.context is not None and request.context.crop is not None:
            return request.context.crop.name
        return None

    async def _validate_with_service(self, request: ValidationRequest) -> EnhancedResponse:
        prompt = VALIDATION_PROMPT.format(
            original_query=request.original_query,
            translated_query=request.translated_query,
            missing=json.dumps(request.missing_data_notes, ensure_ascii=False) if request.missing_data_notes else "none",
            factual_context=build_factual_context(request.records) if request.records else "CURRENT VERIFIED DATA: none",
            draft=request.draft,
        )
        text = await self.generator.generate(prompt)
        text, corrections = enforce_price_honesty(text, self._crop(request), request.missing_data_notes)

        logger.info(f"✅ Draft validated by generation service ({len(corrections)} corrections)")
        return EnhancedResponse(
            text=text,
            confidence=request.confidence,
            basis=request.basis,
            sources=request.records,
            disclaimer=BASIS_DISCLAIMERS.get(request.basis),
            is_accurate=len(text) > 100 and "i don't know" not in text.lower(),
            is_complete=is_structured(text),
            corrections=corrections,
        )

    def _validate_locally(self, request: ValidationRequest, allow_rewrite: bool) -> EnhancedResponse:
        draft = request.draft
        overlap = keyword_overlap(draft, request.translated_query or request.original_query)
        structured = is_structured(draft)
        actionable = any(marker in draft for marker in ACTION_MARKERS)

        text = draft
        corrections = []
        if allow_rewrite and not structured:
            text = structure_response(draft, detect_topic(request.translated_query), request.context.language
                                      if request.context else "en")
            corrections.append("Restructured answer into the advisory template")

        text, guard_corrections = enforce_price_honesty(text, self._crop(request), request.missing_data_notes)
        corrections.extend(guard_corrections)

        return EnhancedResponse(
            text=text,
            confidence=request.confidence,
            basis=request.basis,
            sources=request.records,
            disclaimer=OFFLINE_VALIDATION_DISCLAIMER if allow_rewrite else None,
            is_accurate=overlap >= self.min_overlap,
            is_complete=structured and actionable,
            corrections=corrections,
        )
