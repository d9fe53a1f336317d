# krishi/core/scoring.py - Confidence and factual-basis scoring
import re
from typing import List

from krishi.models.advisory import MarketPayload, QueryContext, RetrievedRecord, Score

BASE_CONFIDENCE = 0.5
FRESHNESS_BOOST = 0.3
CROP_MATCH_BOOST = 0.15
LOCATION_MATCH_BOOST = 0.10
PER_CATEGORY_BOOST = 0.05
CATEGORY_BOOST_CAP = 0.20
MAX_CONFIDENCE = 0.95

GENERATED_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"generally\s+speaking",
        r"in\s+most\s+cases",
        r"typically",
        r"usually",
        r"it\s+is\s+recommended",
        r"आमतौर\s+पर",
        r"सामान्यतः",
        r"अक्सर",
    )
]
_SENTENCE_SPLIT = re.compile(r"[.!?।]+")


def factual_basis(records: List[RetrievedRecord]) -> str:
    fresh = sum(1 for r in records if r.freshness == "fresh")
    if fresh >= 2:
        return "high"
    if len(records) >= 2 and fresh >= 1:
        return "medium"
    return "low"


def score(records: List[RetrievedRecord], ctx: QueryContext) -> Score:
    confidence = BASE_CONFIDENCE

    if records:
        fresh = sum(1 for r in records if r.freshness == "fresh")
        confidence += FRESHNESS_BOOST * fresh / len(records)

    if ctx.crop is not None:
        crop = ctx.crop.name.lower()
        for record in records:
            payload = record.payload
            if (isinstance(payload, MarketPayload) and payload.requested_crop_available
                    and (payload.requested_crop or "").lower() == crop and payload.covers(crop)):
                confidence += CROP_MATCH_BOOST
                break

    if ctx.location is not None and any(ctx.location.matches(r.location) for r in records):
        confidence += LOCATION_MATCH_BOOST

    categories = {r.category for r in records}
    confidence += min(len(categories) * PER_CATEGORY_BOOST, CATEGORY_BOOST_CAP)

    return Score(confidence=round(min(confidence, MAX_CONFIDENCE), 4), basis=factual_basis(records))


def identify_generated_content(answer: str) -> List[str]:
    """Sentences phrased as general knowledge rather than drawn from data."""
    generated = []
    for sentence in _SENTENCE_SPLIT.split(answer or ""):
        sentence = sentence.strip()
        if sentence and any(p.search(sentence) for p in GENERATED_PATTERNS):
            generated.append(sentence)
    return generated
