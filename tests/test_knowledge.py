# tests/test_knowledge.py - Demo questions, offline knowledge base and answer formatting
from datetime import date, datetime

import pytest

from krishi.core.demo_questions import DemoQuestionMatcher, normalize, similarity
from krishi.core.formatter import (
    compose_answer,
    detect_topic,
    format_confidence,
    format_record,
    is_structured,
    structure_response,
)
from krishi.core.offline_knowledge import (
    DEFAULT_ENTRY,
    KISAN_CALL_CENTER,
    KNOWLEDGE_BASE,
    OfflineKnowledgeBase,
    seasonal_note,
    suggested_questions,
)
from krishi.models.advisory import (
    CropInfo,
    Location,
    MarketPayload,
    PricePoint,
    QueryContext,
    RetrievedRecord,
)

matcher = DemoQuestionMatcher()
knowledge = OfflineKnowledgeBase()

NASHIK = Location(state="Maharashtra", district="Nashik")


def _market_record() -> RetrievedRecord:
    price = PricePoint(
        crop="Potato", market="Nashik Mandi", district="Nashik", state="Maharashtra",
        min_price=1400, max_price=1800, modal_price=1600, price_date=date(2024, 11, 5), source="test",
    )
    return RetrievedRecord(
        source_id="agmarknet", source_name="AGMARKNET Market Data", category="market",
        payload=MarketPayload(requested_crop="Potato", prices=[price]), confidence=0.9, location=NASHIK,
    )


# --- demo questions ---

def test_exact_demo_match():
    response = matcher.respond("What is the weather forecast for Pune tomorrow?")
    assert response is not None
    assert "Pune" in response.answer_text
    assert response.confidence == 0.95
    assert response.factual_basis == "high"
    assert response.language == "en"


def test_hindi_demo_match_with_devanagari_digits():
    response = matcher.respond("दिल्ली में अगले ५ दिन का मौसम कैसा रहेगा?")
    assert response is not None
    assert response.language == "hi"
    assert normalize("अगले ५ दिन") == "अगले 5 दिन"


def test_containment_scores_below_exact():
    assert similarity("pune weather tomorrow please", "pune weather tomorrow") == 0.9
    response = matcher.respond("pune weather tomorrow please")
    assert response is not None
    assert 0.7 * 0.95 <= response.confidence < 0.95


def test_short_or_unrelated_queries_do_not_match():
    assert matcher.respond("weather") is None
    assert matcher.respond("Wheat fertilizer advice for Ludhiana") is None
    assert matcher.respond("Current onion price in Nashik") is None


def test_demo_question_listing():
    assert len(matcher.all_questions(language="hi")) == 3
    assert len(matcher.all_questions(category="weather")) == 2
    assert len(matcher.all_questions()) == 7


# --- offline knowledge ---

def test_lookup_picks_best_entry():
    assert knowledge.lookup("how much fertilizer for wheat") == KNOWLEDGE_BASE["fertilizer"]
    assert knowledge.lookup("xyz abc") == DEFAULT_ENTRY


def test_answer_is_tailored_to_time_and_place():
    entry = knowledge.answer("current onion price in Pune", now=datetime(2024, 7, 1))
    assert entry.advice.startswith("**Current Status**")
    assert "**For Pune**" in entry.advice
    assert "Kharif season" in entry.advice
    assert entry.confidence == pytest.approx(0.7)

    fallback = knowledge.answer("xyz abc", now=datetime(2024, 1, 1))
    assert fallback.confidence == 0.5
    assert "Rabi season" in fallback.advice


def test_seasons_and_suggestions():
    assert seasonal_note(4).startswith("Zaid")
    assert seasonal_note(12).startswith("Rabi")
    assert suggested_questions("ta") == suggested_questions("en")
    assert suggested_questions("hi")[0].startswith("गेहूं")
    assert KISAN_CALL_CENTER in OfflineKnowledgeBase.generic_guidance("hi")


# --- formatting ---

def test_detect_topic():
    assert detect_topic("onion price") == "market"
    assert detect_topic("मौसम कैसा है") == "weather"
    assert detect_topic("hello") == "general"


def test_market_record_line():
    lines = format_record(_market_record())
    assert lines == ["Potato at Nashik Mandi: ₹1,400-1,800, modal ₹1,600 per quintal (05 Nov)"]


def test_compose_answer_section_order():
    ctx = QueryContext(location=NASHIK, crop=CropInfo(name="Onion", season="perennial"), topics={"market"})
    answer = compose_answer(
        "Sell in small lots. Store the rest in a ventilated shed.",
        [_market_record()],
        ctx,
        missing_data_notes=["No current price data available for onion in Nashik, Maharashtra."],
        related_crops=["Potato", "Tomato"],
    )
    headings = [
        "**Market Price Advisory for Nashik, Maharashtra (Onion)**",
        "**Current Data**",
        "**Data Availability**",
        "Related crops you can ask about: Potato, Tomato",
        "**Recommendations**",
        "**Sources**",
        "**Additional Support**",
    ]
    positions = [answer.index(h) for h in headings]
    assert positions == sorted(positions)
    assert is_structured(answer)


def test_structure_response_sorts_sentences():
    text = "You should water in the morning. Avoid spraying during strong wind. The soil here is black."
    structured = structure_response(text, "irrigation")

    assert structured.startswith("💧 **Irrigation Advisory**")
    recommendations = structured.index("Key Recommendations")
    details = structured.index("Important Details")
    precautions = structured.index("Precautions")
    assert structured.index("You should water") > recommendations
    assert details < structured.index("The soil here is black.") < precautions
    assert structured.index("Avoid spraying") > precautions
    assert KISAN_CALL_CENTER in structured


def test_format_confidence():
    assert format_confidence(0.856, "high") == "Confidence: 86% (high factual basis)"


def test_market_record_shows_trend():
    record = _market_record()
    trending = record.model_copy(update={"payload": record.payload.model_copy(update={"trend": "rising"})})
    assert format_record(trending)[-1] == "Price trend: rising"


def test_demo_answers_never_cover_another_crop_or_place():
    assert matcher.respond("What is the price of garlic in Delhi mandi?") is None
    assert matcher.respond("What is the price of onion in Nashik mandi?") is None
    assert matcher.respond("What is today's wholesale price of onions in Delhi mandi?") is None
    assert matcher.respond("potato price pune mandi today") is None

    response = matcher.respond("delhi mandi potato price today")
    assert response is not None
    assert "potatoes" in response.answer_text


def test_crop_price_guidance_only_answers_for_its_crop():
    garlic = knowledge.lookup("price of garlic in delhi mandi")
    assert garlic not in (KNOWLEDGE_BASE["onion price"], KNOWLEDGE_BASE["potato price"], KNOWLEDGE_BASE["rice price"])
    assert knowledge.lookup("potatoes price today") == KNOWLEDGE_BASE["potato price"]
