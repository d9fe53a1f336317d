# krishi/core/formatter.py - Presentation of typed records as farmer-facing advisory text
import re
from typing import Dict, List, Optional

from krishi.core.offline_knowledge import KISAN_CALL_CENTER
from krishi.models.advisory import (
    AdvisoryPayload,
    MarketPayload,
    QueryContext,
    RetrievedRecord,
    SchemePayload,
    SoilPayload,
    WeatherPayload,
)

SECTION_EMOJIS = {
    "header": "🌾",
    "data": "📊",
    "recommendations": "✅",
    "details": "📋",
    "precautions": "⚠️",
    "support": "📞",
}

TOPIC_EMOJIS = {
    "weather": "🌤️",
    "market": "💰",
    "pest": "🐛",
    "irrigation": "💧",
    "fertilizer": "🧪",
    "soil": "🌱",
    "scheme": "🏛️",
    "general": "🌾",
}

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "weather": ["weather", "rain", "temperature", "climate", "forecast", "मौसम", "बारिश", "तापमान"],
    "market": ["price", "market", "mandi", "sell", "buy", "cost", "भाव", "कीमत", "बाजार", "मंडी"],
    "pest": ["pest", "disease", "insect", "bug", "कीट", "रोग"],
    "irrigation": ["water", "irrigation", "drip", "sprinkler", "सिंचाई", "पानी"],
    "fertilizer": ["fertilizer", "manure", "compost", "nutrient", "खाद", "उर्वरक"],
    "soil": ["soil", "land", "fertility", "मिट्टी"],
    "scheme": ["scheme", "yojana", "subsidy", "योजना"],
}

TOPIC_TITLES: Dict[str, Dict[str, str]] = {
    "weather": {"en": "Weather", "hi": "मौसम"},
    "market": {"en": "Market Price", "hi": "बाजार भाव"},
    "pest": {"en": "Pest Control", "hi": "कीट नियंत्रण"},
    "irrigation": {"en": "Irrigation", "hi": "सिंचाई"},
    "fertilizer": {"en": "Fertilizer", "hi": "उर्वरक"},
    "soil": {"en": "Soil Health", "hi": "मिट्टी स्वास्थ्य"},
    "scheme": {"en": "Government Scheme", "hi": "सरकारी योजना"},
    "general": {"en": "Agricultural", "hi": "कृषि"},
}

SUPPORT_LINES = [
    f"Kisan Call Center: {KISAN_CALL_CENTER}",
    "Local Krishi Vigyan Kendra",
    "Agricultural Extension Officer",
]

# Markers that show a draft already follows the advisory template
STRUCTURE_MARKERS = ("**", "🌾", "✅", "📋", "📞")

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?।])\s+|\n+")
_RECOMMEND = re.compile(r"\b(should|recommended|apply|use|plan|check)\b|चाहिए|करें", re.IGNORECASE)
_PRECAUTION = re.compile(r"\b(avoid|don't|do not|never|postpone)\b|न करें|बचें", re.IGNORECASE)


def detect_topic(query: str) -> str:
    lowered = (query or "").lower()
    for topic, keywords in TOPIC_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return topic
    return "general"


def topic_title(topic: str, language: str = "en") -> str:
    titles = TOPIC_TITLES.get(topic, TOPIC_TITLES["general"])
    return titles.get(language) or titles["en"]


def is_structured(text: str) -> bool:
    return any(marker in (text or "") for marker in STRUCTURE_MARKERS)


def citation(record: RetrievedRecord) -> str:
    place = f" for {record.location.label()}" if record.location else ""
    return f"{record.source_name} ({record.fetched_at:%d %b %Y}){place}"


def format_record(record: RetrievedRecord) -> List[str]:
    """Bullet lines describing one record's payload."""
    payload = record.payload
    if isinstance(payload, WeatherPayload):
        lines = [
            f"Weather: {payload.conditions}, {payload.temperature_c}°C, humidity {payload.humidity}%",
            f"Rainfall {payload.rainfall_mm} mm, wind {payload.wind_speed_kmh} km/h",
        ]
        lines.extend(payload.forecast)
        lines.extend(f"Alert: {alert}" for alert in payload.alerts)
        return lines
    if isinstance(payload, MarketPayload):
        lines = [
            f"{p.crop} at {p.market}: ₹{p.min_price:,.0f}-{p.max_price:,.0f}, "
            f"modal ₹{p.modal_price:,.0f} {p.unit.replace('₹/', 'per ')} ({p.price_date:%d %b})"
            for p in payload.prices
        ]
        if payload.trend:
            lines.append(f"Price trend: {payload.trend}")
        return lines
    if isinstance(payload, AdvisoryPayload):
        issuer = f" ({payload.issued_by})" if payload.issued_by else ""
        return [f"{payload.title}{issuer}: {' '.join(payload.advice)}"]
    if isinstance(payload, SoilPayload):
        return [
            f"Soil: {payload.soil_type}, pH {payload.ph}, organic carbon {payload.organic_carbon}%",
            f"Nutrients: N {payload.nitrogen}, P {payload.phosphorus}, K {payload.potassium}",
        ] + payload.recommendations
    if isinstance(payload, SchemePayload):
        return [f"{s.name}: {s.benefit}. Apply via {s.how_to_apply or 'the local agriculture office'}"
                for s in payload.schemes]
    return []


def build_factual_context(records: List[RetrievedRecord]) -> str:
    """Plain-text data block handed to the generation service."""
    lines = ["CURRENT VERIFIED DATA:", ""]
    for record in records:
        lines.append(f"## {record.category.upper()} DATA - {record.source_name}")
        lines.append(f"Confidence: {record.confidence:.0%}, freshness: {record.freshness}")
        if record.location:
            lines.append(f"Location: {record.location.label()}")
        lines.extend(format_record(record))
        lines.append("")
    return "\n".join(lines).strip()


def _section(key: str, title: str, items: List[str]) -> str:
    body = "\n".join(f"- {item}" for item in items)
    header = f"{SECTION_EMOJIS[key]} **{title}**"
    return f"{header}\n{body}" if items else header


def compose_answer(
    draft: str,
    records: List[RetrievedRecord],
    ctx: QueryContext,
    missing_data_notes: Optional[List[str]] = None,
    related_crops: Optional[List[str]] = None,
) -> str:
    """Header, data, availability notes, guidance and support, in that order."""
    topic = next((t for t in ("market", "weather", "fertilizer", "irrigation", "soil", "scheme")
                  if t in ctx.topics), "general")
    place = f" for {ctx.location.label()}" if ctx.location else ""
    crop = f" ({ctx.crop.name})" if ctx.crop else ""
    sections = [f"{TOPIC_EMOJIS[topic]} **{topic_title(topic)} Advisory{place}{crop}**"]

    data_lines = []
    for record in records:
        data_lines.extend(format_record(record))
    if data_lines:
        sections.append(_section("data", "Current Data", data_lines))

    if missing_data_notes:
        notes = list(missing_data_notes)
        if related_crops:
            notes.append(f"Related crops you can ask about: {', '.join(related_crops)}")
        sections.append(_section("precautions", "Data Availability", notes))

    guidance = [s.strip() for s in _SENTENCE_SPLIT.split(draft or "") if s.strip()]
    if guidance:
        sections.append(_section("recommendations", "Recommendations", guidance))

    if records:
        sections.append(_section("details", "Sources", sorted({citation(r) for r in records})))
    sections.append(_section("support", "Additional Support", SUPPORT_LINES))
    return "\n\n".join(sections)


def structure_response(text: str, topic: str = "general", language: str = "en") -> str:
    """Re-wrap an unstructured draft in the standard advisory template."""
    recommendations, details, precautions = [], [], []
    for sentence in _SENTENCE_SPLIT.split(text or ""):
        sentence = sentence.strip()
        if len(sentence) <= 10:
            continue
        if _PRECAUTION.search(sentence):
            precautions.append(sentence)
        elif _RECOMMEND.search(sentence):
            recommendations.append(sentence)
        else:
            details.append(sentence)

    emoji = TOPIC_EMOJIS.get(topic, TOPIC_EMOJIS["general"])
    sections = [f"{emoji} **{topic_title(topic, language)} Advisory**"]
    if recommendations:
        sections.append(_section("recommendations", "Key Recommendations", recommendations))
    if details:
        sections.append(_section("details", "Important Details", details))
    if precautions:
        sections.append(_section("precautions", "Precautions", precautions))
    sections.append(_section("support", "Additional Support", SUPPORT_LINES))
    return "\n\n".join(sections)


def format_confidence(confidence: float, basis: str) -> str:
    return f"Confidence: {round(confidence * 100)}% ({basis} factual basis)"
