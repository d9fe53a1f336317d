# krishi/core/offline_knowledge.py - Built-in agricultural guidance used when generation is unavailable
import re
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional

KISAN_CALL_CENTER = "1800-180-1551"


class KnowledgeEntry(NamedTuple):
    advice: str
    explanation: str
    confidence: float


KNOWLEDGE_BASE: Dict[str, KnowledgeEntry] = {
    "onion price": KnowledgeEntry(
        "To get current onion prices, check local mandis, the AGMARKNET portal, or the nearby "
        "Agricultural Produce Market Committee (APMC). Prices vary by variety, location and season.",
        "Onion prices fluctuate with supply, demand, storage capacity and weather.",
        0.8,
    ),
    "potato price": KnowledgeEntry(
        "For potato prices, visit local mandis or check AGMARKNET. Consider storage costs and "
        "variety differences before selling.",
        "Potato prices depend on variety, storage quality and market demand.",
        0.8,
    ),
    "tomato price": KnowledgeEntry(
        "Tomato prices are highly volatile. Check daily mandi rates, account for transport costs, "
        "and sell when quality is at its best.",
        "Tomato prices change rapidly because the crop is perishable and seasonal.",
        0.8,
    ),
    "wheat price": KnowledgeEntry(
        "Wheat is covered by the Minimum Support Price (MSP). Check FCI procurement centres, local "
        "mandis or private buyers for current rates.",
        "Government price support makes wheat a relatively stable crop for pricing.",
        0.9,
    ),
    "rice price": KnowledgeEntry(
        "Rice prices vary by variety (Basmati and non-Basmati). Compare MSP rates with mandi prices "
        "and quality grades.",
        "Rice pricing depends on variety, quality and government procurement.",
        0.9,
    ),
    "weather": KnowledgeEntry(
        "Check India Meteorological Department (IMD) forecasts, the Meghdoot app, or your nearest "
        "Krishi Vigyan Kendra for agricultural weather advisories.",
        "Weather information drives sowing, irrigation and harvesting decisions.",
        0.7,
    ),
    "rainfall": KnowledgeEntry(
        "Monitor rainfall with a rain gauge or IMD data. Plan irrigation around it and keep drainage "
        "channels clear during heavy rain.",
        "Rainfall monitoring helps with irrigation planning and crop protection.",
        0.8,
    ),
    "fertilizer": KnowledgeEntry(
        "Use fertilizers based on soil test results. Follow the recommended NPK ratio for your crop "
        "and apply at the right growth stages.",
        "Soil testing avoids over-application, which cuts costs and protects the soil.",
        0.9,
    ),
    "irrigation": KnowledgeEntry(
        "Irrigate based on crop stage, soil moisture and weather. Drip or sprinkler irrigation saves water.",
        "Correct irrigation timing improves yield and conserves water.",
        0.8,
    ),
    "pest control": KnowledgeEntry(
        "Use Integrated Pest Management (IPM). Monitor pest levels, use biological controls first, "
        "and spray chemicals only above the economic threshold.",
        "IPM slows pesticide resistance while keeping the crop protected.",
        0.9,
    ),
    "scheme": KnowledgeEntry(
        "Check PM-KISAN, Pradhan Mantri Fasal Bima Yojana and your state's schemes. Visit the nearest "
        "Common Service Centre or agriculture office to apply.",
        "Government schemes provide income support, insurance and subsidies.",
        0.8,
    ),
    "subsidy": KnowledgeEntry(
        "Subsidies are available for seeds, fertilizers, equipment and micro-irrigation. Contact your "
        "district agriculture office.",
        "Subsidies lower input costs and encourage modern practices.",
        0.8,
    ),
    "crop": KnowledgeEntry(
        "Choose crops based on local climate, soil type, water availability and market demand. "
        "Agricultural extension officers can recommend varieties for your area.",
        "Crop choice depends on several local factors.",
        0.7,
    ),
    "soil": KnowledgeEntry(
        "Get your soil tested every 2-3 years for pH, organic carbon and NPK. Use the Soil Health Card "
        "to plan fertilizer use.",
        "Soil health is the foundation of productivity.",
        0.9,
    ),
}

DEFAULT_ENTRY = KnowledgeEntry(
    "For specific agricultural guidance, contact your local Krishi Vigyan Kendra, an agricultural "
    f"extension officer, or the Kisan Call Center at {KISAN_CALL_CENTER}.",
    "Local experts can give advice specific to your crop and current conditions.",
    0.6,
)

RELATED_TERMS: Dict[str, List[str]] = {
    "price": ["rate", "cost", "mandi", "market", "selling", "भाव", "कीमत", "दाम"],
    "weather": ["rain", "temperature", "climate", "forecast", "मौसम", "बारिश"],
    "fertilizer": ["nutrient", "manure", "compost", "urea", "phosphate", "खाद"],
    "pest": ["insect", "disease", "fungus", "spray", "कीट"],
    "irrigation": ["water", "watering", "drip", "sprinkler", "सिंचाई"],
    "scheme": ["yojana", "government", "subsidy", "support", "योजना"],
}

SUGGESTED_QUESTIONS: Dict[str, List[str]] = {
    "en": [
        "What is the weather forecast for Pune tomorrow?",
        "What is today's wholesale price of potatoes in Delhi mandi?",
        "How can I check if my soil is healthy for wheat cultivation?",
        "When should I plant tomatoes?",
    ],
    "hi": [
        "गेहूं की बुवाई का सही समय क्या है?",
        "पीएम किसान योजना के लिए आवेदन कैसे करें?",
        "दिल्ली में अगले 5 दिन का मौसम कैसा रहेगा?",
    ],
}

_MIN_RELEVANCE = 0.3
_LOCATION = re.compile(
    r"\b(Delhi|Mumbai|Chennai|Kolkata|Bangalore|Bengaluru|Hyderabad|Pune|Ahmedabad|Punjab|Haryana|"
    r"Maharashtra|Gujarat|Karnataka|Tamil Nadu|Andhra Pradesh|West Bengal)\b",
    re.IGNORECASE,
)


def seasonal_note(month: int) -> Optional[str]:
    if 6 <= month <= 9:
        return "Kharif season: focus on monsoon crops like rice, cotton and sugarcane."
    if month >= 10 or month <= 3:
        return "Rabi season: a good time for wheat, barley, gram and mustard."
    if 4 <= month <= 5:
        return "Zaid season: consider summer vegetables and fodder with assured irrigation."
    return None


def suggested_questions(language: str) -> List[str]:
    return list(SUGGESTED_QUESTIONS.get(language, SUGGESTED_QUESTIONS["en"]))


class OfflineKnowledgeBase:
    """Keyword-matched guidance that needs neither network nor a language model."""

    def __init__(self, entries: Optional[Dict[str, KnowledgeEntry]] = None):
        self.entries = entries if entries is not None else KNOWLEDGE_BASE

    @staticmethod
    def relevance(query: str, key: str) -> float:
        query_words = query.split()
        # Crop-specific entries only answer questions about that crop
        if key.endswith(" price"):
            crop = key[: -len(" price")]
            if not any(word.startswith(crop) for word in query_words):
                return 0.0

        score = 0.0
        if key in query:
            score += 1.0

        for key_word in key.split():
            for word in query_words:
                if word.startswith(key_word) or (len(word) >= 3 and word in key_word):
                    score += 0.3

        for main_term, related in RELATED_TERMS.items():
            if main_term in key:
                score += 0.2 * sum(1 for term in related if term in query)
        return min(score, 1.0)

    def lookup(self, query: str) -> KnowledgeEntry:
        lowered = (query or "").lower()
        best_key, best_score = None, 0.0
        for key in self.entries:
            score = self.relevance(lowered, key)
            if score > best_score:
                best_key, best_score = key, score
        if best_key is None or best_score < _MIN_RELEVANCE:
            return DEFAULT_ENTRY
        return self.entries[best_key]

    def answer(self, query: str, now: Optional[datetime] = None) -> KnowledgeEntry:
        """Best entry for the query, lightly tailored to time and place."""
        entry = self.lookup(query)
        advice = entry.advice
        lowered = (query or "").lower()

        if "today" in lowered or "current" in lowered:
            advice = f"**Current Status**: {advice}"

        location = _LOCATION.search(query or "")
        if location:
            advice += (f"\n\n**For {location.group(1).title()}**: contact the local agriculture "
                       "department for region-specific guidance.")

        note = seasonal_note((now or datetime.now()).month)
        if note:
            advice += f"\n\n**Seasonal Note**: {note}"

        return KnowledgeEntry(advice, entry.explanation, max(entry.confidence - 0.1, 0.5))

    def draft(self, query: str, now: Optional[datetime] = None) -> str:
        entry = self.answer(query, now)
        return f"{entry.advice}\n\n{entry.explanation}"

    @staticmethod
    def generic_guidance(language: str = "en") -> str:
        if language == "hi":
            return (
                "**कृषि सलाह**\n\n"
                "**सामान्य मार्गदर्शन:**\n"
                "- नियमित रूप से मिट्टी की जांच कराएं\n"
                "- मौसम के अनुसार फसल चुनें\n"
                "- स्थानीय कृषि विस्तार अधिकारी से संपर्क करें\n"
                f"- किसान कॉल सेंटर: {KISAN_CALL_CENTER}"
            )
        return (
            "**Agricultural Advisory**\n\n"
            "**General Guidance:**\n"
            "- Test your soil regularly\n"
            "- Choose crops suitable for the current season\n"
            "- Contact your local agricultural extension office\n"
            "- Use appropriate irrigation and fertilization\n"
            f"- Kisan Call Center: {KISAN_CALL_CENTER}"
        )
