# krishi/core/demo_questions.py - Curated demo questions with vetted answers
import logging
import re
from typing import List, Optional, Tuple

from krishi.core.query_context import extract_location, match_crop
from krishi.models.advisory import AdvisoryResponse, DemoQuestion, Location

logger = logging.getLogger(__name__)

PUNE = Location(state="Maharashtra", district="Pune")
DELHI = Location(state="Delhi", district="Delhi")

DEMO_QUESTIONS: List[DemoQuestion] = [
    DemoQuestion(
        question="What is the weather forecast for Pune tomorrow?",
        patterns=[
            "what is the weather forecast for pune tomorrow",
            "weather forecast pune tomorrow",
            "pune weather tomorrow",
            "tomorrow weather pune",
            "pune tomorrow weather forecast",
        ],
        answer="Tomorrow in Pune: Partly cloudy, max 31°C, min 24°C, with a 40% chance of light rain.",
        category="weather",
        location=PUNE,
    ),
    DemoQuestion(
        question="What is today's wholesale price of potatoes in Delhi mandi?",
        patterns=[
            "what is todays wholesale price of potatoes in delhi mandi",
            "wholesale price potatoes delhi mandi",
            "potato price delhi mandi today",
            "delhi mandi potato price",
            "potatoes price delhi wholesale",
        ],
        answer="The average wholesale price of potatoes in Delhi's Azadpur mandi is around ₹18-22 per kg.",
        category="market",
        crop="Potato",
        location=DELHI,
    ),
    DemoQuestion(
        question="When should I plant tomatoes?",
        patterns=[
            "when should i plant tomatoes",
            "best time to plant tomatoes",
            "tomato planting season",
            "tomato cultivation timing",
            "when to sow tomato seeds",
        ],
        answer=(
            "The best time to plant tomatoes is during the rabi season (October-November) or the "
            "summer season (January-February), depending on your region. Ensure soil temperature "
            "is above 15°C for good germination."
        ),
        category="farming",
        crop="Tomato",
    ),
    DemoQuestion(
        question="How can I check if my soil is healthy for wheat cultivation?",
        patterns=[
            "how can i check if my soil is healthy for wheat cultivation",
            "wheat soil health check",
            "soil test for wheat cultivation",
            "check soil health wheat farming",
            "soil testing for wheat crop",
        ],
        answer=(
            "By doing a soil test at the nearest Krishi Vigyan Kendra (KVK). "
            "It will show nutrient levels and recommend fertilizers."
        ),
        category="farming",
        crop="Wheat",
    ),
    DemoQuestion(
        question="गेहूं की बुवाई का सही समय क्या है?",
        patterns=[
            "गेहूं की बुवाई का सही समय क्या है",
            "गेहूं की बुवाई कब करें",
            "गेहूं बोने का समय",
            "गेहूं की बुआई कब करनी चाहिए",
        ],
        answer=(
            "गेहूं की बुवाई का सबसे अच्छा समय नवंबर का पहला पखवाड़ा है, जब दिन का तापमान "
            "20-25°C के आसपास हो। देर से बुवाई करने पर उपज कम हो जाती है।"
        ),
        language="hi",
        category="farming",
        crop="Wheat",
    ),
    DemoQuestion(
        question="पीएम किसान योजना के लिए आवेदन कैसे करें?",
        patterns=[
            "पीएम किसान योजना के लिए आवेदन कैसे करें",
            "पीएम किसान में आवेदन",
            "किसान सम्मान निधि के लिए आवेदन",
            "पीएम किसान रजिस्ट्रेशन कैसे करें",
        ],
        answer=(
            "आप pmkisan.gov.in पर या नज़दीकी CSC केंद्र पर जाकर आवेदन कर सकते हैं। "
            "आधार कार्ड, बैंक खाता और ज़मीन के कागज़ साथ रखें।"
        ),
        language="hi",
        category="government",
    ),
    DemoQuestion(
        question="दिल्ली में अगले 5 दिन का मौसम कैसा रहेगा?",
        patterns=[
            "दिल्ली में अगले 5 दिन का मौसम कैसा रहेगा",
            "दिल्ली अगले 5 दिन मौसम",
            "अगले 5 दिन दिल्ली का मौसम",
        ],
        answer=(
            "दिल्ली में अगले 5 दिन हल्के बादल रहेंगे और बारिश की संभावना कम (30-40%) है। "
            "अधिकतम तापमान 32°C और न्यूनतम 24°C के आसपास रहेगा।"
        ),
        language="hi",
        category="weather",
        location=DELHI,
    ),
]

KEY_TERMS = ["weather", "price", "mandi", "मौसम", "भाव", "कीमत", "मंडी"]
KEY_TERM_BOOST = 0.1
# Short phrases are contained in too many queries to count as a near-exact match
MIN_CONTAINMENT_WORDS = 3
MIN_PARTIAL_WORD_LENGTH = 3

_PUNCTUATION = re.compile(r"[.,?!;:।'’]")
_DEVANAGARI_DIGITS = str.maketrans("०१२३४५६७८९", "0123456789")


def normalize(text: str) -> str:
    text = _PUNCTUATION.sub("", (text or "").lower().strip())
    return " ".join(text.split()).translate(_DEVANAGARI_DIGITS)


def _words_related(a: str, b: str) -> bool:
    if a == b:
        return True
    if min(len(a), len(b)) < MIN_PARTIAL_WORD_LENGTH:
        return False
    return a in b or b in a


def similarity(query: str, pattern: str) -> float:
    """Exact 1.0, containment 0.9, else Dice overlap on related words plus a key-term boost."""
    q, p = normalize(query), normalize(pattern)
    if not q or not p:
        return 0.0
    if q == p:
        return 1.0

    shorter = q if len(q) <= len(p) else p
    longer = p if shorter is q else q
    if shorter in longer and len(shorter.split()) >= MIN_CONTAINMENT_WORDS:
        return 0.9

    q_words, p_words = q.split(), p.split()
    common = [w for w in q_words if any(_words_related(w, pw) for pw in p_words)]
    score = 2 * len(common) / (len(q_words) + len(p_words))

    if any(term in q and term in p for term in KEY_TERMS):
        score = min(1.0, score + KEY_TERM_BOOST)
    return score


class DemoQuestionMatcher:
    """Matches incoming questions against the curated demo set."""

    def __init__(self, questions: Optional[List[DemoQuestion]] = None, threshold: float = 0.7):
        self.questions = questions if questions is not None else DEMO_QUESTIONS
        self.threshold = threshold

    @staticmethod
    def _fits(question: DemoQuestion, crop: Optional[str], location: Optional[Location]) -> bool:
        """A vetted answer about one crop or place never answers for another."""
        if question.crop and (crop is None or crop.lower() != question.crop.lower()):
            return False
        if question.location and location is not None and not question.location.matches(location):
            return False
        return True

    def find_match(self, query: str) -> Optional[Tuple[DemoQuestion, float]]:
        crop, location = match_crop(query), extract_location(query)
        best: Optional[Tuple[DemoQuestion, float]] = None
        for question in self.questions:
            if not self._fits(question, crop, location):
                continue
            for pattern in question.patterns or [question.question]:
                score = similarity(query, pattern)
                if score >= self.threshold and (best is None or score > best[1]):
                    best = (question, score)
        return best

    def respond(self, query: str) -> Optional[AdvisoryResponse]:
        match = self.find_match(query)
        if match is None:
            return None

        question, score = match
        logger.info(f"🎯 Demo question matched ({score:.0%}): {question.question}")
        return AdvisoryResponse(
            answer_text=question.answer,
            confidence=round(min(question.confidence * score, 0.95), 4),
            factual_basis="high",
            language=question.language,
        )

    def all_questions(self, language: Optional[str] = None, category: Optional[str] = None) -> List[DemoQuestion]:
        return [
            q for q in self.questions
            if (language is None or q.language == language)
            and (category is None or q.category == category)
        ]
