# krishi/core/query_context.py - Query cleaning and agricultural context extraction
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Set

from krishi.core.errors import InvalidQuery
from krishi.core.language import LanguageDetector, nfc, tokenize
from krishi.models.advisory import CropInfo, Location, Query, QueryContext

logger = logging.getLogger(__name__)

INVALID_QUERY_MESSAGE = "Please enter a valid farming question (minimum 3 characters with letters)"

# Common misspellings and romanized terms
AGRICULTURE_CORRECTIONS: Dict[str, str] = {
    "fertlizer": "fertilizer",
    "fertliser": "fertilizer",
    "fertiliser": "fertilizer",
    "pestcide": "pesticide",
    "pesticde": "pesticide",
    "irigation": "irrigation",
    "irigashun": "irrigation",
    "cropp": "crop",
    "soyl": "soil",
    "watr": "water",
    "wether": "weather",
    "pani": "water",
    "paani": "water",
    "khad": "fertilizer",
    "khaad": "fertilizer",
    "keet": "pest",
    "beej": "seed",
    "fasal": "crop",
    "mitti": "soil",
    "barish": "rain",
}

_CORRECTION_RE = re.compile(r"\b(" + "|".join(AGRICULTURE_CORRECTIONS) + r")\b")

# Letters, digits, whitespace, Indic blocks (Devanagari..Sinhala) and basic punctuation
_DISALLOWED_CHARS = re.compile(r"[^\w\s\u0900-\u0DFF.,!?]")
_REPEATED_PUNCT = re.compile(r"([.,!?])\1+")
_REPEATED_CHARS = re.compile(r"([^\d\s])\1{3,}")
_HAS_LETTER = re.compile(r"[^\W\d_]|[\u0900-\u0DFF]")

INDIAN_STATES: List[str] = [
    "Andhra Pradesh", "Arunachal Pradesh", "Assam", "Bihar", "Chhattisgarh",
    "Goa", "Gujarat", "Haryana", "Himachal Pradesh", "Jharkhand", "Karnataka",
    "Kerala", "Madhya Pradesh", "Maharashtra", "Manipur", "Meghalaya", "Mizoram",
    "Nagaland", "Odisha", "Punjab", "Rajasthan", "Sikkim", "Tamil Nadu",
    "Telangana", "Tripura", "Uttar Pradesh", "Uttarakhand", "West Bengal",
    "Delhi", "Puducherry", "Jammu and Kashmir", "Ladakh",
]

# District/city -> state
DISTRICTS: Dict[str, str] = {
    "Pune": "Maharashtra", "Mumbai": "Maharashtra", "Nashik": "Maharashtra",
    "Nasik": "Maharashtra", "Nagpur": "Maharashtra", "Aurangabad": "Maharashtra",
    "Kolhapur": "Maharashtra", "Solapur": "Maharashtra", "Ahmednagar": "Maharashtra",
    "Delhi": "Delhi", "New Delhi": "Delhi",
    "Lucknow": "Uttar Pradesh", "Kanpur": "Uttar Pradesh", "Agra": "Uttar Pradesh",
    "Varanasi": "Uttar Pradesh", "Meerut": "Uttar Pradesh",
    "Jaipur": "Rajasthan", "Jodhpur": "Rajasthan", "Kota": "Rajasthan",
    "Ludhiana": "Punjab", "Amritsar": "Punjab", "Patiala": "Punjab", "Jalandhar": "Punjab",
    "Karnal": "Haryana", "Hisar": "Haryana", "Rohtak": "Haryana",
    "Ahmedabad": "Gujarat", "Rajkot": "Gujarat", "Surat": "Gujarat", "Vadodara": "Gujarat",
    "Indore": "Madhya Pradesh", "Bhopal": "Madhya Pradesh", "Jabalpur": "Madhya Pradesh",
    "Patna": "Bihar", "Gaya": "Bihar",
    "Kolkata": "West Bengal", "Bardhaman": "West Bengal",
    "Chennai": "Tamil Nadu", "Coimbatore": "Tamil Nadu", "Madurai": "Tamil Nadu",
    "Hyderabad": "Telangana", "Warangal": "Telangana",
    "Guntur": "Andhra Pradesh", "Vijayawada": "Andhra Pradesh",
    "Bengaluru": "Karnataka", "Bangalore": "Karnataka", "Mysuru": "Karnataka", "Mysore": "Karnataka",
    "Thiruvananthapuram": "Kerala", "Kochi": "Kerala",
    "Bhubaneswar": "Odisha", "Cuttack": "Odisha",
    "Raipur": "Chhattisgarh", "Ranchi": "Jharkhand", "Guwahati": "Assam",
    "Dehradun": "Uttarakhand", "Shimla": "Himachal Pradesh",
}

# Native-script place names -> (district or None, state)
NATIVE_PLACES: Dict[str, tuple] = {
    "पुणे": ("Pune", "Maharashtra"), "मुंबई": ("Mumbai", "Maharashtra"),
    "नासिक": ("Nashik", "Maharashtra"), "नाशिक": ("Nashik", "Maharashtra"),
    "नागपुर": ("Nagpur", "Maharashtra"), "दिल्ली": ("Delhi", "Delhi"),
    "लखनऊ": ("Lucknow", "Uttar Pradesh"), "आगरा": ("Agra", "Uttar Pradesh"),
    "जयपुर": ("Jaipur", "Rajasthan"), "इंदौर": ("Indore", "Madhya Pradesh"),
    "भोपाल": ("Bhopal", "Madhya Pradesh"), "पटना": ("Patna", "Bihar"),
    "लुधियाना": ("Ludhiana", "Punjab"), "करनाल": ("Karnal", "Haryana"),
    "महाराष्ट्र": (None, "Maharashtra"), "पंजाब": (None, "Punjab"),
    "हरियाणा": (None, "Haryana"), "राजस्थान": (None, "Rajasthan"),
    "बिहार": (None, "Bihar"), "गुजरात": (None, "Gujarat"),
    "उत्तर प्रदेश": (None, "Uttar Pradesh"), "मध्य प्रदेश": (None, "Madhya Pradesh"),
    "কলকাতা": ("Kolkata", "West Bengal"), "পশ্চিমবঙ্গ": (None, "West Bengal"),
    "சென்னை": ("Chennai", "Tamil Nadu"), "தமிழ்நாடு": (None, "Tamil Nadu"),
    "హైదరాబాద్": ("Hyderabad", "Telangana"), "తెలంగాణ": (None, "Telangana"),
    "અમદાવાદ": ("Ahmedabad", "Gujarat"), "ગુજરાત": (None, "Gujarat"),
    "ਲੁਧਿਆਣਾ": ("Ludhiana", "Punjab"), "ਪੰਜਾਬ": (None, "Punjab"),
}

_DISTRICT_PATTERNS = [
    re.compile(r"\bin\s+([a-z]+)\s+district\b", re.IGNORECASE),
    re.compile(r"\b([a-z]+)\s+district\b", re.IGNORECASE),
]
_NOT_A_DISTRICT = {"the", "my", "our", "this", "that", "your", "which", "every", "each", "a"}
_PINCODE = re.compile(r"\b\d{6}\b")

CROP_CATEGORIES: Dict[str, List[str]] = {
    "cereals": ["Rice", "Wheat", "Maize", "Bajra", "Jowar", "Ragi", "Barley"],
    "cash_crops": ["Sugarcane", "Cotton", "Jute", "Tea", "Coffee", "Tobacco"],
    "oilseeds": ["Groundnut", "Mustard", "Sunflower", "Soybean", "Sesame", "Safflower"],
    "pulses": ["Gram", "Lentil", "Pea", "Black gram", "Green gram", "Arhar", "Moong", "Urad", "Chana"],
    "vegetables": [
        "Onion", "Potato", "Tomato", "Chilli", "Brinjal", "Okra", "Cabbage", "Cauliflower",
        "Carrot", "Radish", "Beetroot", "Cucumber", "Bottle gourd", "Ridge gourd", "Bitter gourd",
        "Pumpkin", "Bean", "Spinach", "Coriander", "Mint", "Capsicum", "Lady finger",
    ],
    "spices": ["Turmeric", "Ginger", "Garlic", "Cumin", "Fenugreek", "Cardamom", "Black pepper"],
    "fruits": ["Coconut", "Mango", "Banana", "Apple", "Orange", "Grapes", "Pomegranate"],
}

COMMON_CROPS: List[str] = [crop for crops in CROP_CATEGORIES.values() for crop in crops]

CROP_ALIASES: Dict[str, str] = {
    # English and romanized
    "peanut": "Groundnut", "peanuts": "Groundnut", "corn": "Maize", "paddy": "Rice",
    "bhindi": "Okra", "eggplant": "Brinjal", "baingan": "Brinjal", "chili": "Chilli",
    "chilly": "Chilli", "chillies": "Chilli", "soya": "Soybean", "soyabean": "Soybean",
    "sarson": "Mustard", "aloo": "Potato", "pyaz": "Onion", "pyaaz": "Onion", "pyaj": "Onion",
    "tamatar": "Tomato", "gehun": "Wheat", "chawal": "Rice", "dhan": "Rice", "kapas": "Cotton",
    "ganna": "Sugarcane", "tur": "Arhar", "toor": "Arhar", "makka": "Maize",
    # Devanagari
    "धान": "Rice", "चावल": "Rice", "गेहूं": "Wheat", "गेहूँ": "Wheat", "गहू": "Wheat",
    "मक्का": "Maize", "गन्ना": "Sugarcane", "ऊस": "Sugarcane", "कपास": "Cotton", "कापूस": "Cotton",
    "सोयाबीन": "Soybean", "प्याज": "Onion", "प्याज़": "Onion", "कांदा": "Onion",
    "आलू": "Potato", "टमाटर": "Tomato", "बैंगन": "Brinjal", "भिंडी": "Okra",
    "गोभी": "Cauliflower", "गाजर": "Carrot", "मूली": "Radish", "खीरा": "Cucumber",
    "लौकी": "Bottle gourd", "तोरई": "Ridge gourd", "करेला": "Bitter gourd",
    "हल्दी": "Turmeric", "अदरक": "Ginger", "लहसुन": "Garlic", "मिर्च": "Chilli",
    "धनिया": "Coriander", "पुदीना": "Mint", "आम": "Mango", "केला": "Banana",
    "संतरा": "Orange", "अंगूर": "Grapes", "सरसों": "Mustard", "चना": "Chana",
    "मूंगफली": "Groundnut", "बाजरा": "Bajra", "ज्वार": "Jowar",
    # Other scripts
    "ধান": "Rice", "গম": "Wheat", "পাট": "Jute", "আলু": "Potato",
    "நெல்": "Rice", "பருத்தி": "Cotton", "தக்காளி": "Tomato",
    "వరి": "Rice", "పత్తి": "Cotton", "మిరప": "Chilli",
    "કપાસ": "Cotton", "મગફળી": "Groundnut", "ઘઉં": "Wheat",
    "ਕਣਕ": "Wheat", "ਝੋਨਾ": "Rice", "ਕਪਾਹ": "Cotton",
}

# Short words that are prefixes of crop names but rarely mean the crop
_PARTIAL_STOPWORDS = {
    "and", "are", "car", "card", "cum", "cot", "pump", "ban", "man", "tom", "pot", "gin",
    "app", "sun", "bar", "cab", "cap", "gar", "bee", "spin", "cor", "pom", "must", "moon",
    "rag", "coco", "bit", "lent", "chan", "ground", "chill", "sugar", "min",
}

# Crop names that double as units of measure ("grams of seed")
_UNIT_WORDS = {"gram", "grams"}

KHARIF_CROPS = {"rice", "maize", "cotton", "sugarcane", "bajra", "jowar", "soybean", "groundnut"}
RABI_CROPS = {"wheat", "gram", "mustard", "barley", "pea", "lentil", "chana"}
ZAID_CROPS = {"sunflower", "cucumber"}

STAGE_PATTERNS = [
    ("sowing", re.compile(r"sow|seed|plant|बुवाई|बोना|रोपाई", re.IGNORECASE)),
    ("growing", re.compile(r"grow|growth|बढ़", re.IGNORECASE)),
    ("flowering", re.compile(r"flower|bloom|फूल", re.IGNORECASE)),
    ("harvesting", re.compile(r"harvest|reap|कटाई", re.IGNORECASE)),
]


def _topic_pattern(latin: List[str], native: List[str]) -> "re.Pattern":
    parts = [r"\b(?:" + "|".join(latin) + ")"]
    if native:
        parts.append("|".join(native))
    return re.compile("|".join(parts), re.IGNORECASE)


TOPIC_PATTERNS: Dict[str, "re.Pattern"] = {
    "weather": _topic_pattern(
        ["weather", "temperature", "rain", "humidity", "wind", "climate", "forecast"],
        ["मौसम", "बारिश", "तापमान", "हवामान", "पाऊस"],
    ),
    "market": _topic_pattern(
        ["price", "market", "sell", "buy", "mandi", r"rates?\b", "cost"],
        ["मंडी", "भाव", "कीमत", "दाम", "बाजार", "बाज़ार", "दर"],
    ),
    "advisory": _topic_pattern(
        ["advice", "advis", "recommend", "suggest", "problem", "disease", "pest"],
        ["सलाह", "रोग", "कीट", "बीमारी"],
    ),
    "soil": _topic_pattern(
        ["soil", "fertility", "nutrient", r"ph\b", "organic"],
        ["मिट्टी", "माती"],
    ),
    "fertilizer": _topic_pattern(
        ["fertili[sz]er", "manure", "compost", "urea", "npk", r"dap\b"],
        ["खाद", "उर्वरक", "खत"],
    ),
    "irrigation": _topic_pattern(
        ["water", "irrigat", "drip", "sprinkler"],
        ["पानी", "सिंचाई", "पाणी"],
    ),
    "scheme": _topic_pattern(
        ["scheme", "subsid", "government", "yojana", r"pm[\s-]?kisan"],
        ["योजना", "सरकार", "सब्सिडी"],
    ),
}


def clean_text(text: str) -> str:
    cleaned = re.sub(r"\s+", " ", (text or "").strip())
    cleaned = _DISALLOWED_CHARS.sub("", cleaned)
    cleaned = _REPEATED_PUNCT.sub(r"\1", cleaned)
    cleaned = _REPEATED_CHARS.sub(r"\1\1", cleaned)
    return cleaned.lower()


def correct_agriculture_terms(text: str) -> str:
    return _CORRECTION_RE.sub(lambda m: AGRICULTURE_CORRECTIONS[m.group(1)], text)


def _latin_words(text: str) -> List[str]:
    return re.findall(r"[a-z]+", text.lower())


def _crop_words(text: str) -> List[str]:
    words = _latin_words(text)
    return [
        w for i, w in enumerate(words)
        if not (w in _UNIT_WORDS and i + 1 < len(words) and words[i + 1] == "of")
    ]


def extract_location(text: str) -> Optional[Location]:
    if not text:
        return None
    lowered = text.lower()

    # Multi-word names first so "New Delhi" wins over "Delhi"
    for district in sorted(DISTRICTS, key=len, reverse=True):
        if re.search(r"\b" + re.escape(district.lower()) + r"\b", lowered):
            return Location(state=DISTRICTS[district], district=district)

    for state in sorted(INDIAN_STATES, key=len, reverse=True):
        if re.search(r"\b" + re.escape(state.lower()) + r"\b", lowered):
            return Location(state=state)

    for name in sorted(NATIVE_PLACES, key=len, reverse=True):
        if name in text:
            district, state = NATIVE_PLACES[name]
            return Location(state=state, district=district)

    for pattern in _DISTRICT_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).lower() not in _NOT_A_DISTRICT:
            return Location(district=match.group(1).capitalize())

    pin = _PINCODE.search(text)
    if pin:
        return Location(pincode=pin.group(0))
    return None


def _word_matches_crop(word: str, crop: str) -> bool:
    if word == crop or word in (crop + "s", crop + "es"):
        return True
    if crop.endswith("y") and word == crop[:-1] + "ies":
        return True
    # Prefix overlap of at least three letters, e.g. "soy" -> soybean, "grape" -> grapes
    return len(word) >= 3 and word not in _PARTIAL_STOPWORDS and crop.startswith(word) and len(word) < len(crop)


def match_crop(text: str) -> Optional[str]:
    """Crop name mentioned in ``text``, or None."""
    if not text:
        return None
    lowered = nfc(text).lower()
    tokens = set(tokenize(text))
    words = _crop_words(text)

    for alias, crop in CROP_ALIASES.items():
        if alias.isascii():
            if alias in words:
                return crop
        elif nfc(alias) in tokens:
            return crop

    multi_word = [c for c in COMMON_CROPS if " " in c]
    for crop in multi_word:
        if all(any(_word_matches_crop(w, part) for w in words) for part in crop.lower().split()):
            return crop

    single_word = [c for c in COMMON_CROPS if " " not in c]
    for crop in single_word:
        if crop.lower() in words:
            return crop
    for crop in single_word:
        if any(_word_matches_crop(w, crop.lower()) for w in words):
            return crop

    # Native-script crop names embedded in longer tokens
    for alias, crop in CROP_ALIASES.items():
        if not alias.isascii() and len(alias) >= 4 and nfc(alias) in lowered:
            return crop
    return None


def crop_season(crop: str, now: Optional[datetime] = None) -> str:
    month = (now or datetime.now()).month
    name = crop.lower()
    if name in KHARIF_CROPS:
        return "kharif" if 6 <= month <= 10 else "rabi"
    if name in RABI_CROPS:
        return "rabi"
    if name in ZAID_CROPS and 3 <= month <= 6:
        return "zaid"
    return "perennial"


def crop_stage(text: str) -> Optional[str]:
    for stage, pattern in STAGE_PATTERNS:
        if pattern.search(text or ""):
            return stage
    return None


def extract_crop(text: str, original_text: Optional[str] = None, now: Optional[datetime] = None) -> Optional[CropInfo]:
    name = match_crop(text) or (match_crop(original_text) if original_text else None)
    if name is None:
        return None
    stage = crop_stage(text) or (crop_stage(original_text) if original_text else None)
    return CropInfo(name=name, season=crop_season(name, now), stage=stage)


def classify_topics(text: str) -> Set[str]:
    return {topic for topic, pattern in TOPIC_PATTERNS.items() if pattern.search(text or "")}


def related_crops(crop: str, limit: int = 3) -> List[str]:
    """Other crops from the same category, used as substitutes when data is missing."""
    category = crop_category(crop)
    if category is None:
        return []
    return [c for c in CROP_CATEGORIES[category] if c.lower() != crop.lower()][:limit]


def crop_category(crop: str) -> Optional[str]:
    for category, crops in CROP_CATEGORIES.items():
        if crop.lower() in (c.lower() for c in crops):
            return category
    return None


def extract_context(
    text: str,
    language: str,
    original_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> QueryContext:
    """Location, crop and topics from the translated text, falling back to the original."""
    location = extract_location(text) or (extract_location(original_text) if original_text else None)
    crop = extract_crop(text, original_text, now)

    topics = classify_topics(text)
    if original_text:
        topics |= classify_topics(original_text)
    if not topics:
        topics = {"general"}

    return QueryContext(
        location=location,
        crop=crop,
        topics=topics,
        language=language,
        timestamp=now or datetime.now(),
    )


class QueryPreprocessor:
    """Cleans, validates and translates raw farmer questions."""

    def __init__(self, detector: Optional[LanguageDetector] = None):
        self.detector = detector or LanguageDetector()

    def preprocess(self, raw_text: str) -> Query:
        language = self.detector.process(raw_text or "")
        cleaned = correct_agriculture_terms(clean_text(raw_text))
        translated = self.detector.translate(cleaned, language.detected_language) or cleaned

        is_valid = len(cleaned) >= 3 and bool(_HAS_LETTER.search(cleaned))
        return Query(
            raw_text=raw_text or "",
            cleaned_text=cleaned,
            translated_text=translated,
            detected_language=language.detected_language,
            confidence=language.confidence,
            is_valid=is_valid,
            error=None if is_valid else INVALID_QUERY_MESSAGE,
        )

    @staticmethod
    def ensure_valid(query: Query) -> Query:
        if not query.is_valid:
            raise InvalidQuery(query.error or INVALID_QUERY_MESSAGE)
        return query

    def extract_context(self, query: Query, now: Optional[datetime] = None) -> QueryContext:
        return extract_context(query.translated_text, query.detected_language, query.cleaned_text, now)
