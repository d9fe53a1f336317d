# krishi/core/language.py - Script/keyword language detection and glossary translation
import logging
import re
import unicodedata
from typing import Dict, Iterable, List, Set, Tuple

from krishi.models.advisory import LanguageDetection, LanguageResult

logger = logging.getLogger(__name__)

# Candidate order doubles as the tie-break order
CANDIDATE_LANGUAGES = ["en", "hi", "bn", "ta", "te", "mr", "gu", "pa"]

LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi",
    "bn": "Bengali",
    "ta": "Tamil",
    "te": "Telugu",
    "mr": "Marathi",
    "gu": "Gujarati",
    "pa": "Punjabi",
}

STT_SUPPORTED = {"en", "hi", "bn", "ta", "te", "mr", "gu", "pa"}

SCRIPT_WEIGHT = 40.0
LATIN_WEIGHT = 20.0
KEYWORD_WEIGHT = 5.0
ROMANIZED_WEIGHT = 10.0
SCORE_FLOOR = 5.0
CONFIDENCE_SCALE = 50.0

SCRIPT_RANGES: Dict[str, Tuple[int, int]] = {
    "hi": (0x0900, 0x097F),
    "mr": (0x0900, 0x097F),
    "bn": (0x0980, 0x09FF),
    "pa": (0x0A00, 0x0A7F),
    "gu": (0x0A80, 0x0AFF),
    "ta": (0x0B80, 0x0BFF),
    "te": (0x0C00, 0x0C7F),
}

# Whitespace/punctuation tokenisation keeps Indic vowel signs inside their word
TOKEN_RE = re.compile(r"[^\s.,!?;:\"'`()\[\]{}<>/\\|।॥\-–—]+")


def nfc(text: str) -> str:
    return unicodedata.normalize("NFC", text)


def tokenize(text: str) -> List[str]:
    return TOKEN_RE.findall(nfc(text).lower())


# --- Agriculture glossaries (source term -> English) ---

GLOSSARIES: Dict[str, Dict[str, str]] = {
    "hi": {
        "कैसे": "how", "क्या": "what", "कहाँ": "where", "कहां": "where", "कब": "when",
        "क्यों": "why", "कितना": "how much", "कितनी": "how much", "कितने": "how many",
        "फसल": "crop", "खेत": "farm", "किसान": "farmer", "खाद": "fertilizer",
        "उर्वरक": "fertilizer", "पानी": "water", "सिंचाई": "irrigation", "बीज": "seed",
        "पौधे": "plants", "पौधा": "plant", "जमीन": "land", "ज़मीन": "land", "मिट्टी": "soil",
        "कीट": "pest", "रोग": "disease", "बीमारी": "disease", "बारिश": "rain", "वर्षा": "rain",
        "मौसम": "weather", "सरकार": "government", "सरकारी": "government", "योजना": "scheme",
        "मंडी": "mandi", "दाम": "price", "कीमत": "price", "भाव": "price", "बाज़ार": "market",
        "बाजार": "market", "गेहूं": "wheat", "गेहूँ": "wheat", "चावल": "rice", "धान": "paddy",
        "कपास": "cotton", "मक्का": "maize", "आलू": "potato", "प्याज": "onion", "प्याज़": "onion",
        "टमाटर": "tomato", "सरसों": "mustard", "गन्ना": "sugarcane", "चना": "gram",
        "सोयाबीन": "soybean", "मूंगफली": "groundnut", "बाजरा": "bajra", "ज्वार": "jowar",
        "आज": "today", "कल": "tomorrow", "में": "in", "का": "of", "की": "of", "के": "of",
        "है": "is", "हैं": "are", "और": "and", "या": "or", "बुवाई": "sowing", "कटाई": "harvesting",
        "पुणे": "pune", "दिल्ली": "delhi", "मुंबई": "mumbai", "लखनऊ": "lucknow",
    },
    "bn": {
        "কিভাবে": "how", "কি": "what", "কোথায়": "where", "কখন": "when", "কেন": "why",
        "ফসল": "crop", "খেত": "farm", "কৃষক": "farmer", "কিসান": "farmer", "সার": "fertilizer",
        "পানি": "water", "জল": "water", "বীজ": "seed", "গাছ": "plant", "জমি": "land",
        "মাটি": "soil", "পোকা": "pest", "রোগ": "disease", "বৃষ্টি": "rain",
        "আবহাওয়া": "weather", "সরকার": "government", "প্রকল্প": "scheme", "বাজার": "market",
        "দাম": "price", "মূল্য": "price", "গম": "wheat", "ধান": "paddy", "চাল": "rice",
        "তুলা": "cotton", "আলু": "potato", "পেঁয়াজ": "onion", "পাট": "jute", "আজ": "today",
        "আগামীকাল": "tomorrow", "কলকাতা": "kolkata",
    },
    "ta": {
        "எப்படி": "how", "என்ன": "what", "எங்கே": "where", "எப்போது": "when", "ஏன்": "why",
        "பயிர்": "crop", "வயல்": "farm", "விவசாயி": "farmer", "உரம்": "fertilizer",
        "தண்ணீர்": "water", "விதை": "seed", "செடி": "plant", "நிலம்": "land", "மண்": "soil",
        "பூச்சி": "pest", "நோய்": "disease", "மழை": "rain", "வானிலை": "weather",
        "அரசு": "government", "திட்டம்": "scheme", "சந்தை": "market", "விலை": "price",
        "கோதுமை": "wheat", "அரிசி": "rice", "நெல்": "paddy", "பருத்தி": "cotton",
        "தக்காளி": "tomato", "வெங்காயம்": "onion", "சென்னை": "chennai",
    },
    "te": {
        "ఎలా": "how", "ఏమి": "what", "ఎక్కడ": "where", "ఎప్పుడు": "when", "ఎందుకు": "why",
        "పంట": "crop", "పొలం": "farm", "రైతు": "farmer", "ఎరువు": "fertilizer", "నీరు": "water",
        "విత్తనం": "seed", "మొక్క": "plant", "భూమి": "land", "మట్టి": "soil", "కీటకం": "pest",
        "వ్యాధి": "disease", "వర్షం": "rain", "వాతావరణం": "weather", "ప్రభుత్వం": "government",
        "పథకం": "scheme", "మార్కెట్": "market", "ధర": "price", "వరి": "paddy", "పత్తి": "cotton",
        "మిరప": "chilli", "హైదరాబాద్": "hyderabad",
    },
    "mr": {
        "कसे": "how", "काय": "what", "कुठे": "where", "केव्हा": "when", "पीक": "crop",
        "शेत": "farm", "शेतकरी": "farmer", "खत": "fertilizer", "पाणी": "water",
        "बियाणे": "seed", "झाड": "plant", "जमीन": "land", "माती": "soil", "कीटक": "pest",
        "रोग": "disease", "पाऊस": "rain", "हवामान": "weather", "सरकार": "government",
        "योजना": "scheme", "बाजार": "market", "दर": "price", "किंमत": "price", "ऊस": "sugarcane",
        "कांदा": "onion", "गहू": "wheat", "ज्वारी": "jowar", "कापूस": "cotton",
        "सोयाबीन": "soybean", "उद्या": "tomorrow", "आज": "today", "पुणे": "pune",
        "नाशिक": "nashik",
    },
    "gu": {
        "કેવી રીતે": "how", "શા માટે": "why", "શું": "what", "ક્યાં": "where", "ક્યારે": "when",
        "પાક": "crop", "ખેત": "farm", "ખેડૂત": "farmer", "ખાતર": "fertilizer", "પાણી": "water",
        "બીજ": "seed", "છોડ": "plant", "જમીન": "land", "માટી": "soil", "જીવાત": "pest",
        "રોગ": "disease", "વરસાદ": "rain", "હવામાન": "weather", "સરકાર": "government",
        "યોજના": "scheme", "બજાર": "market", "ભાવ": "price", "કિંમત": "price",
        "કપાસ": "cotton", "મગફળી": "groundnut", "ઘઉં": "wheat", "અમદાવાદ": "ahmedabad",
    },
    "pa": {
        "ਕਿਵੇਂ": "how", "ਕੀ": "what", "ਕਿੱਥੇ": "where", "ਕਦੋਂ": "when", "ਕਿਉਂ": "why",
        "ਫਸਲ": "crop", "ਖੇਤ": "farm", "ਕਿਸਾਨ": "farmer", "ਖਾਦ": "fertilizer", "ਪਾਣੀ": "water",
        "ਬੀਜ": "seed", "ਪੌਧਾ": "plant", "ਜ਼ਮੀਨ": "land", "ਮਿੱਟੀ": "soil", "ਕੀੜਾ": "pest",
        "ਰੋਗ": "disease", "ਬਾਰਿਸ਼": "rain", "ਮੌਸਮ": "weather", "ਸਰਕਾਰ": "government",
        "ਯੋਜਨਾ": "scheme", "ਮੰਡੀ": "mandi", "ਰੇਟ": "price", "ਕੀਮਤ": "price", "ਕਣਕ": "wheat",
        "ਝੋਨਾ": "paddy", "ਕਪਾਹ": "cotton", "ਲੁਧਿਆਣਾ": "ludhiana",
    },
}

ROMANIZED_HINDI: Dict[str, str] = {
    "pani": "water", "khad": "fertilizer", "beej": "seed", "fasal": "crop", "khet": "farm",
    "kisan": "farmer", "mitti": "soil", "barish": "rain", "mausam": "weather", "keet": "pest",
    "rog": "disease", "sarkar": "government", "yojana": "scheme", "daam": "price",
    "keemat": "price", "bhav": "price", "bazaar": "market", "gehun": "wheat", "chawal": "rice",
    "dhan": "paddy", "kapas": "cotton", "makka": "maize", "aloo": "potato", "pyaaz": "onion",
    "pyaj": "onion", "tamatar": "tomato", "sarson": "mustard", "ganna": "sugarcane",
    "kaise": "how", "kya": "what", "kab": "when", "kahan": "where", "kyun": "why",
    "aaj": "today", "mein": "in", "urvarak": "fertilizer", "sinchai": "irrigation",
    "jameen": "land", "paudhe": "plants", "paudha": "plant",
}

# Hits that signal romanized Hindi but carry no translation
ROMANIZED_MARKERS: Set[str] = {
    "hai", "ka", "ki", "ke", "mera", "meri", "mere", "chahiye", "kitna", "kitni", "karna",
    "kare", "karein", "kaun", "sa", "hota", "hoga", "kal", "mandi", "aur", "ko", "se",
}

# Function words counted as native keywords on top of the glossary terms
FUNCTION_WORDS: Dict[str, Set[str]] = {
    "en": {
        "how", "what", "where", "when", "why", "the", "this", "that", "and", "or", "is", "are",
        "do", "doing", "crop", "farm", "farmer", "fertilizer", "water", "seed", "plant", "land",
        "soil", "pest", "disease", "rain", "weather", "government", "scheme", "market", "price",
        "cost",
    },
    "hi": {"कि", "से", "पर", "कर", "करने", "करना", "हो", "चाहिए"},
    "bn": {"এর", "এই", "সেই", "এবং", "বা", "আছে", "আর", "করার", "করতে"},
    "ta": {"இன்", "இந்த", "அந்த", "மற்றும்", "அல்லது", "உள்ளது", "செய்ய", "செய்வது"},
    "te": {"యొక్క", "ఈ", "ఆ", "మరియు", "లేదా", "ఉంది", "చేయడం", "చేయటానికి"},
    "mr": {"का", "चे", "या", "हा", "आणि", "किंवा", "आहे", "करणे", "करायचे"},
    "gu": {"ના", "આ", "તે", "અને", "અથવા", "છે", "કરવું", "કરવા માટે"},
    "pa": {"ਦਾ", "ਇਹ", "ਉਹ", "ਅਤੇ", "ਜਾਂ", "ਹੈ", "ਕਰਨਾ", "ਕਰਨ ਲਈ"},
}


def _build_keywords() -> Tuple[Dict[str, Set[str]], Dict[str, List[str]]]:
    single: Dict[str, Set[str]] = {}
    phrases: Dict[str, List[str]] = {}
    for lang in CANDIDATE_LANGUAGES:
        terms = set(FUNCTION_WORDS.get(lang, set())) | set(GLOSSARIES.get(lang, {}))
        terms = {nfc(t) for t in terms}
        single[lang] = {t for t in terms if " " not in t}
        phrases[lang] = sorted((t for t in terms if " " in t), key=len, reverse=True)
    return single, phrases


NATIVE_KEYWORDS, NATIVE_PHRASES = _build_keywords()
ROMANIZED_KEYWORDS: Set[str] = set(ROMANIZED_HINDI) | ROMANIZED_MARKERS


def _in_range(ch: str, bounds: Tuple[int, int]) -> bool:
    return bounds[0] <= ord(ch) <= bounds[1]


def _count_hits(tokens: Iterable[str], text: str, keywords: Set[str], phrases: List[str]) -> int:
    hits = sum(1 for t in tokens if t in keywords)
    for phrase in phrases:
        hits += text.count(phrase)
    return hits


class LanguageDetector:
    """Detects the dominant language of a farmer query and renders it in English.

    Detection is a weighted vote: the share of letters in each language's script
    block, plus native keyword hits, plus romanized keyword hits for Hindi.
    Translation substitutes glossary terms token by token; unknown tokens pass through.
    """

    def detect(self, text: str) -> LanguageDetection:
        normalized = nfc(text or "")
        lowered = normalized.lower()
        tokens = TOKEN_RE.findall(lowered)
        letters = [ch for ch in normalized if unicodedata.category(ch)[0] in ("L", "M")]

        best_lang, best_score = "en", 0.0
        for lang in CANDIDATE_LANGUAGES:
            score = self._score(lang, lowered, tokens, letters)
            if score > best_score:
                best_lang, best_score = lang, score

        if best_score < SCORE_FLOOR:
            return LanguageDetection(language="en", confidence=0.0, stt_supported=False)

        return LanguageDetection(
            language=best_lang,
            confidence=min(best_score / CONFIDENCE_SCALE, 1.0),
            stt_supported=best_lang in STT_SUPPORTED,
        )

    def _score(self, lang: str, lowered: str, tokens: List[str], letters: List[str]) -> float:
        score = 0.0
        if letters:
            if lang == "en":
                latin = sum(1 for ch in letters if "a" <= ch.lower() <= "z")
                score += LATIN_WEIGHT * latin / len(letters)
            else:
                in_block = sum(1 for ch in letters if _in_range(ch, SCRIPT_RANGES[lang]))
                score += SCRIPT_WEIGHT * in_block / len(letters)

        score += KEYWORD_WEIGHT * _count_hits(tokens, lowered, NATIVE_KEYWORDS[lang], NATIVE_PHRASES[lang])

        if lang == "hi":
            romanized_hits = sum(1 for t in tokens if t in ROMANIZED_KEYWORDS)
            score += ROMANIZED_WEIGHT * romanized_hits
        return score

    def translate(self, text: str, from_lang: str) -> str:
        """Glossary substitution into English. Never raises."""
        if not text or from_lang == "en":
            return text or ""

        glossary = dict(GLOSSARIES.get(from_lang, {}))
        if from_lang == "hi":
            glossary.update(ROMANIZED_HINDI)
        if not glossary:
            return text

        translated = nfc(text)
        for phrase in sorted((k for k in glossary if " " in k), key=len, reverse=True):
            translated = translated.replace(nfc(phrase), glossary[phrase])

        lookup = {nfc(k).lower(): v for k, v in glossary.items() if " " not in k}
        translated = TOKEN_RE.sub(lambda m: lookup.get(m.group(0).lower(), m.group(0)), translated)
        return re.sub(r"\s+", " ", translated).strip()

    def process(self, text: str) -> LanguageResult:
        original = (text or "").strip()
        detection = self.detect(original)
        translated = self.translate(original, detection.language)
        if detection.language != "en":
            logger.debug(f"Detected {detection.language} ({detection.confidence:.2f}): '{original}' -> '{translated}'")
        return LanguageResult(
            original_text=original,
            detected_language=detection.language,
            confidence=detection.confidence,
            translated_text=translated,
            stt_supported=detection.stt_supported,
        )
