# tests/test_language.py
import logging

from krishi.core.language import LanguageDetector

logger = logging.getLogger(__name__)

detector = LanguageDetector()


def test_english_detection():
    result = detector.detect("How do I improve my soil?")
    assert result.language == "en"
    assert 0.0 < result.confidence <= 1.0
    assert result.stt_supported


def test_hindi_script_detection():
    result = detector.detect("गेहूं की फसल में खाद कब डालें")
    logger.info(f"🔍 Hindi detection: {result}")
    assert result.language == "hi"
    assert result.confidence == 1.0


def test_romanized_hindi_beats_latin_script():
    result = detector.detect("gehun mein khad kab dalna hai")
    assert result.language == "hi"


def test_tamil_and_bengali_detection():
    assert detector.detect("தக்காளி விலை").language == "ta"
    assert detector.detect("আলুর দাম কত").language == "bn"


def test_empty_text_defaults_to_english_with_zero_confidence():
    result = detector.detect("")
    assert result.language == "en"
    assert result.confidence == 0.0
    assert not result.stt_supported


def test_translate_substitutes_glossary_terms():
    assert "wheat" in detector.translate("गेहूं की फसल", "hi")
    assert detector.translate("gehun khad", "hi") == "wheat fertilizer"


def test_translate_passes_unknown_tokens_through():
    assert detector.translate("Rampur गेहूं", "hi") == "Rampur wheat"
    assert detector.translate("How to sow", "en") == "How to sow"


def test_process_keeps_original_text():
    result = detector.process("  पुणे में मौसम  ")
    assert result.original_text == "पुणे में मौसम"
    assert result.detected_language == "hi"
    assert "weather" in result.translated_text
