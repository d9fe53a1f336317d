# tests/test_grounding_scoring.py
from datetime import date

from krishi.core.grounding import filter_relevant, should_ground
from krishi.core.scoring import factual_basis, identify_generated_content, score
from krishi.models.advisory import (
    AdvisoryPayload,
    CropInfo,
    Location,
    MarketPayload,
    PricePoint,
    QueryContext,
    RetrievedRecord,
)

NASHIK = Location(state="Maharashtra", district="Nashik")
LUDHIANA = Location(state="Punjab", district="Ludhiana")
ONION = CropInfo(name="Onion", season="perennial")


def _price(crop: str) -> PricePoint:
    return PricePoint(
        crop=crop, market="Nashik Mandi", district="Nashik", state="Maharashtra",
        min_price=1400, max_price=1800, modal_price=1600, price_date=date.today(), source="test",
    )


def _market(crop="Onion", available=True, note=None, freshness="fresh", location=NASHIK):
    payload = MarketPayload(
        requested_crop=crop,
        requested_crop_available=available,
        prices=[_price(crop)] if available else [],
        missing_data_note=note,
    )
    return RetrievedRecord(
        source_id="agmarknet", source_name="AGMARKNET Market Data", category="market",
        payload=payload, confidence=0.9, location=location, freshness=freshness,
    )


def _advisory(location=NASHIK, freshness="fresh", category="advisory"):
    return RetrievedRecord(
        source_id="kvk_advisory", source_name="Agricultural Advisory Services", category=category,
        payload=AdvisoryPayload(title="Field Operations"), confidence=0.8,
        location=location, freshness=freshness,
    )


def test_should_ground():
    assert should_ground(QueryContext(location=NASHIK))
    assert should_ground(QueryContext(crop=ONION))
    assert should_ground(QueryContext(topics={"scheme"}))
    assert not should_ground(QueryContext(topics={"soil"}))
    assert should_ground(QueryContext(topics={"soil"}), "The latest soil report says...")
    assert not should_ground(QueryContext(topics={"general"}), "Add compost every season.")


def test_wrong_crop_market_record_is_rejected():
    ctx = QueryContext(location=NASHIK, crop=ONION, topics={"market"})
    result = filter_relevant([_market(crop="Potato"), _advisory()], ctx)

    assert [r.category for r in result.records] == ["advisory"]
    assert len(result.rejected) == 1
    assert result.missing_data_notes == []


def test_missing_data_notes_survive_rejection():
    note = "No current price data available for onion in Nashik, Maharashtra. Please check back later."
    ctx = QueryContext(location=NASHIK, crop=ONION, topics={"market"})
    result = filter_relevant([_market(available=False, note=note), _market(available=False, note=note)], ctx)

    assert result.records == []
    assert result.missing_data_notes == [note]


def test_market_records_kept_without_requested_crop():
    result = filter_relevant([_market(crop="Potato")], QueryContext(topics={"market"}))
    assert len(result.records) == 1


def test_location_matches_ordered_first():
    ctx = QueryContext(location=NASHIK, topics={"advisory"})
    records = [_advisory(location=LUDHIANA, category="weather"), _advisory(), _advisory(location=None, category="soil")]
    result = filter_relevant(records, ctx)
    assert [r.category for r in result.records] == ["advisory", "weather", "soil"]


def test_factual_basis_levels():
    assert factual_basis([_advisory(), _advisory()]) == "high"
    assert factual_basis([_advisory(), _advisory(freshness="cached")]) == "medium"
    assert factual_basis([_advisory()]) == "low"
    assert factual_basis([_advisory(freshness="stale"), _advisory(freshness="cached")]) == "low"
    assert factual_basis([]) == "low"


def test_score_with_everything_is_capped():
    ctx = QueryContext(location=NASHIK, crop=ONION, topics={"market"})
    records = [_market(), _advisory(), _advisory(category="weather"), _advisory(category="soil")]
    result = score(records, ctx)
    assert result.confidence == 0.95
    assert result.basis == "high"


def test_score_without_crop_data_gets_no_crop_boost():
    ctx = QueryContext(crop=ONION, topics={"market"})
    with_data = score([_market(freshness="stale")], ctx)
    without = score([_market(available=False, note="missing", freshness="stale")], ctx)
    assert round(with_data.confidence - without.confidence, 4) == 0.15


def test_score_components():
    # 0.5 base + 0.3 fresh share + 0.05 for one category
    assert score([_advisory(location=None)], QueryContext()).confidence == 0.85
    # Stale only: base plus the category boost
    assert score([_advisory(location=None, freshness="stale")], QueryContext()).confidence == 0.55
    assert score([], QueryContext()).confidence == 0.5


def test_generated_content_detection():
    answer = "Onion prices in Nashik are ₹1,600. Typically farmers sell in March. आमतौर पर बारिश जून में होती है।"
    generated = identify_generated_content(answer)
    assert generated == ["Typically farmers sell in March", "आमतौर पर बारिश जून में होती है"]
    assert identify_generated_content("") == []
