# krishi/models/advisory.py - Typed records flowing through the advisory pipeline

import time
from datetime import date, datetime
from typing import Annotated, Generic, List, Literal, Optional, Set, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

Category = Literal["weather", "market", "advisory", "soil", "scheme"]
Freshness = Literal["fresh", "cached", "stale"]
Reliability = Literal["high", "medium", "low"]
FactualBasis = Literal["high", "medium", "low"]

CATEGORIES: List[str] = ["weather", "market", "advisory", "soil", "scheme"]

T = TypeVar("T")


class LanguageDetection(BaseModel):
    model_config = ConfigDict(frozen=True)

    language: str = Field(..., description="ISO code of the dominant language")
    confidence: float = Field(..., ge=0.0, le=1.0)
    stt_supported: bool = Field(False, description="Whether speech input exists for this language")


class LanguageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_text: str
    detected_language: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    translated_text: str
    stt_supported: bool = False


class Query(BaseModel):
    """A single farmer question after cleaning and translation."""
    model_config = ConfigDict(frozen=True)

    raw_text: str = Field(..., description="Text exactly as received")
    cleaned_text: str = Field(..., description="Normalised, spell-corrected text")
    translated_text: str = Field(..., description="English rendering used for extraction")
    detected_language: str = Field("en")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    is_valid: bool = True
    error: Optional[str] = None


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: Optional[str] = None
    district: Optional[str] = None
    pincode: Optional[str] = None

    def label(self) -> str:
        parts = [p for p in (self.district, self.state) if p]
        if parts:
            return ", ".join(parts)
        return f"PIN {self.pincode}" if self.pincode else "your area"

    def matches(self, other: Optional["Location"]) -> bool:
        if other is None:
            return False
        if self.district and other.district and self.district.lower() == other.district.lower():
            return True
        if self.state and other.state and self.state.lower() == other.state.lower():
            return True
        return bool(self.pincode and self.pincode == other.pincode)


class CropInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    season: str = Field(..., description="kharif, rabi, zaid or perennial")
    stage: Optional[str] = Field(None, description="sowing, growing, flowering or harvesting")


class QueryContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: Optional[Location] = None
    crop: Optional[CropInfo] = None
    topics: Set[str] = Field(default_factory=lambda: {"general"})
    language: str = "en"
    timestamp: datetime = Field(default_factory=datetime.now)


# --- Retrieved payloads (discriminated on `kind`) ---

class WeatherPayload(BaseModel):
    kind: Literal["weather"] = "weather"
    temperature_c: float
    humidity: int
    rainfall_mm: float = 0.0
    wind_speed_kmh: float = 0.0
    conditions: str
    forecast: List[str] = Field(default_factory=list)
    alerts: List[str] = Field(default_factory=list)


class PricePoint(BaseModel):
    crop: str
    variety: Optional[str] = None
    market: str
    district: Optional[str] = None
    state: Optional[str] = None
    min_price: float
    max_price: float
    modal_price: float
    unit: str = "₹/quintal"
    price_date: date
    source: str


class MarketPayload(BaseModel):
    kind: Literal["market"] = "market"
    requested_crop: Optional[str] = None
    requested_crop_available: bool = True
    prices: List[PricePoint] = Field(default_factory=list)
    trend: Optional[str] = None
    missing_data_note: Optional[str] = None
    related_crops: List[str] = Field(default_factory=list)

    def covers(self, crop: str) -> bool:
        return any(p.crop.lower() == crop.lower() for p in self.prices)


class AdvisoryPayload(BaseModel):
    kind: Literal["advisory"] = "advisory"
    title: str
    advice: List[str] = Field(default_factory=list)
    severity: Literal["low", "medium", "high"] = "low"
    issued_by: Optional[str] = None


class SoilPayload(BaseModel):
    kind: Literal["soil"] = "soil"
    soil_type: str
    ph: float
    nitrogen: str
    phosphorus: str
    potassium: str
    organic_carbon: float
    recommendations: List[str] = Field(default_factory=list)


class SchemeInfo(BaseModel):
    name: str
    description: str
    benefit: str
    eligibility: str
    how_to_apply: Optional[str] = None


class SchemePayload(BaseModel):
    kind: Literal["scheme"] = "scheme"
    schemes: List[SchemeInfo] = Field(default_factory=list)


Payload = Annotated[
    Union[WeatherPayload, MarketPayload, AdvisoryPayload, SoilPayload, SchemePayload],
    Field(discriminator="kind"),
]


class RetrievedRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    source_name: str
    category: Category
    payload: Payload
    confidence: float = Field(..., ge=0.0, le=1.0)
    fetched_at: datetime = Field(default_factory=datetime.now)
    location: Optional[Location] = None
    freshness: Freshness = "fresh"
    reliability: Reliability = "medium"


class CacheEntry(BaseModel, Generic[T]):
    key: str
    value: T
    created_at: float = Field(default_factory=time.time)
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class AdvisoryResponse(BaseModel):
    """Final answer returned to callers and stored in the response cache."""
    model_config = ConfigDict(frozen=True)

    answer_text: str = Field(..., description="Formatted advisory text")
    sources: List[RetrievedRecord] = Field(default_factory=list, description="Records the answer is based on")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Overall confidence (0-0.95)")
    factual_basis: FactualBasis = Field("low", description="How much of the answer rests on fresh data")
    disclaimers: List[str] = Field(default_factory=list)
    language: str = "en"
    cached: bool = False
    generated_content: List[str] = Field(default_factory=list, description="Sentences that are general knowledge, not data")
    suggested_questions: List[str] = Field(default_factory=list)


# --- Intermediate results ---

class RelevanceResult(BaseModel):
    records: List[RetrievedRecord] = Field(default_factory=list)
    rejected: List[RetrievedRecord] = Field(default_factory=list)
    missing_data_notes: List[str] = Field(default_factory=list)


class Score(BaseModel):
    confidence: float = Field(..., ge=0.0, le=0.95)
    basis: FactualBasis


class ValidationRequest(BaseModel):
    draft: str
    original_query: str
    translated_query: str
    records: List[RetrievedRecord] = Field(default_factory=list)
    context: Optional[QueryContext] = None
    missing_data_notes: List[str] = Field(default_factory=list)
    confidence: float = 0.5
    basis: FactualBasis = "low"


class EnhancedResponse(BaseModel):
    text: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    basis: FactualBasis
    sources: List[RetrievedRecord] = Field(default_factory=list)
    disclaimer: Optional[str] = None
    is_accurate: bool = True
    is_complete: bool = True
    corrections: List[str] = Field(default_factory=list)


class PriceQueryResult(BaseModel):
    crop: str
    location: Optional[Location] = None
    found: bool
    prices: List[PricePoint] = Field(default_factory=list)
    source: Optional[str] = None
    trend: Optional[str] = Field(None, description="rising, falling or stable")
    error_message: Optional[str] = None
    related_crops: List[str] = Field(default_factory=list)


class DemoQuestion(BaseModel):
    """Curated question with a vetted answer, matched by any of its phrasings."""
    model_config = ConfigDict(frozen=True)

    question: str
    patterns: List[str] = Field(default_factory=list)
    answer: str
    language: str = "en"
    category: Literal["weather", "market", "farming", "government"]
    confidence: float = Field(0.95, ge=0.0, le=1.0)
    crop: Optional[str] = Field(None, description="Crop the vetted answer is about")
    location: Optional[Location] = Field(None, description="Place the vetted answer is about")


# --- HTTP bodies ---

class AdviseRequest(BaseModel):
    """Incoming advisory request."""
    query: str = Field(..., description="Farmer question in any supported language")
    language: Optional[str] = Field(None, description="Preferred response language; detected when omitted")
