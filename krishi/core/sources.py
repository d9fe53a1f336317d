# krishi/core/sources.py - Data source adapters, one per retrieval category
import asyncio
import hashlib
import logging
import random
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, List, Optional

import aiohttp

from krishi.core.errors import NoDataAvailable, TransientSourceError
from krishi.core.price_fetcher import MandiPriceFetcher
from krishi.models.advisory import (
    AdvisoryPayload,
    CropInfo,
    Location,
    MarketPayload,
    RetrievedRecord,
    SchemeInfo,
    SchemePayload,
    SoilPayload,
    WeatherPayload,
)

logger = logging.getLogger(__name__)

MAJOR_CROPS = ["Rice", "Wheat", "Maize", "Onion", "Potato"]


def _seeded(*parts: str) -> random.Random:
    digest = hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()
    return random.Random(int(digest[:12], 16))


def _place_key(location: Optional[Location]) -> str:
    return location.label().lower() if location else "india"


class DataSource(ABC):
    """One upstream data feed. Adapters raise TransientSourceError for retryable failures."""

    category: str = ""
    source_id: str = ""
    source_name: str = ""

    async def fetch_category(
        self, category: str, location: Optional[Location], crop: Optional[CropInfo]
    ) -> List[RetrievedRecord]:
        if category != self.category:
            raise ValueError(f"{self.source_id} serves '{self.category}', not '{category}'")
        return await self.fetch(location, crop)

    @abstractmethod
    async def fetch(self, location: Optional[Location], crop: Optional[CropInfo]) -> List[RetrievedRecord]:
        ...

    def _record(self, payload, location: Optional[Location], confidence: float, reliability: str,
                freshness: str = "fresh", source_name: Optional[str] = None,
                source_id: Optional[str] = None) -> RetrievedRecord:
        return RetrievedRecord(
            source_id=source_id or self.source_id,
            source_name=source_name or self.source_name,
            category=self.category,
            payload=payload,
            confidence=confidence,
            fetched_at=datetime.now(),
            location=location,
            freshness=freshness,
            reliability=reliability,
        )


class WeatherSource(DataSource):
    """OpenWeatherMap when a key is configured, otherwise a deterministic regional model."""

    category = "weather"
    source_id = "regional_weather_model"
    source_name = "Regional Weather Model"

    CONDITIONS_DRY = ["clear sky", "partly cloudy", "hazy sunshine", "overcast"]
    CONDITIONS_WET = ["light rain", "moderate rain", "scattered thunderstorms"]

    def __init__(self, api_key: str = "", api_url: str = "", timeout_seconds: float = 8.0):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds

    async def fetch(self, location: Optional[Location], crop: Optional[CropInfo]) -> List[RetrievedRecord]:
        if self.api_key and self.api_url and location and (location.district or location.state):
            payload = await self._fetch_openweather(location)
            return [self._record(payload, location, 0.9, "high",
                                 source_name="OpenWeatherMap", source_id="openweather")]
        return [self._record(self._modelled_weather(location, date.today()), location, 0.75, "medium")]

    async def _fetch_openweather(self, location: Location) -> WeatherPayload:
        params = {
            "q": f"{location.district or location.state},IN",
            "appid": self.api_key,
            "units": "metric",
        }
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.api_url, params=params) as response:
                    response.raise_for_status()
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientSourceError("openweather", str(e)) from e

        try:
            rainfall = float(data.get("rain", {}).get("1h", 0.0))
            payload = WeatherPayload(
                temperature_c=round(float(data["main"]["temp"]), 1),
                humidity=int(data["main"]["humidity"]),
                rainfall_mm=rainfall,
                wind_speed_kmh=round(float(data["wind"]["speed"]) * 3.6, 1),
                conditions=data["weather"][0]["description"],
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise TransientSourceError("openweather", f"unexpected payload: {e}") from e
        return payload.model_copy(update={"alerts": self._alerts(payload)})

    def _modelled_weather(self, location: Optional[Location], day: date) -> WeatherPayload:
        rng = _seeded("weather", _place_key(location), day.isoformat())
        temperature = round(24 + rng.random() * 12, 1)
        humidity = int(50 + rng.random() * 40)
        rainfall = 0.0 if rng.random() < 0.7 else round(rng.random() * 20, 1)
        wind = round(5 + rng.random() * 15, 1)
        conditions = rng.choice(self.CONDITIONS_WET if rainfall > 0 else self.CONDITIONS_DRY)

        forecast = []
        for label in ("Today", "Tomorrow", "Day 3"):
            day_rng = _seeded("forecast", _place_key(location), day.isoformat(), label)
            high = round(temperature + day_rng.uniform(-2, 3))
            chance = int(day_rng.random() * 60)
            forecast.append(f"{label}: max {high}°C, {chance}% chance of rain")

        payload = WeatherPayload(
            temperature_c=temperature,
            humidity=humidity,
            rainfall_mm=rainfall,
            wind_speed_kmh=wind,
            conditions=conditions,
            forecast=forecast,
        )
        return payload.model_copy(update={"alerts": self._alerts(payload)})

    @staticmethod
    def _alerts(payload: WeatherPayload) -> List[str]:
        alerts = []
        if payload.rainfall_mm > 10:
            alerts.append("Heavy rainfall: postpone spraying and fertilizer application")
        if payload.temperature_c >= 38:
            alerts.append("Heat stress: irrigate in the evening and mulch young plants")
        if payload.wind_speed_kmh > 25:
            alerts.append("Strong winds: avoid pesticide spraying")
        return alerts


class MarketSource(DataSource):
    """Mandi prices for the requested crop, or a major-crop overview when no crop was named."""

    category = "market"
    source_id = "agmarknet"
    source_name = "AGMARKNET Market Data"

    def __init__(self, price_fetcher: MandiPriceFetcher):
        self.price_fetcher = price_fetcher

    async def fetch(self, location: Optional[Location], crop: Optional[CropInfo]) -> List[RetrievedRecord]:
        if crop is None:
            return await self._overview(location)

        result = await self.price_fetcher.fetch_prices(crop.name, location)
        if result.found:
            payload = MarketPayload(
                requested_crop=crop.name,
                requested_crop_available=True,
                prices=result.prices,
                trend=result.trend,
            )
            return [self._record(payload, location, 0.9, "high", source_name=self._name_for(result.source))]

        note = f"{result.error_message}. Please check back later or consult your local mandi."
        payload = MarketPayload(
            requested_crop=crop.name,
            requested_crop_available=False,
            missing_data_note=note,
            related_crops=result.related_crops,
        )
        return [self._record(payload, location, 0.7, "low")]

    async def _overview(self, location: Optional[Location]) -> List[RetrievedRecord]:
        results = await asyncio.gather(
            *(self.price_fetcher.fetch_prices(name, location) for name in MAJOR_CROPS),
            return_exceptions=True,
        )
        prices = []
        for name, result in zip(MAJOR_CROPS, results):
            if isinstance(result, Exception):
                logger.warning(f"Price overview failed for {name}: {result}")
                continue
            if result.found:
                prices.append(result.prices[0])

        if not prices:
            raise NoDataAvailable("market", "No mandi prices available for major crops")
        return [self._record(MarketPayload(prices=prices), location, 0.85, "high")]

    def _name_for(self, source: Optional[str]) -> str:
        if source == "AGMARKNET":
            return self.source_name
        return source or self.source_name


PEST_WATCH: Dict[str, str] = {
    "cotton": "Monitor for pink bollworm; install pheromone traps at 5 per hectare.",
    "rice": "Watch for stem borer and brown planthopper; avoid excess nitrogen.",
    "wheat": "Scout for yellow rust and aphids, especially in cool humid spells.",
    "tomato": "Check for leaf curl virus and fruit borer; remove infected plants early.",
    "potato": "Late blight risk rises in cool wet weather; use preventive fungicide sprays.",
    "onion": "Look for thrips on leaves; use blue sticky traps.",
    "maize": "Inspect whorls for fall armyworm damage.",
    "soybean": "Watch for girdle beetle and leaf-eating caterpillars.",
}

NPK_DOSE: Dict[str, str] = {
    "wheat": "120:60:40",
    "rice": "100:50:50",
    "maize": "120:60:40",
    "cotton": "100:50:50",
    "mustard": "80:40:40",
    "potato": "150:80:100",
}


class AdvisorySource(DataSource):
    """Crop advisories in the style of Krishi Vigyan Kendra bulletins."""

    category = "advisory"
    source_id = "kvk_advisory"
    source_name = "Agricultural Advisory Services"

    async def fetch(self, location: Optional[Location], crop: Optional[CropInfo]) -> List[RetrievedRecord]:
        crop_name = crop.name if crop else None
        key = crop_name.lower() if crop_name else ""

        field_advice = [
            f"Check the local forecast before irrigating or spraying {crop_name or 'your crops'}.",
            "Keep field bunds and drainage channels clear.",
        ]
        if crop and crop.stage == "sowing":
            field_advice.append("Use certified seed and treat it before sowing.")
        elif crop and crop.stage == "harvesting":
            field_advice.append("Harvest in dry weather and dry produce before storage.")

        pest = PEST_WATCH.get(key, "Follow integrated pest management: scout weekly and spray only above threshold.")
        dose = NPK_DOSE.get(key)
        fertilizer = [
            f"Recommended NPK dose for {crop_name}: {dose} kg per hectare." if dose
            else "Apply balanced NPK fertilizer based on your soil test results.",
            "Split nitrogen into two or three doses.",
        ]

        advisories = [
            AdvisoryPayload(title="Field Operations", advice=field_advice, severity="medium",
                            issued_by="Krishi Vigyan Kendra"),
            AdvisoryPayload(title="Pest Management", advice=[pest], severity="high" if key in PEST_WATCH else "medium",
                            issued_by="State Agricultural Department"),
            AdvisoryPayload(title="Fertilizer Recommendation", advice=fertilizer, severity="medium",
                            issued_by="Soil Health Card Programme"),
        ]
        return [self._record(a, location, 0.8, "high") for a in advisories]


SOIL_TYPE_BY_STATE: Dict[str, str] = {
    "Maharashtra": "Black (Regur)",
    "Madhya Pradesh": "Black (Regur)",
    "Gujarat": "Black (Regur)",
    "Punjab": "Alluvial",
    "Haryana": "Alluvial",
    "Uttar Pradesh": "Alluvial",
    "Bihar": "Alluvial",
    "West Bengal": "Alluvial",
    "Tamil Nadu": "Red",
    "Karnataka": "Red",
    "Telangana": "Red",
    "Andhra Pradesh": "Red",
    "Kerala": "Laterite",
    "Odisha": "Laterite",
    "Rajasthan": "Arid (Desert)",
}


class SoilSource(DataSource):
    """District soil profile modelled on Soil Health Card summaries."""

    category = "soil"
    source_id = "soil_health_card"
    source_name = "Soil Health Card Programme"

    async def fetch(self, location: Optional[Location], crop: Optional[CropInfo]) -> List[RetrievedRecord]:
        rng = _seeded("soil", _place_key(location))
        state = location.state if location else None
        ph = round(6.5 + rng.random() * 2, 1)
        payload = SoilPayload(
            soil_type=SOIL_TYPE_BY_STATE.get(state or "", "Alluvial"),
            ph=ph,
            nitrogen=rng.choice(["Low", "Medium"]),
            phosphorus=rng.choice(["Medium", "High"]),
            potassium=rng.choice(["Medium", "High"]),
            organic_carbon=round(0.3 + rng.random() * 0.5, 2),
            recommendations=[
                "Apply 2-3 tonnes of well decomposed FYM per hectare.",
                "Maintain soil pH between 6.0 and 7.5 for most crops." if ph > 7.5
                else "Current pH is suitable for most field crops.",
                "Repeat soil testing every 3 years at the nearest KVK.",
            ],
        )
        # Soil cards are periodic surveys, never live readings
        return [self._record(payload, location, 0.85, "high", freshness="cached")]


SCHEMES: List[SchemeInfo] = [
    SchemeInfo(
        name="PM-KISAN",
        description="Income support to farmer families",
        benefit="₹6,000 per year in three instalments",
        eligibility="Landholding farmer families",
        how_to_apply="pmkisan.gov.in or the nearest Common Service Centre (CSC)",
    ),
    SchemeInfo(
        name="Pradhan Mantri Fasal Bima Yojana",
        description="Crop insurance against natural calamities, pests and diseases",
        benefit="Insurance cover for notified crops at low premium",
        eligibility="All farmers growing notified crops",
        how_to_apply="Through banks, insurance companies or pmfby.gov.in before the sowing cut-off",
    ),
    SchemeInfo(
        name="Soil Health Card Scheme",
        description="Free soil testing and nutrient recommendations",
        benefit="Soil analysis with crop-wise fertilizer advice",
        eligibility="All farmers",
        how_to_apply="Contact the local Krishi Vigyan Kendra or Agriculture Department",
    ),
    SchemeInfo(
        name="Kisan Credit Card",
        description="Short-term crop loans at concessional interest",
        benefit="Working capital for seeds, fertilizer and inputs",
        eligibility="Farmers, tenant farmers and sharecroppers",
        how_to_apply="Any commercial, cooperative or regional rural bank",
    ),
]


class SchemeSource(DataSource):
    category = "scheme"
    source_id = "scheme_catalogue"
    source_name = "Government Scheme Database"

    async def fetch(self, location: Optional[Location], crop: Optional[CropInfo]) -> List[RetrievedRecord]:
        return [self._record(SchemePayload(schemes=list(SCHEMES)), location, 0.9, "high")]


def build_default_sources(settings, price_fetcher: Optional[MandiPriceFetcher] = None) -> Dict[str, DataSource]:
    """Category -> adapter, configured from settings."""
    fetcher = price_fetcher or MandiPriceFetcher.create(settings)
    return {
        "weather": WeatherSource(
            api_key=settings.OPENWEATHER_API_KEY,
            api_url=settings.OPENWEATHER_BASE_URL,
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
        ),
        "market": MarketSource(fetcher),
        "advisory": AdvisorySource(),
        "soil": SoilSource(),
        "scheme": SchemeSource(),
    }
