# krishi/core/config.py
from typing import List

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Manages application configuration using environment variables."""
    APP_NAME: str = "Krishi Sakha - Agricultural Advisory RAG Service"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Generation service (Gemini)
    GOOGLE_API_KEY: str = ""  # Will be loaded from .env
    LLM_MODEL_NAME: str = 'gemini-1.5-flash'  # Drafting and validation
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_OUTPUT_TOKENS: int = 1000
    GENERATION_TIMEOUT_SECONDS: float = 8.0

    # External data APIs - synthetic generators are used when a key is missing
    OPENWEATHER_API_KEY: str = ""
    OPENWEATHER_BASE_URL: str = "https://api.openweathermap.org/data/2.5/weather"
    DATA_GOV_API_KEY: str = ""
    AGMARKNET_URL: str = "https://api.data.gov.in/resource/9ef84268-d588-465a-a308-a864a43d0070"
    HTTP_TIMEOUT_SECONDS: float = 8.0

    # Request timeouts; a request must fit a draft call, a validation call and retrieval
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    RETRIEVAL_TIMEOUT_SECONDS: float = 8.0

    # Per-source retry policy
    SOURCE_MAX_ATTEMPTS: int = 3
    SOURCE_BACKOFF_MULTIPLIER: float = 0.5
    SOURCE_BACKOFF_MAX_SECONDS: float = 4.0

    # Cache settings
    USE_DISK_CACHE: bool = True
    CACHE_DIR: str = ".cache"
    CACHE_SIZE_MB: int = 200
    RESPONSE_CACHE_MAX_ENTRIES: int = 500
    DATASET_CACHE_MAX_ENTRIES: int = 2000
    RESPONSE_CACHE_TTL_SECONDS: int = 7 * 24 * 3600
    WEATHER_TTL_SECONDS: int = 3600
    MARKET_TTL_SECONDS: int = 24 * 3600
    ADVISORY_TTL_SECONDS: int = 24 * 3600
    SOIL_TTL_SECONDS: int = 7 * 24 * 3600
    SCHEME_TTL_SECONDS: int = 7 * 24 * 3600

    # Matching thresholds
    DEMO_MATCH_THRESHOLD: float = 0.7
    OFFLINE_SIMILARITY_THRESHOLD: float = 0.6
    PRICE_RECENCY_DAYS: int = 7

    # Connectivity
    FORCE_OFFLINE: bool = False
    CONNECTIVITY_CHECK_URL: str = "https://www.google.com/generate_204"
    CONNECTIVITY_CHECK_INTERVAL_SECONDS: float = 30.0

    # Crops whose price feed is simulated as unavailable (demo of honest degradation)
    SIMULATED_UNAVAILABLE_CROPS: List[str] = []

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

    @model_validator(mode="after")
    def check_request_timeout(self) -> "Settings":
        needed = 2 * self.GENERATION_TIMEOUT_SECONDS + self.RETRIEVAL_TIMEOUT_SECONDS
        if self.REQUEST_TIMEOUT_SECONDS <= needed:
            raise ValueError(
                f"REQUEST_TIMEOUT_SECONDS ({self.REQUEST_TIMEOUT_SECONDS}s) must exceed two generation "
                f"calls plus retrieval ({needed}s)"
            )
        return self

    def category_ttls(self) -> dict:
        return {
            "weather": self.WEATHER_TTL_SECONDS,
            "market": self.MARKET_TTL_SECONDS,
            "advisory": self.ADVISORY_TTL_SECONDS,
            "soil": self.SOIL_TTL_SECONDS,
            "scheme": self.SCHEME_TTL_SECONDS,
        }


# Create singleton
settings = Settings()
