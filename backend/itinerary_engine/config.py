"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CityCenter(BaseModel):
    """Reference point and radius used by the geographic checks."""

    lat: float
    lng: float
    radius_km: float


DEFAULT_CITY_CENTERS: dict[str, CityCenter] = {
    "tokyo": CityCenter(lat=35.6762, lng=139.6503, radius_km=30),
    "kyoto": CityCenter(lat=35.0116, lng=135.7681, radius_km=20),
    "osaka": CityCenter(lat=34.6937, lng=135.5023, radius_km=20),
    "nara": CityCenter(lat=34.6851, lng=135.8048, radius_km=15),
    "hiroshima": CityCenter(lat=34.3853, lng=132.4553, radius_km=20),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # LLM fallback tier
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"
    llm_enabled: bool = True
    llm_timeout_ms: int = 8000
    llm_max_prior_turns: int = 6
    rule_confidence_threshold: float = 0.7

    # Sessions
    session_ttl_seconds: int = 30 * 60
    session_max_history: int = 50

    # Flight window buffers (minutes)
    arrival_buffer_min: int = 120
    departure_buffer_min: int = 180

    # Temporal limits
    earliest_day_start: str = "06:00"
    latest_day_end: str = "23:00"
    tight_transition_min: int = 15
    max_daily_activity_min: int = 600

    # Geographic
    city_centers: dict[str, CityCenter] = DEFAULT_CITY_CENTERS
    max_walking_distance_km: float = 15.0

    # Resource
    hotel_commute_ceiling_m: int = 50_000
    long_commute_min: int = 120

    # Cross-day
    city_transition_buffer_min: int = 30

    # Batch validation / remediation
    meal_commute_threshold_min: int = 30
    min_activities_per_day: int = 2
    invalid_commute_min: int = 240

    # Optimization heuristics
    cluster_radius_km: float = 1.5
    unknown_commute_min: int = 20
    exhaustive_route_limit: int = 7


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
