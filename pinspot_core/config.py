from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Clustering and geocoding settings."""

    # Photo clustering settings
    CLUSTER_RADIUS_KM: float = Field(default=1.0, ge=0)  # Group photos within 1km

    # Reverse geocoding (OpenStreetMap Nominatim)
    NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org"
    # Nominatim requires a User-Agent header
    GEOCODER_USER_AGENT: str = "Pinspot-Travel-Map"
    GEOCODE_TIMEOUT_SECONDS: float = 10.0
    GEOCODE_ZOOM: int = 10  # city level
    GEOCODE_MAX_RETRIES: int = 3
    GEOCODE_MAX_CONCURRENCY: int = 1
    # Nominatim usage policy: at most 1 request/second
    GEOCODE_MIN_INTERVAL_SECONDS: float = Field(default=1.0, ge=0)

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
