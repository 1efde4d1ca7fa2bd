"""Environment-driven configuration for the scraper and the read API."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

DEFAULT_INDEX_URL = "https://portcitydaily.com/brews-and-bites/"
DEFAULT_BOUNDS = "33.75,34.65,-78.35,-77.55"
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GEOCODER_USER_AGENT = "ILMFoodNBrew/1.0 (food truck tracker)"
DATASET_FILENAME = "trucks.json"


@dataclass(frozen=True)
class Settings:
    index_url: str = DEFAULT_INDEX_URL
    data_dir: Path = Path("data")
    geocode_cache_path: Path = Path("geocode_cache.json")
    geocode_request_delay: float = 1.1
    geocode_bounds: tuple[float, float, float, float] = (33.75, 34.65, -78.35, -77.55)
    geocode_user_agent: str = GEOCODER_USER_AGENT
    geocode_default_city: str = "Wilmington, NC"
    geocode_state_suffix: str = "NC"
    http_timeout: float = 25.0

    @property
    def dataset_path(self) -> Path:
        return self.data_dir / DATASET_FILENAME


def parse_bounds(value: str) -> tuple[float, float, float, float]:
    """Parse ``minLat,maxLat,minLon,maxLon``."""
    parts = value.split(",")
    if len(parts) != 4:
        raise ValueError("GEOCODE_BOUNDS must have four comma-separated floats (minLat,maxLat,minLon,maxLon)")
    min_lat, max_lat, min_lon, max_lon = (float(part.strip()) for part in parts)
    if min_lat >= max_lat or min_lon >= max_lon:
        raise ValueError("GEOCODE_BOUNDS must satisfy minLat < maxLat and minLon < maxLon")
    return min_lat, max_lat, min_lon, max_lon


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables (and a local ``.env``) with sensible defaults."""
    load_dotenv()

    settings = Settings(
        index_url=os.getenv("FOOD_TRUCK_INDEX_URL", DEFAULT_INDEX_URL),
        data_dir=Path(os.getenv("FOOD_TRUCK_DATA_DIR", "data")),
        geocode_cache_path=Path(os.getenv("GEOCODE_CACHE_PATH", "geocode_cache.json")),
        geocode_request_delay=float(os.getenv("GEOCODE_REQUEST_DELAY", "1.1")),
        geocode_bounds=parse_bounds(os.getenv("GEOCODE_BOUNDS", DEFAULT_BOUNDS)),
        geocode_user_agent=os.getenv("GEOCODE_USER_AGENT", GEOCODER_USER_AGENT),
        geocode_default_city=os.getenv("GEOCODE_DEFAULT_CITY", "Wilmington, NC"),
        geocode_state_suffix=os.getenv("GEOCODE_STATE_SUFFIX", "NC"),
        http_timeout=float(os.getenv("HTTP_TIMEOUT", "25")),
    )
    if settings.geocode_request_delay < 1.0:
        LOGGER.warning(
            "GEOCODE_REQUEST_DELAY=%s is below Nominatim's one request per second policy.",
            settings.geocode_request_delay,
        )
    return settings
