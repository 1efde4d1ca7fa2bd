"""
Bounded geocoding for food truck locations, backed by a JSON cache and
OpenStreetMap's Nominatim API.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

import requests

from src.services.food_truck_models import LocationInfo, ScrapedData, normalize_location_name, write_json_atomic
from src.services.settings import GEOCODER_USER_AGENT

LOGGER = logging.getLogger(__name__)

# Towns in the New Hanover / Pender / Brunswick tri-county area.
LOCAL_PLACE_NAMES = (
    "Wilmington",
    "Leland",
    "Carolina Beach",
    "Kure Beach",
    "Wrightsville Beach",
    "Castle Hayne",
    "Hampstead",
    "Surf City",
    "Sneads Ferry",
    "Holly Ridge",
    "Southport",
    "Oak Island",
    "Bolivia",
    "Burgaw",
    "Rocky Point",
    "Topsail Beach",
    "Ocean Isle Beach",
)


class GeocodingCancelled(RuntimeError):
    """Raised between requests when the caller asked the run to stop."""


@dataclass(frozen=True)
class GeoCoord:
    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    @classmethod
    def from_tuple(cls, bounds: Sequence[float]) -> "BoundingBox":
        min_lat, max_lat, min_lon, max_lon = bounds
        return cls(min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon)

    def contains(self, lat: float | str | None, lon: float | str | None) -> bool:
        try:
            lat_f = float(lat)  # type: ignore[arg-type]
            lon_f = float(lon)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        return self.min_lat <= lat_f <= self.max_lat and self.min_lon <= lon_f <= self.max_lon

    @property
    def viewbox(self) -> str:
        # Nominatim order: left,top,right,bottom
        return f"{self.min_lon},{self.max_lat},{self.max_lon},{self.min_lat}"


def cache_key(location: LocationInfo) -> str:
    return f"{location.name}|{location.address}"


class GeocodeCache:
    """``"name|address" -> {lat, lon}`` mapping persisted as a JSON file."""

    def __init__(self, path: Path, entries: Optional[Dict[str, GeoCoord]] = None) -> None:
        self.path = path
        self.entries: Dict[str, GeoCoord] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> "GeocodeCache":
        if not path.exists():
            return cls(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError):
            LOGGER.warning("Failed to read geocode cache at %s; starting fresh.", path, exc_info=True)
            return cls(path)
        if not isinstance(payload, dict):
            LOGGER.warning("Geocode cache at %s is not a JSON object; starting fresh.", path)
            return cls(path)
        entries: Dict[str, GeoCoord] = {}
        for key, value in payload.items():
            if not isinstance(value, dict):
                continue
            try:
                entries[key] = GeoCoord(
                    lat=float(value.get("lat", value.get("Lat"))),
                    lon=float(value.get("lon", value.get("Lon"))),
                )
            except (TypeError, ValueError):
                LOGGER.debug("Skipping malformed cache entry %s: %s", key, value)
        return cls(path, entries)

    def get(self, key: str) -> GeoCoord | None:
        return self.entries.get(key)

    def set(self, key: str, coord: GeoCoord) -> None:
        self.entries[key] = coord

    def invalidate_outside(self, bounds: BoundingBox) -> int:
        stale = [key for key, coord in self.entries.items() if not bounds.contains(coord.lat, coord.lon)]
        for key in stale:
            del self.entries[key]
        return len(stale)

    def save(self) -> None:
        payload = {key: {"lat": coord.lat, "lon": coord.lon} for key, coord in self.entries.items()}
        write_json_atomic(self.path, payload)


class NominatimClient:
    """Issue bounded Nominatim searches no faster than ``min_interval`` apart."""

    endpoint = "https://nominatim.openstreetmap.org/search"

    def __init__(
        self,
        bounds: BoundingBox,
        session: requests.Session | None = None,
        min_interval: float = 1.1,
        user_agent: str = GEOCODER_USER_AGENT,
        timeout: float = 25,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.bounds = bounds
        self.session = session or requests.Session()
        self.min_interval = min_interval
        self.user_agent = user_agent
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.request_count = 0
        self._last_request: float | None = None

    def _throttle(self) -> None:
        if self._last_request is not None:
            remaining = self.min_interval - (time.monotonic() - self._last_request)
            if remaining > 0:
                if self.cancel_event is not None:
                    if self.cancel_event.wait(remaining):
                        raise GeocodingCancelled("Geocoding cancelled while waiting for rate limit.")
                else:
                    time.sleep(remaining)
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise GeocodingCancelled("Geocoding cancelled before request.")

    def search(self, query: str) -> GeoCoord | None:
        """Return the first in-bounds candidate for ``query``.

        HTTP failures propagate as ``requests.RequestException``.
        """
        query = query.strip()
        if not query:
            return None
        self._throttle()
        params = {
            "q": query,
            "format": "json",
            "limit": 3,
            "countrycodes": "us",
            "viewbox": self.bounds.viewbox,
            "bounded": 1,
        }
        headers = {"User-Agent": self.user_agent}
        try:
            response = self.session.get(self.endpoint, params=params, headers=headers, timeout=self.timeout)
        finally:
            self._last_request = time.monotonic()
            self.request_count += 1
        response.raise_for_status()
        results = response.json() or []
        for candidate in results:
            if not isinstance(candidate, dict):
                continue
            lat, lon = candidate.get("lat"), candidate.get("lon")
            if self.bounds.contains(lat, lon):
                return GeoCoord(lat=float(lat), lon=float(lon))
            LOGGER.debug("Discarding out-of-bounds candidate for '%s': %s,%s", query, lat, lon)
        return None


Strategy = tuple[str, Callable[[], Optional[GeoCoord]]]


def first_success(strategies: Sequence[Strategy]) -> tuple[str, GeoCoord] | None:
    for label, attempt in strategies:
        result = attempt()
        if result is not None:
            return label, result
    return None


class GeocodingResolver:
    def __init__(
        self,
        client: NominatimClient,
        cache: GeocodeCache,
        state_suffix: str = "NC",
        default_city: str = "Wilmington, NC",
        local_places: Sequence[str] = LOCAL_PLACE_NAMES,
    ) -> None:
        self.client = client
        self.cache = cache
        self.bounds = client.bounds
        self.state_suffix = state_suffix
        self.default_city = default_city
        self.local_places = tuple(local_places)
        self.stats: dict[str, int] = {
            "cache_hits": 0,
            "nominatim_hits": 0,
            "failures": 0,
            "invalidated": 0,
        }

    def _strategies(self, name: str, address: str) -> list[Strategy]:
        search = self.client.search
        strategies: list[Strategy] = []
        if address:
            full_address = f"{address}, {self.state_suffix}"
            strategies.append(("address", lambda: search(full_address)))
            lowered = address.lower()
            if any(place.lower() in lowered for place in self.local_places):
                strategies.append(("address-local-retry", lambda: search(full_address)))
        strategies.append(("name-default-city", lambda: search(f"{name}, {self.default_city}")))
        if address:
            strategies.append(("bare-address", lambda: search(address)))
        return strategies

    def geocode(self, name: str, address: str) -> GeoCoord | None:
        hit = first_success(self._strategies(name, address))
        if hit is None:
            return None
        label, coord = hit
        LOGGER.debug("Resolved '%s' via %s strategy", name, label)
        return coord

    def _reset_out_of_bounds(self, locations: Dict[str, LocationInfo]) -> None:
        for location in locations.values():
            if location.has_coordinates and not self.bounds.contains(location.latitude, location.longitude):
                LOGGER.info("Dropping out-of-bounds coordinates for %s", location.name)
                location.latitude = None
                location.longitude = None

    def resolve(self, data: ScrapedData) -> None:
        """Fill missing coordinates in ``data.locations`` and copy them onto appearances.

        The cache file is written once at the end, and only when it changed.
        """
        invalidated = self.cache.invalidate_outside(self.bounds)
        self.stats["invalidated"] += invalidated
        if invalidated:
            LOGGER.info("Invalidated %s out-of-bounds cached entries", invalidated)
        self._reset_out_of_bounds(data.locations)

        added = 0
        for location in data.locations.values():
            if location.has_coordinates:
                continue
            key = cache_key(location)
            cached = self.cache.get(key)
            if cached is not None:
                location.latitude, location.longitude = cached.lat, cached.lon
                self.stats["cache_hits"] += 1
                continue
            coord = self.geocode(location.name, location.address)
            if coord is None:
                self.stats["failures"] += 1
                LOGGER.info("NOT FOUND (tri-county): %s (%s)", location.name, location.address)
                continue
            location.latitude, location.longitude = coord.lat, coord.lon
            self.cache.set(key, coord)
            added += 1
            self.stats["nominatim_hits"] += 1
            LOGGER.info("Geocoded: %s -> (%.4f, %.4f)", location.name, coord.lat, coord.lon)

        apply_coordinates(data)

        if added or invalidated:
            self.cache.save()
            LOGGER.info("Saved %s geocode cache entries to %s", len(self.cache.entries), self.cache.path)


def apply_coordinates(data: ScrapedData) -> None:
    for appearance in data.all_appearances:
        location = data.locations.get(normalize_location_name(appearance.location_name))
        if location is None:
            continue
        appearance.latitude = location.latitude
        appearance.longitude = location.longitude
        if appearance.address is None:
            appearance.address = location.address
