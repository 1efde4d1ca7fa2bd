"""
Data model shared by the food truck scraper, the geocoder and the read API.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_location_name(name: str) -> str:
    """Lowercase and drop every non-alphanumeric character."""
    return _NON_ALNUM.sub("", name.strip().lower())


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write ``payload`` to a sibling temp file, then swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        os.unlink(tmp_name)
        raise


@dataclass
class LocationInfo:
    name: str
    address: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_serializable(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_serializable(cls, payload: dict[str, Any]) -> "LocationInfo":
        return cls(
            name=payload.get("name") or "",
            address=payload.get("address") or "",
            latitude=payload.get("latitude"),
            longitude=payload.get("longitude"),
        )


@dataclass
class TruckAppearance:
    truck_name: str
    description: str
    facebook_url: str | None
    date: date
    location_name: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    start_time: str = ""
    end_time: str = ""

    def to_serializable(self) -> dict[str, Any]:
        return {
            "truckName": self.truck_name,
            "description": self.description,
            "facebookUrl": self.facebook_url,
            "date": self.date.isoformat(),
            "locationName": self.location_name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }

    @classmethod
    def from_serializable(cls, payload: dict[str, Any]) -> "TruckAppearance":
        return cls(
            truck_name=payload.get("truckName") or "",
            description=payload.get("description") or "",
            facebook_url=payload.get("facebookUrl"),
            date=date.fromisoformat(payload["date"]),
            location_name=payload.get("locationName") or "",
            address=payload.get("address"),
            latitude=payload.get("latitude"),
            longitude=payload.get("longitude"),
            start_time=payload.get("startTime") or "",
            end_time=payload.get("endTime") or "",
        )


@dataclass
class FoodTruck:
    name: str
    description: str = ""
    facebook_url: str | None = None
    appearances: List[TruckAppearance] = field(default_factory=list)

    def to_serializable(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "facebookUrl": self.facebook_url,
            "appearances": [appearance.to_serializable() for appearance in self.appearances],
        }

    @classmethod
    def from_serializable(cls, payload: dict[str, Any]) -> "FoodTruck":
        return cls(
            name=payload.get("name") or "",
            description=payload.get("description") or "",
            facebook_url=payload.get("facebookUrl"),
            appearances=[TruckAppearance.from_serializable(item) for item in payload.get("appearances") or []],
        )


@dataclass
class ScrapedData:
    """Root aggregate written to ``trucks.json`` and served verbatim by the API."""

    source_url: str = ""
    date_range: str = ""
    scraped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trucks: List[FoodTruck] = field(default_factory=list)
    locations: Dict[str, LocationInfo] = field(default_factory=dict)
    all_appearances: List[TruckAppearance] = field(default_factory=list)

    def add_appearance(self, truck: FoodTruck, appearance: TruckAppearance) -> None:
        truck.appearances.append(appearance)
        self.all_appearances.append(appearance)

    def lookup_location(self, location_name: str) -> LocationInfo | None:
        return self.locations.get(normalize_location_name(location_name))

    def appearances_on(self, day: date) -> list[TruckAppearance]:
        return [appearance for appearance in self.all_appearances if appearance.date == day]

    def to_serializable(self) -> dict[str, Any]:
        return {
            "scrapedAt": self.scraped_at.isoformat(),
            "sourceUrl": self.source_url,
            "dateRange": self.date_range,
            "trucks": [truck.to_serializable() for truck in self.trucks],
            "locations": {key: loc.to_serializable() for key, loc in self.locations.items()},
            "allAppearances": [appearance.to_serializable() for appearance in self.all_appearances],
        }

    @classmethod
    def from_serializable(cls, payload: dict[str, Any]) -> "ScrapedData":
        # Trucks and the flat list are stored separately; the loaded copies are not shared objects.
        scraped_at_raw = payload.get("scrapedAt")
        scraped_at = datetime.fromisoformat(scraped_at_raw) if scraped_at_raw else datetime.now(timezone.utc)
        return cls(
            source_url=payload.get("sourceUrl") or "",
            date_range=payload.get("dateRange") or "",
            scraped_at=scraped_at,
            trucks=[FoodTruck.from_serializable(item) for item in payload.get("trucks") or []],
            locations={
                key: LocationInfo.from_serializable(value)
                for key, value in (payload.get("locations") or {}).items()
            },
            all_appearances=[
                TruckAppearance.from_serializable(item) for item in payload.get("allAppearances") or []
            ],
        )
