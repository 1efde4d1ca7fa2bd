"""
Parse a Food Truck Tracker article into locations, trucks and dated appearances.

The article body is loosely structured WordPress markup::

    <h2>Weekly Schedules</h2>
    <p><strong><a href="...">TRUCK NAME</a></strong> Description</p>
    <ul><li>February 20 — Location Name, 5 – 8 p.m.</li>...</ul>
    ...
    <h2>Find a location</h2>
    <ul><li>Location Name — Address</li>...</ul>

Anything that does not fit these shapes is skipped rather than raised, so a
malformed article still yields a best-effort dataset.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import date, datetime
from typing import List

from bs4 import BeautifulSoup, Tag

from src.services.food_truck_models import (
    FoodTruck,
    LocationInfo,
    ScrapedData,
    TruckAppearance,
    normalize_location_name,
)

LOGGER = logging.getLogger(__name__)

SCHEDULE_START_MARKER = "weekly schedules"
LOCATION_MARKER = "find a location"

EM_DASH = "—"
EN_DASH = "–"

TITLE_RANGE_PATTERN = re.compile(r"Food Truck Tracker:\s*(.+?)\s*\|", re.IGNORECASE)
YEAR_PATTERN = re.compile(r"(\d{4})")

TIME_TOKEN = r"(?:\d{1,2}(?::\d{2})?(?:\s*[ap]\.?\s*m\.?)?|noon|midnight)"
STOP_PATTERN = re.compile(
    rf"^(?P<location>.+?),\s*(?P<start>{TIME_TOKEN})\s*[–—\-]+\s*(?P<end>{TIME_TOKEN})",
    re.IGNORECASE,
)
CLOCK_PATTERN = re.compile(r"(\d{1,2})(?::(\d{2}))?(AM|PM)?")

DATE_FORMATS = ("%B %d", "%b %d", "%B %d, %Y", "%b %d, %Y")

# Places that appear in schedules but not in the article's own location list.
MANUAL_LOCATIONS: dict[str, LocationInfo] = {
    "lbcbottleshop": LocationInfo(
        name="LBC Bottle Shop",
        address="15670 US Highway 17, Hampstead, NC 28443",
        latitude=34.3878,
        longitude=-77.6822,
    ),
    "broomtailcraftbrewery": LocationInfo(
        name="Broomtail Craft Brewery",
        address="6404 Amsterdam Way, Wilmington, NC 28405",
        latitude=34.2599,
        longitude=-77.8478,
    ),
    "capefearcommunitycollegenorthcampus": LocationInfo(
        name="Cape Fear Community College North Campus",
        address="4500 Blue Clay Rd, Castle Hayne, NC 28429",
        latitude=34.3221,
        longitude=-77.8777,
    ),
}


def _node_text(node: Tag) -> str:
    return node.get_text().replace("\xa0", " ").strip()


def extract_date_range(soup: BeautifulSoup) -> str:
    title = soup.title.get_text() if soup.title else ""
    match = TITLE_RANGE_PATTERN.search(title)
    return match.group(1).strip() if match else ""


def extract_year(date_range: str, default: int | None = None) -> int:
    match = YEAR_PATTERN.search(date_range or "")
    if match:
        return int(match.group(1))
    return default if default is not None else datetime.now().year


def parse_schedule_date(value: str, year: int) -> date | None:
    """Parse ``February 20`` style dates, first matching format wins."""
    cleaned = value.replace(".", "").strip()
    if not cleaned:
        return None
    for fmt in DATE_FORMATS:
        if "%Y" in fmt:
            try:
                return datetime.strptime(cleaned, fmt).date()
            except ValueError:
                continue
        try:
            return datetime.strptime(f"{cleaned}, {year}", f"{fmt}, %Y").date()
        except ValueError:
            continue
    return None


def _meridiem(token: str) -> str | None:
    lowered = token.lower()
    if lowered == "noon":
        return "PM"
    if lowered == "midnight":
        return "AM"
    if "a" in lowered:
        return "AM"
    if "p" in lowered:
        return "PM"
    return None


def _hour(token: str) -> int:
    digits = re.match(r"\d{1,2}", token)
    return int(digits.group(0)) if digits else 12


def _flip(meridiem: str) -> str:
    return "AM" if meridiem == "PM" else "PM"


def normalize_time(value: str, meridiem: str | None = None) -> str:
    """Normalize ``5 p.m.`` / ``11:30am`` / ``noon`` to ``H:MM AM``.

    ``meridiem`` fills in a bare hour such as the ``5`` in ``5 - 8 p.m.``.
    Unrecognized input is returned unchanged.
    """
    lowered = value.strip().lower()
    if lowered == "noon":
        return "12:00 PM"
    if lowered == "midnight":
        return "12:00 AM"
    cleaned = re.sub(r"[\s.]", "", value).upper()
    match = CLOCK_PATTERN.fullmatch(cleaned)
    if not match:
        return value
    hour, minutes, suffix = match.groups()
    suffix = suffix or meridiem
    if not suffix:
        return value
    return f"{int(hour)}:{minutes or '00'} {suffix}"


def parse_time_range(start_raw: str, end_raw: str) -> tuple[str, str] | None:
    start_meridiem = _meridiem(start_raw)
    end_meridiem = _meridiem(end_raw)
    if start_meridiem is None and end_meridiem is None:
        return None
    start_hour = _hour(start_raw) % 12
    end_hour = _hour(end_raw) % 12
    if start_meridiem is None:
        start_meridiem = _flip(end_meridiem) if start_hour > end_hour else end_meridiem
    if end_meridiem is None:
        end_meridiem = _flip(start_meridiem) if end_hour < start_hour else start_meridiem
    return normalize_time(start_raw, start_meridiem), normalize_time(end_raw, end_meridiem)


def _split_schedule_line(text: str) -> tuple[str, str] | None:
    idx = text.find(EM_DASH)
    width = 1
    if idx < 0:
        idx = text.find(" - ")
        width = 3
    if idx < 0:
        return None
    return text[:idx].strip(), text[idx + width :].strip()


def parse_schedule_entry(text: str, truck: FoodTruck, data: ScrapedData) -> List[TruckAppearance]:
    """Turn one ``Date — Stop; Stop`` list item into appearances for ``truck``.

    A stop whose time range cannot be read is kept with the whole stop as the
    location name and empty times. Lines without a readable date are dropped.
    """
    parts = _split_schedule_line(text)
    if parts is None:
        LOGGER.debug("Skipping schedule line without a date separator: %s", text)
        return []
    date_text, schedule_text = parts
    day = parse_schedule_date(date_text, extract_year(data.date_range))
    if day is None:
        LOGGER.debug("Skipping schedule line with unparsable date '%s'", date_text)
        return []

    created: List[TruckAppearance] = []
    for stop in schedule_text.split(";"):
        stop = stop.strip()
        if not stop:
            continue
        location_name = stop
        start_time = end_time = ""
        match = STOP_PATTERN.match(stop)
        if match:
            times = parse_time_range(match.group("start").strip(), match.group("end").strip())
            if times is not None:
                location_name = match.group("location").strip()
                start_time, end_time = times

        location = data.lookup_location(location_name)
        appearance = TruckAppearance(
            truck_name=truck.name,
            description=truck.description,
            facebook_url=truck.facebook_url,
            date=day,
            location_name=location_name,
            address=location.address if location else None,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            start_time=start_time,
            end_time=end_time,
        )
        data.add_appearance(truck, appearance)
        created.append(appearance)
    return created


def _find_heading(soup: BeautifulSoup, marker: str) -> Tag | None:
    for heading in soup.find_all(["h1", "h2", "h3"]):
        if marker in _node_text(heading).lower():
            return heading
    return None


def parse_locations(soup: BeautifulSoup, data: ScrapedData) -> None:
    heading = _find_heading(soup, LOCATION_MARKER)
    if heading is None:
        LOGGER.debug("No '%s' heading found; location list is empty.", LOCATION_MARKER)
        return
    listing = heading.find_next_sibling("ul")
    if listing is None:
        LOGGER.debug("No list follows the '%s' heading.", LOCATION_MARKER)
        return
    for item in listing.find_all("li"):
        text = _node_text(item)
        idx = text.find(EM_DASH)
        if idx < 0:
            idx = text.find(EN_DASH)
        if idx <= 0:
            continue
        name = text[:idx].strip()
        address = text[idx + 1 :].strip()
        data.locations[normalize_location_name(name)] = LocationInfo(name=name, address=address)


def apply_manual_locations(data: ScrapedData) -> None:
    """Overlay curated locations without downgrading already geocoded entries."""
    for key, manual in MANUAL_LOCATIONS.items():
        existing = data.locations.get(key)
        if existing is None or (not existing.has_coordinates and manual.has_coordinates):
            data.locations[key] = replace(manual)


def _start_truck(paragraph: Tag) -> FoodTruck | None:
    name_node = paragraph.find(["strong", "b"])
    if name_node is None:
        return None
    name = _node_text(name_node)
    if not name:
        return None
    link = paragraph.find("a", href=True)
    full_text = _node_text(paragraph)
    if full_text.startswith(name):
        description = full_text[len(name) :].strip()
    else:
        description = full_text.replace(name, "", 1).strip()
    return FoodTruck(
        name=name,
        description=description,
        facebook_url=link["href"] if link else None,
    )


def parse_trucks(soup: BeautifulSoup, data: ScrapedData) -> None:
    started = False
    current: FoodTruck | None = None
    for element in soup.find_all(["h1", "h2", "h3", "p", "ul"]):
        text = _node_text(element).lower()
        if SCHEDULE_START_MARKER in text:
            started = True
            continue
        if LOCATION_MARKER in text:
            break
        if not started:
            continue

        if element.name == "p":
            truck = _start_truck(element)
            if truck is not None:
                current = truck
                data.trucks.append(truck)
        elif element.name == "ul" and current is not None:
            for item in element.find_all("li"):
                parse_schedule_entry(_node_text(item), current, data)


def parse_article(html: str, source_url: str = "") -> ScrapedData:
    soup = BeautifulSoup(html, "html.parser")
    data = ScrapedData(source_url=source_url)
    data.date_range = extract_date_range(soup)
    parse_locations(soup, data)
    apply_manual_locations(data)
    parse_trucks(soup, data)
    LOGGER.info(
        "Parsed %s trucks with %s appearances and %s known locations",
        len(data.trucks),
        len(data.all_appearances),
        len(data.locations),
    )
    return data
