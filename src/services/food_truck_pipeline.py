"""
End-to-end food truck run: locate the latest tracker article, parse it,
geocode its locations and write ``trucks.json``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import requests

from src.services.article_locator import build_session, fetch_html, fetch_latest_article_url
from src.services.food_truck_models import ScrapedData, write_json_atomic
from src.services.geocoding import BoundingBox, GeocodeCache, GeocodingResolver, NominatimClient
from src.services.schedule_extractor import parse_article
from src.services.scrape_schedule import run_forever
from src.services.settings import DATASET_FILENAME, Settings, get_settings

LOGGER = logging.getLogger(__name__)


class ArticleNotFoundError(LookupError):
    """No tracker article link was found on the index page."""


def assemble_dataset(data: ScrapedData, source_url: str, date_range: str | None = None) -> ScrapedData:
    data.scraped_at = datetime.now(timezone.utc)
    data.source_url = source_url
    if date_range is not None:
        data.date_range = date_range
    return data


def build_resolver(
    settings: Settings,
    session: requests.Session | None = None,
    cancel_event: threading.Event | None = None,
) -> GeocodingResolver:
    client = NominatimClient(
        bounds=BoundingBox.from_tuple(settings.geocode_bounds),
        session=session,
        min_interval=settings.geocode_request_delay,
        user_agent=settings.geocode_user_agent,
        timeout=settings.http_timeout,
        cancel_event=cancel_event,
    )
    return GeocodingResolver(
        client,
        GeocodeCache.load(settings.geocode_cache_path),
        state_suffix=settings.geocode_state_suffix,
        default_city=settings.geocode_default_city,
    )


def run_pipeline(
    settings: Settings,
    session: requests.Session | None = None,
    resolver: GeocodingResolver | None = None,
    skip_geocoding: bool = False,
) -> ScrapedData:
    """Fetch, parse and geocode. Network errors propagate to the caller."""
    session = session or build_session()
    article_url = fetch_latest_article_url(session, settings.index_url, timeout=settings.http_timeout)
    if article_url is None:
        raise ArticleNotFoundError(f"No Food Truck Tracker article found on {settings.index_url}")

    LOGGER.info("Scraping article %s", article_url)
    html = fetch_html(session, article_url, timeout=settings.http_timeout)
    data = parse_article(html, article_url)

    if skip_geocoding:
        LOGGER.info("Skipping geocoding; coordinates limited to known locations.")
    else:
        resolver = resolver or build_resolver(settings)
        LOGGER.info("Geocoding %s locations...", len(data.locations))
        resolver.resolve(data)
        geocoded = sum(1 for location in data.locations.values() if location.has_coordinates)
        LOGGER.info("Geocoded %s/%s locations (stats: %s)", geocoded, len(data.locations), resolver.stats)

    return assemble_dataset(data, article_url)


def write_dataset(data: ScrapedData, output_dir: Path) -> Path:
    output_path = output_dir / DATASET_FILENAME
    write_json_atomic(output_path, data.to_serializable())
    LOGGER.info("Data written to %s", output_path)
    return output_path


def load_dataset(path: Path) -> ScrapedData | None:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return ScrapedData.from_serializable(json.load(handle))


def run_once(settings: Settings, skip_geocoding: bool = False, cancel_event: threading.Event | None = None) -> Path:
    session = build_session()
    resolver = None if skip_geocoding else build_resolver(settings, cancel_event=cancel_event)
    data = run_pipeline(settings, session=session, resolver=resolver, skip_geocoding=skip_geocoding)
    return write_dataset(data, settings.data_dir)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Scrape the weekly Food Truck Tracker schedule.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory to write trucks.json (default: FOOD_TRUCK_DATA_DIR or data/).",
    )
    parser.add_argument(
        "--geocode-cache",
        type=Path,
        default=None,
        help="Path to the JSON geocode cache (default: GEOCODE_CACHE_PATH or geocode_cache.json).",
    )
    parser.add_argument(
        "--index-url",
        default=None,
        help="Index page listing tracker articles.",
    )
    parser.add_argument(
        "--skip-geocoding",
        action="store_true",
        help="Skip Nominatim lookups (only curated locations keep coordinates).",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running on the weekly schedule instead of exiting after one scrape.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )

    settings = get_settings()
    overrides = {}
    if args.output_dir is not None:
        overrides["data_dir"] = args.output_dir
    if args.geocode_cache is not None:
        overrides["geocode_cache_path"] = args.geocode_cache
    if args.index_url:
        overrides["index_url"] = args.index_url
    if overrides:
        settings = replace(settings, **overrides)
    LOGGER.info("Starting food truck scrape with settings: %s", settings)

    if args.loop:
        run_forever(lambda stop: run_once(settings, args.skip_geocoding, cancel_event=stop))
        return 0

    try:
        run_once(settings, skip_geocoding=args.skip_geocoding)
    except ArticleNotFoundError as exc:
        LOGGER.warning("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        LOGGER.exception("Food truck scrape failed.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
