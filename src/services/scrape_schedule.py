"""
Timing for periodic scrapes. New tracker articles usually land on Friday, so
Fridays are polled every three hours and other days once each morning.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from src.services.geocoding import GeocodingCancelled

LOGGER = logging.getLogger(__name__)

FRIDAY = 4
FRIDAY_SLOTS = (9, 12, 15, 18, 21)
DAILY_HOUR = 6


def next_run_time(now: datetime) -> datetime:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if now.weekday() == FRIDAY:
        for hour in FRIDAY_SLOTS:
            candidate = midnight + timedelta(hours=hour)
            if candidate > now:
                return candidate

    tomorrow_morning = midnight + timedelta(days=1, hours=DAILY_HOUR)
    days_until_friday = (FRIDAY - now.weekday()) % 7 or 7
    next_friday = midnight + timedelta(days=days_until_friday, hours=FRIDAY_SLOTS[0])
    return min(tomorrow_morning, next_friday)


def _run_guarded(job: Callable[[threading.Event], object], stop: threading.Event) -> None:
    LOGGER.info("Starting food truck scraper...")
    try:
        job(stop)
    except GeocodingCancelled:
        LOGGER.info("Scrape cancelled during geocoding; cache left untouched.")
    except LookupError as exc:
        LOGGER.warning("%s", exc)
    except Exception:  # noqa: BLE001
        LOGGER.exception("Scraper failed")
    else:
        LOGGER.info("Scraper complete.")


def run_forever(
    job: Callable[[threading.Event], object],
    stop: threading.Event | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> None:
    """Run ``job`` now and then at every scheduled slot until ``stop`` is set.

    Runs never overlap: the next slot is computed only after a run returns.
    """
    stop = stop or threading.Event()
    try:
        _run_guarded(job, stop)
        while not stop.is_set():
            now = clock()
            next_run = next_run_time(now)
            delay = (next_run - now).total_seconds()
            LOGGER.info("Next scrape scheduled for %s (in %.1f hours)", next_run, delay / 3600)
            if stop.wait(max(delay, 0)):
                break
            _run_guarded(job, stop)
    except KeyboardInterrupt:
        stop.set()
        LOGGER.info("Interrupted; stopping scheduler.")
