from __future__ import annotations

import logging
import threading
from datetime import datetime

import pytest

from src.services import scrape_schedule
from src.services.geocoding import GeocodingCancelled


def test_next_run_time_on_friday_uses_next_slot() -> None:
    # 2026-02-20 is a Friday
    assert scrape_schedule.next_run_time(datetime(2026, 2, 20, 8, 0)) == datetime(2026, 2, 20, 9, 0)
    assert scrape_schedule.next_run_time(datetime(2026, 2, 20, 12, 0)) == datetime(2026, 2, 20, 15, 0)


def test_next_run_time_after_last_friday_slot_is_saturday_morning() -> None:
    assert scrape_schedule.next_run_time(datetime(2026, 2, 20, 22, 30)) == datetime(2026, 2, 21, 6, 0)


def test_next_run_time_on_other_days_is_next_morning() -> None:
    assert scrape_schedule.next_run_time(datetime(2026, 2, 17, 10, 0)) == datetime(2026, 2, 18, 6, 0)
    # Thursday: Friday 06:00 comes before Friday 09:00
    assert scrape_schedule.next_run_time(datetime(2026, 2, 19, 23, 0)) == datetime(2026, 2, 20, 6, 0)


def test_run_forever_runs_once_and_stops() -> None:
    stop = threading.Event()
    calls: list[threading.Event] = []

    def job(event: threading.Event) -> None:
        calls.append(event)
        event.set()

    scrape_schedule.run_forever(job, stop=stop, clock=lambda: datetime(2026, 2, 20, 8, 0))

    assert calls == [stop]


def test_run_forever_survives_failures() -> None:
    stop = threading.Event()
    attempts: list[int] = []

    def job(event: threading.Event) -> None:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("boom")
        event.set()
        raise GeocodingCancelled("stopped")

    # One microsecond before the 09:00 slot keeps the wait between runs negligible.
    scrape_schedule.run_forever(job, stop=stop, clock=lambda: datetime(2026, 2, 20, 8, 59, 59, 999999))

    assert len(attempts) == 2


def test_run_forever_logs_missing_article_as_warning(caplog: pytest.LogCaptureFixture) -> None:
    stop = threading.Event()

    def job(event: threading.Event) -> None:
        event.set()
        raise LookupError("No Food Truck Tracker article found")

    with caplog.at_level(logging.INFO, logger=scrape_schedule.__name__):
        scrape_schedule.run_forever(job, stop=stop, clock=lambda: datetime(2026, 2, 20, 8, 0))

    records = [r for r in caplog.records if "No Food Truck Tracker article found" in r.getMessage()]
    assert [r.levelno for r in records] == [logging.WARNING]
    assert records[0].exc_info is None
    assert not any(r.getMessage() == "Scraper failed" for r in caplog.records)
