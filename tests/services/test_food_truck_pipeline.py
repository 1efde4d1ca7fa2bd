from __future__ import annotations

import json
from pathlib import Path

import pytest
import requests

from src.services import food_truck_models, food_truck_pipeline
from src.services.food_truck_models import ScrapedData
from src.services.settings import Settings

INDEX_URL = "https://portcitydaily.com/brews-and-bites/"
ARTICLE_URL = "https://portcitydaily.com/brews-and-bites/2026/02/21/food-truck-tracker-feb-20-27"

INDEX_HTML = f'<a href="{ARTICLE_URL}/">Food Truck Tracker</a>'
ARTICLE_HTML = """
<html><head><title>Food Truck Tracker: Feb. 20 - 27, 2026 | Port City Daily</title></head>
<body>
<h2>Weekly Schedules</h2>
<p><strong>Taco Truck</strong> Tacos.</p>
<ul>
<li>February 20 — Pour Taproom, 5 – 8 p.m.</li>
<li>February 21 — Broomtail Craft Brewery, noon – 3 p.m.</li>
</ul>
<h2>Find a location</h2>
<ul><li>Pour Taproom — 201 N. Front St., Wilmington</li></ul>
</body></html>
"""


class DummyResponse:
    def __init__(self, text: str = "", payload=None, status_code: int = 200) -> None:
        self.text = text
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        return self._payload


class PageSession:
    def __init__(self, pages: dict[str, str]) -> None:
        self.pages = pages
        self.urls: list[str] = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if url not in self.pages:
            return DummyResponse(status_code=404)
        return DummyResponse(self.pages[url])


class GeocoderSession:
    def __init__(self) -> None:
        self.queries: list[str] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.queries.append(params["q"])
        return DummyResponse(payload=[{"lat": "34.2357", "lon": "-77.9486"}])


def make_settings(tmp_path: Path) -> Settings:
    return Settings(
        index_url=INDEX_URL,
        data_dir=tmp_path / "data",
        geocode_cache_path=tmp_path / "geocode_cache.json",
        geocode_request_delay=0,
    )


def test_run_pipeline_end_to_end(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    pages = PageSession({INDEX_URL: INDEX_HTML, ARTICLE_URL: ARTICLE_HTML})
    geocoder_session = GeocoderSession()
    resolver = food_truck_pipeline.build_resolver(settings, session=geocoder_session)

    data = food_truck_pipeline.run_pipeline(settings, session=pages, resolver=resolver)

    assert pages.urls == [INDEX_URL, ARTICLE_URL]
    assert data.source_url == ARTICLE_URL
    assert data.date_range == "Feb. 20 - 27, 2026"
    assert geocoder_session.queries == ["201 N. Front St., Wilmington, NC"]
    first, second = data.all_appearances
    assert (first.location_name, first.latitude, first.address) == (
        "Pour Taproom",
        34.2357,
        "201 N. Front St., Wilmington",
    )
    assert (second.latitude, second.longitude) == (34.2599, -77.8478)

    output_path = food_truck_pipeline.write_dataset(data, settings.data_dir)
    payload = json.loads(output_path.read_text(encoding="utf-8"))
    assert output_path.name == "trucks.json"
    assert set(payload) == {"scrapedAt", "sourceUrl", "dateRange", "trucks", "locations", "allAppearances"}
    assert payload["allAppearances"][0]["date"] == "2026-02-20"
    assert payload["allAppearances"][0]["startTime"] == "5:00 PM"
    assert payload["trucks"][0]["appearances"][0]["truckName"] == "Taco Truck"

    reloaded = food_truck_pipeline.load_dataset(output_path)
    assert reloaded is not None
    assert reloaded.to_serializable() == payload


def test_run_pipeline_without_geocoding_makes_no_geocoder_calls(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    pages = PageSession({INDEX_URL: INDEX_HTML, ARTICLE_URL: ARTICLE_HTML})

    data = food_truck_pipeline.run_pipeline(settings, session=pages, skip_geocoding=True)

    assert data.all_appearances[0].latitude is None
    assert not settings.geocode_cache_path.exists()


def test_run_pipeline_raises_when_no_article(tmp_path: Path) -> None:
    pages = PageSession({INDEX_URL: "<p>No trackers this week.</p>"})

    with pytest.raises(food_truck_pipeline.ArticleNotFoundError):
        food_truck_pipeline.run_pipeline(make_settings(tmp_path), session=pages, skip_geocoding=True)


def test_run_pipeline_propagates_article_fetch_failure(tmp_path: Path) -> None:
    pages = PageSession({INDEX_URL: INDEX_HTML})

    with pytest.raises(requests.HTTPError):
        food_truck_pipeline.run_pipeline(make_settings(tmp_path), session=pages, skip_geocoding=True)


def test_load_dataset_missing_file(tmp_path: Path) -> None:
    assert food_truck_pipeline.load_dataset(tmp_path / "trucks.json") is None


def test_main_writes_dataset(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    pages = PageSession({INDEX_URL: INDEX_HTML, ARTICLE_URL: ARTICLE_HTML})
    monkeypatch.setattr(food_truck_pipeline, "build_session", lambda: pages)
    monkeypatch.setattr(food_truck_pipeline, "get_settings", lambda: make_settings(tmp_path))

    exit_code = food_truck_pipeline.main(["--skip-geocoding", "--output-dir", str(tmp_path / "out")])

    assert exit_code == 0
    assert (tmp_path / "out" / "trucks.json").exists()


def test_main_reports_failure_without_writing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    pages = PageSession({INDEX_URL: INDEX_HTML})
    monkeypatch.setattr(food_truck_pipeline, "build_session", lambda: pages)
    monkeypatch.setattr(food_truck_pipeline, "get_settings", lambda: make_settings(tmp_path))

    assert food_truck_pipeline.main(["--skip-geocoding"]) == 1
    assert not (tmp_path / "data" / "trucks.json").exists()


def test_main_reports_missing_article(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    pages = PageSession({INDEX_URL: "<p>nothing</p>"})
    monkeypatch.setattr(food_truck_pipeline, "build_session", lambda: pages)
    monkeypatch.setattr(food_truck_pipeline, "get_settings", lambda: make_settings(tmp_path))

    assert food_truck_pipeline.main(["--skip-geocoding"]) == 1


def test_write_dataset_replaces_existing_file_without_leftovers(tmp_path: Path) -> None:
    target = tmp_path / "trucks.json"
    target.write_text('{"stale": true}', encoding="utf-8")
    data = ScrapedData(source_url=ARTICLE_URL, date_range="Feb. 20 - 27, 2026")

    output_path = food_truck_pipeline.write_dataset(data, tmp_path)

    assert output_path == target
    assert json.loads(target.read_text(encoding="utf-8"))["sourceUrl"] == ARTICLE_URL
    assert sorted(path.name for path in tmp_path.iterdir()) == ["trucks.json"]


def test_write_dataset_failure_keeps_previous_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "trucks.json"
    target.write_text('{"sourceUrl": "previous"}', encoding="utf-8")

    def broken_dump(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(food_truck_models.json, "dump", broken_dump)

    with pytest.raises(OSError):
        food_truck_pipeline.write_dataset(ScrapedData(source_url=ARTICLE_URL), tmp_path)

    assert target.read_text(encoding="utf-8") == '{"sourceUrl": "previous"}'
    assert sorted(path.name for path in tmp_path.iterdir()) == ["trucks.json"]
