"""
FastAPI app exposing the scraped food truck schedule from ``trucks.json``.
"""

from __future__ import annotations

import datetime as dt
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from src.services.food_truck_models import ScrapedData
from src.services.food_truck_pipeline import load_dataset
from src.services.settings import get_settings

NO_DATA_MESSAGE = "No data available. Run the scraper first."
BAD_DATE_MESSAGE = "Invalid date format. Use yyyy-MM-dd."
LOGGER = logging.getLogger("food_trucks_api")
if not LOGGER.handlers:
    LOGGER.setLevel(logging.INFO)
    LOG_PATH = Path("logs")
    LOG_PATH.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(LOG_PATH / "api_requests.log")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    file_handler.setFormatter(formatter)
    LOGGER.addHandler(file_handler)


def get_dataset_path() -> Path:
    return get_settings().dataset_path


class AppearanceOut(BaseModel):
    truckName: str
    description: str = ""
    facebookUrl: Optional[str] = None
    date: dt.date
    locationName: str
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, description="Latitude in decimal degrees")
    longitude: Optional[float] = Field(None, description="Longitude in decimal degrees")
    startTime: str = ""
    endTime: str = ""


class DayScheduleOut(BaseModel):
    date: str
    appearances: list[AppearanceOut]


app = FastAPI(title="ILM Food N Brew API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _no_data() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": NO_DATA_MESSAGE})


def _day_schedule(data: ScrapedData, day: date) -> DayScheduleOut:
    appearances = [AppearanceOut(**appearance.to_serializable()) for appearance in data.appearances_on(day)]
    return DayScheduleOut(date=day.isoformat(), appearances=appearances)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/trucks")
def get_trucks(dataset_path: Path = Depends(get_dataset_path)):
    LOGGER.info("Fetching full dataset from %s", dataset_path)
    if not dataset_path.exists():
        return _no_data()
    # Served byte for byte as the scraper wrote it.
    return FileResponse(dataset_path, media_type="application/json")


@app.get("/api/trucks/today", response_model=DayScheduleOut)
def get_trucks_today(dataset_path: Path = Depends(get_dataset_path)):
    data = load_dataset(dataset_path)
    if data is None:
        return _no_data()
    today = date.today()
    LOGGER.info("Fetching appearances for today (%s)", today)
    return _day_schedule(data, today)


@app.get("/api/trucks/date/{day}", response_model=DayScheduleOut)
def get_trucks_by_date(day: str, dataset_path: Path = Depends(get_dataset_path)):
    data = load_dataset(dataset_path)
    if data is None:
        return _no_data()
    try:
        target = date.fromisoformat(day)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": BAD_DATE_MESSAGE})
    LOGGER.info("Fetching appearances for %s", target)
    return _day_schedule(data, target)
