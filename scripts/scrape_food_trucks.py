#!/usr/bin/env python3
"""
Entry point used by cron to refresh the food truck schedule.

Usage:
    python3 scripts/scrape_food_trucks.py --output-dir data
    python3 scripts/scrape_food_trucks.py --loop
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.services.food_truck_pipeline import main  # noqa: E402


if __name__ == "__main__":
    raise SystemExit(main())
