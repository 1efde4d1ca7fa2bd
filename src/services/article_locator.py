"""
Locate the newest "Food Truck Tracker" article on the Port City Daily index page.
"""

from __future__ import annotations

import logging
import re

import requests

from src.services.settings import BROWSER_USER_AGENT

LOGGER = logging.getLogger(__name__)

# e.g. /brews-and-bites/2026/02/21/food-truck-tracker-feb-20-27/
ARTICLE_URL_PATTERN = re.compile(
    r"https://portcitydaily\.com/brews-and-bites/\d{4}/\d{2}/\d{2}/food-truck-tracker[^\"']*",
    re.IGNORECASE,
)


def build_session(user_agent: str = BROWSER_USER_AGENT) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})
    return session


def fetch_html(session: requests.Session, url: str, timeout: float = 25) -> str:
    response = session.get(url, timeout=timeout)
    response.raise_for_status()
    return response.text


def find_latest_article_url(html: str) -> str | None:
    """Return the most recent tracker URL in ``html``.

    URLs carry a zero-padded ``YYYY/MM/DD`` segment under a fixed prefix, so a
    descending string sort orders them newest first.
    """
    urls = {match.group(0).rstrip("/") for match in ARTICLE_URL_PATTERN.finditer(html)}
    if not urls:
        return None
    return sorted(urls, reverse=True)[0]


def fetch_latest_article_url(session: requests.Session, index_url: str, timeout: float = 25) -> str | None:
    LOGGER.info("Finding latest Food Truck Tracker article on %s", index_url)
    html = fetch_html(session, index_url, timeout=timeout)
    url = find_latest_article_url(html)
    if url is None:
        LOGGER.warning("No Food Truck Tracker article links found on %s", index_url)
    else:
        LOGGER.info("Found article: %s", url)
    return url
