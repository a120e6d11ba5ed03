"""Start-time lookup on event detail pages."""

import re

from bs4 import BeautifulSoup

from lcl_scraper.core.fetcher import PageFetcher
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.date_parser import parse_time, time_from_iso

logger = get_logger(__name__)

TIME_ELEMENT_SELECTORS = [
    'meta[property="event:start_time"]',
    "time[datetime]",
    ".event-time",
    ".time",
    "[class*='time']",
    "[class*='tijd']",
    ".aanvang",
    "[class*='aanvang']",
    ".beginn",
    "[class*='beginn']",
]

# Prefixed time mentions in body text (Dutch, German, English)
TIME_TEXT_PATTERNS = [
    re.compile(r"aanvang\s*:?\s*(\d{1,2}[.:h]\d{2})", re.IGNORECASE),
    re.compile(r"vanaf\s*(\d{1,2}[.:h]\d{2})", re.IGNORECASE),
    re.compile(r"start\s*om\s*(\d{1,2}[.:h]\d{2})", re.IGNORECASE),
    re.compile(r"\bom\s*(\d{1,2}[.:h]\d{2})\s*uur", re.IGNORECASE),
    re.compile(r"(\d{1,2}[.:h]\d{2})\s*uur", re.IGNORECASE),
    re.compile(r"beginn\s*:?\s*(\d{1,2}[.:]\d{2})", re.IGNORECASE),
    re.compile(r"\bab\s*(\d{1,2}[.:]\d{2})\s*uhr", re.IGNORECASE),
    re.compile(r"(\d{1,2}[.:]\d{2})\s*uhr", re.IGNORECASE),
    re.compile(r"starts?\s*(?:at)?\s*:?\s*(\d{1,2}[.:]\d{2}\s*(?:[ap]\.?m\.?)?)", re.IGNORECASE),
    re.compile(r"doors\s*(?:open)?\s*:?\s*(\d{1,2}[.:]\d{2}\s*(?:[ap]\.?m\.?)?)", re.IGNORECASE),
    re.compile(r"\bfrom\s*(\d{1,2}[.:]\d{2}\s*(?:[ap]\.?m\.?)?)", re.IGNORECASE),
    re.compile(r"\btime\s*:?\s*(\d{1,2}[.:]\d{2}\s*(?:[ap]\.?m\.?)?)", re.IGNORECASE),
    # "20:00 - 23:00" ranges: the start wins
    re.compile(r"(\d{1,2}[.:]\d{2})\s*[-–]\s*\d{1,2}[.:]\d{2}"),
]


def find_time_in_html(html: str) -> str | None:
    """First start time found in time-bearing elements, then in body text."""
    soup = BeautifulSoup(html, "html.parser")

    for selector in TIME_ELEMENT_SELECTORS:
        for element in soup.select(selector):
            datetime_attr = element.get("datetime")
            if datetime_attr:
                parsed = time_from_iso(datetime_attr)
            else:
                value = element.get("content") or element.get_text(" ")
                # Large wrappers that merely carry "time" in a class name
                if len(value) > 200:
                    continue
                parsed = time_from_iso(value) or parse_time(value)
            if parsed:
                return parsed

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = " ".join(soup.get_text(" ").split())
    for pattern in TIME_TEXT_PATTERNS:
        match = pattern.search(text)
        if match:
            parsed = parse_time(match.group(1))
            if parsed:
                return parsed
    return None


async def fetch_detail_time(fetcher: PageFetcher, detail_url: str) -> str | None:
    """Fetch a detail page and look for a start time; failures yield None."""
    result = await fetcher.fetch(detail_url)
    if not result.usable:
        logger.debug("detail_page_unusable", url=detail_url, status=result.status)
        return None
    return find_time_in_html(result.html)
