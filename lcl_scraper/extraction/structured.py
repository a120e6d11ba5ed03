"""JSON-LD and microdata ``Event`` extraction.

JSON-LD wins: microdata is only consulted when no JSON-LD event survives.
"""

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from typing import Any

from bs4 import BeautifulSoup, Tag

from lcl_scraper.core.models import ExtractionStrategy, RawEventCard
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.date_parser import parse_date, time_from_iso
from lcl_scraper.utils.text import clean_text
from lcl_scraper.utils.urls import make_absolute_url

logger = get_logger(__name__)

_LD_JSON_TYPE = re.compile(r"ld\+json", re.IGNORECASE)


@dataclass(frozen=True)
class EventFields:
    """Fields of a node recognized as a schema.org Event.

    Only built through ``read_event_fields``, which checks presence and type of
    every field, so consumers never see a half-typed node.
    """

    title: str
    start_date: str
    location: str = ""
    url: str | None = None
    description: str = ""
    image: str | None = None
    attendance_mode: str | None = None


def is_event_type(value: Any) -> bool:
    """True for "Event", "MusicEvent", ["Thing", "Event"], ... (case-insensitive)."""
    types = value if isinstance(value, list) else [value]
    return any(isinstance(t, str) and t.lower().endswith("event") for t in types)


def _first_str(value: Any) -> str | None:
    """A string, the first string of a list, or the url/name of an object."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for item in value:
            found = _first_str(item)
            if found:
                return found
        return None
    if isinstance(value, dict):
        return _first_str(value.get("url")) or _first_str(value.get("contentUrl"))
    return None


def _location_name(value: Any) -> str:
    if isinstance(value, str):
        return clean_text(value)
    if isinstance(value, list) and value:
        return _location_name(value[0])
    if isinstance(value, dict):
        name = value.get("name")
        if isinstance(name, str) and name.strip():
            return clean_text(name)
        address = value.get("address")
        if isinstance(address, str):
            return clean_text(address)
        if isinstance(address, dict):
            parts = [address.get("streetAddress"), address.get("addressLocality")]
            return clean_text(", ".join(p for p in parts if isinstance(p, str) and p))
    return ""


def read_event_fields(node: Any) -> EventFields | None:
    """Recognize an Event node, or return None for anything else."""
    if not isinstance(node, dict) or not is_event_type(node.get("@type")):
        return None

    title = node.get("name") or node.get("headline")
    start = node.get("startDate")
    if not isinstance(title, str) or not title.strip():
        return None
    if not isinstance(start, str) or not start.strip():
        return None

    description = node.get("description")
    mode = node.get("eventAttendanceMode")
    return EventFields(
        title=clean_text(title),
        start_date=start.strip(),
        location=_location_name(node.get("location")),
        url=_first_str(node.get("url")),
        description=clean_text(description) if isinstance(description, str) else "",
        image=_first_str(node.get("image")),
        attendance_mode=mode if isinstance(mode, str) else None,
    )


def _flatten_nodes(data: Any) -> Iterator[Any]:
    """Walk arrays and @graph wrappers down to individual nodes."""
    if isinstance(data, list):
        for item in data:
            yield from _flatten_nodes(item)
    elif isinstance(data, dict):
        graph = data.get("@graph")
        if isinstance(graph, list):
            yield from _flatten_nodes(graph)
        if "@type" in data:
            yield data


def iter_jsonld_nodes(soup: BeautifulSoup) -> Iterator[Any]:
    """Every node from every parseable ld+json script; broken blocks are skipped."""
    for script in soup.find_all("script", type=_LD_JSON_TYPE):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("jsonld_parse_failed", error=str(e))
            continue
        yield from _flatten_nodes(data)


def extract_jsonld_events(
    soup: BeautifulSoup, page_url: str, reference: date | None = None
) -> list[RawEventCard]:
    cards: list[RawEventCard] = []
    for node in iter_jsonld_nodes(soup):
        fields = read_event_fields(node)
        if fields is None:
            continue
        if parse_date(fields.start_date, reference) is None:
            logger.debug("jsonld_event_bad_date", title=fields.title, start=fields.start_date)
            continue
        cards.append(
            RawEventCard(
                title=fields.title,
                date_text=fields.start_date,
                time_text=time_from_iso(fields.start_date),
                location=fields.location,
                description=fields.description,
                image_url=make_absolute_url(fields.image, page_url),
                detail_url=make_absolute_url(fields.url, page_url),
                category_hint=fields.attendance_mode,
                raw_html=json.dumps(node, ensure_ascii=False),
                structured_data=node,
                strategy=ExtractionStrategy.STRUCTURED,
            )
        )
    return cards


def _itemprop(element: Tag, name: str) -> Tag | None:
    """First property of this item carrying the itemprop (space-separated lists allowed).

    Properties of nested items (a Place inside an Event) belong to the nested
    item and are skipped.
    """
    for candidate in element.find_all(attrs={"itemprop": True}):
        if candidate.find_parent(attrs={"itemscope": True}) is not element:
            continue
        props = candidate.get("itemprop", "")
        if isinstance(props, list):
            props = " ".join(props)
        if name in props.split():
            return candidate
    return None


def _itemprop_value(element: Tag | None) -> str | None:
    if element is None:
        return None
    for attr in ("content", "datetime", "href", "src"):
        value = element.get(attr)
        if isinstance(value, str) and value.strip():
            return value.strip()
    text = element.get_text(" ", strip=True)
    return text or None


def extract_microdata_events(
    soup: BeautifulSoup, page_url: str, reference: date | None = None
) -> list[RawEventCard]:
    cards: list[RawEventCard] = []
    for element in soup.find_all(attrs={"itemscope": True, "itemtype": True}):
        if not is_event_type(str(element.get("itemtype", "")).rstrip("/").split("/")[-1]):
            continue

        title = _itemprop_value(_itemprop(element, "name"))
        start = _itemprop_value(_itemprop(element, "startDate"))
        if not title or not start or parse_date(start, reference) is None:
            continue

        location_el = _itemprop(element, "location")
        location = ""
        if location_el is not None:
            name_el = _itemprop(location_el, "name")
            location = _itemprop_value(name_el) or location_el.get_text(" ", strip=True)

        description = _itemprop_value(_itemprop(element, "description")) or ""
        cards.append(
            RawEventCard(
                title=clean_text(title),
                date_text=start,
                time_text=time_from_iso(start),
                location=clean_text(location),
                description=clean_text(description),
                image_url=make_absolute_url(_itemprop_value(_itemprop(element, "image")), page_url),
                detail_url=make_absolute_url(_itemprop_value(_itemprop(element, "url")), page_url),
                raw_html=str(element),
                strategy=ExtractionStrategy.STRUCTURED,
            )
        )
    return cards


def extract_structured_events(
    html: str | BeautifulSoup, page_url: str, reference: date | None = None
) -> list[RawEventCard]:
    """Event cards from JSON-LD, falling back to microdata when JSON-LD has none."""
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
    cards = extract_jsonld_events(soup, page_url, reference)
    if cards:
        return cards
    return extract_microdata_events(soup, page_url, reference)


def jsonld_preview(html: str | BeautifulSoup, limit: int = 2000) -> str | None:
    """First ld+json block, truncated, for debug bundles."""
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
    script = soup.find("script", type=_LD_JSON_TYPE)
    if script is None:
        return None
    return (script.string or script.get_text())[:limit]
