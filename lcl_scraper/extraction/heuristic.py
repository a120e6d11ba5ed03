"""CSS-selector driven card extraction for pages without structured data."""

from datetime import date

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from lcl_scraper.core.models import ExtractionStrategy, RawEventCard
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.date_parser import normalize_date, parse_time, time_from_iso
from lcl_scraper.utils.deduplication import page_dedup_key
from lcl_scraper.utils.text import clean_text
from lcl_scraper.utils.urls import make_absolute_url

logger = get_logger(__name__)

# Card containers, most specific first
DEFAULT_SELECTORS = [
    "article.event-card",
    "article.agenda-item",
    ".event-card",
    ".event-item",
    ".agenda-event",
    ".card.event",
    ".agenda-item",
    ".calendar-event",
    "[itemtype*='Event']",
    "li.event",
    ".post-item",
    "article",
    "[class*='event']",
    "[class*='agenda']",
    "[class*='card']",
]

EXCLUDED_TAGS = {"nav", "header", "footer"}
EXCLUDED_MARKERS = ("breadcrumb", "menu", "navigation")
# Class/id markers only count this close to the card; page wrappers carry
# state classes such as "has-menu" or "menu-open"
MARKER_DEPTH = 2

TITLE_SELECTORS = "h1, h2, h3, h4"
DATE_SELECTORS = "[class*='date'], [class*='datum'], [class*='when']"
TIME_SELECTORS = "[class*='time'], [class*='tijd'], [class*='aanvang']"
LOCATION_SELECTORS = (
    ".location, .venue, address, [class*='location'], [class*='venue'], "
    "[class*='locatie'], [class*='address']"
)
DESCRIPTION_SELECTORS = ".description, .excerpt, .summary, [class*='excerpt'], [class*='intro'], p"


def is_excluded(element: Tag) -> bool:
    """True when the element sits in (or is) navigation chrome.

    nav/header/footer exclude at any depth; menu-like class or id markers only
    on the element and its nearest ancestors, never on body or html.
    """
    for depth, node in enumerate([element, *element.parents]):
        if not isinstance(node, Tag):
            continue
        if node.name in EXCLUDED_TAGS:
            return True
        if depth > MARKER_DEPTH or node.name in ("body", "html"):
            continue
        marker = " ".join(node.get("class", [])) + " " + str(node.get("id", ""))
        marker = marker.lower()
        if any(m in marker for m in EXCLUDED_MARKERS):
            return True
    return False


def _first_text(element: Tag, selector: str) -> str:
    found = element.select_one(selector)
    return clean_text(found.get_text(" ", strip=True)) if found else ""


def _image_src(element: Tag) -> str | None:
    img = element.find("img")
    if img is None:
        return None
    for attr in ("src", "data-src", "data-lazy-src"):
        value = img.get(attr)
        if value and not value.startswith("data:"):
            return value
    return None


def match_cards(soup: BeautifulSoup, selectors: list[str]) -> list[Tag]:
    """Elements matched by the selectors, in selector order.

    An element nested inside an already kept card is part of that card, and
    an element wrapping a kept card is a list container; both are skipped.
    """
    kept: list[Tag] = []
    kept_ids: set[int] = set()
    for selector in selectors:
        try:
            elements = soup.select(selector)
        except SelectorSyntaxError as e:
            logger.warning("invalid_selector", selector=selector, error=str(e))
            continue
        for element in elements:
            if id(element) in kept_ids or is_excluded(element):
                continue
            if any(id(parent) in kept_ids for parent in element.parents):
                continue
            if any(id(child) in kept_ids for child in element.find_all(True)):
                continue
            kept_ids.add(id(element))
            kept.append(element)
    return kept


def read_card(element: Tag, page_url: str) -> RawEventCard | None:
    """Pull card fields out of one element; None when there is no title."""
    title = (
        _first_text(element, TITLE_SELECTORS)
        or _first_text(element, "[class*='title']")
        or _first_text(element, "a")
    )
    if not title:
        return None

    time_el = element.find("time")
    time_text: str | None = None
    if time_el is not None:
        datetime_attr = time_el.get("datetime")
        date_text = datetime_attr or time_el.get_text(" ", strip=True)
        time_text = time_from_iso(datetime_attr)
    else:
        date_text = _first_text(element, DATE_SELECTORS)
    if not time_text:
        time_text = parse_time(_first_text(element, TIME_SELECTORS))

    anchor = element.find("a", href=True)
    detail_url = make_absolute_url(anchor["href"], page_url) if anchor else None

    return RawEventCard(
        title=title,
        date_text=clean_text(date_text),
        time_text=time_text,
        location=_first_text(element, LOCATION_SELECTORS),
        description=_first_text(element, DESCRIPTION_SELECTORS),
        image_url=make_absolute_url(_image_src(element), page_url),
        detail_url=detail_url,
        raw_html=element.decode_contents(),
        strategy=ExtractionStrategy.HEURISTIC,
    )


def extract_heuristic_events(
    html: str | BeautifulSoup,
    page_url: str,
    selectors: list[str] | None = None,
    reference: date | None = None,
) -> list[RawEventCard]:
    """Cards with a title and a parseable date, deduplicated within the page.

    The within-page key is (lowercased title, ISO date, resolved detail URL):
    same title and date with different detail links stay separate.
    """
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
    selectors = selectors or DEFAULT_SELECTORS

    cards: list[RawEventCard] = []
    seen: set[tuple[str, str, str]] = set()
    for element in match_cards(soup, selectors):
        card = read_card(element, page_url)
        if card is None:
            continue
        iso_date = normalize_date(card.date_text, reference)
        if iso_date is None:
            continue
        key = page_dedup_key(card, iso_date)
        if key in seen:
            continue
        seen.add(key)
        cards.append(card)

    logger.debug("heuristic_cards", page_url=page_url, count=len(cards))
    return cards
