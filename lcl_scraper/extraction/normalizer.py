"""Turn raw cards into storage-ready ``NormalizedEvent`` records."""

from datetime import date
from typing import Any

from pydantic import ValidationError

from lcl_scraper.core.models import CONFIDENCE_TIERS, NormalizedEvent, RawEventCard, ScraperSource
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.categories import classify_text
from lcl_scraper.utils.date_parser import parse_date
from lcl_scraper.utils.deduplication import generate_fingerprint
from lcl_scraper.utils.text import truncate

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 500


def _offer_price(data: dict[str, Any]) -> tuple[float | None, str | None]:
    offers = data.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        return None, None
    try:
        price = float(str(offers.get("price")).replace(",", "."))
    except (TypeError, ValueError):
        return None, None
    currency = offers.get("priceCurrency")
    return price, currency if isinstance(currency, str) else None


def _street_address(data: dict[str, Any]) -> str | None:
    location = data.get("location")
    if isinstance(location, list):
        location = location[0] if location else None
    if not isinstance(location, dict):
        return None
    address = location.get("address")
    if isinstance(address, str):
        return address.strip() or None
    if isinstance(address, dict):
        parts = [
            address.get("streetAddress"),
            address.get("postalCode"),
            address.get("addressLocality"),
        ]
        joined = ", ".join(p.strip() for p in parts if isinstance(p, str) and p.strip())
        return joined or None
    return None


def normalize_card(
    card: RawEventCard,
    source: ScraperSource,
    page_url: str,
    reference: date | None = None,
) -> NormalizedEvent | None:
    """Normalize one card; None when its date cannot be read or validation fails."""
    start = parse_date(card.date_text, reference)
    if start is None:
        logger.debug("card_dropped_bad_date", title=card.title, date_text=card.date_text)
        return None

    title = truncate(card.title, MAX_TITLE_LENGTH)
    location = card.location or source.location_name or ""
    data = card.structured_data or {}

    end = None
    end_text = data.get("endDate")
    if isinstance(end_text, str):
        parsed_end = parse_date(end_text, reference)
        if parsed_end and parsed_end >= start:
            end = parsed_end

    price, currency = _offer_price(data)
    # schema.org attendance-mode URLs say nothing about the topic
    hint = card.category_hint if card.category_hint and "schema.org" not in card.category_hint else None

    try:
        return NormalizedEvent(
            source_id=source.id,
            source_url=page_url,
            title=title,
            description=card.description,
            start_date=start,
            end_date=end,
            start_time=card.time_text or card.detail_page_time,
            location_name=location,
            address=_street_address(data),
            price=price,
            currency=currency,
            category=classify_text(hint, card.title, card.description),
            image_url=card.image_url,
            detail_url=card.detail_url,
            raw_html=card.raw_html,
            structured_data=card.structured_data,
            dedup_hash=generate_fingerprint(title, start.isoformat(), location),
            confidence=CONFIDENCE_TIERS[card.strategy],
            strategy=card.strategy,
        )
    except ValidationError as e:
        logger.debug("card_dropped_invalid", title=card.title, error=str(e))
        return None


def normalize_cards(
    cards: list[RawEventCard],
    source: ScraperSource,
    page_url: str,
    reference: date | None = None,
) -> list[NormalizedEvent]:
    events = []
    for card in cards:
        event = normalize_card(card, source, page_url, reference)
        if event is not None:
            events.append(event)
    return events
