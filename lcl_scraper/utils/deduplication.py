"""Event fingerprinting and deduplication utilities."""

import hashlib
import re
from collections.abc import Iterable

from lcl_scraper.core.models import NormalizedEvent, RawEventCard
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)


def normalize_location(location: str | None) -> str:
    """Lowercase and strip every non-alphanumeric character.

    "Town Hall!" and "town-hall" both become "townhall".
    """
    if not location:
        return ""
    return re.sub(r"[^a-z0-9]", "", location.lower())


def generate_fingerprint(title: str, iso_date: str, location: str | None) -> str:
    """Generate the cross-source dedup hash for an event.

    The hash is based on:
    - Title, trimmed and lowercased
    - ISO start date
    - Normalized location

    It is pure: identical input always yields the same value, which makes it
    safe as the upsert key for replayed scrapes.

    Returns:
        SHA256 hex digest
    """
    key = "|".join([title.strip().lower(), iso_date, normalize_location(location)])
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def page_dedup_key(card: RawEventCard, iso_date: str) -> tuple[str, str, str]:
    """Within-page dedup key: (lowercased title, ISO date, resolved detail URL)."""
    return (card.title.strip().lower(), iso_date, card.detail_url or "")


def dedupe_events(
    events: Iterable[NormalizedEvent],
) -> tuple[list[NormalizedEvent], int]:
    """Drop events whose fingerprint was already seen in this result set.

    The first occurrence wins.

    Returns:
        Tuple of (unique_events, duplicates_skipped)
    """
    seen: set[str] = set()
    unique: list[NormalizedEvent] = []
    skipped = 0

    for event in events:
        if event.dedup_hash in seen:
            skipped += 1
            logger.debug("duplicate_skipped", title=event.title, dedup_hash=event.dedup_hash)
            continue
        seen.add(event.dedup_hash)
        unique.append(event)

    return unique, skipped
