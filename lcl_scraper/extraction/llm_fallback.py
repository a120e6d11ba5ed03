"""Best-effort LLM extraction when structured and heuristic passes find nothing."""

from dataclasses import dataclass, field
from datetime import date

from bs4 import BeautifulSoup

from lcl_scraper.core.llm_client import LLMClient, ProviderFailure
from lcl_scraper.core.models import ExtractionStrategy, RawEventCard
from lcl_scraper.extraction.heuristic import DEFAULT_SELECTORS, match_cards
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.date_parser import parse_date, parse_time
from lcl_scraper.utils.text import clean_text, truncate
from lcl_scraper.utils.urls import make_absolute_url

logger = get_logger(__name__)

MAX_SNIPPET_LENGTH = 4000

SYSTEM_PROMPT = """Je bent een datacleaner. Haal evenementen-informatie uit ruwe HTML.
- Retourneer uitsluitend geldige, geminimaliseerde JSON, zonder uitleg of markdown.
- Houd tekst in de originele taal.
- Velden: title, description (max 200 tekens), event_date (YYYY-MM-DD), event_time (HH:MM, leeg indien onbekend), venue_name, venue_address, image_url
- Geen evenement gevonden: retourneer {}"""

USER_PROMPT = """Vandaag is {today}.
Pagina: {page_url}
HTML:
{snippet}"""


@dataclass
class LLMExtraction:
    """Cards plus the prompt/response excerpt kept for debug bundles."""

    cards: list[RawEventCard] = field(default_factory=list)
    prompt: str | None = None
    response: str | None = None
    failures: list[ProviderFailure] = field(default_factory=list)


def select_snippet(soup: BeautifulSoup, selectors: list[str] | None = None) -> str | None:
    """Inner HTML of the first plausible card, bounded."""
    cards = match_cards(soup, selectors or DEFAULT_SELECTORS)
    if not cards:
        return None
    snippet = cards[0].decode_contents().strip()
    return snippet[:MAX_SNIPPET_LENGTH] or None


def card_from_payload(
    payload: object, snippet: str, page_url: str, reference: date | None = None
) -> RawEventCard | None:
    """Accept the model's answer only with a title and a parseable date."""
    if not isinstance(payload, dict):
        return None
    title = payload.get("title")
    event_date = payload.get("event_date")
    if not isinstance(title, str) or not title.strip():
        return None
    if not isinstance(event_date, str) or parse_date(event_date, reference) is None:
        return None

    def text(key: str) -> str:
        value = payload.get(key)
        return clean_text(value) if isinstance(value, str) else ""

    image = payload.get("image_url")
    event_time = payload.get("event_time")
    return RawEventCard(
        title=clean_text(title),
        date_text=event_date,
        time_text=parse_time(event_time) if isinstance(event_time, str) else None,
        location=text("venue_name") or text("venue_address"),
        description=truncate(text("description"), 200),
        image_url=make_absolute_url(image, page_url) if isinstance(image, str) else None,
        raw_html=snippet,
        strategy=ExtractionStrategy.LLM,
    )


async def extract_with_llm(
    html: str | BeautifulSoup,
    page_url: str,
    llm: LLMClient,
    selectors: list[str] | None = None,
    reference: date | None = None,
) -> LLMExtraction:
    """Ask the LLM chain to read the first card on the page.

    Never raises: provider errors and malformed JSON produce an empty result.
    """
    if not llm.is_enabled:
        return LLMExtraction()

    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
    snippet = select_snippet(soup, selectors)
    if snippet is None:
        logger.debug("llm_no_candidate_snippet", page_url=page_url)
        return LLMExtraction()

    prompt = USER_PROMPT.format(
        today=(reference or date.today()).isoformat(), page_url=page_url, snippet=snippet
    )
    result = await llm.complete(SYSTEM_PROMPT, prompt)
    extraction = LLMExtraction(
        prompt=prompt[:1000],
        response=result.content[:1000] if result.content else None,
        failures=result.failures,
    )
    if not result.ok:
        logger.info("llm_fallback_failed", page_url=page_url, failures=len(result.failures))
        return extraction

    card = card_from_payload(result.parse_json(), snippet, page_url, reference)
    if card is not None:
        extraction.cards.append(card)
    return extraction
