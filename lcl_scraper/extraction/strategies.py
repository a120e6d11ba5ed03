"""Parsing strategies and the extraction cascade.

A source names its strategy in ``config.strategy``; unknown or missing names
resolve to ``default``. Every strategy runs the same cascade
(structured -> heuristic -> LLM) and differs only in its selector set.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from bs4 import BeautifulSoup

from lcl_scraper.core.llm_client import LLMClient
from lcl_scraper.core.models import ExtractionStrategy, RawEventCard, ScraperSource
from lcl_scraper.extraction.heuristic import DEFAULT_SELECTORS, extract_heuristic_events
from lcl_scraper.extraction.llm_fallback import LLMExtraction, extract_with_llm
from lcl_scraper.extraction.structured import extract_structured_events
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CascadeResult:
    """Cards from the first cascade step that produced any."""

    cards: list[RawEventCard] = field(default_factory=list)
    strategy: ExtractionStrategy | None = None
    selectors: list[str] = field(default_factory=list)
    llm: LLMExtraction | None = None


class ParsingStrategy:
    """Baseline strategy: source selectors first, then the generic card set."""

    name = "default"
    extra_selectors: list[str] = []

    def __init__(self, source: ScraperSource):
        self.source = source

    def selectors(self) -> list[str]:
        configured = self.source.config.selectors
        if configured:
            return list(configured)
        return [*self.extra_selectors, *DEFAULT_SELECTORS]

    async def extract(
        self,
        html: str,
        page_url: str,
        llm: LLMClient | None = None,
        reference: date | None = None,
    ) -> CascadeResult:
        """Run structured -> heuristic -> LLM, stopping at the first non-empty step."""
        soup = BeautifulSoup(html, "html.parser")
        selectors = self.selectors()

        cards = extract_structured_events(soup, page_url, reference)
        if cards:
            return CascadeResult(cards, ExtractionStrategy.STRUCTURED, selectors)

        cards = extract_heuristic_events(soup, page_url, selectors, reference)
        if cards:
            return CascadeResult(cards, ExtractionStrategy.HEURISTIC, selectors)

        if llm is None:
            return CascadeResult(selectors=selectors)

        extraction = await extract_with_llm(soup, page_url, llm, selectors, reference)
        return CascadeResult(
            extraction.cards,
            ExtractionStrategy.LLM if extraction.cards else None,
            selectors,
            llm=extraction,
        )


# Registry of all available strategies
STRATEGY_REGISTRY: dict[str, type[ParsingStrategy]] = {}


def register_strategy(name: str) -> Callable[[type[ParsingStrategy]], type[ParsingStrategy]]:
    """Decorator to register a strategy in the registry.

    Usage:
        @register_strategy("municipal")
        class MunicipalStrategy(ParsingStrategy):
            ...
    """

    def decorator(strategy_class: type[ParsingStrategy]) -> type[ParsingStrategy]:
        strategy_class.name = name
        STRATEGY_REGISTRY[name] = strategy_class
        return strategy_class

    return decorator


register_strategy("default")(ParsingStrategy)


@register_strategy("municipal")
class MunicipalStrategy(ParsingStrategy):
    """Dutch municipal and tourism-office agendas."""

    extra_selectors = [
        ".datum-item",
        ".activity-card",
        ".card--event",
        ".event-list-item",
        ".agenda-list__item",
        ".uitagenda-item",
    ]


@register_strategy("venue")
class VenueStrategy(ParsingStrategy):
    """Single-venue programme pages (theatres, concert halls, clubs)."""

    extra_selectors = [
        ".programme-item",
        ".program-item",
        ".voorstelling",
        ".show-card",
        ".production-card",
        "li.concert",
    ]


def resolve_strategy(source: ScraperSource) -> ParsingStrategy:
    """Strategy instance for a source, falling back to the default."""
    name = source.config.strategy or "default"
    strategy_class = STRATEGY_REGISTRY.get(name)
    if strategy_class is None:
        logger.warning("unknown_strategy", source_id=source.id, strategy=name)
        strategy_class = STRATEGY_REGISTRY["default"]
    return strategy_class(source)


def list_strategies() -> list[str]:
    return sorted(STRATEGY_REGISTRY)
