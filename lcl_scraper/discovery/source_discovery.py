"""Proactive discovery of agenda sites per municipality.

For each municipality and category: build diversified query variants,
collect candidate URLs (verified known sources, name-derived patterns and,
when a search API key is configured, web search results), drop noise
domains, validate, and register survivors as disabled ``scraper_sources``
rows unless their confidence clears the auto-enable threshold.
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from lcl_scraper.config import Settings, get_settings
from lcl_scraper.core.exceptions import StorageError
from lcl_scraper.core.fetcher import StaticPageFetcher, build_browser_headers
from lcl_scraper.core.llm_client import LLMClient, get_llm_client
from lcl_scraper.core.models import DiscoveredSource
from lcl_scraper.core.rate_limiter import HostRateLimiter
from lcl_scraper.core.retry import RetryConfig
from lcl_scraper.core.storage import EventStore
from lcl_scraper.discovery.alerts import send_discovery_alert, should_alert
from lcl_scraper.discovery.municipalities import Municipality, select_municipalities
from lcl_scraper.discovery.validator import SourceValidator, is_noise_domain
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.categories import CATEGORIES, CategoryDefinition
from lcl_scraper.utils.urls import is_valid_url, strip_fragment

logger = get_logger(__name__)

# Verified agenda sites, keyed by lowercased municipality name
KNOWN_EVENT_SOURCES: dict[str, list[str]] = {
    "amsterdam": [
        "https://www.iamsterdam.com/nl/zien-en-doen/agenda",
        "https://www.uitagendaamsterdam.nl",
        "https://www.amsterdam.nl/uit/agenda",
    ],
    "rotterdam": [
        "https://www.uitagendarotterdam.nl",
        "https://www.rotterdamfestivals.nl/festivals",
        "https://www.rotterdam.nl/agenda",
    ],
    "den haag": ["https://www.denhaag.nl/nl/agenda", "https://www.denhaag.com/nl/agenda"],
    "utrecht": [
        "https://www.utrechtverwelkomt.nl/agenda",
        "https://www.visit-utrecht.com/nl/agenda",
        "https://www.utrecht.nl/evenementen",
    ],
    "eindhoven": ["https://www.thisiseindhoven.com/nl/agenda", "https://www.eindhoven.nl/agenda"],
    "groningen": ["https://uit.groningen.nl/agenda", "https://www.visitgroningen.nl/agenda"],
    "tilburg": ["https://www.tilburg.com/ontdekken/agenda"],
    "almere": ["https://www.visitalmere.nl/agenda"],
    "breda": ["https://www.bredamarketing.nl/agenda", "https://www.bredauitagenda.nl"],
    "nijmegen": ["https://www.nijmegen.nl/evenementen", "https://www.visitnijmegen.com/agenda"],
    "arnhem": ["https://www.bezoekarnhem.com/agenda"],
    "enschede": ["https://www.uitinenschede.nl"],
    "haarlem": ["https://www.visithaarlem.com/nl/agenda"],
    "leiden": ["https://www.visitleiden.nl/nl/agenda"],
    "delft": ["https://www.indelft.nl/agenda"],
    "maastricht": ["https://www.visitmaastricht.com/agenda"],
    "dordrecht": ["https://www.vvvdordrecht.nl/agenda"],
    "zwolle": ["https://www.inzwolle.nl/agenda"],
    "amersfoort": ["https://www.amersfoort.nl/evenementen", "https://www.visitamersfoort.nl/agenda"],
    "'s-hertogenbosch": ["https://www.bezoekdenbosch.nl/agenda"],
    "leeuwarden": ["https://www.visitleeuwarden.nl/agenda"],
    "apeldoorn": ["https://www.visitapeldoorn.nl/agenda"],
    "deventer": ["https://www.deventer.nl/uit", "https://www.deventeruitagenda.nl"],
}

URL_PATTERNS = (
    "https://www.visit{name}.nl/agenda",
    "https://www.visit{name}.com/agenda",
    "https://www.uitagenda{name}.nl",
    "https://www.{name}.nl/agenda",
    "https://www.{name}.nl/evenementen",
)

AGENDA_SYNONYMS = ("agenda", "evenementen", "uitagenda", "activiteiten", "wat te doen")

SERPER_URL = "https://google.serper.dev/search"


class DiscoveryOptions(BaseModel):
    """Trigger options; accepts camelCase keys from the admin layer."""

    model_config = ConfigDict(populate_by_name=True)

    min_population: int = Field(default=20_000, alias="minPopulation")
    max_municipalities: int | None = Field(default=20, alias="maxMunicipalities")
    municipalities: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    dry_run: bool = Field(default=False, alias="dryRun")


@dataclass
class DiscoveryStats:
    municipalities_processed: int = 0
    categories_processed: int = 0
    searches_performed: int = 0
    candidates_found: int = 0
    noise_filtered: int = 0
    sources_validated: int = 0
    sources_inserted: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class DiscoveryResult:
    dry_run: bool
    duration_seconds: float = 0.0
    stats: DiscoveryStats = field(default_factory=DiscoveryStats)
    discovered: list[DiscoveredSource] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "duration_seconds": self.duration_seconds,
            "stats": asdict(self.stats),
            "discovered": [
                {
                    "url": s.url,
                    "name": s.name,
                    "municipality": s.municipality,
                    "category_hint": s.category_hint,
                    "confidence": s.confidence,
                    "enabled": s.enabled,
                }
                for s in self.discovered
            ],
        }


def clean_name(name: str) -> str:
    """'Capelle aan den IJssel' -> 'capelleaandenijssel'."""
    return "".join(ch for ch in name.lower() if ch.isalnum())


def build_query_variants(municipality: Municipality, category: CategoryDefinition) -> list[str]:
    """Several phrasings per (municipality, category) to widen recall."""
    terms = " ".join(category.search_terms_nl[:2])
    return [f"{synonym} {terms} {municipality.name}".strip() for synonym in AGENDA_SYNONYMS]


def static_candidates(municipality: Municipality) -> list[str]:
    """Known verified URLs, or name-derived patterns when none are known."""
    known = KNOWN_EVENT_SOURCES.get(municipality.name.lower().replace("’", "'"))
    if known:
        return list(known)
    name = clean_name(municipality.name)
    return [pattern.format(name=name) for pattern in URL_PATTERNS]


def canonical_url(url: str) -> str:
    url = strip_fragment(url)
    return url.rstrip("/") if url.count("/") > 3 else url.rstrip("/") + "/"


def should_auto_enable(confidence: int, threshold: int) -> bool:
    """Strictly greater than: a score equal to the threshold stays disabled."""
    return confidence > threshold


class SerperSearch:
    """Web search through serper.dev, used when SERPER_API_KEY is set."""

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None, max_attempts: int = 3):
        self.api_key = api_key
        self.max_attempts = max_attempts
        self._client = client

    async def _post(self, query: str) -> httpx.Response:
        client = self._client or httpx.AsyncClient(timeout=15.0)
        try:
            response = await client.post(
                SERPER_URL,
                headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
                json={"q": query, "gl": "nl", "hl": "nl", "num": 10},
            )
            if response.status_code >= 500 or response.status_code == 429:
                response.raise_for_status()
            return response
        finally:
            if self._client is None:
                await client.aclose()

    async def search(self, query: str) -> list[str]:
        """Organic result links; auth errors and exhausted retries yield []."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, max=8),
                retry=retry_if_exception_type(httpx.HTTPError),
                reraise=True,
            ):
                with attempt:
                    response = await self._post(query)
        except httpx.HTTPError as e:
            logger.warning("search_failed", query=query, error=str(e))
            return []

        if response.status_code in (401, 403):
            logger.error("search_auth_error", status=response.status_code)
            return []
        if response.status_code >= 400:
            return []
        return [r["link"] for r in response.json().get("organic", []) if r.get("link")]


class SourceDiscovery:
    """One discovery run over a selection of municipalities and categories."""

    def __init__(
        self,
        store: EventStore,
        settings: Settings | None = None,
        llm: LLMClient | None = None,
        validator: SourceValidator | None = None,
        search: SerperSearch | None = None,
        limiter: HostRateLimiter | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.llm = llm if llm is not None else get_llm_client()
        self.limiter = limiter or HostRateLimiter(self.settings.min_host_interval)
        self._validator = validator
        if search is None and self.settings.serper_api_key:
            search = SerperSearch(self.settings.serper_api_key)
        self.search = search

    def _build_validator(self) -> tuple[SourceValidator, StaticPageFetcher | None]:
        if self._validator is not None:
            return self._validator, None
        fetcher = StaticPageFetcher(
            self.limiter,
            headers=build_browser_headers(self.settings.user_agent),
            retry_config=RetryConfig(max_attempts=1),
            timeout=self.settings.discovery_fetch_timeout,
        )
        return SourceValidator(fetcher, self.llm), fetcher

    async def run(self, options: DiscoveryOptions | None = None) -> DiscoveryResult:
        options = options or DiscoveryOptions()
        started = time.monotonic()
        result = DiscoveryResult(dry_run=options.dry_run)

        municipalities = select_municipalities(
            min_population=options.min_population,
            max_municipalities=options.max_municipalities,
            names=options.municipalities or None,
        )
        categories = [c for c in CATEGORIES if not options.categories or c.id in options.categories]

        logger.info(
            "discovery_start",
            municipalities=len(municipalities),
            categories=len(categories),
            dry_run=options.dry_run,
        )

        validator, fetcher = self._build_validator()
        try:
            for municipality in municipalities:
                found = await self._process_municipality(
                    municipality, categories, validator, options.dry_run, result.stats
                )
                result.discovered.extend(found)
        finally:
            if fetcher is not None:
                await fetcher.close()

        result.duration_seconds = round(time.monotonic() - started, 2)
        logger.info(
            "discovery_complete",
            inserted=result.stats.sources_inserted,
            validated=result.stats.sources_validated,
            duration_seconds=result.duration_seconds,
        )
        return result

    async def _candidates(
        self, municipality: Municipality, category: CategoryDefinition, stats: DiscoveryStats
    ) -> list[str]:
        urls = static_candidates(municipality)
        for query in build_query_variants(municipality, category):
            stats.searches_performed += 1
            if self.search is not None:
                urls.extend(await self.search.search(query))
        return urls

    async def _process_municipality(
        self,
        municipality: Municipality,
        categories: list[CategoryDefinition],
        validator: SourceValidator,
        dry_run: bool,
        stats: DiscoveryStats,
    ) -> list[DiscoveredSource]:
        discovered: list[DiscoveredSource] = []
        seen: set[str] = set()

        for category in categories:
            stats.categories_processed += 1
            try:
                urls = await self._candidates(municipality, category, stats)
            except Exception as e:
                stats.errors.append(f"Search error for {municipality.name} {category.id}: {e}")
                continue

            for url in urls:
                if not is_valid_url(url):
                    continue
                key = canonical_url(url)
                if key in seen:
                    continue
                seen.add(key)
                if is_noise_domain(url):
                    stats.noise_filtered += 1
                    continue
                stats.candidates_found += 1

                try:
                    source = await self._validate_candidate(url, municipality, category, validator, stats)
                    if source is not None and await self._register(source, municipality, dry_run, stats):
                        discovered.append(source)
                except Exception as e:
                    logger.warning("discovery_candidate_error", url=url, error=str(e))
                    stats.errors.append(f"Validation error for {url}: {e}")

        stats.municipalities_processed += 1
        return discovered

    async def _validate_candidate(
        self,
        url: str,
        municipality: Municipality,
        category: CategoryDefinition,
        validator: SourceValidator,
        stats: DiscoveryStats,
    ) -> DiscoveredSource | None:
        validation = await validator.validate(url, municipality.name)
        logger.debug("candidate_validated", url=url, **validation.to_dict())
        if not validation.is_valid or validation.confidence < self.settings.discovery_min_confidence:
            return None

        stats.sources_validated += 1
        return DiscoveredSource(
            url=url,
            name=validation.suggested_name or f"{municipality.name} - {category.label_nl}",
            municipality=municipality.name,
            coordinates=municipality.coordinates,
            category_hint=category.id,
            confidence=validation.confidence,
            enabled=should_auto_enable(
                validation.confidence, self.settings.discovery_auto_enable_threshold
            ),
        )

    async def _register(
        self,
        source: DiscoveredSource,
        municipality: Municipality,
        dry_run: bool,
        stats: DiscoveryStats,
    ) -> bool:
        """Insert the source; already-known URLs are skipped quietly."""
        if dry_run:
            logger.info("discovery_dry_run_candidate", url=source.url, confidence=source.confidence)
            return True

        try:
            inserted = await self.store.insert_source(source.to_source_row())
        except StorageError as e:
            stats.errors.append(f"Insert failed for {source.url}: {e}")
            return False
        if inserted is None:
            return False

        stats.sources_inserted += 1
        logger.info(
            "source_discovered",
            url=source.url,
            municipality=source.municipality,
            confidence=source.confidence,
            enabled=source.enabled,
        )
        if should_alert(source, municipality, self.settings):
            await send_discovery_alert(source, municipality, self.settings)
        return True
