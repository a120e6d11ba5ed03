"""Pytest configuration and shared fixtures."""

import json
import sys
from collections.abc import Callable
from datetime import date

import httpx
import pytest

from lcl_scraper.config import Settings
from lcl_scraper.core.llm_client import LLMClient
from lcl_scraper.core.models import ScraperSource
from lcl_scraper.core.rate_limiter import HostRateLimiter
from lcl_scraper.core.storage import InMemoryStore

# Fix encoding for Windows
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")

REFERENCE_DATE = date(2026, 7, 12)


# =============================================================================
# Sample pages
# =============================================================================


JAZZ_NIGHT_JSONLD = {
    "@context": "https://schema.org",
    "@type": "Event",
    "name": "Jazz Night",
    "startDate": "2026-07-14T20:00",
    "location": {"@type": "Place", "name": "Town Hall"},
}


def page(body: str, head: str = "") -> str:
    return f"<html><head><title>Agenda</title>{head}</head><body>{body}</body></html>"


def jsonld_script(data: object) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


@pytest.fixture
def jazz_night_page() -> str:
    """Listing page with a single JSON-LD Event."""
    return page("<h1>Agenda</h1><p>Alle evenementen in de stad.</p>", jsonld_script(JAZZ_NIGHT_JSONLD))


@pytest.fixture
def card_page() -> str:
    """Listing page with heuristic event cards and no structured data."""
    return page(
        """
        <nav class="menu"><article class="event-card"><h3>Menu item</h3>
            <time datetime="2026-07-20">20 juli</time></article></nav>
        <div class="agenda">
          <article class="event-card">
            <h3>Kunstmarkt</h3>
            <time datetime="2026-07-18T10:00">18 juli</time>
            <span class="location">Grote Markt</span>
            <p>Kunstenaars tonen hun werk.</p>
            <a href="/agenda/kunstmarkt">Meer</a>
          </article>
          <article class="event-card">
            <h3>Zomerconcert</h3>
            <span class="date">zaterdag 25 juli 2026</span>
            <span class="time">Aanvang: 20.30</span>
            <span class="venue">Stadspark</span>
            <a href="/agenda/zomerconcert">Meer</a>
          </article>
          <article class="event-card">
            <h3>Zonder datum</h3>
            <p>Binnenkort meer informatie.</p>
          </article>
        </div>
        """
    )


# =============================================================================
# Configuration and collaborators
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment: no persistence, no LLM, no waiting."""
    return Settings(
        _env_file=None,
        supabase_url=None,
        supabase_service_role_key=None,
        groq_api_key=None,
        openai_api_key=None,
        firecrawl_url=None,
        slack_webhook_url=None,
        serper_api_key=None,
        min_host_interval=0.0,
        fetch_backoff_schedule=[0.0, 0.0, 0.0],
        enable_deep_scraping=False,
        dry_run=False,
    )


@pytest.fixture
def no_llm(settings) -> LLMClient:
    return LLMClient(providers=[], settings=settings)


@pytest.fixture
def limiter() -> HostRateLimiter:
    return HostRateLimiter(min_interval=0.0)


@pytest.fixture
def make_source() -> Callable[..., ScraperSource]:
    def factory(url: str = "https://example.nl/agenda", **overrides) -> ScraperSource:
        data = {"id": overrides.pop("id", "src-1"), "name": "Example", "url": url}
        data.update(overrides)
        return ScraperSource.model_validate(data)

    return factory


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def mock_client() -> Callable[..., httpx.AsyncClient]:
    """httpx client answering from a {url: response-or-callable} table; 404 otherwise."""

    def fresh(response: httpx.Response) -> httpx.Response:
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def factory(routes: dict, default: httpx.Response | None = None) -> httpx.AsyncClient:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            route = routes.get(str(request.url))
            if callable(route):
                return route(request)
            if route is not None:
                return fresh(route)
            return fresh(default) if default is not None else httpx.Response(404, text="not found")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        client.requests = requests  # type: ignore[attr-defined]
        return client

    return factory
