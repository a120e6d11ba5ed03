"""Page fetchers: a static httpx fetcher and a Firecrawl-backed renderer.

Both implement ``PageFetcher`` so the orchestrator can swap them per source
once the rendering detector asks for a dynamic fetch.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from lcl_scraper.config import Settings, get_settings
from lcl_scraper.core.models import ScraperSource
from lcl_scraper.core.rate_limiter import HostRateLimiter
from lcl_scraper.core.report import AttemptLogEntry
from lcl_scraper.core.retry import RetryConfig, create_fetch_retrying
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)

AttemptRecorder = Callable[[AttemptLogEntry], None]

# Realistic desktop User-Agents
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
]


def build_browser_headers(
    user_agent: str | None = None,
    accept_language: str = "nl-NL,nl;q=0.9,en;q=0.8",
    extra_headers: dict[str, str] | None = None,
) -> dict[str, str]:
    """Headers of a common desktop browser, with per-source overrides on top."""
    return {
        "User-Agent": user_agent or USER_AGENTS[0],
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": accept_language,
        "Cache-Control": "no-cache",
        "Upgrade-Insecure-Requests": "1",
        **(extra_headers or {}),
    }


@dataclass
class FetchResult:
    """Outcome of fetching one URL (after retries)."""

    url: str
    status: int
    html: str = ""
    final_url: str = ""
    content_type: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def blocked(self) -> bool:
        return self.status == 403

    @property
    def is_html(self) -> bool:
        content_type = self.content_type.lower()
        return "html" in content_type or (not content_type and "<html" in self.html[:1000].lower())

    @property
    def usable(self) -> bool:
        """A 2xx, HTML-typed response with a body."""
        return self.ok and self.is_html and bool(self.html.strip())


def _outcome(status: int, error: str | None) -> str:
    if status == 0:
        return f"error: {error}" if error else "error"
    if status == 403:
        return "blocked"
    if 200 <= status < 300:
        return "ok"
    return f"http_{status}"


class PageFetcher(ABC):
    """Interface for anything that turns a URL into HTML."""

    name = "base"

    def __init__(
        self,
        limiter: HostRateLimiter,
        recorder: AttemptRecorder | None = None,
        min_interval: float | None = None,
    ):
        self.limiter = limiter
        self.recorder = recorder
        self.min_interval = min_interval

    @abstractmethod
    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        """GET a page, following redirects."""

    async def head(self, url: str) -> FetchResult:
        """Cheap existence probe; fetchers without HEAD fall back to GET."""
        return await self.fetch(url)

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _record(self, result: FetchResult, method: str) -> None:
        entry = AttemptLogEntry(
            url=result.url,
            outcome=_outcome(result.status, result.error),
            status=result.status,
            method=method,
            error=result.error,
        )
        logger.debug(
            "fetch_attempt",
            fetcher=self.name,
            method=method,
            url=result.url,
            status=result.status,
            error=result.error,
        )
        if self.recorder is not None:
            self.recorder(entry)


class StaticPageFetcher(PageFetcher):
    """httpx fetcher with browser headers, host throttling and backoff.

    Example:
        ```python
        limiter = HostRateLimiter(0.5)
        async with StaticPageFetcher(limiter, recorder=report.record_attempt) as fetcher:
            result = await fetcher.fetch("https://example.nl/agenda")
        ```
    """

    name = "static"

    def __init__(
        self,
        limiter: HostRateLimiter,
        recorder: AttemptRecorder | None = None,
        headers: dict[str, str] | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 15.0,
        min_interval: float | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(limiter, recorder, min_interval)
        self.headers = headers or build_browser_headers()
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._sleep = sleep
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client if we created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request_once(
        self, method: str, url: str, headers: dict[str, str] | None
    ) -> FetchResult:
        await self.limiter.wait(url, self.min_interval)
        request_headers = {**self.headers, "Referer": url, **(headers or {})}

        try:
            client = await self._get_client()
            response = await client.request(method, url, headers=request_headers)
        except httpx.TimeoutException:
            result = FetchResult(url=url, status=0, error=f"timeout after {self.timeout}s")
        except httpx.HTTPError as e:
            result = FetchResult(url=url, status=0, error=f"{type(e).__name__}: {e}")
        else:
            result = FetchResult(
                url=url,
                status=response.status_code,
                html=response.text if method == "GET" else "",
                final_url=str(response.url),
                content_type=response.headers.get("content-type", ""),
            )

        self._record(result, method)
        return result

    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        retrying = create_fetch_retrying(self.retry_config, sleep=self._sleep)
        return await retrying(self._request_once, "GET", url, headers)

    async def head(self, url: str) -> FetchResult:
        """Single HEAD attempt; callers fall back to GET on anything but 2xx."""
        return await self._request_once("HEAD", url, None)


class FirecrawlPageFetcher(PageFetcher):
    """Headless rendering through a Firecrawl instance (cloud or self-hosted).

    Rendering itself happens inside Firecrawl; this class only speaks its
    scrape API and maps the answer onto ``FetchResult``.
    """

    name = "firecrawl"

    def __init__(
        self,
        base_url: str,
        limiter: HostRateLimiter,
        recorder: AttemptRecorder | None = None,
        api_key: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
        min_interval: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(limiter, recorder, min_interval)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.headers = headers or {}
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            # Rendering can take a while
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), headers=headers)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        await self.limiter.wait(url, self.min_interval)

        payload: dict[str, Any] = {
            "url": url,
            "formats": ["rawHtml"],
            "onlyMainContent": False,
            "timeout": int(self.timeout * 1000),
        }
        merged_headers = {**self.headers, **(headers or {})}
        if merged_headers:
            payload["headers"] = merged_headers

        try:
            client = await self._get_client()
            response = await client.post(f"{self.base_url}/v1/scrape", json=payload)
            # Older self-hosted instances expose the unversioned route
            if response.status_code == 404:
                response = await client.post(f"{self.base_url}/scrape", json=payload)
        except httpx.TimeoutException:
            result = FetchResult(url=url, status=0, error="firecrawl timeout")
            self._record(result, "RENDER")
            return result
        except httpx.HTTPError as e:
            result = FetchResult(url=url, status=0, error=f"firecrawl: {e}")
            self._record(result, "RENDER")
            return result

        result = self._parse_response(url, response)
        self._record(result, "RENDER")
        return result

    def _parse_response(self, url: str, response: httpx.Response) -> FetchResult:
        if response.status_code != 200:
            return FetchResult(
                url=url,
                status=response.status_code,
                error=f"firecrawl HTTP {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError:
            return FetchResult(url=url, status=0, error="firecrawl returned non-JSON")

        # Cloud: {"success": true, "data": {...}}; self-hosted: {"content": ...}
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        html = body.get("rawHtml") or body.get("html") or body.get("content") or ""
        metadata = body.get("metadata") or {}
        status = int(metadata.get("statusCode") or (200 if html else 0))

        if not html:
            return FetchResult(
                url=url,
                status=0 if status == 200 else status,
                error=data.get("error") or "empty render",
            )

        return FetchResult(
            url=url,
            status=status,
            html=html,
            final_url=metadata.get("sourceURL") or metadata.get("url") or url,
            content_type="text/html",
        )


def create_fetcher_for_source(
    source: ScraperSource,
    limiter: HostRateLimiter,
    recorder: AttemptRecorder | None = None,
    settings: Settings | None = None,
    dynamic: bool = False,
    client: httpx.AsyncClient | None = None,
) -> PageFetcher:
    """Build the fetcher a source should use.

    The dynamic fetcher is returned when asked for (or forced by
    ``config.requires_render``) and one is configured; otherwise the static one.
    """
    settings = settings or get_settings()
    config = source.config
    min_interval = config.rate_limit_ms / 1000 if config.rate_limit_ms else None
    language = config.language or source.language
    headers = build_browser_headers(
        settings.user_agent,
        accept_language=f"{language},{language.split('-')[0]};q=0.9,en;q=0.8",
        extra_headers=config.headers,
    )

    if (dynamic or config.requires_render) and settings.has_dynamic_fetcher:
        return FirecrawlPageFetcher(
            settings.firecrawl_url,
            limiter,
            recorder=recorder,
            api_key=settings.firecrawl_api_key,
            headers=config.headers,
            min_interval=min_interval,
        )

    return StaticPageFetcher(
        limiter,
        recorder=recorder,
        headers=headers,
        retry_config=RetryConfig(
            max_attempts=settings.fetch_max_attempts,
            backoff_schedule=tuple(settings.fetch_backoff_schedule),
        ),
        timeout=settings.fetch_timeout,
        min_interval=min_interval,
        client=client,
    )
