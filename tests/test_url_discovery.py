"""Tests for candidate listing-URL discovery."""

import httpx
import pytest

from lcl_scraper.core.fetcher import StaticPageFetcher
from lcl_scraper.core.retry import RetryConfig
from lcl_scraper.core.url_discovery import dedupe_urls, discover_listing_urls, find_anchor_candidates
from lcl_scraper.utils.urls import make_absolute_url, strip_fragment, trailing_slash_variant

HOME = "https://example.nl/"

HOMEPAGE = """
<html><body>
  <nav>
    <a href="/agenda#programma">Agenda</a>
    <a href="/wat-is-er-te-doen/activiteiten">Uitgaan</a>
    <a href="/contact">Contact</a>
    <a href="mailto:info@example.nl">Mail ons</a>
  </nav>
</body></html>
"""


def ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text="<html><body>ok</body></html>", headers={"content-type": "text/html"})


@pytest.fixture
def make_fetcher(limiter):
    def factory(client: httpx.AsyncClient) -> StaticPageFetcher:
        return StaticPageFetcher(
            limiter, retry_config=RetryConfig(max_attempts=1, backoff_schedule=(0.0,)), client=client
        )

    return factory


class TestFindAnchorCandidates:
    def test_matches_link_text_and_path(self):
        found = find_anchor_candidates(HOMEPAGE, HOME, ["agenda", "activiteiten"])
        assert found == [
            "https://example.nl/agenda#programma",
            "https://example.nl/wat-is-er-te-doen/activiteiten",
        ]

    def test_respects_base_href(self):
        html = '<html><head><base href="https://cdn.example.nl/site/"></head><body><a href="agenda">Agenda</a></body></html>'
        assert find_anchor_candidates(html, HOME, ["agenda"]) == ["https://cdn.example.nl/site/agenda"]


class TestDedupeUrls:
    def test_ignores_fragments_and_keeps_order(self):
        urls = ["https://a.nl/agenda#top", "https://a.nl/events", "https://a.nl/agenda"]
        assert dedupe_urls(urls) == ["https://a.nl/agenda", "https://a.nl/events"]


class TestDiscoverListingUrls:
    """Anchors, then probed paths, then the source URL itself."""

    @pytest.mark.asyncio
    async def test_order_and_dedup(self, mock_client, make_fetcher, make_source):
        client = mock_client(
            {
                HOME: lambda r: httpx.Response(200, text=HOMEPAGE, headers={"content-type": "text/html"}),
                "https://example.nl/agenda": ok,
            }
        )
        urls = await discover_listing_urls(make_source(url=HOME), make_fetcher(client))

        assert urls == [
            "https://example.nl/agenda",
            "https://example.nl/wat-is-er-te-doen/activiteiten",
            "https://example.nl/agenda/",
            HOME,
        ]

    @pytest.mark.asyncio
    async def test_probe_falls_back_to_get_when_head_refused(self, mock_client, make_fetcher, make_source):
        def get_only(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(405)
            return ok(request)

        client = mock_client({"https://example.nl/evenementen": get_only})
        urls = await discover_listing_urls(make_source(url=HOME), make_fetcher(client))

        assert "https://example.nl/evenementen" in urls
        methods = [r.method for r in client.requests if str(r.url) == "https://example.nl/evenementen"]
        assert methods == ["HEAD", "GET"]

    @pytest.mark.asyncio
    async def test_source_url_always_last(self, mock_client, make_fetcher, make_source):
        client = mock_client({})
        urls = await discover_listing_urls(make_source(url="https://example.nl/uitagenda"), make_fetcher(client))

        assert urls[-1] == "https://example.nl/uitagenda"

    @pytest.mark.asyncio
    async def test_configured_paths_replace_defaults(self, mock_client, make_fetcher, make_source):
        client = mock_client({"https://example.nl/uit": ok, "https://example.nl/agenda": ok})
        source = make_source(url=HOME, config={"alternatePaths": ["/uit"]})

        urls = await discover_listing_urls(source, make_fetcher(client))

        assert urls == ["https://example.nl/uit", "https://example.nl/uit/", HOME]


class TestUrlHelpers:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://a.nl/agenda", "https://a.nl/agenda/"),
            ("https://a.nl/agenda/", "https://a.nl/agenda"),
            ("https://a.nl/", "https://a.nl/"),
        ],
    )
    def test_trailing_slash_variant(self, url, expected):
        assert trailing_slash_variant(url) == expected

    def test_make_absolute_url(self):
        assert make_absolute_url("/a", "https://x.nl/b/c") == "https://x.nl/a"
        assert make_absolute_url("javascript:void(0)", "https://x.nl/") is None
        assert make_absolute_url("", "https://x.nl/") is None

    def test_strip_fragment(self):
        assert strip_fragment("https://x.nl/a#b") == "https://x.nl/a"
