"""Candidate listing-URL discovery for a source."""

from bs4 import BeautifulSoup

from lcl_scraper.core.fetcher import PageFetcher
from lcl_scraper.core.models import ScraperSource
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.urls import make_absolute_url, strip_fragment, trailing_slash_variant

logger = get_logger(__name__)

DEFAULT_DISCOVERY_ANCHORS = [
    "agenda",
    "activiteiten",
    "evenementen",
    "events",
    "whatson",
    "calendar",
    "kalender",
]

DEFAULT_ALTERNATE_PATHS = [
    "/agenda",
    "/evenementen",
    "/events",
    "/programma",
    "/kalender",
    "/activiteiten",
    "/wat-te-doen",
    "/uitagenda",
]


def find_anchor_candidates(html: str, page_url: str, anchors: list[str]) -> list[str]:
    """Links whose text or resolved path mentions one of the anchor keywords.

    Hrefs are resolved against ``<base href>`` when the page declares one.
    """
    soup = BeautifulSoup(html, "html.parser")
    base_tag = soup.find("base", href=True)
    base_url = make_absolute_url(base_tag["href"], page_url) if base_tag else None
    base_url = base_url or page_url

    keywords = [a.lower() for a in anchors]
    found: list[str] = []
    for link in soup.find_all("a", href=True):
        resolved = make_absolute_url(link["href"], base_url)
        if not resolved:
            continue
        text = link.get_text(" ", strip=True).lower()
        lowered = resolved.lower()
        if any(k in text or f"/{k}" in lowered for k in keywords):
            found.append(resolved)
    return found


def dedupe_urls(urls: list[str]) -> list[str]:
    """Order-preserving dedup, ignoring #fragments."""
    seen: set[str] = set()
    ordered: list[str] = []
    for url in urls:
        key = strip_fragment(url)
        if key in seen:
            continue
        seen.add(key)
        ordered.append(key)
    return ordered


async def probe_path(fetcher: PageFetcher, url: str) -> str | None:
    """HEAD first, GET when HEAD is refused; final URL of a 2xx answer."""
    result = await fetcher.head(url)
    if not result.ok:
        result = await fetcher.fetch(url)
    if result.ok:
        return result.final_url or url
    return None


async def discover_listing_urls(source: ScraperSource, fetcher: PageFetcher) -> list[str]:
    """Ordered, deduplicated candidate listing URLs for a source.

    1. anchors on the homepage matching the discovery keywords
    2. common agenda paths that answer 2xx, plus their trailing-slash variant
    3. the source URL itself, always last

    A failing homepage crawl only removes step 1.
    """
    config = source.config
    anchors = config.discovery_anchors or DEFAULT_DISCOVERY_ANCHORS
    alternate_paths = config.alternate_paths or DEFAULT_ALTERNATE_PATHS
    candidates: list[str] = []

    try:
        home = await fetcher.fetch(source.url)
        if home.ok and home.html:
            candidates.extend(
                find_anchor_candidates(home.html, home.final_url or source.url, anchors)
            )
    except Exception as e:
        logger.warning("homepage_crawl_failed", source_id=source.id, error=str(e))

    for path in alternate_paths:
        probe_url = make_absolute_url(path, source.url)
        if not probe_url:
            continue
        try:
            final_url = await probe_path(fetcher, probe_url)
        except Exception as e:
            logger.debug("path_probe_failed", url=probe_url, error=str(e))
            continue
        if final_url:
            candidates.append(final_url)
            candidates.append(trailing_slash_variant(final_url))

    candidates.append(source.url)

    ordered = dedupe_urls(candidates)
    logger.debug("candidate_urls", source_id=source.id, count=len(ordered))
    return ordered
