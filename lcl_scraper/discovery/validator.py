"""Two-stage validity gate for candidate agenda URLs.

1. Cheap textual check: agenda keywords and date-like text in the HTML.
2. LLM judgement (is this an event agenda, how sure, what to call it).

When the LLM is unavailable or answers garbage, the candidate keeps a fixed
moderate confidence from the cheap gate instead of being discarded.
"""

import re
from dataclasses import dataclass

from lcl_scraper.core.fetcher import PageFetcher
from lcl_scraper.core.llm_client import LLMClient
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.urls import extract_host

logger = get_logger(__name__)

NOISE_DOMAINS = (
    "tripadvisor.",
    "facebook.com",
    "booking.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "pinterest.com",
    "youtube.com",
    "tiktok.com",
    "yelp.",
    "groupon.",
    "expedia.",
    "hotels.",
    "airbnb.",
    "marktplaats.nl",
    "wikipedia.org",
)

AGENDA_PATTERN = re.compile(r"agenda|evenement|activiteit|programma|kalender", re.IGNORECASE)
DATE_PATTERN = re.compile(
    r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"
    r"|januari|februari|maart|april|mei|juni|juli|augustus|september|oktober|november|december",
    re.IGNORECASE,
)

# Above discovery_min_confidence, far below the auto-enable threshold
HEURISTIC_FALLBACK_CONFIDENCE = 65
MAX_HTML_FOR_LLM = 5000

SYSTEM_PROMPT = """Je bent een expert in het analyseren van websites.
Bepaal of deze pagina een evenementenagenda is voor {municipality}.
Antwoord uitsluitend met geminificeerde JSON:
{{"isEventAgenda": boolean, "confidence": 0-100, "suggestedName": "string"}}"""

USER_PROMPT = """URL: {url}
HTML (eerste {limit} tekens):
{html}"""


@dataclass
class ValidationResult:
    """Verdict on one candidate URL."""

    is_valid: bool
    confidence: int = 0
    suggested_name: str = ""
    method: str = "heuristic"  # heuristic | llm | heuristic_fallback
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "suggested_name": self.suggested_name,
            "method": self.method,
            "reason": self.reason,
        }


def is_noise_domain(url: str) -> bool:
    """Social networks, booking sites, marketplaces and encyclopedias."""
    host = extract_host(url) or url.lower()
    for domain in NOISE_DOMAINS:
        if domain.endswith("."):
            # brand prefix: any TLD, any subdomain
            if host.startswith(domain) or "." + domain in host:
                return True
        elif host == domain or host.endswith("." + domain):
            return True
    return False


def passes_cheap_gate(html: str) -> bool:
    return bool(AGENDA_PATTERN.search(html) and DATE_PATTERN.search(html))


def _clamp_confidence(value: object) -> int:
    try:
        return max(0, min(100, int(float(value))))
    except (TypeError, ValueError):
        return 0


class SourceValidator:
    """Validate candidate URLs for one discovery run."""

    def __init__(self, fetcher: PageFetcher, llm: LLMClient | None = None):
        self.fetcher = fetcher
        self.llm = llm

    async def validate(self, url: str, municipality: str) -> ValidationResult:
        result = await self.fetcher.fetch(url)
        if not result.usable:
            return ValidationResult(
                is_valid=False,
                reason=f"unusable response ({result.status or result.error})",
            )

        if not passes_cheap_gate(result.html):
            return ValidationResult(is_valid=False, reason="no agenda or date content")

        fallback = ValidationResult(
            is_valid=True,
            confidence=HEURISTIC_FALLBACK_CONFIDENCE,
            suggested_name=f"Agenda {municipality}",
            method="heuristic_fallback",
        )
        if self.llm is None or not self.llm.is_enabled:
            return fallback

        llm_result = await self.llm.complete(
            SYSTEM_PROMPT.format(municipality=municipality),
            USER_PROMPT.format(url=url, limit=MAX_HTML_FOR_LLM, html=result.html[:MAX_HTML_FOR_LLM]),
            max_tokens=256,
        )
        payload = llm_result.parse_json() if llm_result.ok else None
        if not isinstance(payload, dict) or "isEventAgenda" not in payload:
            logger.info("validation_llm_degraded", url=url, failures=len(llm_result.failures))
            return fallback

        name = payload.get("suggestedName")
        return ValidationResult(
            is_valid=payload.get("isEventAgenda") is True,
            confidence=_clamp_confidence(payload.get("confidence", 50)),
            suggested_name=name.strip() if isinstance(name, str) and name.strip() else f"Agenda {municipality}",
            method="llm",
        )
