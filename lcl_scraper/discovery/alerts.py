"""Operator alerts for high-value discoveries."""

import httpx

from lcl_scraper.config import Settings, get_settings
from lcl_scraper.core.models import DiscoveredSource
from lcl_scraper.discovery.municipalities import Municipality
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)


def should_alert(source: DiscoveredSource, municipality: Municipality, settings: Settings) -> bool:
    """Large municipality and high confidence."""
    return (
        municipality.population >= settings.discovery_alert_min_population
        and source.confidence >= settings.discovery_alert_min_confidence
    )


def build_slack_blocks(source: DiscoveredSource, municipality: Municipality) -> list[dict]:
    status = "Enabled" if source.enabled else "Pending review"
    header = (
        "High-value agenda source discovered and enabled"
        if source.enabled
        else "High-value agenda source discovered"
    )
    fields = [
        f"*Source:*\n{source.name}",
        f"*Municipality:*\n{municipality.name} ({municipality.population:,} inw.)",
        f"*Confidence:*\n{source.confidence}%",
        f"*Category:*\n{source.category_hint}",
        f"*Status:*\n{status}",
        f"*URL:*\n{source.url}",
    ]
    return [
        {"type": "header", "text": {"type": "plain_text", "text": header}},
        {"type": "section", "fields": [{"type": "mrkdwn", "text": f} for f in fields]},
    ]


async def send_discovery_alert(
    source: DiscoveredSource,
    municipality: Municipality,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Log the discovery and post it to Slack when a webhook is configured.

    Delivery failures are logged and reported as False, never raised.
    """
    settings = settings or get_settings()
    logger.warning(
        "high_value_source_discovered",
        url=source.url,
        municipality=municipality.name,
        population=municipality.population,
        confidence=source.confidence,
        enabled=source.enabled,
    )
    if not settings.slack_webhook_url:
        return False

    payload = {
        "text": f"New agenda source for {municipality.name}: {source.url}",
        "blocks": build_slack_blocks(source, municipality),
    }
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await client.post(settings.slack_webhook_url, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("slack_alert_failed", url=source.url, error=str(e))
        return False
    finally:
        if owns_client:
            await client.aclose()
    return True
