"""Discovery routes."""

from typing import Any

from fastapi import APIRouter, Depends

from lcl_scraper.api.deps import get_store
from lcl_scraper.core.storage import EventStore, InMemoryStore
from lcl_scraper.discovery.source_discovery import DiscoveryOptions, SourceDiscovery

router = APIRouter()


@router.post("")
async def run_discovery(
    options: DiscoveryOptions | None = None,
    store: EventStore = Depends(get_store),
) -> dict[str, Any]:
    """Discover sources; ``dryRun`` validates candidates without inserting them."""
    options = options or DiscoveryOptions()
    target = InMemoryStore() if options.dry_run else store
    result = await SourceDiscovery(target).run(options)
    return result.to_dict()
