"""Run routes: trigger a scrape run and get the operator report back."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lcl_scraper.api.deps import get_store
from lcl_scraper.core.orchestrator import Orchestrator, RunOptions
from lcl_scraper.core.storage import EventStore
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class RunRequest(BaseModel):
    """Body of POST /runs."""

    source_id: str | None = None
    limit: int | None = None
    dry_run: bool = False
    concurrency: int | None = None
    timeout: float | None = None


@router.post("")
async def start_run(request: RunRequest, store: EventStore = Depends(get_store)) -> dict[str, Any]:
    """Run the orchestrator synchronously and return the run report JSON."""
    logger.info("run_requested", source_id=request.source_id, dry_run=request.dry_run)
    report = await Orchestrator(store).run(
        RunOptions(
            source_id=request.source_id,
            limit=request.limit,
            dry_run=request.dry_run,
            concurrency=request.concurrency,
            timeout=request.timeout,
        )
    )
    return report.to_dict()
