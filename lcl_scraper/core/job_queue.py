"""Persisted scrape-job queue.

One ``ScrapeJob`` per (source, run). Workers claim jobs through an atomic
pending -> processing update, so two workers never process the same job.
"""

import asyncio
from dataclasses import dataclass, field

from lcl_scraper.config import Settings, get_settings
from lcl_scraper.core.models import JobStatus, ScrapeJob
from lcl_scraper.core.orchestrator import Orchestrator, RunOptions
from lcl_scraper.core.report import RunReport, SourceStatus, new_run_id
from lcl_scraper.core.storage import EventStore
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)


@dataclass
class QueueResult:
    """Outcome of draining the queue once."""

    processed: int = 0
    completed: int = 0
    failed: int = 0
    reports: list[RunReport] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "completed": self.completed,
            "failed": self.failed,
            "reports": [r.to_dict() for r in self.reports],
        }


class JobQueue:
    """Job lifecycle on top of an ``EventStore``.

    States: pending -> processing -> {completed | failed}. Failed jobs go back
    to pending via ``retry_failed`` while ``attempts < job_max_attempts``;
    beyond that they stay failed until an operator steps in.
    """

    def __init__(self, store: EventStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    @property
    def max_attempts(self) -> int:
        return self.settings.job_max_attempts

    async def enqueue(self, source_ids: list[str] | None = None, run_id: str | None = None) -> list[ScrapeJob]:
        """Create one pending job per source; all enabled sources when none given."""
        run_id = run_id or new_run_id()
        if not source_ids:
            sources = await self.store.list_enabled_sources()
            source_ids = [s.id for s in sources]

        jobs = []
        for source_id in source_ids:
            source = await self.store.get_source(source_id)
            if source is not None and not source.is_runnable:
                logger.warning("job_skipped_disabled_source", source_id=source_id)
                continue
            job = await self.store.create_job(source_id, run_id)
            jobs.append(job)
            logger.info("job_created", job_id=job.id, source_id=source_id, run_id=run_id)
        return jobs

    async def claim_next(self) -> ScrapeJob | None:
        """Claim the oldest pending job; None when the queue is empty."""
        for job in await self.store.list_jobs(JobStatus.PENDING, limit=20):
            claimed = await self.store.claim_job(job.id)
            if claimed is not None:
                logger.info("job_claimed", job_id=claimed.id, attempt=claimed.attempts)
                return claimed
            # another worker won the race for this one
        return None

    async def run_job(self, job: ScrapeJob, orchestrator: Orchestrator) -> RunReport | None:
        """Run a claimed job and move it to completed or failed."""
        source = await self.store.get_source(job.source_id)
        if source is None:
            await self.store.fail_job(job.id, f"Source not found: {job.source_id}")
            logger.error("job_source_missing", job_id=job.id, source_id=job.source_id)
            return None

        if not source.is_runnable:
            await self.store.fail_job(job.id, f"Source disabled: {source.id}")
            logger.warning("job_source_disabled", job_id=job.id, source_id=source.id)
            return None

        try:
            report = await orchestrator.run_sources([source], RunOptions(), run_id=job.run_id)
        except Exception as e:
            await self.store.fail_job(job.id, str(e))
            logger.exception("job_failed", job_id=job.id, error=str(e))
            return None

        source_report = report.sources[0]
        if source_report.status in (SourceStatus.SUCCESS, SourceStatus.PARTIAL):
            await self.store.complete_job(
                job.id,
                events_scraped=source_report.events_extracted,
                events_inserted=source_report.events_persisted,
            )
            logger.info("job_completed", job_id=job.id, inserted=source_report.events_persisted)
        else:
            error = "; ".join(source_report.errors) or source_report.status.value
            await self.store.fail_job(job.id, error)
            logger.warning("job_failed", job_id=job.id, status=source_report.status.value)
        return report

    async def process_pending(
        self, orchestrator: Orchestrator, worker_count: int = 1
    ) -> QueueResult:
        """Drain pending jobs with ``worker_count`` concurrent workers."""
        result = QueueResult()

        async def worker(worker_id: int) -> None:
            while True:
                job = await self.claim_next()
                if job is None:
                    return
                logger.debug("worker_picked_job", worker=worker_id, job_id=job.id)
                report = await self.run_job(job, orchestrator)
                result.processed += 1
                if report is not None:
                    result.reports.append(report)
                finished = await self.store.get_job(job.id)
                if finished is not None and finished.status == JobStatus.COMPLETED:
                    result.completed += 1
                else:
                    result.failed += 1

        await asyncio.gather(*(worker(i) for i in range(max(1, worker_count))))
        logger.info(
            "queue_drained",
            processed=result.processed,
            completed=result.completed,
            failed=result.failed,
        )
        return result

    async def retry_failed(self) -> list[str]:
        """Requeue failed jobs still under the attempt ceiling; returns their ids."""
        retried = []
        for job in await self.store.list_jobs(JobStatus.FAILED, limit=500):
            if job.attempts >= self.max_attempts:
                logger.debug("job_retry_exhausted", job_id=job.id, attempts=job.attempts)
                continue
            source = await self.store.get_source(job.source_id)
            if source is not None and not source.is_runnable:
                logger.info("job_retry_skipped_disabled", job_id=job.id, source_id=job.source_id)
                continue
            if await self.store.retry_job(job.id, self.max_attempts):
                retried.append(job.id)
                logger.info("job_requeued", job_id=job.id, attempts=job.attempts)
        return retried

    async def mark_interrupted(self) -> int:
        """Fail jobs left in processing by a crashed worker."""
        stale = await self.store.list_jobs(JobStatus.PROCESSING, limit=500)
        for job in stale:
            await self.store.fail_job(job.id, "Interrupted: worker stopped while processing")
        if stale:
            logger.warning("jobs_marked_interrupted", count=len(stale))
        return len(stale)
