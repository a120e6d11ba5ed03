"""Persistence boundary: sources, events and scrape jobs.

``SupabaseStore`` talks to the production database; ``InMemoryStore`` backs
dry runs and tests. Both satisfy the ``EventStore`` protocol.
"""

import asyncio
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Protocol

from supabase import Client, PostgrestAPIError, create_client

from lcl_scraper.config import Settings, require_persistence
from lcl_scraper.core.exceptions import JobNotFoundError, SupabaseError
from lcl_scraper.core.models import JobStatus, NormalizedEvent, ScrapeJob, ScraperSource
from lcl_scraper.logging import get_logger

logger = get_logger(__name__)

SOURCES_TABLE = "scraper_sources"
EVENTS_TABLE = "events"
JOBS_TABLE = "scrape_jobs"

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class InsertOutcome(str, Enum):
    """Result of writing one event."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    ERROR = "error"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def health_updates(
    source: ScraperSource,
    success: bool,
    error: str | None,
    disable_after: int,
) -> dict[str, Any]:
    """Column updates for a source after one run.

    Success resets the counters; failure increments them and auto-disables the
    source once ``disable_after`` consecutive failures are reached.
    """
    if success:
        return {"consecutive_failures": 0, "last_error": None}

    failures = source.consecutive_failures + 1
    updates: dict[str, Any] = {"consecutive_failures": failures, "last_error": error}
    if disable_after > 0 and failures >= disable_after:
        updates["auto_disabled"] = True
    return updates


class EventStore(Protocol):
    """Everything the pipeline needs from storage."""

    async def list_enabled_sources(
        self, source_id: str | None = None, limit: int | None = None
    ) -> list[ScraperSource]: ...

    async def list_sources(self) -> list[ScraperSource]: ...

    async def get_source(self, source_id: str) -> ScraperSource | None: ...

    async def insert_source(self, row: dict[str, Any]) -> ScraperSource | None: ...

    async def update_source_health(
        self, source_id: str, success: bool, error: str | None, disable_after: int
    ) -> ScraperSource | None: ...

    async def reset_source(self, source_id: str) -> bool: ...

    async def upsert_event(self, event: NormalizedEvent) -> InsertOutcome: ...

    async def prune_past_events(self, before: date) -> int: ...

    async def reset_events(self) -> int: ...

    async def create_job(self, source_id: str, run_id: str) -> ScrapeJob: ...

    async def get_job(self, job_id: str) -> ScrapeJob | None: ...

    async def claim_job(self, job_id: str) -> ScrapeJob | None: ...

    async def complete_job(self, job_id: str, events_scraped: int, events_inserted: int) -> None: ...

    async def fail_job(self, job_id: str, error: str) -> None: ...

    async def retry_job(self, job_id: str, max_attempts: int) -> bool: ...

    async def list_jobs(
        self, status: JobStatus | None = None, limit: int = 50
    ) -> list[ScrapeJob]: ...


# ==========================================
# Supabase
# ==========================================


class SupabaseStore:
    """EventStore backed by supabase-py.

    supabase-py is synchronous; calls run in a worker thread so one slow query
    does not stall other sources.
    """

    def __init__(self, settings: Settings | None = None, client: Client | None = None):
        if client is None:
            settings = require_persistence(settings)
            client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        self._client = client

    @property
    def client(self) -> Client:
        """Get the Supabase client instance."""
        return self._client

    async def _execute(self, query: Any, operation: str, table: str) -> Any:
        try:
            return await asyncio.to_thread(query.execute)
        except PostgrestAPIError:
            raise
        except Exception as e:
            raise SupabaseError(str(e), operation=operation, table=table) from e

    # ==========================================
    # Sources
    # ==========================================

    async def list_enabled_sources(
        self, source_id: str | None = None, limit: int | None = None
    ) -> list[ScraperSource]:
        query = (
            self._client.table(SOURCES_TABLE)
            .select("*")
            .eq("enabled", True)
            .eq("auto_disabled", False)
            .order("name")
        )
        if source_id:
            query = query.eq("id", source_id)
        if limit:
            query = query.limit(limit)
        response = await self._execute(query, "select", SOURCES_TABLE)
        return [ScraperSource.model_validate(row) for row in response.data]

    async def list_sources(self) -> list[ScraperSource]:
        query = self._client.table(SOURCES_TABLE).select("*").order("name")
        response = await self._execute(query, "select", SOURCES_TABLE)
        return [ScraperSource.model_validate(row) for row in response.data]

    async def get_source(self, source_id: str) -> ScraperSource | None:
        query = self._client.table(SOURCES_TABLE).select("*").eq("id", source_id).limit(1)
        response = await self._execute(query, "select", SOURCES_TABLE)
        return ScraperSource.model_validate(response.data[0]) if response.data else None

    async def insert_source(self, row: dict[str, Any]) -> ScraperSource | None:
        """Insert a source; a URL that already exists returns None."""
        query = self._client.table(SOURCES_TABLE).insert(row)
        try:
            response = await self._execute(query, "insert", SOURCES_TABLE)
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.debug("source_already_known", url=row.get("url"))
                return None
            raise SupabaseError(e.message, operation="insert", table=SOURCES_TABLE) from e
        return ScraperSource.model_validate(response.data[0]) if response.data else None

    async def update_source_health(
        self, source_id: str, success: bool, error: str | None, disable_after: int
    ) -> ScraperSource | None:
        source = await self.get_source(source_id)
        if source is None:
            return None
        updates = health_updates(source, success, error, disable_after)
        query = self._client.table(SOURCES_TABLE).update(updates).eq("id", source_id)
        response = await self._execute(query, "update", SOURCES_TABLE)
        if updates.get("auto_disabled"):
            logger.warning(
                "source_auto_disabled",
                source_id=source_id,
                consecutive_failures=updates["consecutive_failures"],
            )
        return ScraperSource.model_validate(response.data[0]) if response.data else None

    async def reset_source(self, source_id: str) -> bool:
        query = (
            self._client.table(SOURCES_TABLE)
            .update({"auto_disabled": False, "consecutive_failures": 0, "last_error": None})
            .eq("id", source_id)
        )
        response = await self._execute(query, "update", SOURCES_TABLE)
        return bool(response.data)

    # ==========================================
    # Events
    # ==========================================

    async def upsert_event(self, event: NormalizedEvent) -> InsertOutcome:
        """Insert keyed on dedup_hash; an existing hash is a duplicate, not an error."""
        query = self._client.table(EVENTS_TABLE).upsert(
            event.to_supabase_dict(),
            on_conflict="dedup_hash",
            ignore_duplicates=True,
        )
        try:
            response = await self._execute(query, "upsert", EVENTS_TABLE)
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                return InsertOutcome.DUPLICATE
            raise SupabaseError(e.message, operation="upsert", table=EVENTS_TABLE) from e
        # ignore_duplicates returns no row for a conflicting insert
        return InsertOutcome.INSERTED if response.data else InsertOutcome.DUPLICATE

    async def prune_past_events(self, before: date) -> int:
        query = (
            self._client.table(EVENTS_TABLE)
            .delete(count="exact")
            .lt("start_date", before.isoformat())
        )
        response = await self._execute(query, "delete", EVENTS_TABLE)
        return response.count or 0

    async def reset_events(self) -> int:
        """Bulk delete of every event row; the schema is left untouched."""
        query = self._client.table(EVENTS_TABLE).delete(count="exact").neq("dedup_hash", "")
        response = await self._execute(query, "delete", EVENTS_TABLE)
        return response.count or 0

    # ==========================================
    # Jobs
    # ==========================================

    async def create_job(self, source_id: str, run_id: str) -> ScrapeJob:
        row = {
            "id": str(uuid.uuid4()),
            "source_id": source_id,
            "run_id": run_id,
            "status": JobStatus.PENDING.value,
            "attempts": 0,
            "events_scraped": 0,
            "events_inserted": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        query = self._client.table(JOBS_TABLE).insert(row)
        response = await self._execute(query, "insert", JOBS_TABLE)
        return ScrapeJob.model_validate(response.data[0] if response.data else row)

    async def get_job(self, job_id: str) -> ScrapeJob | None:
        query = self._client.table(JOBS_TABLE).select("*").eq("id", job_id).limit(1)
        response = await self._execute(query, "select", JOBS_TABLE)
        return ScrapeJob.model_validate(response.data[0]) if response.data else None

    async def claim_job(self, job_id: str) -> ScrapeJob | None:
        """Atomically move a job pending -> processing.

        The update is conditional on ``status = pending``; a worker that lost
        the race gets no row back and None.
        """
        job = await self.get_job(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return None
        query = (
            self._client.table(JOBS_TABLE)
            .update(
                {
                    "status": JobStatus.PROCESSING.value,
                    "attempts": job.attempts + 1,
                    "updated_at": _now(),
                }
            )
            .eq("id", job_id)
            .eq("status", JobStatus.PENDING.value)
        )
        response = await self._execute(query, "update", JOBS_TABLE)
        return ScrapeJob.model_validate(response.data[0]) if response.data else None

    async def complete_job(self, job_id: str, events_scraped: int, events_inserted: int) -> None:
        query = (
            self._client.table(JOBS_TABLE)
            .update(
                {
                    "status": JobStatus.COMPLETED.value,
                    "events_scraped": events_scraped,
                    "events_inserted": events_inserted,
                    "error_message": None,
                    "updated_at": _now(),
                }
            )
            .eq("id", job_id)
        )
        await self._execute(query, "update", JOBS_TABLE)

    async def fail_job(self, job_id: str, error: str) -> None:
        query = (
            self._client.table(JOBS_TABLE)
            .update(
                {
                    "status": JobStatus.FAILED.value,
                    "error_message": error[:1000],
                    "updated_at": _now(),
                }
            )
            .eq("id", job_id)
        )
        await self._execute(query, "update", JOBS_TABLE)

    async def retry_job(self, job_id: str, max_attempts: int) -> bool:
        """failed -> pending while attempts stay below the ceiling."""
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.FAILED or job.attempts >= max_attempts:
            return False
        query = (
            self._client.table(JOBS_TABLE)
            .update({"status": JobStatus.PENDING.value, "updated_at": _now()})
            .eq("id", job_id)
            .eq("status", JobStatus.FAILED.value)
        )
        response = await self._execute(query, "update", JOBS_TABLE)
        return bool(response.data)

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[ScrapeJob]:
        query = self._client.table(JOBS_TABLE).select("*").order("created_at", desc=False)
        if status is not None:
            query = query.eq("status", status.value)
        query = query.limit(limit)
        response = await self._execute(query, "select", JOBS_TABLE)
        return [ScrapeJob.model_validate(row) for row in response.data]


# ==========================================
# In-memory
# ==========================================


class InMemoryStore:
    """Process-local EventStore for dry runs and tests."""

    def __init__(self, sources: list[ScraperSource] | None = None):
        self.sources: dict[str, ScraperSource] = {s.id: s for s in sources or []}
        self.events: dict[str, NormalizedEvent] = {}
        self.jobs: dict[str, ScrapeJob] = {}
        self._lock = asyncio.Lock()

    async def list_enabled_sources(
        self, source_id: str | None = None, limit: int | None = None
    ) -> list[ScraperSource]:
        sources = [
            s
            for s in sorted(self.sources.values(), key=lambda s: s.name)
            if s.is_runnable and (source_id is None or s.id == source_id)
        ]
        return sources[:limit] if limit else sources

    async def list_sources(self) -> list[ScraperSource]:
        return sorted(self.sources.values(), key=lambda s: s.name)

    async def get_source(self, source_id: str) -> ScraperSource | None:
        return self.sources.get(source_id)

    async def insert_source(self, row: dict[str, Any]) -> ScraperSource | None:
        async with self._lock:
            if any(s.url == row["url"] for s in self.sources.values()):
                return None
            source = ScraperSource.model_validate({"id": row.get("id") or str(uuid.uuid4()), **row})
            self.sources[source.id] = source
            return source

    async def update_source_health(
        self, source_id: str, success: bool, error: str | None, disable_after: int
    ) -> ScraperSource | None:
        async with self._lock:
            source = self.sources.get(source_id)
            if source is None:
                return None
            updated = source.model_copy(update=health_updates(source, success, error, disable_after))
            self.sources[source_id] = updated
            return updated

    async def reset_source(self, source_id: str) -> bool:
        async with self._lock:
            source = self.sources.get(source_id)
            if source is None:
                return False
            self.sources[source_id] = source.model_copy(
                update={"auto_disabled": False, "consecutive_failures": 0, "last_error": None}
            )
            return True

    async def upsert_event(self, event: NormalizedEvent) -> InsertOutcome:
        async with self._lock:
            if event.dedup_hash in self.events:
                return InsertOutcome.DUPLICATE
            self.events[event.dedup_hash] = event
            return InsertOutcome.INSERTED

    async def prune_past_events(self, before: date) -> int:
        async with self._lock:
            stale = [h for h, e in self.events.items() if e.start_date < before]
            for dedup_hash in stale:
                del self.events[dedup_hash]
            return len(stale)

    async def reset_events(self) -> int:
        async with self._lock:
            count = len(self.events)
            self.events.clear()
            return count

    async def create_job(self, source_id: str, run_id: str) -> ScrapeJob:
        now = datetime.now(timezone.utc)
        job = ScrapeJob(
            id=str(uuid.uuid4()),
            source_id=source_id,
            run_id=run_id,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        return job

    async def get_job(self, job_id: str) -> ScrapeJob | None:
        return self.jobs.get(job_id)

    async def _update_job(self, job_id: str, **updates: Any) -> ScrapeJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        updated = job.model_copy(update={**updates, "updated_at": datetime.now(timezone.utc)})
        self.jobs[job_id] = updated
        return updated

    async def claim_job(self, job_id: str) -> ScrapeJob | None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                return None
            return await self._update_job(
                job_id, status=JobStatus.PROCESSING, attempts=job.attempts + 1
            )

    async def complete_job(self, job_id: str, events_scraped: int, events_inserted: int) -> None:
        async with self._lock:
            await self._update_job(
                job_id,
                status=JobStatus.COMPLETED,
                events_scraped=events_scraped,
                events_inserted=events_inserted,
                error_message=None,
            )

    async def fail_job(self, job_id: str, error: str) -> None:
        async with self._lock:
            await self._update_job(job_id, status=JobStatus.FAILED, error_message=error[:1000])

    async def retry_job(self, job_id: str, max_attempts: int) -> bool:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.FAILED or job.attempts >= max_attempts:
                return False
            await self._update_job(job_id, status=JobStatus.PENDING)
            return True

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[ScrapeJob]:
        jobs = sorted(
            self.jobs.values(),
            key=lambda j: j.created_at or datetime.min.replace(tzinfo=timezone.utc),
        )
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return jobs[:limit]


def create_store(settings: Settings) -> EventStore:
    """Supabase store; raises ConfigurationError when credentials are missing."""
    return SupabaseStore(settings)
