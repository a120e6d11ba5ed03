"""Tests for the persisted job queue."""

import asyncio

import httpx
import pytest

from lcl_scraper.core.job_queue import JobQueue, QueueResult
from lcl_scraper.core.models import JobStatus
from lcl_scraper.core.orchestrator import Orchestrator
from lcl_scraper.core.storage import InMemoryStore

AGENDA = "https://example.nl/agenda"


@pytest.fixture
def queue_store(make_source) -> InMemoryStore:
    return InMemoryStore(
        [
            make_source(id="good", name="Good"),
            make_source(id="bad", name="Bad", url="https://blocked.nl/agenda"),
        ]
    )


@pytest.fixture
def orchestrator(queue_store, settings, no_llm, limiter, mock_client, jazz_night_page) -> Orchestrator:
    routes = {
        AGENDA: lambda r: httpx.Response(200, text=jazz_night_page, headers={"content-type": "text/html"}),
        "https://blocked.nl/agenda": lambda r: httpx.Response(403),
    }
    return Orchestrator(queue_store, settings=settings, llm=no_llm, limiter=limiter, client=mock_client(routes))


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_defaults_to_enabled_sources(self, queue_store, settings):
        jobs = await JobQueue(queue_store, settings).enqueue(run_id="run_1")

        assert sorted(j.source_id for j in jobs) == ["bad", "good"]
        assert all(j.status == JobStatus.PENDING and j.run_id == "run_1" for j in jobs)

    @pytest.mark.asyncio
    async def test_explicit_sources(self, queue_store, settings):
        jobs = await JobQueue(queue_store, settings).enqueue(["good"])
        assert [j.source_id for j in jobs] == ["good"]
        assert jobs[0].run_id.startswith("run_")


class TestClaim:
    """pending -> processing happens exactly once per job."""

    @pytest.mark.asyncio
    async def test_concurrent_claims_are_exclusive(self, queue_store, settings):
        queue = JobQueue(queue_store, settings)
        (job,) = await queue.enqueue(["good"])

        results = await asyncio.gather(*(queue_store.claim_job(job.id) for _ in range(5)))

        claimed = [r for r in results if r is not None]
        assert len(claimed) == 1
        assert claimed[0].attempts == 1
        assert queue_store.jobs[job.id].status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_claim_next_empty_queue(self, queue_store, settings):
        assert await JobQueue(queue_store, settings).claim_next() is None


class TestProcessPending:
    @pytest.mark.asyncio
    async def test_drains_queue(self, queue_store, settings, orchestrator):
        queue = JobQueue(queue_store, settings)
        jobs = {j.source_id: j for j in await queue.enqueue()}

        result = await queue.process_pending(orchestrator, worker_count=2)

        assert (result.processed, result.completed, result.failed) == (2, 1, 1)
        good = queue_store.jobs[jobs["good"].id]
        bad = queue_store.jobs[jobs["bad"].id]
        assert good.status == JobStatus.COMPLETED
        assert good.events_inserted == 1
        assert bad.status == JobStatus.FAILED
        assert "Blocked (403)" in bad.error_message
        assert await queue.claim_next() is None

    @pytest.mark.asyncio
    async def test_missing_source_fails_job(self, queue_store, settings, orchestrator):
        queue = JobQueue(queue_store, settings)
        (job,) = await queue.enqueue(["deleted-source"])

        result = await queue.process_pending(orchestrator)

        assert result.failed == 1
        assert queue_store.jobs[job.id].error_message == "Source not found: deleted-source"

    def test_result_to_dict(self):
        assert QueueResult(processed=1, failed=1).to_dict() == {
            "processed": 1,
            "completed": 0,
            "failed": 1,
            "reports": [],
        }


class TestRetry:
    """failed -> pending only below the attempt ceiling."""

    @pytest.mark.asyncio
    async def test_retry_ceiling(self, queue_store, settings):
        queue = JobQueue(queue_store, settings.model_copy(update={"job_max_attempts": 2}))
        (job,) = await queue.enqueue(["bad"])

        for expected_attempts in (1, 2):
            claimed = await queue.claim_next()
            assert claimed.attempts == expected_attempts
            await queue_store.fail_job(job.id, "HTTP 500")
            retried = await queue.retry_failed()
            if expected_attempts < 2:
                assert retried == [job.id]

        assert retried == []
        assert queue_store.jobs[job.id].status == JobStatus.FAILED
        assert await queue_store.retry_job(job.id, 2) is False

    @pytest.mark.asyncio
    async def test_retry_only_touches_failed_jobs(self, queue_store, settings):
        queue = JobQueue(queue_store, settings)
        await queue.enqueue(["good"])

        assert await queue.retry_failed() == []


class TestMarkInterrupted:
    @pytest.mark.asyncio
    async def test_processing_jobs_become_failed(self, queue_store, settings):
        queue = JobQueue(queue_store, settings)
        first, second = await queue.enqueue(["good", "bad"])
        await queue_store.claim_job(first.id)

        assert await queue.mark_interrupted() == 1
        assert queue_store.jobs[first.id].status == JobStatus.FAILED
        assert queue_store.jobs[first.id].error_message.startswith("Interrupted")
        assert queue_store.jobs[second.id].status == JobStatus.PENDING


class TestDisabledSources:
    """Auto-disabled sources stay out of the queue until an operator resets them."""

    @pytest.fixture
    def disabled_store(self, make_source) -> InMemoryStore:
        return InMemoryStore(
            [
                make_source(id="good", name="Good"),
                make_source(id="dead", name="Dead", auto_disabled=True, consecutive_failures=5),
            ]
        )

    @pytest.mark.asyncio
    async def test_enqueue_skips_disabled_ids(self, disabled_store, settings):
        jobs = await JobQueue(disabled_store, settings).enqueue(["dead", "good"])
        assert [j.source_id for j in jobs] == ["good"]

    @pytest.mark.asyncio
    async def test_pending_job_for_disabled_source_is_not_crawled(
        self, disabled_store, settings, no_llm, limiter, mock_client, jazz_night_page
    ):
        client = mock_client(
            {AGENDA: lambda r: httpx.Response(200, text=jazz_night_page, headers={"content-type": "text/html"})}
        )
        orchestrator = Orchestrator(disabled_store, settings=settings, llm=no_llm, limiter=limiter, client=client)
        job = await disabled_store.create_job("dead", "run_1")

        result = await JobQueue(disabled_store, settings).process_pending(orchestrator)

        assert (result.processed, result.completed, result.failed) == (1, 0, 1)
        assert disabled_store.jobs[job.id].error_message == "Source disabled: dead"
        assert client.requests == []
        assert disabled_store.events == {}

    @pytest.mark.asyncio
    async def test_retry_leaves_jobs_of_disabled_sources_failed(self, disabled_store, settings):
        queue = JobQueue(disabled_store, settings)
        job = await disabled_store.create_job("dead", "run_1")
        await disabled_store.claim_job(job.id)
        await disabled_store.fail_job(job.id, "Blocked (403)")

        assert await queue.retry_failed() == []
        assert disabled_store.jobs[job.id].status == JobStatus.FAILED
