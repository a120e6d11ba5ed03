"""End-to-end tests for the run orchestrator.

All HTTP goes through an httpx MockTransport; storage is the in-memory store.
"""

import asyncio

import httpx
import pytest
from conftest import REFERENCE_DATE, page

from lcl_scraper.core.exceptions import SupabaseError
from lcl_scraper.core.orchestrator import TIMEOUT_ERROR, Orchestrator, RunOptions
from lcl_scraper.core.report import SourceStatus, Suggestion
from lcl_scraper.core.storage import InMemoryStore

AGENDA = "https://example.nl/agenda"


def html(body: str):
    return lambda request: httpx.Response(200, text=body, headers={"content-type": "text/html"})


def status(code: int, content_type: str = "text/html", body: str = "<html><body></body></html>"):
    return lambda request: httpx.Response(code, text=body, headers={"content-type": content_type})


class FailingStore(InMemoryStore):
    """Store whose event writes always fail."""

    async def upsert_event(self, event):
        raise SupabaseError("connection lost", operation="upsert", table="events")


@pytest.fixture
def make_orchestrator(settings, no_llm, limiter, mock_client):
    def factory(store, routes: dict, default=None, **setting_overrides) -> Orchestrator:
        configured = settings.model_copy(update=setting_overrides) if setting_overrides else settings
        return Orchestrator(
            store,
            settings=configured,
            llm=no_llm,
            limiter=limiter,
            client=mock_client(routes, default),
        )

    return factory


def options(**kwargs) -> RunOptions:
    return RunOptions(reference=REFERENCE_DATE, **kwargs)


# =============================================================================
# Tests: happy path
# =============================================================================


class TestJazzNight:
    """A listing page with one JSON-LD event, stored end to end."""

    @pytest.mark.asyncio
    async def test_event_is_stored(self, make_orchestrator, make_source, jazz_night_page):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page)})

        run = await orchestrator.run(options())

        report = run.sources[0]
        assert report.status == SourceStatus.SUCCESS
        assert report.used_url == AGENDA
        assert report.strategy == "structured"
        assert report.events_extracted == 1
        assert report.events_persisted == 1

        sample = report.sample[0]
        assert sample["title"] == "Jazz Night"
        assert sample["start_date"] == "2026-07-14"
        assert sample["start_time"] == "20:00"
        assert sample["confidence"] == 0.95

        (event,) = store.events.values()
        assert event.location_name == "Town Hall"
        assert event.dedup_hash == sample["dedup_hash"]

    @pytest.mark.asyncio
    async def test_second_run_reports_duplicates(self, make_orchestrator, make_source, jazz_night_page):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page)})

        await orchestrator.run(options())
        second = (await orchestrator.run(options())).sources[0]

        assert second.events_persisted == 0
        assert second.duplicates_skipped == 1
        assert second.status == SourceStatus.PARTIAL
        assert Suggestion.ALL_DUPLICATES in second.suggestions
        assert len(store.events) == 1

    @pytest.mark.asyncio
    async def test_heuristic_cards(self, make_orchestrator, make_source, card_page):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(store, {AGENDA: html(card_page)})

        report = (await orchestrator.run(options())).sources[0]

        assert report.strategy == "heuristic"
        assert report.events_persisted == 2
        assert {e.title for e in store.events.values()} == {"Kunstmarkt", "Zomerconcert"}

    @pytest.mark.asyncio
    async def test_success_resets_failure_counter(self, make_orchestrator, make_source, jazz_night_page):
        store = InMemoryStore([make_source(consecutive_failures=3, last_error="HTTP 500")])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page)})

        await orchestrator.run(options())

        source = store.sources["src-1"]
        assert source.consecutive_failures == 0
        assert source.last_error is None


# =============================================================================
# Tests: failures
# =============================================================================


class TestFailures:
    """Per-source failures end up in the report, never as exceptions."""

    @pytest.mark.asyncio
    async def test_blocked_everywhere(self, make_orchestrator, make_source):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(store, {}, default=httpx.Response(403, text="forbidden"))

        report = (await orchestrator.run(options())).sources[0]

        assert report.status == SourceStatus.BLOCKED
        assert report.blocked
        assert Suggestion.BLOCKED in report.suggestions
        assert store.sources["src-1"].consecutive_failures == 1
        assert store.sources["src-1"].last_error.startswith("Blocked (403)")

    @pytest.mark.asyncio
    async def test_non_html_everywhere(self, make_orchestrator, make_source):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(
            store, {}, default=httpx.Response(200, text="hello", headers={"content-type": "text/plain"})
        )

        report = (await orchestrator.run(options())).sources[0]

        assert report.status == SourceStatus.FAILED
        assert not report.got_html
        assert f"Non-HTML content at {AGENDA}: text/plain" in report.errors
        assert Suggestion.NO_HTML in report.suggestions

    @pytest.mark.asyncio
    async def test_page_without_events_gets_debug_bundle(self, make_orchestrator, make_source):
        store = InMemoryStore([make_source()])
        body = page("<main><h1>Welkom</h1>" + "<p>Nieuws uit de gemeente.</p>" * 30 + "</main>")
        orchestrator = make_orchestrator(store, {AGENDA: html(body)})

        report = (await orchestrator.run(options())).sources[0]

        assert report.status == SourceStatus.FAILED
        assert report.got_html
        assert Suggestion.NO_EVENTS in report.suggestions
        assert report.debug.html_preview.startswith("<html>")
        assert report.debug.selectors_used

    @pytest.mark.asyncio
    async def test_js_shell_without_dynamic_fetcher(self, make_orchestrator, make_source):
        store = InMemoryStore([make_source()])
        body = page('<div id="root"></div>', '<script src="/react.production.min.js"></script>')
        orchestrator = make_orchestrator(store, {AGENDA: html(body)})

        report = (await orchestrator.run(options())).sources[0]

        assert report.render_verdict["requires_render"] is True
        assert Suggestion.NEEDS_RENDER in report.suggestions

    @pytest.mark.asyncio
    async def test_storage_errors_are_counted(self, make_orchestrator, make_source, jazz_night_page):
        store = FailingStore([make_source()])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page)})

        report = (await orchestrator.run(options())).sources[0]

        assert report.status == SourceStatus.PARTIAL
        assert report.persist_errors == 1
        assert Suggestion.NOT_PERSISTED in report.suggestions
        assert any("connection lost" in e for e in report.errors)

    @pytest.mark.asyncio
    async def test_auto_disable_after_repeated_failures(self, make_orchestrator, make_source):
        store = InMemoryStore([make_source(consecutive_failures=4)])
        orchestrator = make_orchestrator(
            store, {}, default=httpx.Response(403), auto_disable_after_failures=5
        )

        await orchestrator.run(options())

        source = store.sources["src-1"]
        assert source.consecutive_failures == 5
        assert source.auto_disabled is True
        assert await store.list_enabled_sources() == []

    @pytest.mark.asyncio
    async def test_one_failing_source_does_not_stop_others(
        self, make_orchestrator, make_source, jazz_night_page
    ):
        sources = [
            make_source(id="a", name="Alpha", url="https://blocked.nl/agenda"),
            make_source(id="b", name="Beta"),
        ]
        store = InMemoryStore(sources)
        orchestrator = make_orchestrator(
            store,
            {
                AGENDA: html(jazz_night_page),
                "https://blocked.nl/agenda": status(403),
            },
        )

        run = await orchestrator.run(options())

        assert [r.status for r in run.sources] == [SourceStatus.BLOCKED, SourceStatus.SUCCESS]
        summary = run.summary()
        assert summary["by_status"]["blocked"] == 1
        assert summary["total_saved"] == 1
        assert summary["action_items"][0]["source_id"] == "a"


# =============================================================================
# Tests: run options
# =============================================================================


class TestRunOptions:
    @pytest.mark.asyncio
    async def test_dry_run_leaves_store_untouched(self, make_orchestrator, make_source, jazz_night_page):
        store = InMemoryStore([make_source(consecutive_failures=2)])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page)})

        run = await orchestrator.run(options(dry_run=True))

        assert run.dry_run is True
        assert run.sources[0].events_extracted == 1
        assert store.events == {}
        assert store.sources["src-1"].consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_source_filter_and_limit(self, make_orchestrator, make_source):
        sources = [make_source(id=f"s{i}", name=f"Bron {i}", url=f"https://s{i}.nl/") for i in range(3)]
        store = InMemoryStore(sources)
        orchestrator = make_orchestrator(store, {})

        only = await orchestrator.run(options(source_id="s1"))
        limited = await orchestrator.run(options(limit=2))

        assert [r.source_id for r in only.sources] == ["s1"]
        assert [r.source_id for r in limited.sources] == ["s0", "s1"]

    @pytest.mark.asyncio
    async def test_timeout_keeps_finished_results(self, make_orchestrator, make_source, jazz_night_page):
        async def hang(request):
            await asyncio.sleep(30)
            return httpx.Response(200, text="too late")

        fast = make_source(id="fast", name="Fast")
        slow = make_source(id="slow", name="Slow", url="https://slow.nl/agenda")
        store = InMemoryStore([fast, slow])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page), "https://slow.nl/agenda": hang})

        run = await orchestrator.run_sources([fast, slow], options(concurrency=2, timeout=0.5))

        assert run.timed_out is True
        fast_report, slow_report = run.sources
        assert fast_report.status == SourceStatus.SUCCESS
        assert slow_report.status == SourceStatus.FAILED
        assert slow_report.errors == [TIMEOUT_ERROR]
        assert store.sources["slow"].consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_timed_out_source_keeps_its_attempt_log(self, make_orchestrator, make_source):
        async def hang(request):
            await asyncio.sleep(30)
            return httpx.Response(200, text="too late")

        slow = make_source(id="slow", name="Slow", url="https://slow.nl/")
        store = InMemoryStore([slow])
        orchestrator = make_orchestrator(
            store,
            {"https://slow.nl/": html(page("<p>Welkom</p>")), "https://slow.nl/agenda": hang},
        )

        run = await orchestrator.run_sources([slow], options(timeout=0.5))

        report = run.sources[0]
        assert report.status == SourceStatus.FAILED
        assert report.errors == [TIMEOUT_ERROR]
        assert [(a.url, a.outcome) for a in report.attempts] == [("https://slow.nl/", "ok")]
        assert report.finished_at is not None

    @pytest.mark.asyncio
    async def test_persist_sample_size_bounds_writes(self, make_orchestrator, make_source, card_page):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(store, {AGENDA: html(card_page)}, persist_sample_size=1)

        report = (await orchestrator.run(options())).sources[0]

        assert report.events_extracted == 2
        assert report.events_persisted == 1
        assert len(store.events) == 1

    @pytest.mark.asyncio
    async def test_deep_scraping_fills_missing_times(self, make_orchestrator, make_source):
        listing = page(
            '<article class="event-card"><h3>Lezing</h3><time datetime="2026-07-20">20 juli</time>'
            '<a href="/lezing-bibliotheek">Meer</a></article>'
        )
        detail = page("<h1>Lezing</h1><p>Aanvang: 19.30 uur in de bibliotheek.</p>")
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(
            store,
            {AGENDA: html(listing), "https://example.nl/lezing-bibliotheek": html(detail)},
            enable_deep_scraping=True,
        )

        report = (await orchestrator.run(options())).sources[0]

        assert report.sample[0]["start_time"] == "19:30"

    @pytest.mark.asyncio
    async def test_report_to_dict(self, make_orchestrator, make_source, jazz_night_page):
        store = InMemoryStore([make_source()])
        orchestrator = make_orchestrator(store, {AGENDA: html(jazz_night_page)})

        data = (await orchestrator.run(options())).to_dict()

        assert data["run_id"].startswith("run_")
        assert data["summary"]["total_scraped"] == 1
        assert data["sources"][0]["counts"]["events_persisted"] == 1
        assert data["sources"][0]["attempts"]
