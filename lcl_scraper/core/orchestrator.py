"""Run orchestrator.

Takes every enabled source through discovery, fetching, the extraction
cascade, normalization and dedup, then persists a bounded sample and emits
one ``SourceReport`` per source.

Usage:
    from lcl_scraper.core.orchestrator import Orchestrator, RunOptions

    orchestrator = Orchestrator(store)
    report = await orchestrator.run(RunOptions(limit=10, dry_run=True))
"""

import asyncio
from dataclasses import dataclass
from datetime import date

import httpx

from lcl_scraper.config import Settings, get_settings
from lcl_scraper.core.exceptions import StorageError
from lcl_scraper.core.fetcher import FetchResult, PageFetcher, create_fetcher_for_source
from lcl_scraper.core.llm_client import LLMClient, get_llm_client
from lcl_scraper.core.models import NormalizedEvent, ScraperSource
from lcl_scraper.core.rate_limiter import HostRateLimiter
from lcl_scraper.core.render_detector import detect_render_requirement
from lcl_scraper.core.report import (
    HTML_PREVIEW_LENGTH,
    DebugBundle,
    RunReport,
    SourceReport,
    SourceStatus,
)
from lcl_scraper.core.storage import EventStore, InMemoryStore, InsertOutcome
from lcl_scraper.core.url_discovery import discover_listing_urls
from lcl_scraper.extraction.detail_time import fetch_detail_time
from lcl_scraper.extraction.normalizer import normalize_cards
from lcl_scraper.extraction.strategies import CascadeResult, resolve_strategy
from lcl_scraper.extraction.structured import jsonld_preview
from lcl_scraper.logging import get_logger, log_source_run
from lcl_scraper.utils.deduplication import dedupe_events

logger = get_logger(__name__)

TIMEOUT_ERROR = "Run timed out before this source finished"


@dataclass
class RunOptions:
    """Options for one orchestrator invocation."""

    source_id: str | None = None
    limit: int | None = None
    dry_run: bool = False
    concurrency: int | None = None  # None = settings.max_concurrent_sources
    timeout: float | None = None  # None = settings.run_timeout
    reference: date | None = None  # anchor for relative dates, default today


@dataclass
class _ListingPage:
    url: str
    html: str


class Orchestrator:
    """Sequences sources and isolates their failures.

    Sources run on a bounded worker pool (one worker = strictly sequential)
    sharing a single ``HostRateLimiter``, so two sources on the same host
    still respect the per-host interval.
    """

    def __init__(
        self,
        store: EventStore,
        settings: Settings | None = None,
        llm: LLMClient | None = None,
        limiter: HostRateLimiter | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.llm = llm if llm is not None else get_llm_client()
        self.limiter = limiter or HostRateLimiter(self.settings.min_host_interval)
        self._client = client

    # ==========================================
    # Run
    # ==========================================

    async def run(self, options: RunOptions | None = None) -> RunReport:
        """Process every enabled source; always returns a report, even on timeout."""
        options = options or RunOptions()
        sources = await self.store.list_enabled_sources(options.source_id, options.limit)
        return await self.run_sources(sources, options)

    async def run_sources(
        self,
        sources: list[ScraperSource],
        options: RunOptions | None = None,
        run_id: str | None = None,
    ) -> RunReport:
        options = options or RunOptions()
        dry_run = options.dry_run or self.settings.dry_run
        report = RunReport(dry_run=dry_run)
        if run_id:
            report.run_id = run_id

        concurrency = max(1, options.concurrency or self.settings.max_concurrent_sources)
        timeout = options.timeout if options.timeout is not None else self.settings.run_timeout
        # Dry runs write into a throwaway sink so dedup and counts still behave
        sink: EventStore = InMemoryStore() if dry_run else self.store

        logger.info(
            "run_start",
            run_id=report.run_id,
            sources=len(sources),
            concurrency=concurrency,
            dry_run=dry_run,
        )

        semaphore = asyncio.Semaphore(concurrency)

        # Created up front so a cancelled source keeps its attempt log and counts
        source_reports = [SourceReport(s.id, s.name, s.url) for s in sources]

        async def worker(source: ScraperSource, source_report: SourceReport) -> SourceReport:
            async with semaphore:
                return await self.process_source(
                    source,
                    report.run_id,
                    sink,
                    dry_run=dry_run,
                    reference=options.reference,
                    report=source_report,
                )

        owns_client = self._client is None
        if owns_client:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.fetch_timeout),
                follow_redirects=True,
            )

        tasks = [
            asyncio.create_task(worker(source, source_report))
            for source, source_report in zip(sources, source_reports)
        ]
        try:
            if tasks:
                _, pending = await asyncio.wait(tasks, timeout=timeout)
                if pending:
                    report.timed_out = True
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    logger.warning("run_timeout", run_id=report.run_id, unfinished=len(pending))
        finally:
            if owns_client and self._client is not None:
                await self._client.aclose()
                self._client = None

        for source_report, task in zip(source_reports, tasks):
            if task.cancelled():
                report.add(self._timed_out_report(source_report))
            elif task.exception() is not None:
                report.add(self._crashed_report(source_report, task.exception()))
            else:
                report.add(task.result())

        report.finish()
        summary = report.summary()
        logger.info(
            "run_complete",
            run_id=report.run_id,
            total_scraped=summary["total_scraped"],
            total_saved=summary["total_saved"],
            by_status=summary["by_status"],
            timed_out=report.timed_out,
        )
        return report

    def _timed_out_report(self, report: SourceReport) -> SourceReport:
        """Close out a cancelled source; whatever it persisted before the cut still counts."""
        report.add_error(TIMEOUT_ERROR)
        return report.finalize(self.settings.has_dynamic_fetcher)

    def _crashed_report(self, report: SourceReport, error: BaseException) -> SourceReport:
        report.add_error(f"Unexpected error: {error}")
        return report.finalize(self.settings.has_dynamic_fetcher)

    # ==========================================
    # One source
    # ==========================================

    async def process_source(
        self,
        source: ScraperSource,
        run_id: str,
        sink: EventStore | None = None,
        dry_run: bool = False,
        reference: date | None = None,
        report: SourceReport | None = None,
    ) -> SourceReport:
        """Process one source. Never raises for source-level failures."""
        sink = sink or self.store
        if report is None:
            report = SourceReport(source.id, source.name, source.url)

        with log_source_run(run_id, source.id, source.name):
            logger.info("source_start", url=source.url)
            try:
                await self._process(source, report, sink, reference)
            except StorageError as e:
                logger.error("source_storage_error", error=str(e))
                report.add_error(f"Storage error: {e}")
            except Exception as e:
                logger.exception("source_unexpected_error", error=str(e))
                report.add_error(f"Unexpected error: {e}")

            report.finalize(self.settings.has_dynamic_fetcher)
            logger.info(
                "source_complete",
                status=report.status.value,
                extracted=report.events_extracted,
                persisted=report.events_persisted,
                duplicates=report.duplicates_skipped,
            )

            if not dry_run:
                await self._update_health(source, report)

        return report

    async def _process(
        self,
        source: ScraperSource,
        report: SourceReport,
        sink: EventStore,
        reference: date | None,
    ) -> None:
        fetcher = create_fetcher_for_source(
            source,
            self.limiter,
            recorder=report.record_attempt,
            settings=self.settings,
            client=self._client,
        )
        async with fetcher:
            report.candidate_urls = await discover_listing_urls(source, fetcher)
            page = await self._fetch_listing(fetcher, report.candidate_urls, report)
            if page is None:
                return

            report.used_url = page.url
            report.got_html = True

            verdict = detect_render_requirement(page.html)
            report.render_verdict = verdict.to_dict()

            strategy = resolve_strategy(source)
            llm = self.llm if self.llm.is_enabled else None
            cascade = await strategy.extract(page.html, page.url, llm, reference)

            if not cascade.cards and verdict.requires_render and fetcher.name == "static":
                rendered = await self._render(source, page.url, report)
                if rendered is not None:
                    page = rendered
                    cascade = await strategy.extract(page.html, page.url, llm, reference)

            report.strategy = cascade.strategy.value if cascade.strategy else None
            report.cards_found = len(cascade.cards)

            events = normalize_cards(cascade.cards, source, page.url, reference)
            events, skipped = dedupe_events(events)
            report.events_extracted = len(events)
            report.duplicates_skipped = skipped

            if not events:
                report.debug = self._debug_bundle(page, cascade)
                logger.warning("source_no_events", url=page.url)
                return

            sample = events[: self.settings.persist_sample_size]
            if self.settings.enable_deep_scraping:
                await self._enrich_times(fetcher, sample)

            persisted = await self._persist(sample, sink, report)
            shown = persisted or sample
            report.sample = [e.to_sample() for e in shown[: self.settings.report_sample_size]]

    async def _fetch_listing(
        self, fetcher: PageFetcher, candidates: list[str], report: SourceReport
    ) -> _ListingPage | None:
        """First candidate that yields usable HTML; a 403 stops the search."""
        for url in candidates:
            result = await fetcher.fetch(url)

            if result.blocked:
                report.blocked = True
                report.add_error(f"Blocked (403) at {url}")
                logger.warning("source_blocked", url=url)
                return None

            if result.usable:
                return _ListingPage(result.final_url or url, result.html)

            report.add_error(self._describe_unusable(result))

        logger.warning("source_no_html", candidates=len(candidates))
        return None

    @staticmethod
    def _describe_unusable(result: FetchResult) -> str:
        if result.status == 0:
            return f"Network error at {result.url}: {result.error}"
        if result.ok and not result.is_html:
            return f"Non-HTML content at {result.url}: {result.content_type or 'unknown'}"
        if result.ok:
            return f"Empty body at {result.url}"
        return f"HTTP {result.status} at {result.url}"

    async def _render(
        self, source: ScraperSource, url: str, report: SourceReport
    ) -> _ListingPage | None:
        """Refetch through the dynamic fetcher when one is configured."""
        if not self.settings.has_dynamic_fetcher:
            return None

        dynamic = create_fetcher_for_source(
            source,
            self.limiter,
            recorder=report.record_attempt,
            settings=self.settings,
            dynamic=True,
        )
        async with dynamic:
            result = await dynamic.fetch(url)

        if not result.usable:
            report.add_error(f"Dynamic fetch failed at {url}: {result.error or result.status}")
            return None
        logger.info("source_rendered", url=url)
        return _ListingPage(result.final_url or url, result.html)

    async def _enrich_times(self, fetcher: PageFetcher, events: list[NormalizedEvent]) -> None:
        """Fill missing start times from detail pages."""
        for event in events:
            if event.start_time or not event.detail_url:
                continue
            time_text = await fetch_detail_time(fetcher, event.detail_url)
            if time_text:
                event.start_time = time_text
                logger.debug("detail_time_found", title=event.title, time=time_text)

    async def _persist(
        self, events: list[NormalizedEvent], sink: EventStore, report: SourceReport
    ) -> list[NormalizedEvent]:
        persisted = []
        for event in events:
            try:
                outcome = await sink.upsert_event(event)
            except StorageError as e:
                outcome = InsertOutcome.ERROR
                report.add_error(f"Persist failed for '{event.title}': {e}")
                logger.error("event_persist_failed", title=event.title, error=str(e))

            if outcome == InsertOutcome.INSERTED:
                report.events_persisted += 1
                persisted.append(event)
            elif outcome == InsertOutcome.DUPLICATE:
                report.duplicates_skipped += 1
            else:
                report.persist_errors += 1
        return persisted

    def _debug_bundle(self, page: _ListingPage, cascade: CascadeResult) -> DebugBundle:
        bundle = DebugBundle(
            html_preview=page.html[:HTML_PREVIEW_LENGTH],
            jsonld_preview=jsonld_preview(page.html),
            selectors_used=cascade.selectors,
        )
        if cascade.llm is not None:
            bundle.llm_prompt = cascade.llm.prompt
            bundle.llm_response = cascade.llm.response
        return bundle

    async def _update_health(self, source: ScraperSource, report: SourceReport) -> None:
        success = report.status in (SourceStatus.SUCCESS, SourceStatus.PARTIAL)
        error = None if success else (report.errors[0] if report.errors else report.status.value)
        try:
            await self.store.update_source_health(
                source.id,
                success=success,
                error=error,
                disable_after=self.settings.auto_disable_after_failures,
            )
        except StorageError as e:
            logger.error("source_health_update_failed", error=str(e))
