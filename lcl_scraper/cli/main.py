"""Operator CLI.

Usage:
    lcl-scraper run --limit 10 --dry-run
    lcl-scraper run --source 3f2c... --report-file report.json
    lcl-scraper discover --municipality Zwolle --dry-run
    lcl-scraper jobs enqueue && lcl-scraper jobs process --workers 2
    lcl-scraper sources list
    lcl-scraper detect https://www.inzwolle.nl/agenda
"""

import asyncio
import json
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from lcl_scraper import __version__
from lcl_scraper.config import get_settings
from lcl_scraper.core.exceptions import ConfigurationError, JobNotFoundError
from lcl_scraper.core.fetcher import StaticPageFetcher, build_browser_headers
from lcl_scraper.core.job_queue import JobQueue
from lcl_scraper.core.models import JobStatus, ScraperSource
from lcl_scraper.core.orchestrator import Orchestrator, RunOptions
from lcl_scraper.core.rate_limiter import HostRateLimiter
from lcl_scraper.core.render_detector import detect_render_requirement
from lcl_scraper.core.report import RunReport, SourceStatus
from lcl_scraper.core.storage import EventStore, InMemoryStore, create_store
from lcl_scraper.discovery.source_discovery import DiscoveryOptions, SourceDiscovery
from lcl_scraper.logging import setup_logging

app = typer.Typer(
    name="lcl-scraper",
    help="Event discovery and extraction for local agenda sites",
    add_completion=False,
)
jobs_app = typer.Typer(help="Persisted scrape-job queue")
sources_app = typer.Typer(help="Configured scraper sources")
app.add_typer(jobs_app, name="jobs")
app.add_typer(sources_app, name="sources")

console = Console()

STATUS_STYLES = {
    SourceStatus.SUCCESS: "[green]success[/green]",
    SourceStatus.PARTIAL: "[yellow]partial[/yellow]",
    SourceStatus.FAILED: "[red]failed[/red]",
    SourceStatus.BLOCKED: "[magenta]blocked[/magenta]",
}


@app.callback()
def setup() -> None:
    """Configure logging from settings before any command runs."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)


def load_store(sources_file: Path | None = None) -> EventStore:
    """Supabase store, or an in-memory one seeded from a JSON file of sources."""
    if sources_file is not None:
        rows = json.loads(sources_file.read_text(encoding="utf-8"))
        return InMemoryStore([ScraperSource.model_validate(row) for row in rows])
    try:
        return create_store(get_settings())
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)


@app.command()
def run(
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Process only this source id"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Max sources to process"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Extract without writing to the database"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Parallel sources"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Run timeout in seconds"),
    report_file: Optional[Path] = typer.Option(None, "--report-file", help="Write the JSON report here"),
    sources_file: Optional[Path] = typer.Option(
        None, "--sources-file", help="JSON list of sources to use instead of the database"
    ),
):
    """Scrape enabled sources and print the run report.

    Examples:
        lcl-scraper run --limit 5 --dry-run
        lcl-scraper run --concurrency 4 --timeout 900 --report-file report.json
    """
    store = load_store(sources_file)
    options = RunOptions(
        source_id=source,
        limit=limit,
        dry_run=dry_run or sources_file is not None,
        concurrency=concurrency,
        timeout=timeout,
    )

    console.print()
    console.print("[bold blue]LCL EVENT SCRAPER[/bold blue]")
    console.print(f"Dry run: {options.dry_run}, Concurrency: {concurrency or get_settings().max_concurrent_sources}")

    report = asyncio.run(Orchestrator(store).run(options))
    print_report(report)

    if report_file is not None:
        report_file.write_text(json.dumps(report.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"Report written to {report_file}")


def print_report(report: RunReport) -> None:
    """Print per-source table and action items."""
    console.print()
    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Strategy")
    table.add_column("Extracted", justify="right")
    table.add_column("Saved", justify="right")
    table.add_column("Dupes", justify="right")

    for r in report.sources:
        table.add_row(
            r.source_name[:40],
            STATUS_STYLES[r.status],
            r.strategy or "-",
            str(r.events_extracted),
            str(r.events_persisted),
            str(r.duplicates_skipped),
        )
    console.print(table)

    summary = report.summary()
    console.print()
    console.print(
        f"[bold]TOTALS:[/bold] Scraped: {summary['total_scraped']}, "
        f"Saved: {summary['total_saved']}, Duplicates: {summary['total_duplicates']}"
    )
    if report.timed_out:
        console.print("[yellow]Run timed out; unfinished sources are reported as failed[/yellow]")

    if summary["action_items"]:
        console.print()
        console.print("[bold]Action items[/bold]")
        for item in summary["action_items"]:
            console.print(f"  {item['source_name']} ({item['status']}): {item['suggestion']}")


@app.command()
def discover(
    min_population: int = typer.Option(20_000, "--min-population", help="Minimum population"),
    max_municipalities: int = typer.Option(20, "--max-municipalities", help="Max municipalities"),
    municipality: Optional[list[str]] = typer.Option(None, "--municipality", "-m", help="Municipality name"),
    category: Optional[list[str]] = typer.Option(None, "--category", help="Category id"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate without inserting sources"),
):
    """Discover new agenda sources across municipalities.

    Examples:
        lcl-scraper discover --min-population 100000 --max-municipalities 5
        lcl-scraper discover -m Zwolle -m Meppel --category music --dry-run
    """
    store: EventStore = InMemoryStore() if dry_run else load_store()
    options = DiscoveryOptions(
        min_population=min_population,
        max_municipalities=max_municipalities,
        municipalities=municipality or [],
        categories=category or [],
        dry_run=dry_run,
    )
    result = asyncio.run(SourceDiscovery(store).run(options))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Municipality")
    table.add_column("Name")
    table.add_column("URL")
    table.add_column("Confidence", justify="right")
    table.add_column("Enabled")
    for s in result.discovered:
        table.add_row(s.municipality, s.name[:35], s.url, str(s.confidence), "yes" if s.enabled else "no")
    console.print(table)

    stats = result.stats
    console.print(
        f"[bold]Municipalities:[/bold] {stats.municipalities_processed}, "
        f"Candidates: {stats.candidates_found}, Validated: {stats.sources_validated}, "
        f"Inserted: {stats.sources_inserted}, Noise filtered: {stats.noise_filtered}"
    )
    for error in stats.errors[:10]:
        console.print(f"[red]  {error}[/red]")


@app.command()
def prune(
    before: Optional[str] = typer.Option(None, "--before", help="ISO date, default today"),
):
    """Delete events whose start date is before the given date."""
    cutoff = date.fromisoformat(before) if before else date.today()
    store = load_store()
    deleted = asyncio.run(store.prune_past_events(cutoff))
    console.print(f"[green]Deleted {deleted} events before {cutoff.isoformat()}[/green]")


@app.command("reset-events")
def reset_events(
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
):
    """Delete every event row (schema stays in place)."""
    if not yes and not typer.confirm("Delete ALL events?"):
        raise typer.Exit(0)
    deleted = asyncio.run(load_store().reset_events())
    console.print(f"[green]Deleted {deleted} events[/green]")


@app.command()
def detect(url: str = typer.Argument(..., help="Page to inspect")):
    """Report whether a page needs a render-capable fetcher."""
    settings = get_settings()

    async def fetch_page():
        fetcher = StaticPageFetcher(
            HostRateLimiter(settings.min_host_interval),
            headers=build_browser_headers(settings.user_agent),
            timeout=settings.fetch_timeout,
        )
        async with fetcher:
            return await fetcher.fetch(url)

    result = asyncio.run(fetch_page())
    if not result.usable:
        console.print(f"[red]No usable HTML:[/red] status={result.status} {result.error or ''}")
        raise typer.Exit(1)

    verdict = detect_render_requirement(result.html)
    style = "yellow" if verdict.requires_render else "green"
    console.print(f"[{style}]{verdict.fetcher_type}[/{style}] (confidence {verdict.confidence})")
    console.print(f"  Frameworks: {', '.join(verdict.frameworks) or '-'}")
    console.print(f"  Signals: {', '.join(verdict.signals) or '-'}")
    console.print(f"  Body text length: {verdict.body_text_length}")


@app.command()
def version():
    """Show version information."""
    console.print("[bold]LCL Event Scraper[/bold]")
    console.print(f"Version: {__version__}")


# ==========================================
# jobs
# ==========================================


@jobs_app.command("enqueue")
def jobs_enqueue(
    source: Optional[list[str]] = typer.Option(None, "--source", "-s", help="Source id (repeatable)"),
):
    """Create one pending job per source (all enabled sources by default)."""
    queue = JobQueue(load_store())
    jobs = asyncio.run(queue.enqueue(source or None))
    console.print(f"[green]Enqueued {len(jobs)} jobs[/green]")


@jobs_app.command("process")
def jobs_process(
    workers: int = typer.Option(1, "--workers", "-w", help="Concurrent workers"),
):
    """Claim and run pending jobs until the queue is empty."""
    store = load_store()
    queue = JobQueue(store)

    async def drain():
        await queue.mark_interrupted()
        return await queue.process_pending(Orchestrator(store), worker_count=workers)

    result = asyncio.run(drain())
    console.print(
        f"Processed: {result.processed}, "
        f"[green]completed: {result.completed}[/green], [red]failed: {result.failed}[/red]"
    )


@jobs_app.command("retry")
def jobs_retry():
    """Requeue failed jobs that are still under the attempt ceiling."""
    queue = JobQueue(load_store())
    try:
        retried = asyncio.run(queue.retry_failed())
    except JobNotFoundError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[green]Requeued {len(retried)} jobs[/green]")


@jobs_app.command("list")
def jobs_list(
    status: Optional[str] = typer.Option(None, "--status", help="pending, processing, completed, failed"),
    limit: int = typer.Option(50, "--limit", "-l"),
):
    """List scrape jobs, oldest first."""
    try:
        status_enum = JobStatus(status) if status else None
    except ValueError:
        valid = ", ".join(s.value for s in JobStatus)
        raise typer.BadParameter(f"Invalid status. Must be one of: {valid}")

    jobs = asyncio.run(load_store().list_jobs(status_enum, limit))
    table = Table(show_header=True, header_style="bold")
    table.add_column("Job")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Error")
    for job in jobs:
        table.add_row(
            job.id[:8],
            job.source_id[:8],
            job.status.value,
            str(job.attempts),
            str(job.events_inserted),
            (job.error_message or "")[:50],
        )
    console.print(table)


# ==========================================
# sources
# ==========================================


@sources_app.command("list")
def sources_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show health details"),
):
    """List configured sources and their health."""
    sources = asyncio.run(load_store().list_sources())
    if not sources:
        console.print("[yellow]No sources configured[/yellow]")
        raise typer.Exit(0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Failures", justify="right")
    if verbose:
        table.add_column("URL")
        table.add_column("Last error")

    for s in sources:
        if s.auto_disabled:
            state = "[red]auto-disabled[/red]"
        elif s.enabled:
            state = "[green]enabled[/green]"
        else:
            state = "[dim]disabled[/dim]"
        row = [s.id[:8], s.name[:40], state, str(s.consecutive_failures)]
        if verbose:
            row += [s.url, (s.last_error or "")[:50]]
        table.add_row(*row)

    console.print(table)
    console.print(f"[bold]Total:[/bold] {len(sources)} sources")


@sources_app.command("reset")
def sources_reset(source_id: str = typer.Argument(..., help="Source id")):
    """Clear health counters and re-enable an auto-disabled source."""
    if asyncio.run(load_store().reset_source(source_id)):
        console.print(f"[green]Source {source_id} reset[/green]")
    else:
        console.print(f"[red]Source not found:[/red] {source_id}")
        raise typer.Exit(1)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
