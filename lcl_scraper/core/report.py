"""Per-source and per-run reports consumed by the operator dashboard."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

MAX_ACTION_ITEMS = 10
HTML_PREVIEW_LENGTH = 2000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id(now: datetime | None = None) -> str:
    """Run ids look like ``run_2026-07-12T08:00:00+00:00_3f2c9a1b``.

    The random suffix keeps runs started within the same second apart.
    """
    return f"run_{(now or utcnow()).isoformat(timespec='seconds')}_{uuid.uuid4().hex[:8]}"


class SourceStatus(str, Enum):
    """Final outcome of one source pass."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    BLOCKED = "blocked"


class Suggestion:
    """Operator-facing hints attached to failing sources."""

    BLOCKED = "Source blocked the request (403): use a render-capable fetcher or adjust headers"
    NEEDS_RENDER = "Page looks JavaScript-rendered: enable a dynamic fetcher for this source"
    NO_HTML = "No usable HTML on any candidate URL: check the URL or add alternatePaths"
    NO_EVENTS = "HTML fetched but no events extracted: configure selectors for this source"
    NOT_PERSISTED = "Events extracted but none persisted: check persistence credentials and logs"
    ALL_DUPLICATES = "All extracted events were already stored: nothing new on this run"


@dataclass
class AttemptLogEntry:
    """One HTTP attempt, successful or not."""

    url: str
    outcome: str
    status: int = 0
    method: str = "GET"
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "url": self.url,
            "method": self.method,
            "outcome": self.outcome,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class DebugBundle:
    """Artifacts an operator needs to tune a failing source."""

    html_preview: str | None = None
    jsonld_preview: str | None = None
    selectors_used: list[str] = field(default_factory=list)
    llm_prompt: str | None = None
    llm_response: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "html_preview": self.html_preview,
            "jsonld_preview": self.jsonld_preview,
            "selectors_used": self.selectors_used,
            "llm_prompt": self.llm_prompt,
            "llm_response": self.llm_response,
        }


@dataclass
class SourceReport:
    """Outcome of processing one source.

    Built incrementally by the orchestrator, then frozen by ``finalize()``.
    """

    source_id: str
    source_name: str
    source_url: str = ""
    status: SourceStatus = SourceStatus.FAILED
    candidate_urls: list[str] = field(default_factory=list)
    attempts: list[AttemptLogEntry] = field(default_factory=list)
    used_url: str | None = None
    strategy: str | None = None

    cards_found: int = 0
    events_extracted: int = 0
    events_persisted: int = 0
    duplicates_skipped: int = 0
    persist_errors: int = 0
    sample: list[dict[str, Any]] = field(default_factory=list)

    blocked: bool = False
    got_html: bool = False
    render_verdict: dict[str, Any] | None = None
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    debug: DebugBundle | None = None

    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    _frozen: bool = field(default=False, repr=False)

    def record_attempt(self, entry: AttemptLogEntry) -> None:
        if not self._frozen:
            self.attempts.append(entry)

    def add_error(self, message: str) -> None:
        if not self._frozen:
            self.errors.append(message)

    def add_suggestion(self, message: str) -> None:
        if not self._frozen and message not in self.suggestions:
            self.suggestions.append(message)

    def finalize(self, dynamic_fetcher_available: bool = False) -> "SourceReport":
        """Compute final status and suggestions; later mutations are ignored."""
        if self._frozen:
            return self

        if self.blocked:
            self.status = SourceStatus.BLOCKED
        elif self.events_persisted > 0:
            self.status = SourceStatus.SUCCESS
        elif self.events_extracted > 0:
            self.status = SourceStatus.PARTIAL
        else:
            self.status = SourceStatus.FAILED

        for suggestion in build_suggestions(self, dynamic_fetcher_available):
            self.add_suggestion(suggestion)

        self.finished_at = utcnow()
        self._frozen = True
        return self

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds(), 3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "source_url": self.source_url,
            "status": self.status.value,
            "candidate_urls": self.candidate_urls,
            "used_url": self.used_url,
            "attempts": [a.to_dict() for a in self.attempts],
            "strategy": self.strategy,
            "counts": {
                "cards_found": self.cards_found,
                "events_extracted": self.events_extracted,
                "events_persisted": self.events_persisted,
                "duplicates_skipped": self.duplicates_skipped,
                "persist_errors": self.persist_errors,
            },
            "sample": self.sample,
            "render_verdict": self.render_verdict,
            "errors": self.errors,
            "suggestions": self.suggestions,
            "debug": self.debug.to_dict() if self.debug else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
        }


def build_suggestions(report: SourceReport, dynamic_fetcher_available: bool = False) -> list[str]:
    """Derive actionable hints from a source's outcome."""
    suggestions: list[str] = []

    if report.blocked:
        suggestions.append(Suggestion.BLOCKED)

    verdict = report.render_verdict or {}
    if (
        verdict.get("requires_render")
        and report.events_extracted == 0
        and not dynamic_fetcher_available
    ):
        suggestions.append(Suggestion.NEEDS_RENDER)

    if not report.blocked:
        if not report.got_html:
            suggestions.append(Suggestion.NO_HTML)
        elif report.events_extracted == 0:
            suggestions.append(Suggestion.NO_EVENTS)
        elif report.events_persisted == 0 and report.persist_errors > 0:
            suggestions.append(Suggestion.NOT_PERSISTED)
        elif report.events_persisted == 0 and report.duplicates_skipped > 0:
            suggestions.append(Suggestion.ALL_DUPLICATES)
        elif report.events_persisted == 0:
            suggestions.append(Suggestion.NOT_PERSISTED)

    return suggestions


@dataclass
class RunReport:
    """JSON contract rendered by the admin layer."""

    run_id: str = field(default_factory=new_run_id)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    timed_out: bool = False
    dry_run: bool = False
    sources: list[SourceReport] = field(default_factory=list)

    def add(self, report: SourceReport) -> None:
        self.sources.append(report)

    def finish(self) -> "RunReport":
        self.finished_at = utcnow()
        return self

    @property
    def total_scraped(self) -> int:
        return sum(r.events_extracted for r in self.sources)

    @property
    def total_saved(self) -> int:
        return sum(r.events_persisted for r in self.sources)

    def summary(self) -> dict[str, Any]:
        by_status = {status.value: 0 for status in SourceStatus}
        for report in self.sources:
            by_status[report.status.value] += 1

        action_items = [
            {
                "source_id": r.source_id,
                "source_name": r.source_name,
                "status": r.status.value,
                "suggestion": r.suggestions[0] if r.suggestions else None,
            }
            for r in self.sources
            if r.status in (SourceStatus.FAILED, SourceStatus.BLOCKED)
        ][:MAX_ACTION_ITEMS]

        return {
            "total_sources": len(self.sources),
            "by_status": by_status,
            "total_scraped": self.total_scraped,
            "total_saved": self.total_saved,
            "total_duplicates": sum(r.duplicates_skipped for r in self.sources),
            "action_items": action_items,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "timed_out": self.timed_out,
            "dry_run": self.dry_run,
            "sources": [r.to_dict() for r in self.sources],
            "summary": self.summary(),
        }
