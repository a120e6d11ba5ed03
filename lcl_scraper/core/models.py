"""Pydantic models for sources, raw cards, normalized events and jobs.

Field names follow the Supabase schema (scraper_sources, events, scrape_jobs).
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

RAW_HTML_MAX_LENGTH = 2000


class ExtractionStrategy(str, Enum):
    """Which step of the extraction cascade produced a card."""

    STRUCTURED = "structured"
    HEURISTIC = "heuristic"
    LLM = "llm"


# Coarse trust per strategy, stored as NormalizedEvent.confidence
CONFIDENCE_TIERS: dict[ExtractionStrategy, float] = {
    ExtractionStrategy.STRUCTURED: 0.95,
    ExtractionStrategy.HEURISTIC: 0.75,
    ExtractionStrategy.LLM: 0.55,
}


class Coordinates(BaseModel):
    lat: float
    lng: float


class SourceConfig(BaseModel):
    """Free-form per-source crawl configuration (scraper_sources.config JSONB)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    selectors: list[str] = Field(default_factory=list)
    discovery_anchors: list[str] = Field(default_factory=list, alias="discoveryAnchors")
    alternate_paths: list[str] = Field(default_factory=list, alias="alternatePaths")
    headers: dict[str, str] = Field(default_factory=dict)
    rate_limit_ms: int | None = None
    requires_render: bool = False
    strategy: str | None = None
    language: str | None = None
    default_coordinates: Coordinates | None = None


class ScraperSource(BaseModel):
    """One configured crawl target."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    url: str
    enabled: bool = True
    config: SourceConfig = Field(default_factory=SourceConfig)

    # Health
    consecutive_failures: int = 0
    last_error: str | None = None
    auto_disabled: bool = False

    # Discovery provenance
    auto_discovered: bool = False
    discovery_confidence: int | None = None
    location_name: str | None = None  # originating municipality
    default_coordinates: Coordinates | None = None
    language: str = "nl-NL"
    country: str = "NL"

    @field_validator("config", mode="before")
    @classmethod
    def _config_from_null(cls, v: Any) -> Any:
        return v or {}

    @property
    def is_runnable(self) -> bool:
        """Enabled and not auto-disabled; auto-disabled sources need a manual reset."""
        return self.enabled and not self.auto_disabled

    @property
    def coordinates(self) -> Coordinates | None:
        return self.default_coordinates or self.config.default_coordinates


class RawEventCard(BaseModel):
    """Unnormalized extraction result, alive only within one source pass."""

    title: str
    date_text: str
    strategy: ExtractionStrategy
    time_text: str | None = None
    location: str = ""
    description: str = ""
    image_url: str | None = None
    detail_url: str | None = None
    detail_page_time: str | None = None
    category_hint: str | None = None
    raw_html: str = ""
    structured_data: dict[str, Any] | None = None

    @field_validator("raw_html")
    @classmethod
    def _bound_raw_html(cls, v: str) -> str:
        return v[:RAW_HTML_MAX_LENGTH]


class NormalizedEvent(BaseModel):
    """Canonical, storage-ready event record."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source_id: str
    source_url: str
    title: Annotated[str, Field(min_length=1, max_length=500)]
    start_date: date
    dedup_hash: str
    confidence: float = Field(ge=0.0, le=1.0)

    description: str = ""
    end_date: date | None = None
    start_time: str | None = None  # HH:MM
    location_name: str = ""
    address: str | None = None
    price: float | None = None
    currency: str | None = None
    category: str = "community"
    image_url: str | None = None
    detail_url: str | None = None
    raw_html: str = ""
    structured_data: dict[str, Any] | None = None
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    strategy: ExtractionStrategy = ExtractionStrategy.HEURISTIC

    @field_validator("end_date")
    @classmethod
    def end_date_after_start(cls, v: date | None, info) -> date | None:
        """Validate that end_date is after or equal to start_date."""
        if v is not None and "start_date" in info.data:
            if v < info.data["start_date"]:
                raise ValueError("end_date must be after or equal to start_date")
        return v

    def to_supabase_dict(self) -> dict[str, Any]:
        """Convert to a row for the Supabase `events` table."""
        data = {
            "source_id": self.source_id,
            "source_url": self.source_url,
            "title": self.title,
            "description": self.description,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "start_time": self.start_time,
            "venue_name": self.location_name,
            "venue_address": self.address,
            "price": self.price,
            "currency": self.currency,
            "category": self.category,
            "image_url": self.image_url,
            "detail_url": self.detail_url,
            "raw_html": self.raw_html,
            "structured_data": self.structured_data,
            "dedup_hash": self.dedup_hash,
            "extracted_at": self.extracted_at.isoformat(),
            "confidence": self.confidence,
        }
        # Remove None values to let Supabase use defaults
        return {k: v for k, v in data.items() if v is not None}

    def to_sample(self) -> dict[str, Any]:
        """Compact view used in run reports."""
        return {
            "title": self.title,
            "start_date": self.start_date.isoformat(),
            "start_time": self.start_time,
            "location": self.location_name,
            "strategy": self.strategy.value,
            "confidence": self.confidence,
            "dedup_hash": self.dedup_hash,
        }


class DiscoveredSource(BaseModel):
    """Candidate agenda site produced by source discovery."""

    url: str
    name: str
    municipality: str
    coordinates: Coordinates
    category_hint: str
    confidence: int = Field(ge=0, le=100)
    enabled: bool = False

    def to_source_row(self) -> dict[str, Any]:
        """Row for scraper_sources; disabled unless promoted by the caller."""
        return {
            "name": self.name,
            "url": self.url,
            "enabled": self.enabled,
            "config": {},
            "auto_discovered": True,
            "discovery_confidence": self.confidence,
            "location_name": self.municipality,
            "default_coordinates": self.coordinates.model_dump(),
            "auto_disabled": False,
            "consecutive_failures": 0,
            "language": "nl-NL",
            "country": "NL",
        }


class JobStatus(str, Enum):
    """Status of a queued scrape job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ScrapeJob(BaseModel):
    """A queued unit of work binding a source to a run attempt."""

    id: str
    source_id: str
    run_id: str
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    events_scraped: int = 0
    events_inserted: int = 0
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
