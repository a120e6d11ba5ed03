"""Unified exception hierarchy for the LCL scraper.

Exception categories:
- Configuration errors (missing credentials)
- Extraction errors (LLM provider failures)
- Storage errors (Supabase failures)
- Job errors (queue state violations)

Only configuration errors are meant to reach the operator as exceptions.
Fetch failures never raise: they travel as ``FetchResult`` values and
attempt-log entries. Everything else is caught at the source boundary and
reported as structured errors on the SourceReport.
"""


class LCLScraperError(Exception):
    """Base exception for all scraper errors."""

    def __init__(self, message: str, source: str | None = None, details: dict | None = None):
        self.message = message
        self.source = source
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.source:
            msg = f"[{self.source}] {msg}"
        return msg


# ============================================================
# CONFIGURATION ERRORS
# ============================================================


class ConfigurationError(LCLScraperError):
    """Raised when required settings are missing."""
    pass


# ============================================================
# EXTRACTION ERRORS
# ============================================================


class ExtractionError(LCLScraperError):
    """Base class for extraction errors."""
    pass


class LLMError(ExtractionError):
    """Raised for LLM API failures."""

    def __init__(
        self,
        message: str,
        model: str | None = None,
        provider: str | None = None,
        source: str | None = None,
    ):
        self.model = model
        self.provider = provider
        super().__init__(
            message,
            source=source,
            details={"model": model, "provider": provider},
        )


# ============================================================
# STORAGE ERRORS
# ============================================================


class StorageError(LCLScraperError):
    """Base class for storage-related errors."""
    pass


class SupabaseError(StorageError):
    """Raised for Supabase-specific errors."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table: str | None = None,
        source: str | None = None,
    ):
        self.operation = operation
        self.table = table
        super().__init__(
            message,
            source=source,
            details={"operation": operation, "table": table},
        )


# ============================================================
# JOB ERRORS
# ============================================================


class JobError(LCLScraperError):
    """Base class for job queue errors."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job id does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}", details={"job_id": job_id})
