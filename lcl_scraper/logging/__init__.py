"""Logging configuration and handlers."""

from lcl_scraper.logging.logger import LogContext, get_logger, log_source_run, setup_logging

__all__ = ["LogContext", "get_logger", "log_source_run", "setup_logging"]
