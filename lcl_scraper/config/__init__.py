"""Configuration module."""

from lcl_scraper.config.settings import Settings, get_settings, require_persistence

__all__ = ["Settings", "get_settings", "require_persistence"]
