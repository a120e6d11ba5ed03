"""LCL event scraper: discovery, extraction and normalization of local event agendas."""

__version__ = "0.3.0"
