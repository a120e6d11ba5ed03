"""Command line interface for the LCL event scraper.

Usage:
    python -m lcl_scraper.cli [command] [options]

Commands:
    run         Scrape enabled sources and print the run report
    discover    Find new agenda sources per municipality
    jobs        Enqueue, process, retry and list scrape jobs
    sources     List sources, reset auto-disabled ones
    prune       Delete events whose date has passed
    detect      Check whether a page needs JavaScript rendering
"""

from lcl_scraper.cli.main import app

__all__ = ["app"]
