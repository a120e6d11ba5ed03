"""Entry point for running CLI as module.

Usage:
    python -m lcl_scraper.cli run --dry-run --limit 5
"""

from lcl_scraper.cli.main import main

if __name__ == "__main__":
    main()
