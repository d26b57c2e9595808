"""
Command-line runner for the Isle of Man Government job scraper.

Runs a listing scrape (with inline enrichment), an enrichment-only pass,
or a health check, and prints the result as JSON.
"""

import sys
import json
import argparse
from typing import Dict, Any, List, Optional

from src.IOM import config
from src.IOM.health import check_health
from src.IOM.iom_scraper import run, setup_logging
from src.IOM.models import URL_TYPE_FULL, URL_TYPE_RECENT
from src.IOM.store import JobStore, get_supabase_client


def run_health() -> Dict[str, Any]:
    """Health check against the scrape log."""
    store = JobStore(get_supabase_client())
    return check_health(store).to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Scrape Isle of Man Government job listings into Supabase',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scrape (full on an empty table, recent otherwise)
  python -m src.main

  # Force a full scrape
  python -m src.main --type full

  # Catch up on enrichment only
  python -m src.main --enrich-only

  # Check scraper health
  python -m src.main --health
        """
    )

    parser.add_argument(
        '--type', '-t',
        choices=[URL_TYPE_FULL, URL_TYPE_RECENT],
        help='Listing mode (default: automatic)'
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '--enrich-only', '-e',
        action='store_true',
        help='Only enrich stored jobs missing a description'
    )
    mode.add_argument(
        '--health',
        action='store_true',
        help='Report scraper health and exit'
    )

    parser.add_argument(
        '--fetch-budget',
        type=int,
        default=config.FETCH_BUDGET,
        help=f'Maximum outbound requests per run (default: {config.FETCH_BUDGET})'
    )

    parser.add_argument(
        '--max-pages',
        type=int,
        default=config.MAX_PAGES,
        help=f'Maximum listing pages to crawl (default: {config.MAX_PAGES})'
    )

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point with command-line argument handling."""
    args = build_parser().parse_args(argv)
    log = setup_logging()

    try:
        if args.health:
            output = run_health()
            ok = output["healthy"]
        else:
            result = run(
                scrape_type=args.type,
                enrich_only=args.enrich_only,
                fetch_budget=args.fetch_budget,
                max_pages=args.max_pages,
            )
            output = result.to_dict()
            ok = result.success
    except ValueError as e:
        log.error(f"✗ {e}")
        sys.exit(1)

    print(json.dumps(output, indent=2, default=str))

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
