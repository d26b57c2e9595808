"""
Isle of Man Government Job Scraper

Crawls the services.gov.im job search results, upserts every page as it
is parsed, enriches jobs from their detail pages while the run is under
its fetch budget, and deactivates jobs past their closing date. Each run
is recorded in iom_scrape_log.

Run states: running -> success | partial | failed
"""

import logging
import time
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import Optional, List

from . import config
from .enrichment import enrich_job_details
from .errors import ScrapeFailure, StructuralDriftError
from .fetcher import PageFetcher, open_fetcher
from .models import (
    FetchStats, ScrapeResult, EnrichmentResult,
    STATUS_SUCCESS, STATUS_PARTIAL, STATUS_FAILED,
    URL_TYPE_FULL, URL_TYPE_RECENT, URL_TYPE_ENRICHMENT,
)
from .parser import parse_job_listings, parse_pagination
from .store import JobStore, get_supabase_client
from .utils import truncate

logger = logging.getLogger(__name__)


def setup_logging() -> logging.Logger:
    """
    Configure logging to write to both console and rotating file.

    Returns:
        Logger for the IOM package (module loggers propagate to it).
    """
    package_logger = logging.getLogger("src.IOM")
    package_logger.setLevel(logging.INFO)

    # Prevent duplicate handlers if function is called multiple times
    if package_logger.handlers:
        return package_logger

    config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = config.LOG_DIR / "iom_scraper.log"

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    # Rotating file handler (max 10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    package_logger.addHandler(file_handler)

    return package_logger


@dataclass
class ListingCrawl:
    """Running totals for the listing crawl of one run."""
    stats: FetchStats = field(default_factory=FetchStats)
    found: int = 0
    inserted: int = 0
    updated: int = 0
    pages: int = 0
    sample_html: Optional[str] = None
    fetch_errors: List[Exception] = field(default_factory=list)


def determine_scrape_type(store: JobStore, requested: Optional[str] = None) -> str:
    """
    Pick full or recent mode.

    An empty table always gets a full crawl; otherwise the requested mode
    is used, defaulting to recent (last three days).
    """
    if store.count_jobs() == 0:
        if requested == URL_TYPE_RECENT:
            logger.info("No jobs stored yet, running a full scrape instead of recent")
        return URL_TYPE_FULL
    return requested or URL_TYPE_RECENT


def listing_url_for(scrape_type: str) -> str:
    return config.FULL_LISTING_URL if scrape_type == URL_TYPE_FULL else config.RECENT_LISTING_URL


def crawl_listings(
    store: JobStore,
    fetcher: PageFetcher,
    start_url: str,
    log_id: Optional[int] = None,
    fetch_budget: int = config.FETCH_BUDGET,
    max_pages: int = config.MAX_PAGES,
    request_delay: float = config.REQUEST_DELAY,
    crawl: Optional[ListingCrawl] = None,
) -> ListingCrawl:
    """
    Walk the results pages, upserting each page as soon as it is parsed.

    Stops at the last page, at max_pages, once fetch_budget attempts have
    been made, or at the first failed fetch.
    """
    crawl = crawl or ListingCrawl()
    url = start_url
    visited = set()

    while url and crawl.pages < max_pages and crawl.stats.attempts < fetch_budget:
        if url in visited:
            logger.warning(f"Pagination loops back to {url}, stopping")
            break
        visited.add(url)

        if crawl.pages:
            time.sleep(request_delay)
        crawl.pages += 1

        logger.info(f"Fetching page {crawl.pages}: {url}")
        result = fetcher.fetch(url)
        crawl.stats.record(result)

        if crawl.pages == 1 and result.body:
            crawl.sample_html = truncate(result.body, config.SAMPLE_HTML_MAX_CHARS)

        if not result.ok:
            crawl.fetch_errors.append(result.error)
            logger.warning(f"✗ Page {crawl.pages} failed ({result.outcome}), stopping pagination")
            break

        jobs = parse_job_listings(result.html, url)
        crawl.found += len(jobs)

        if jobs:
            inserted, updated = store.upsert_jobs(jobs)
            crawl.inserted += inserted
            crawl.updated += updated
            store.update_scrape_progress(log_id, crawl.found, crawl.inserted, crawl.updated)
            logger.info(f"✓ Page {crawl.pages}: {len(jobs)} jobs ({inserted} new, {updated} updated)")

        pagination = parse_pagination(result.html, url)
        url = pagination.next_url if pagination.has_more else None

    if url and crawl.stats.attempts >= fetch_budget:
        logger.warning(f"Fetch budget of {fetch_budget} reached, stopping pagination")

    return crawl


def classify_crawl(crawl: ListingCrawl) -> Optional[ScrapeFailure]:
    """
    Decide whether the listing crawl failed outright.

    Checked in order: every attempt blocked; more than half the attempts
    failed and nothing was found; pages loaded but nothing was parsed.
    """
    stats = crawl.stats

    if stats.attempts and stats.waf_blocks == stats.attempts:
        return ScrapeFailure(
            ScrapeFailure.ALL_BLOCKED,
            f"All {stats.attempts} fetch attempts were blocked by the WAF",
        )

    if stats.failure_rate > config.HIGH_FAILURE_RATE and crawl.found == 0:
        return ScrapeFailure(
            ScrapeFailure.HIGH_FAILURE_RATE,
            f"High failure rate: {stats.waf_blocks} blocked and {stats.errors} errors "
            f"in {stats.attempts} attempts, no jobs found",
        )

    if stats.successes and crawl.found == 0:
        return ScrapeFailure(
            ScrapeFailure.PARSER_DRIFT,
            f"Parser found no jobs despite {stats.successes} successful fetches "
            f"(page structure may have changed)",
            cause=StructuralDriftError("No jobs extracted from listing page"),
        )

    return None


def _result_from_crawl(crawl: ListingCrawl, url_type: str, started: float) -> ScrapeResult:
    return ScrapeResult(
        success=True,
        url_type=url_type,
        found=crawl.found,
        inserted=crawl.inserted,
        updated=crawl.updated,
        fetch_stats=crawl.stats,
        duration_seconds=time.monotonic() - started,
    )


def scrape_jobs(
    store: JobStore,
    fetcher: PageFetcher,
    scrape_type: Optional[str] = None,
    fetch_budget: int = config.FETCH_BUDGET,
    max_pages: int = config.MAX_PAGES,
    request_delay: float = config.REQUEST_DELAY,
    enrich_batch_size: int = config.ENRICH_BATCH_SIZE,
) -> ScrapeResult:
    """
    Run a full scrape: listings, enrichment, expiry sweep.

    Args:
        store: Job store
        fetcher: Page fetcher
        scrape_type: "full" or "recent" (None picks automatically)
        fetch_budget: Maximum outbound requests for the run
        max_pages: Maximum listing pages to crawl
        request_delay: Seconds between requests
        enrich_batch_size: Maximum jobs to enrich inline

    Returns:
        ScrapeResult (success False only for run-level failures)
    """
    started = time.monotonic()
    url_type = URL_TYPE_FULL
    log_id = None
    crawl = ListingCrawl()

    logger.info("=" * 80)
    logger.info("IOM Job Scraper Starting")

    try:
        url_type = determine_scrape_type(store, scrape_type)
        logger.info(f"Mode: {url_type}")
        log_id = store.start_scrape_log(url_type)

        crawl_listings(
            store, fetcher, listing_url_for(url_type), log_id,
            fetch_budget=fetch_budget, max_pages=max_pages,
            request_delay=request_delay, crawl=crawl,
        )

        failure = classify_crawl(crawl)
        if failure is not None:
            raise failure

        result = _result_from_crawl(crawl, url_type, started)

        remaining = fetch_budget - crawl.stats.attempts
        if remaining > 0:
            time.sleep(request_delay)
            result.enrichment = enrich_job_details(
                store, fetcher,
                batch_size=min(enrich_batch_size, remaining),
                request_delay=request_delay,
                fetch_budget=remaining,
            )
        else:
            result.enrichment_skipped = True
            logger.info("Fetch budget used by listings, enrichment deferred to a separate run")

        result.expired = store.mark_expired_jobs()

        enrichment_failed = result.enrichment is not None and result.enrichment.failed > 0
        result.status = STATUS_PARTIAL if (crawl.fetch_errors or enrichment_failed) else STATUS_SUCCESS
        result.message = (
            f"Scraped {crawl.found} jobs ({crawl.inserted} new, {crawl.updated} updated)"
        )
        result.duration_seconds = time.monotonic() - started

        error_message = str(crawl.fetch_errors[0]) if crawl.fetch_errors else None
        store.finish_scrape_log(
            log_id, result.status, crawl.found, crawl.inserted, crawl.updated,
            error_message=error_message, sample_html=crawl.sample_html,
        )
        logger.info(f"✓ {result.message} in {result.duration_seconds:.1f}s [{result.status}]")
        return result

    except ScrapeFailure as e:
        logger.error(f"✗ Scrape failed ({e.category}): {e}")
        error = str(e)
        category = e.category
    except Exception as e:
        logger.error(f"✗ Scrape failed: {e}", exc_info=True)
        error = str(e)
        category = None

    store.finish_scrape_log(
        log_id, STATUS_FAILED, crawl.found, crawl.inserted, crawl.updated,
        error_message=error, sample_html=crawl.sample_html,
    )
    result = _result_from_crawl(crawl, url_type, started)
    result.success = False
    result.status = STATUS_FAILED
    result.error = error
    result.failure_category = category
    return result


def enrich_job_details_only(
    store: JobStore,
    fetcher: PageFetcher,
    batch_size: int = config.ENRICH_BATCH_SIZE,
    request_delay: float = config.REQUEST_DELAY,
) -> ScrapeResult:
    """
    Run enrichment on its own, logged as an "enrichment" run.

    Used when the listing crawl spent the fetch budget.
    """
    started = time.monotonic()
    log_id = store.start_scrape_log(URL_TYPE_ENRICHMENT)
    enrichment = EnrichmentResult()

    try:
        enrichment = enrich_job_details(store, fetcher, batch_size=batch_size, request_delay=request_delay)
    except Exception as e:
        logger.error(f"✗ Enrichment run failed: {e}", exc_info=True)
        store.finish_scrape_log(
            log_id, STATUS_FAILED, enrichment.attempted, 0, enrichment.enriched, error_message=str(e),
        )
        return ScrapeResult(
            success=False,
            error=str(e),
            status=STATUS_FAILED,
            url_type=URL_TYPE_ENRICHMENT,
            enrichment=enrichment,
            duration_seconds=time.monotonic() - started,
        )

    status = enrichment.status
    error_message = f"{enrichment.failed} of {enrichment.attempted} jobs failed" if enrichment.failed else None
    store.finish_scrape_log(
        log_id, status, enrichment.attempted, 0, enrichment.enriched, error_message=error_message,
    )

    return ScrapeResult(
        success=status != STATUS_FAILED,
        message=f"Enriched {enrichment.enriched} of {enrichment.attempted} jobs",
        error=error_message if status == STATUS_FAILED else None,
        status=status,
        url_type=URL_TYPE_ENRICHMENT,
        found=enrichment.attempted,
        updated=enrichment.enriched,
        enrichment=enrichment,
        duration_seconds=time.monotonic() - started,
    )


def run(
    scrape_type: Optional[str] = None,
    enrich_only: bool = False,
    fetch_budget: int = config.FETCH_BUDGET,
    max_pages: int = config.MAX_PAGES,
) -> ScrapeResult:
    """
    Connect to Supabase, start Playwright, and run one scrape or enrichment pass.

    Raises:
        ValueError: If Supabase credentials are not set
    """
    store = JobStore(get_supabase_client())
    with open_fetcher() as fetcher:
        if enrich_only:
            return enrich_job_details_only(store, fetcher)
        return scrape_jobs(store, fetcher, scrape_type, fetch_budget=fetch_budget, max_pages=max_pages)


def main():
    """
    Main entry point for the IOM job scraper.

    Runs a scrape in automatic mode (full on an empty table, recent otherwise).
    """
    setup_logging()
    result = run()
    logger.info("IOM Job Scraper finished")
    return result


if __name__ == "__main__":
    main()
