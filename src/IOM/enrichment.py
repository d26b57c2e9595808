"""
Detail-page enrichment for Isle of Man jobs

Listing pages only give title, employer, classification and hours. This
step fetches each job's detail page (and, for jobtrain stubs, the jobtrain
advert) and writes the full record back. Jobs are processed one at a time
with a fixed delay between requests.
"""

import logging
import time
from typing import Optional, Dict, Any, List

from . import config
from .fetcher import PageFetcher
from .jobtrain import is_jobtrain_redirect, extract_jobtrain_url, parse_jobtrain_detail
from .models import JobRecord, JobDetail, SecondaryDetail, EnrichmentResult, FetchBudget
from .parser import parse_job_detail
from .store import JobStore
from .utils import parse_salary_range, parse_date, derive_hours_type

logger = logging.getLogger(__name__)


ATTRIBUTION_FOOTER = "\n\n---\n\nFor more details and to apply, visit:\n"

# Detail field -> iom_jobs column
COLUMN_FOR_FIELD = {
    "salary": "salary_text",
}

# Secondary fields that may fill gaps in the primary record
SECONDARY_FILL = {
    "salary": "salary_text",
    "job_type": "job_type",
    "location": "location",
    "employer": "employer",
    "closing_date": "closing_date",
    "posted_date": "posted_date",
}


def build_detail_updates(detail: JobDetail, raw_html: Optional[str] = None) -> Dict[str, Any]:
    """
    Turn a parsed detail page into iom_jobs column values.

    Promoted fields go to their columns; everything else lands in
    additional_info, with the page labels in additional_labels.
    """
    updates: Dict[str, Any] = {}

    for key, value in detail.fields.items():
        if key in detail.extras:
            continue
        updates[COLUMN_FOR_FIELD.get(key, key)] = value

    updates["description"] = detail.description
    updates["apply_url"] = detail.apply_url
    updates["additional_info"] = detail.extras
    updates["additional_labels"] = dict(detail.labels)
    updates["raw_html"] = raw_html
    return updates


def apply_secondary_detail(
    updates: Dict[str, Any],
    secondary: SecondaryDetail,
    secondary_url: str,
) -> Dict[str, Any]:
    """
    Fold a jobtrain page into the primary updates.

    The jobtrain description replaces the stub (with a link back to the
    advert). Other jobtrain fields only fill values the gov.im page did not
    give; they may still replace what is stored from earlier runs.
    """
    if secondary.description:
        updates["description"] = f"{secondary.description}{ATTRIBUTION_FOOTER}{secondary_url}"
        updates["apply_url"] = updates.get("apply_url") or secondary_url

    for field_name, column in SECONDARY_FILL.items():
        value = getattr(secondary, field_name)
        if not value or updates.get(column):
            continue
        if column in ("closing_date", "posted_date"):
            value = parse_date(value)
            if not value:
                continue
        updates[column] = value

    return updates


def recompute_derived_fields(updates: Dict[str, Any], job: Optional[JobRecord] = None) -> Dict[str, Any]:
    """Salary bounds from the salary text, hours_type from the hours option."""
    salary_text = updates.get("salary_text") or (job.salary_text if job else None)
    if salary_text:
        salary = parse_salary_range(salary_text)
        updates["salary_min"] = salary.min
        updates["salary_max"] = salary.max
        updates["salary_type"] = salary.type

    hours_option = updates.get("hours_option") or (job.hours_option if job else None)
    hours_type = derive_hours_type(hours_option)
    if hours_type:
        updates["hours_type"] = hours_type

    return updates


def fetch_secondary_detail(
    fetcher: PageFetcher,
    description: str,
    request_delay: float = config.REQUEST_DELAY,
    budget: Optional[FetchBudget] = None,
) -> Optional[tuple]:
    """
    Follow a jobtrain stub.

    Returns:
        (jobtrain url, SecondaryDetail) or None when there is no link, the
        fetch budget is spent, or the fetch failed
    """
    url = extract_jobtrain_url(description)
    if not url:
        return None

    budget = budget or FetchBudget()
    if budget.exhausted:
        logger.info(f"Fetch budget spent, leaving jobtrain page {url} for a later run")
        return None

    time.sleep(request_delay)
    budget.spend()
    result = fetcher.fetch(url)
    if not result.ok:
        logger.warning(f"Could not fetch jobtrain page {url}: {result.error}")
        return None

    return url, parse_jobtrain_detail(result.html)


def enrich_job(
    store: JobStore,
    fetcher: PageFetcher,
    job: JobRecord,
    request_delay: float = config.REQUEST_DELAY,
    budget: Optional[FetchBudget] = None,
) -> bool:
    """
    Enrich one job from its detail page.

    Args:
        store: Job store
        fetcher: Page fetcher
        job: Job to enrich (needs source_url)
        request_delay: Seconds to wait before a jobtrain fetch
        budget: Outbound requests left; each fetch spends one

    Returns:
        True if the job was updated
    """
    budget = budget or FetchBudget()
    budget.spend()
    result = fetcher.fetch(job.source_url)
    if not result.ok:
        logger.warning(f"✗ Detail fetch failed for {job.guid}: {result.error}")
        return False

    detail = parse_job_detail(result.html, job.source_url)
    updates = build_detail_updates(detail, result.body)

    if is_jobtrain_redirect(detail.description):
        secondary = fetch_secondary_detail(fetcher, detail.description, request_delay, budget)
        if secondary:
            url, secondary_detail = secondary
            apply_secondary_detail(updates, secondary_detail, url)
            logger.info(f"  ↳ Followed jobtrain link for {job.title}")

    recompute_derived_fields(updates, job)
    return store.update_job_details(job.guid, updates)


def enrich_job_details(
    store: JobStore,
    fetcher: PageFetcher,
    batch_size: int = config.ENRICH_BATCH_SIZE,
    request_delay: float = config.REQUEST_DELAY,
    jobs: Optional[List[JobRecord]] = None,
    fetch_budget: Optional[int] = None,
) -> EnrichmentResult:
    """
    Enrich a batch of jobs that have no description (or only a jobtrain stub).

    A failure on one job is counted and the batch moves on. Detail and
    jobtrain fetches both count against fetch_budget; once it is spent the
    remaining jobs are left for the next run.

    Args:
        store: Job store
        fetcher: Page fetcher
        batch_size: Maximum jobs to process
        request_delay: Seconds between requests
        jobs: Jobs to process (defaults to store.get_jobs_needing_enrichment)
        fetch_budget: Maximum outbound requests (None for no limit)

    Returns:
        EnrichmentResult with attempted/enriched/failed counts
    """
    if jobs is None:
        jobs = store.get_jobs_needing_enrichment(batch_size)
    jobs = jobs[:batch_size]

    budget = FetchBudget(fetch_budget)
    outcome = EnrichmentResult()
    logger.info(f"Enriching {len(jobs)} jobs")

    for i, job in enumerate(jobs, 1):
        if budget.exhausted:
            logger.info(f"Fetch budget spent, {len(jobs) - i + 1} jobs left for the next run")
            break

        outcome.attempted += 1
        try:
            if enrich_job(store, fetcher, job, request_delay, budget):
                outcome.enriched += 1
                logger.info(f"✓ [{i}/{len(jobs)}] {job.title}")
            else:
                outcome.failed += 1
        except Exception as e:
            outcome.failed += 1
            logger.error(f"✗ [{i}/{len(jobs)}] Error enriching {job.title}: {e}", exc_info=True)

        if i < len(jobs) and not budget.exhausted:
            time.sleep(request_delay)

    logger.info(f"Enriched {outcome.enriched}/{outcome.attempted} jobs ({outcome.failed} failed)")
    return outcome
