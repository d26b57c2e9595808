"""
Health check over recent iom_scrape_log rows.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from dateutil import parser as date_parser

from . import config
from .models import HealthReport, ScrapeLog, STATUS_FAILED, URL_TYPE_ENRICHMENT
from .store import JobStore

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _scrape_summary(log: ScrapeLog) -> Dict[str, Any]:
    return {
        "time": log.started_at,
        "type": log.url_type,
        "status": log.status,
        "jobs_found": log.jobs_found,
        "error": log.error_message,
    }


def _enrichment_summary(log: ScrapeLog) -> Dict[str, Any]:
    return {
        "time": log.started_at,
        "status": log.status,
        "jobs_enriched": log.jobs_updated,
        "error": log.error_message,
    }


def evaluate_health(logs: List[ScrapeLog], now: Optional[datetime] = None) -> HealthReport:
    """
    Build a health report from scrape log rows (newest first).

    Issues flagged:
        - no listing scrape in the lookback window
        - last listing scrape older than the allowed gap
        - last listing scrape failed
        - more than half of recent listing scrapes failed
        - last enrichment run failed
    """
    now = now or datetime.now(timezone.utc)
    scrape_logs = [log for log in logs if log.url_type != URL_TYPE_ENRICHMENT]
    enrichment_logs = [log for log in logs if log.url_type == URL_TYPE_ENRICHMENT]

    last_scrape = scrape_logs[0] if scrape_logs else None
    last_enrichment = enrichment_logs[0] if enrichment_logs else None
    issues = []

    if last_scrape is None:
        issues.append(f"No scrapes found in last {config.HEALTH_LOOKBACK_DAYS} days")
    else:
        started = _parse_timestamp(last_scrape.started_at)
        if started is not None:
            hours = (now - started).total_seconds() / 3600
            if hours > config.HEALTH_MAX_HOURS_SINCE_SCRAPE:
                issues.append(f"No scrape in {round(hours)} hours")
        if last_scrape.status == STATUS_FAILED:
            issues.append(f"Last scrape failed: {last_scrape.error_message or 'unknown error'}")

    failed_scrapes = sum(1 for log in scrape_logs if log.status == STATUS_FAILED)
    if (len(scrape_logs) >= config.HEALTH_MIN_SCRAPES_FOR_RATE
            and failed_scrapes / len(scrape_logs) > config.HIGH_FAILURE_RATE):
        issues.append(f"High scrape failure rate: {failed_scrapes}/{len(scrape_logs)} failed")

    if last_enrichment is not None and last_enrichment.status == STATUS_FAILED:
        issues.append(f"Last enrichment failed: {last_enrichment.error_message or 'unknown error'}")

    healthy = not issues
    return HealthReport(
        healthy=healthy,
        status="healthy" if healthy else "unhealthy",
        issues=issues,
        last_scrape=_scrape_summary(last_scrape) if last_scrape else None,
        last_enrichment=_enrichment_summary(last_enrichment) if last_enrichment else None,
        recent_counts={
            "scrapes": len(scrape_logs),
            "scrapes_failed": failed_scrapes,
            "enrichments": len(enrichment_logs),
        },
    )


def check_health(store: JobStore, now: Optional[datetime] = None) -> HealthReport:
    """
    Health report for the last HEALTH_LOOKBACK_DAYS of runs.

    A failure to read the log is itself reported as unhealthy.
    """
    try:
        logs = store.get_recent_scrape_logs(config.HEALTH_LOOKBACK_DAYS)
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return HealthReport(healthy=False, status="unhealthy", issues=[f"Health check failed: {e}"])

    report = evaluate_health(logs, now)
    if report.healthy:
        logger.info("✓ Scraper healthy")
    else:
        for issue in report.issues:
            logger.warning(f"✗ {issue}")
    return report
