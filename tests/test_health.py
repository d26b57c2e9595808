from datetime import datetime, timezone, timedelta

from src.IOM.health import check_health, evaluate_health
from src.IOM.models import (
    ScrapeLog, STATUS_FAILED, STATUS_PARTIAL, STATUS_SUCCESS,
    URL_TYPE_ENRICHMENT, URL_TYPE_FULL, URL_TYPE_RECENT,
)


NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def log(hours_ago, status=STATUS_SUCCESS, url_type=URL_TYPE_RECENT, **fields):
    started = (NOW - timedelta(hours=hours_ago)).isoformat()
    return ScrapeLog(url_type=url_type, started_at=started, status=status, **fields)


def test_healthy():
    logs = [
        log(2, jobs_found=12),
        log(4, url_type=URL_TYPE_ENRICHMENT, jobs_updated=5),
        log(26, status=STATUS_PARTIAL, url_type=URL_TYPE_FULL),
    ]

    report = evaluate_health(logs, now=NOW)

    assert report.healthy
    assert report.status == "healthy"
    assert report.issues == []
    assert report.last_scrape["jobs_found"] == 12
    assert report.last_enrichment["jobs_enriched"] == 5
    assert report.recent_counts == {"scrapes": 2, "scrapes_failed": 0, "enrichments": 1}


def test_no_scrapes():
    report = evaluate_health([], now=NOW)
    assert not report.healthy
    assert report.issues == ["No scrapes found in last 7 days"]
    assert report.last_scrape is None


def test_enrichment_runs_do_not_count_as_scrapes():
    report = evaluate_health([log(1, url_type=URL_TYPE_ENRICHMENT)], now=NOW)
    assert report.issues == ["No scrapes found in last 7 days"]


def test_stale_scrape():
    report = evaluate_health([log(60)], now=NOW)
    assert report.issues == ["No scrape in 60 hours"]


def test_last_scrape_failed():
    logs = [log(1, status=STATUS_FAILED, error_message="All 1 fetch attempts were blocked by the WAF"), log(20)]
    report = evaluate_health(logs, now=NOW)
    assert report.issues == ["Last scrape failed: All 1 fetch attempts were blocked by the WAF"]


def test_high_failure_rate():
    logs = [log(1), log(10, status=STATUS_FAILED), log(20, status=STATUS_FAILED)]
    report = evaluate_health(logs, now=NOW)
    assert report.issues == ["High scrape failure rate: 2/3 failed"]


def test_failure_rate_needs_enough_scrapes():
    logs = [log(1), log(10, status=STATUS_FAILED)]
    assert evaluate_health(logs, now=NOW).healthy


def test_last_enrichment_failed():
    logs = [log(1), log(2, status=STATUS_FAILED, url_type=URL_TYPE_ENRICHMENT)]
    report = evaluate_health(logs, now=NOW)
    assert report.issues == ["Last enrichment failed: unknown error"]


def test_naive_timestamps_are_utc():
    logs = [ScrapeLog(url_type=URL_TYPE_RECENT, started_at="2025-06-15T10:00:00", status=STATUS_SUCCESS)]
    assert evaluate_health(logs, now=NOW).healthy


def test_check_health_reads_store(store):
    store.start_scrape_log(URL_TYPE_RECENT)

    report = check_health(store)

    assert report.recent_counts["scrapes"] == 1
    assert report.last_scrape["status"] == "running"


def test_check_health_store_error(store, monkeypatch):
    def broken(days):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(store, "get_recent_scrape_logs", broken)

    report = check_health(store)

    assert not report.healthy
    assert report.issues == ["Health check failed: connection refused"]
