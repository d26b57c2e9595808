from src.IOM.enrichment import ATTRIBUTION_FOOTER, enrich_job_details
from src.IOM.models import EnrichmentResult, JobRecord
from tests.fakes import FakeFetcher, ok, http_error
from tests.pages import POSTING, detail_page, jobtrain_page


JOBTRAIN_URL = "https://www.jobtrain.co.uk/ukgov/Job/JobDetail?JobId=123"


def detail_url(n):
    return f"https://services.gov.im/job-search/viewjob?Id={n}"


def seed(client, n, **fields):
    row = JobRecord(guid=f"iom-gov-{n}", source_url=detail_url(n), title=f"Job {n}", **fields).to_dict()
    row["scraped_at"] = f"2025-01-{n:02d}T00:00:00+00:00"
    client.table("iom_jobs").insert(row).execute()


def row_for(client, n):
    return next(r for r in client.rows("iom_jobs") if r["guid"] == f"iom-gov-{n}")


def test_detail_page_enrichment(store, client):
    seed(client, 1, employer="Treasury", hours_option="Part Time")
    html = detail_page(
        [
            ["Salary", "£25,000 - £30,000 per annum", "Hours", "Full Time"],
            ["Closing Date", "31/12/2025", "Number Required", "2"],
            ["Contact Name", "J Smith", "Tel No", "01624 123456"],
            ["Notes", "<p>Looking after the island's finances.</p>"],
        ],
        extra='<a href="/apply?Id=1">Apply online</a>',
    )
    fetcher = FakeFetcher().add(ok(detail_url(1), html))

    result = enrich_job_details(store, fetcher, request_delay=0)

    assert (result.attempted, result.enriched, result.failed) == (1, 1, 0)
    row = row_for(client, 1)
    assert row["description"] == "Looking after the island's finances."
    assert row["salary_text"] == "£25,000 - £30,000 per annum"
    assert (row["salary_min"], row["salary_max"], row["salary_type"]) == (25000, 30000, "annual")
    assert row["hours_option"] == "Full Time"
    assert row["hours_type"] == "full-time"
    assert row["closing_date"] == "2025-12-31"
    assert row["contact_name"] == "J Smith"
    assert row["contact_phone"] == "01624 123456"
    assert row["employer"] == "Treasury"
    assert row["apply_url"] == "https://services.gov.im/apply?Id=1"
    assert row["additional_info"] == {"number_required": "2"}
    assert row["additional_labels"]["salary"] == "Salary"
    assert row["raw_html"] == html


def test_stub_redirect_follows_jobtrain(store, client):
    seed(client, 1, employer="Manx Care (listing)")
    stub = detail_page([
        ["Firm", "Manx Care"],
        ["Notes", f'Full details at <a href="{JOBTRAIN_URL}">{JOBTRAIN_URL}</a>'],
    ])
    fetcher = FakeFetcher()
    fetcher.add(ok(detail_url(1), stub))
    fetcher.add(ok(JOBTRAIN_URL, jobtrain_page(POSTING)))

    result = enrich_job_details(store, fetcher, request_delay=0)

    assert result.enriched == 1
    assert fetcher.requested == [detail_url(1), JOBTRAIN_URL]

    row = row_for(client, 1)
    expected = "Join our ward team.\n\nDays\nNights" + ATTRIBUTION_FOOTER + JOBTRAIN_URL
    assert row["description"] == expected
    assert row["apply_url"] == JOBTRAIN_URL
    # gov.im page wins over jobtrain for fields it has
    assert row["employer"] == "Manx Care"
    # jobtrain fills the gaps
    assert row["salary_text"] == "£28,000 - £34,000 per annum"
    assert (row["salary_min"], row["salary_max"]) == (28000, 34000)
    assert row["closing_date"] == "2025-12-15"
    assert row["posted_date"] == "2025-11-01"
    assert row["location"] == "Douglas, Isle of Man, IM2 1RB"
    assert row["raw_html"] == stub


def test_failed_jobtrain_fetch_keeps_primary_content(store, client):
    seed(client, 1)
    stub = detail_page([["Notes", f"Apply at {JOBTRAIN_URL}"]])
    fetcher = FakeFetcher().add(ok(detail_url(1), stub)).add(http_error(JOBTRAIN_URL, 502))

    result = enrich_job_details(store, fetcher, request_delay=0)

    assert (result.enriched, result.failed) == (1, 0)
    assert row_for(client, 1)["description"] == f"Apply at {JOBTRAIN_URL}"


def test_one_failed_fetch_does_not_abort_batch(store, client):
    seed(client, 1)
    seed(client, 2)
    seed(client, 3)
    fetcher = FakeFetcher()
    fetcher.add(ok(detail_url(3), detail_page([["Notes", "Third"]])))
    fetcher.add(http_error(detail_url(2), 500))
    fetcher.add(ok(detail_url(1), detail_page([["Notes", "First"]])))

    result = enrich_job_details(store, fetcher, request_delay=0)

    assert (result.attempted, result.enriched, result.failed) == (3, 2, 1)
    assert result.status == "partial"
    # newest first
    assert fetcher.requested == [detail_url(3), detail_url(2), detail_url(1)]
    assert row_for(client, 2)["description"] is None
    assert row_for(client, 1)["description"] == "First"


def test_unexpected_error_counts_as_failed(store, client, monkeypatch):
    seed(client, 1)
    seed(client, 2)
    fetcher = FakeFetcher()
    fetcher.add(ok(detail_url(1), detail_page([["Notes", "One"]])))
    fetcher.add(ok(detail_url(2), detail_page([["Notes", "Two"]])))

    real_update = store.update_job_details

    def flaky_update(guid, updates):
        if guid == "iom-gov-2":
            raise RuntimeError("connection dropped")
        return real_update(guid, updates)

    monkeypatch.setattr(store, "update_job_details", flaky_update)

    result = enrich_job_details(store, fetcher, request_delay=0)
    assert (result.attempted, result.enriched, result.failed) == (2, 1, 1)


def test_batch_size_limits_work(store, client):
    for n in range(1, 6):
        seed(client, n)
    fetcher = FakeFetcher(default=ok("", detail_page([["Notes", "Text"]])))

    result = enrich_job_details(store, fetcher, batch_size=2, request_delay=0)

    assert result.attempted == 2
    assert len(fetcher.requested) == 2


def test_nothing_to_enrich(store):
    result = enrich_job_details(store, FakeFetcher(), request_delay=0)
    assert (result.attempted, result.enriched, result.failed) == (0, 0, 0)
    assert result.status == "success"


def test_enrichment_result_status():
    assert EnrichmentResult(attempted=2, enriched=2).status == "success"
    assert EnrichmentResult(attempted=2, enriched=1, failed=1).status == "partial"
    assert EnrichmentResult(attempted=2, failed=2).status == "failed"


def test_jobtrain_fields_replace_stale_stored_values(store, client):
    seed(client, 1, location="Old office", salary_text="£20,000")
    stub = detail_page([["Notes", f"Apply at {JOBTRAIN_URL}"]])
    fetcher = FakeFetcher().add(ok(detail_url(1), stub)).add(ok(JOBTRAIN_URL, jobtrain_page(POSTING)))

    enrich_job_details(store, fetcher, request_delay=0)

    row = row_for(client, 1)
    assert row["location"] == "Douglas, Isle of Man, IM2 1RB"
    assert row["salary_text"] == "£28,000 - £34,000 per annum"
    assert (row["salary_min"], row["salary_max"]) == (28000, 34000)


def test_fetch_budget_counts_jobtrain_requests(store, client):
    seed(client, 1)
    seed(client, 2)
    stub = detail_page([["Notes", f"Apply at {JOBTRAIN_URL}"]])
    fetcher = FakeFetcher(default=ok("", stub)).add(ok(JOBTRAIN_URL, jobtrain_page(POSTING)))

    result = enrich_job_details(store, fetcher, request_delay=0, fetch_budget=3)

    assert len(fetcher.requested) == 3
    assert fetcher.requested == [detail_url(2), JOBTRAIN_URL, detail_url(1)]
    assert (result.attempted, result.enriched) == (2, 2)
    assert row_for(client, 2)["description"].startswith("Join our ward team.")
    assert row_for(client, 1)["description"] == f"Apply at {JOBTRAIN_URL}"
