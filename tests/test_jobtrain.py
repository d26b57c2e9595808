import json

import pytest

from src.IOM.jobtrain import parse_jobtrain_detail, is_jobtrain_redirect, extract_jobtrain_url
from tests.pages import POSTING, jobtrain_page


def test_job_posting_fields():
    detail = parse_jobtrain_detail(jobtrain_page(POSTING))

    assert detail.title == "Staff Nurse"
    assert detail.description == "Join our ward team.\n\nDays\nNights"
    assert detail.job_type == "full_time"
    assert detail.posted_date == "2025-11-01"
    assert detail.closing_date == "2025-12-15"
    assert detail.employer == "Manx Care"
    assert detail.location == "Douglas, Isle of Man, IM2 1RB"
    assert detail.salary == "£28,000 - £34,000 per annum"


def test_plain_string_salary_and_list_employment_type():
    posting = dict(POSTING, baseSalary="£12.50 per hour", employmentType=["PART_TIME", "TEMPORARY"])
    detail = parse_jobtrain_detail(jobtrain_page(posting))
    assert detail.salary == "£12.50 per hour"
    assert detail.job_type == "part_time, temporary"


def test_first_job_posting_wins_and_other_types_ignored():
    breadcrumbs = {"@type": "BreadcrumbList", "itemListElement": []}
    second = dict(POSTING, title="Other")
    html = (
        "<html><head>"
        '<script type="application/ld+json">{not json</script>'
        f'<script type="application/ld+json">{json.dumps([breadcrumbs, POSTING])}</script>'
        f'<script type="application/ld+json">{json.dumps(second)}</script>'
        "</head><body></body></html>"
    )
    assert parse_jobtrain_detail(html).title == "Staff Nurse"


def test_container_fallback_without_json_ld():
    body = '<div class="JT-text"><p>Full advert text</p><p>Second paragraph</p></div>'
    detail = parse_jobtrain_detail(jobtrain_page(None, body))
    assert detail.description == "Full advert text\n\nSecond paragraph"
    assert detail.salary is None


def test_container_fallback_when_posting_has_no_description():
    posting = dict(POSTING)
    del posting["description"]
    body = '<div class="job-description">From the page</div>'
    detail = parse_jobtrain_detail(jobtrain_page(posting, body))
    assert detail.description == "From the page"
    assert detail.employer == "Manx Care"


def test_empty_page():
    detail = parse_jobtrain_detail("")
    assert detail.description is None and detail.title is None


@pytest.mark.parametrize("description, expected", [
    ("See https://www.jobtrain.co.uk/ukgov/Job/JobDetail?JobId=1 for details", True),
    ("Apply via JOBTRAIN.CO.UK", True),
    ("x" * 600 + " https://www.jobtrain.co.uk/job/1", False),
    ("A full description with no external link", False),
    (None, False),
])
def test_is_jobtrain_redirect(description, expected):
    assert is_jobtrain_redirect(description) is expected


def test_extract_jobtrain_url_strips_trailing_punctuation():
    assert extract_jobtrain_url("Apply at https://jobtrain.co.uk/job/42.") == "https://jobtrain.co.uk/job/42"
    assert extract_jobtrain_url("(https://www.jobtrain.co.uk/job/42)") == "https://www.jobtrain.co.uk/job/42"
    assert extract_jobtrain_url("no link here") is None
