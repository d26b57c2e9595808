import pytest

from src.IOM.utils import (
    parse_salary_range, parse_date, generate_job_guid, normalize_url,
    html_to_text, derive_hours_type, clean_text, truncate,
)


@pytest.mark.parametrize("text, expected", [
    ("£25,000 - £30,000", (25000, 30000, "annual")),
    ("£25,000 - £30,000 per annum", (25000, 30000, "annual")),
    ("£12.50 per hour", (12.5, 12.5, "hourly")),
    ("£12.50/hour", (12.5, 12.5, "hourly")),
    ("£25k-£30k", (25000, 30000, "annual")),
    ("£150 per day", (150, 150, "daily")),
    ("£400 weekly", (400, 400, "weekly")),
    ("£30,000 - £25,000", (25000, 30000, "annual")),
])
def test_parse_salary_range(text, expected):
    salary = parse_salary_range(text)
    assert (salary.min, salary.max, salary.type) == expected


@pytest.mark.parametrize("text", ["", None, "Competitive", "Negotiable salary"])
def test_parse_salary_range_without_numbers(text):
    salary = parse_salary_range(text)
    assert (salary.min, salary.max, salary.type) == (None, None, None)


def test_small_annual_numbers_read_as_thousands():
    salary = parse_salary_range("£25 - £30 per annum")
    assert (salary.min, salary.max) == (25000, 30000)


def test_small_annual_numbers_heuristic_can_be_disabled():
    salary = parse_salary_range("£25 - £30 per annum", annual_small_numbers_in_thousands=False)
    assert (salary.min, salary.max, salary.type) == (25, 30, "annual")


def test_small_numbers_left_alone_for_non_annual_rates():
    salary = parse_salary_range("£85 per day")
    assert (salary.min, salary.max, salary.type) == (85, 85, "daily")


@pytest.mark.parametrize("text, expected", [
    ("31/12/2025", "2025-12-31"),
    ("31-12-2025", "2025-12-31"),
    ("12/01/2025", "2025-01-12"),
    ("31 December 2025", "2025-12-31"),
    ("5 Mar 2025", "2025-03-05"),
    ("Closing date: 5th March 2025", "2025-03-05"),
    ("2025-01-02", "2025-01-02"),
    ("2025-06-30T23:59:00", "2025-06-30"),
])
def test_parse_date(text, expected):
    assert parse_date(text) == expected


@pytest.mark.parametrize("text", ["nonsense", "", None, "Monday", "ASAP", "32/13/2025"])
def test_parse_date_unmatched(text):
    assert parse_date(text) is None


@pytest.mark.parametrize("text", ["2026", "September 2026", "Sept 2026", "Friday 12th", "12 March"])
def test_parse_date_rejects_partial_dates(text):
    assert parse_date(text) is None


def test_guid_is_stable_across_case_and_whitespace():
    url = "https://services.gov.im/job-search/viewjob?Id=101"
    assert generate_job_guid(url) == generate_job_guid(f"  {url.upper()}  ")
    assert generate_job_guid(url).startswith("iom-gov-")


def test_guid_differs_for_different_urls():
    a = generate_job_guid("https://services.gov.im/job-search/viewjob?Id=101")
    b = generate_job_guid("https://services.gov.im/job-search/viewjob?Id=102")
    assert a != b


def test_guid_known_value():
    # h = h * 31 + c over "abc" = 96354 -> base36 "22ci"
    assert generate_job_guid("ABC ") == "iom-gov-22ci"


def test_guid_fallback_without_url():
    guid = generate_job_guid(None)
    assert guid.startswith("job-")
    assert guid != generate_job_guid("")


def test_normalize_url():
    assert normalize_url("viewjob?Id=5") == "https://services.gov.im/job-search/viewjob?Id=5"
    assert normalize_url("/job-search/viewjob?Id=5") == "https://services.gov.im/job-search/viewjob?Id=5"
    assert normalize_url("//www.jobtrain.co.uk/x") == "https://www.jobtrain.co.uk/x"
    assert normalize_url("https://example.com/a") == "https://example.com/a"
    assert normalize_url("  ") is None
    assert normalize_url(None) is None


def test_html_to_text():
    markup = (
        "<p>Hello&nbsp;world</p><p>Second &amp; third</p>"
        "<ul><li>One</li><li>Two</li></ul>"
        "<h3>Heading</h3>It&#39;s &#x2019;quoted&#x2019;<br/>end"
    )
    assert html_to_text(markup) == (
        "Hello world\n\nSecond & third\n\nOne\nTwo\nHeading\n\nIt's ’quoted’\nend"
    )


def test_html_to_text_collapses_blank_lines():
    assert html_to_text("<p>a</p>\n\n\n<p>b</p>") == "a\n\nb"
    assert html_to_text("") is None


@pytest.mark.parametrize("hours, expected", [
    ("Full Time", "full-time"),
    ("full-time (37.5 hours)", "full-time"),
    ("Part Time", "part-time"),
    ("Part-time, term time only", "part-time"),
    ("Flexible", None),
    (None, None),
])
def test_derive_hours_type(hours, expected):
    assert derive_hours_type(hours) == expected


def test_clean_text_and_truncate():
    assert clean_text("  a \n\t b\xa0c ") == "a b c"
    assert clean_text(None) == ""
    assert truncate("abcdef", 3) == "abc"
    assert truncate("ab", 3) == "ab"
    assert truncate(None, 3) is None
