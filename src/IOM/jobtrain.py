"""
Parser for the secondary job board (jobtrain.co.uk)

Some gov.im postings carry only a short note pointing at jobtrain, which
holds the full advert. These helpers detect such stubs, pull the jobtrain
link out of them, and parse the jobtrain page.
"""

import json
import logging
import re
from typing import Optional, Dict, Any

from bs4 import BeautifulSoup

from . import config
from .models import SecondaryDetail
from .utils import clean_text, html_to_text

logger = logging.getLogger(__name__)


JOBTRAIN_URL_RE = re.compile(r"https?://(?:www\.)?jobtrain\.co\.uk/[^\s<>\"']+", re.IGNORECASE)

SALARY_UNITS = {
    "YEAR": "per annum",
    "MONTH": "per month",
    "WEEK": "per week",
    "DAY": "per day",
    "HOUR": "per hour",
}

# Class fragments of the description container, most specific first
DESCRIPTION_CONTAINERS = ["JT-text", "job-description", "description"]


def is_jobtrain_redirect(description: Optional[str]) -> bool:
    """
    Check whether a description is just a pointer to jobtrain.

    Args:
        description: Description text from the gov.im detail page

    Returns:
        True when it mentions jobtrain.co.uk and is shorter than the stub threshold
    """
    if not description:
        return False
    has_link = config.SECONDARY_BOARD_DOMAIN in description.lower()
    return has_link and len(description) < config.STUB_REDIRECT_MAX_LENGTH


def extract_jobtrain_url(text: Optional[str]) -> Optional[str]:
    """Return the first jobtrain.co.uk URL in text, without trailing punctuation."""
    if not text:
        return None
    match = JOBTRAIN_URL_RE.search(text)
    if not match:
        return None
    return match.group(0).rstrip(".,;:!?)")


def _format_salary(base_salary: Any) -> Optional[str]:
    """Render a JobPosting baseSalary (plain string or MonetaryAmount) as text."""
    if isinstance(base_salary, str):
        return clean_text(base_salary) or None
    if isinstance(base_salary, (int, float)):
        return str(base_salary)
    if not isinstance(base_salary, dict):
        return None

    currency = base_salary.get("currency") or ""
    symbol = "£" if currency.upper() == "GBP" else ""
    value = base_salary.get("value")

    unit = None
    if isinstance(value, dict):
        unit = value.get("unitText")
        low = value.get("minValue")
        high = value.get("maxValue")
        if low is None and high is None:
            low = value.get("value")
    else:
        low, high = value, None

    if low is None and high is None:
        return None

    def _amount(number):
        if isinstance(number, (int, float)):
            return f"{symbol}{number:,.2f}".replace(".00", "")
        return f"{symbol}{number}"

    if low is not None and high is not None and low != high:
        text = f"{_amount(low)} - {_amount(high)}"
    else:
        text = _amount(low if low is not None else high)

    unit_text = SALARY_UNITS.get((unit or "").upper())
    if unit_text:
        text = f"{text} {unit_text}"
    return text


def _format_location(job_location: Any) -> Optional[str]:
    if isinstance(job_location, list):
        job_location = job_location[0] if job_location else None
    if not isinstance(job_location, dict):
        return None

    address = job_location.get("address")
    if not isinstance(address, dict):
        return None

    parts = [address.get(k) for k in ("addressLocality", "addressRegion", "postalCode")]
    parts = [clean_text(str(p)) for p in parts if p]
    return ", ".join(parts) if parts else None


def _description_text(raw: Any) -> Optional[str]:
    if not isinstance(raw, str) or not raw.strip():
        return None
    # Some boards double-escape the HTML inside JSON-LD
    if "<" not in raw and "&lt;" in raw:
        raw = raw.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")
    return html_to_text(raw) or None


def _job_postings(soup: BeautifulSoup):
    """Yield every JobPosting object embedded as JSON-LD, in page order."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads((script.string or script.get_text()).strip())
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug(f"Failed to parse JSON-LD: {e}")
            continue

        candidates = data if isinstance(data, list) else [data]
        for item in candidates:
            if isinstance(item, dict) and "@graph" in item:
                candidates.extend(i for i in item["@graph"] if isinstance(i, dict))
                continue
            if not isinstance(item, dict):
                continue
            types = item.get("@type")
            if types == "JobPosting" or (isinstance(types, list) and "JobPosting" in types):
                yield item


def _apply_job_posting(detail: SecondaryDetail, posting: Dict[str, Any]) -> None:
    detail.description = _description_text(posting.get("description"))
    detail.salary = _format_salary(posting.get("baseSalary"))

    if posting.get("title"):
        detail.title = clean_text(str(posting["title"]))

    employment_type = posting.get("employmentType")
    if isinstance(employment_type, list):
        employment_type = ", ".join(str(t) for t in employment_type if t)
    if employment_type:
        detail.job_type = str(employment_type).lower()

    if posting.get("validThrough"):
        detail.closing_date = str(posting["validThrough"]).split("T")[0]
    if posting.get("datePosted"):
        detail.posted_date = str(posting["datePosted"]).split("T")[0]

    organization = posting.get("hiringOrganization")
    if isinstance(organization, dict) and organization.get("name"):
        detail.employer = clean_text(organization["name"])

    detail.location = _format_location(posting.get("jobLocation"))


def parse_jobtrain_detail(html: str) -> SecondaryDetail:
    """
    Parse a jobtrain job page.

    The embedded schema.org JobPosting is the main source; when it is
    missing or has no description, known description containers are
    tried instead.

    Args:
        html: Jobtrain page HTML

    Returns:
        SecondaryDetail (fields None where nothing was found)
    """
    detail = SecondaryDetail()
    if not html:
        return detail

    soup = BeautifulSoup(html, "html.parser")

    posting = next(_job_postings(soup), None)
    if posting is not None:
        _apply_job_posting(detail, posting)

    if not detail.description:
        for fragment in DESCRIPTION_CONTAINERS:
            container = soup.find("div", class_=re.compile(re.escape(fragment)))
            if container is None:
                continue
            text = html_to_text(container.decode_contents())
            if text:
                detail.description = text
                break

    return detail
