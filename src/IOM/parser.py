"""
Parser for Isle of Man Government job pages (services.gov.im)

Extracts structured data from the search results page and from individual
job detail pages. Each extraction runs as a series of named strategies,
tried in order, so a markup change degrades to the next strategy instead
of failing outright.
"""

import copy
import logging
import re
from datetime import datetime, timezone
from typing import Optional, List, Dict, Tuple

from bs4 import BeautifulSoup, Tag

from . import config
from .errors import ParseError
from .models import JobRecord, JobDetail, Pagination
from .utils import (
    clean_text, normalize_url, generate_job_guid, derive_hours_type,
    parse_date, html_to_text,
)

logger = logging.getLogger(__name__)


JOB_LINK_RE = re.compile(r"job|vacancy|position|career", re.IGNORECASE)
PAGE_COUNT_RE = re.compile(r"page\s*(\d+)\s*of\s*(\d+)", re.IGNORECASE)
NEXT_LINK_TEXT = ("next", "›", "»", ">")

# Detail-page label (normalized) -> canonical field
FIELD_SYNONYMS = {
    "firm": "employer",
    "employer": "employer",
    "organisation": "employer",
    "department": "employer",
    "company": "employer",
    "area": "area",
    "address": "location",
    "location": "location",
    "work_location": "location",
    "salary": "salary",
    "pay": "salary",
    "wage": "salary",
    "hours": "hours_option",
    "working_hours": "hours_option",
    "duration": "job_type",
    "contract_type": "job_type",
    "employment_type": "job_type",
    "end_date": "closing_date",
    "closing_date": "closing_date",
    "deadline": "closing_date",
    "start_date": "start_date",
    "notes": "description",
    "description": "description",
    "job_description": "description",
    "reference_id": "reference",
    "reference": "reference",
    "ref": "reference",
    "job_reference": "reference",
    "vacancy_reference": "reference",
    "job_title": "title",
    "number_required": "number_required",
    "contact": "contact_name",
    "contact_name": "contact_name",
    "contact_email": "contact_email",
    "email": "contact_email",
    "tel_no": "contact_phone",
    "contact_phone": "contact_phone",
    "phone": "contact_phone",
    "telephone": "contact_phone",
    "qualifications": "qualifications",
    "required_qualifications": "qualifications",
    "experience": "experience",
    "required_experience": "experience",
    "benefits": "benefits",
    "how_to_apply": "how_to_apply",
    "application_method": "how_to_apply",
}

DATE_FIELDS = ("closing_date", "start_date")
MAX_EXTRA_KEY_LENGTH = 50


def normalize_label(label: str) -> str:
    """
    Turn a detail-page label into a snake_case key.

    Example: "Closing Date:" -> "closing_date"
    """
    key = re.sub(r"[:\s]+", "_", label.lower())
    return key.strip("_")


# ---------------------------------------------------------------------------
# Listing page
# ---------------------------------------------------------------------------

def _is_section_header(tag: Tag) -> bool:
    return tag.name == "h2" and (tag.get("id") or "").startswith("Header_")


def _section_table(header: Tag) -> Optional[Tag]:
    """Find the table belonging to a classification header (None if the next header comes first)."""
    for element in header.find_all_next(["h2", "table"]):
        if element.name == "table":
            return element
        if _is_section_header(element):
            return None
    return None


def _parse_listing_row(row: Tag, classification: str, base_url: str, scraped_at: str) -> JobRecord:
    """
    Parse one results row: [id, link+title, employer, hours].

    Raises:
        ParseError: If the row is missing cells or the detail link
    """
    cells = row.find_all("td", recursive=False)
    if len(cells) < 4:
        raise ParseError(f"expected 4 cells, found {len(cells)}")

    link = cells[1].find("a", href=True)
    if not link or config.DETAIL_URL_MARKER not in link["href"].lower():
        raise ParseError("row has no detail link")

    title = clean_text(link.get_text())
    if not title:
        raise ParseError("row has an empty title")

    source_url = normalize_url(link["href"], base_url)
    job_id = clean_text(cells[0].get_text())
    employer = clean_text(cells[2].get_text())
    hours = clean_text(cells[3].get_text())

    return JobRecord(
        guid=generate_job_guid(source_url),
        source_url=source_url,
        title=title,
        employer=employer or None,
        classification=classification or None,
        hours_option=hours or None,
        hours_type=derive_hours_type(hours),
        additional_info={"job_id": job_id} if job_id else {},
        scraped_at=scraped_at,
    )


def parse_grouped_listings(soup: BeautifulSoup, base_url: str = config.LISTING_URL) -> List[JobRecord]:
    """
    Grouped format: <h2 id="Header_..."> classification headers, each
    followed by a results table.

    A broken section or row is logged and skipped; the remaining sections
    are still parsed.
    """
    jobs = []
    scraped_at = datetime.now(timezone.utc).isoformat()

    headers = soup.find_all(_is_section_header)
    for header in headers:
        classification = clean_text(header.get_text()).upper()
        table = _section_table(header)
        if table is None:
            logger.warning(f"No results table under section '{classification}'")
            continue

        for row in table.find_all("tr"):
            # Nested tables belong to their own rows
            if row.find_parent("table") is not table:
                continue
            if not row.find("td", recursive=False):
                continue  # header row

            try:
                jobs.append(_parse_listing_row(row, classification, base_url, scraped_at))
            except ParseError as e:
                logger.warning(f"Skipping row in '{classification}': {e}")

    return jobs


def parse_link_scan(soup: BeautifulSoup, base_url: str = config.LISTING_URL) -> List[JobRecord]:
    """
    Fallback: scan every anchor for something that looks like a job link.

    Only detail-page links are kept, deduplicated by absolute URL.
    """
    jobs = []
    seen_urls = set()
    scraped_at = datetime.now(timezone.utc).isoformat()

    for link in soup.find_all("a", href=True):
        href = link["href"]
        if not JOB_LINK_RE.search(href):
            continue

        title = clean_text(link.get_text())
        if len(title) < 5 or len(title) > 200:
            continue
        if "page=" in href or "sort=" in href:
            continue
        if title.lower() in config.NAVIGATION_LABELS:
            continue
        if config.DETAIL_URL_MARKER not in href.lower():
            continue

        source_url = normalize_url(href, base_url)
        if source_url in seen_urls:
            continue
        seen_urls.add(source_url)

        jobs.append(JobRecord(
            guid=generate_job_guid(source_url),
            source_url=source_url,
            title=title,
            scraped_at=scraped_at,
        ))

    return jobs


def parse_job_listings(html: str, base_url: str = config.LISTING_URL) -> List[JobRecord]:
    """
    Parse job listings from a search results page.

    Args:
        html: Search results page HTML
        base_url: URL the page was fetched from (for resolving links)

    Returns:
        Partial JobRecords in page order (empty list when nothing matched)
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")

    jobs = parse_grouped_listings(soup, base_url)
    if jobs:
        logger.info(f"Found {len(jobs)} jobs using grouped format")
        return jobs

    logger.info("No grouped format found, falling back to link scan")
    jobs = parse_link_scan(soup, base_url)
    logger.info(f"Found {len(jobs)} jobs using link scan")
    return jobs


def _find_next_link(soup: BeautifulSoup) -> Optional[Tag]:
    for link in soup.find_all("a", href=True):
        if "next" in " ".join(link.get("class") or []).lower():
            return link

    for link in soup.find_all("a", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = [rel]
        if "next" in [r.lower() for r in rel]:
            return link

    for link in soup.find_all("a", href=True):
        text = clean_text(link.get_text()).lower()
        if text.startswith(NEXT_LINK_TEXT):
            return link

    return None


def parse_pagination(html: str, base_url: str = config.LISTING_URL) -> Pagination:
    """
    Read pagination signals from a results page.

    The next link and the "Page X of Y" counter are read independently;
    when the counter is present it decides has_more.
    """
    pagination = Pagination()
    if not html:
        return pagination

    soup = BeautifulSoup(html, "html.parser")

    next_link = _find_next_link(soup)
    if next_link is not None:
        pagination.next_url = normalize_url(next_link["href"], base_url)
        pagination.has_more = pagination.next_url is not None

    match = PAGE_COUNT_RE.search(soup.get_text(" "))
    if match:
        pagination.current_page = int(match.group(1))
        pagination.total_pages = int(match.group(2))
        pagination.has_more = pagination.current_page < pagination.total_pages

    return pagination


# ---------------------------------------------------------------------------
# Detail page
# ---------------------------------------------------------------------------

def _cell_text_with_links(cell: Tag) -> Optional[str]:
    """Cell text with each link's href kept inline, e.g. "apply here (https://...)"."""
    cell = copy.copy(cell)
    for link in cell.find_all("a", href=True):
        text = clean_text(link.get_text())
        href = link["href"].strip()
        link.replace_with(f"{text} ({href})" if text and text != href else href)
    return html_to_text(cell.decode_contents())


def _add_field(detail: JobDetail, label: str, value: str) -> None:
    """Map one label/value pair onto the detail record."""
    key = normalize_label(label)
    if not key or not value:
        return

    canonical = FIELD_SYNONYMS.get(key)
    if canonical is None:
        if len(key) < MAX_EXTRA_KEY_LENGTH and not key.startswith("_"):
            detail.fields[key] = value
            detail.labels[key] = label
        return

    if canonical == "description":
        detail.description = value
        return

    if canonical in DATE_FIELDS:
        parsed = parse_date(value)
        if parsed:
            value = parsed
        else:
            canonical = f"{canonical}_text"

    detail.fields[canonical] = value
    detail.labels[canonical] = label


def _row_pairs(soup: BeautifulSoup) -> List[Tuple[str, Tag]]:
    """Label/value cell pairs from every table row, read left to right."""
    pairs = []
    for row in soup.find_all("tr"):
        cells = row.find_all(["td", "th"], recursive=False)
        for i in range(0, len(cells) - 1, 2):
            pairs.append((clean_text(cells[i].get_text()), cells[i + 1]))
    return pairs


def _adjacent_pairs(soup: BeautifulSoup) -> List[Tuple[str, Tag]]:
    """Fallback pairs: <th> followed by <td>, and <dt> followed by <dd>."""
    pairs = []
    for header in soup.find_all("th"):
        value = header.find_next_sibling("td")
        if value is not None:
            pairs.append((clean_text(header.get_text()), value))
    for term in soup.find_all("dt"):
        value = term.find_next_sibling("dd")
        if value is not None:
            pairs.append((clean_text(term.get_text()), value))
    return pairs


def _apply_pairs(detail: JobDetail, pairs: List[Tuple[str, Tag]]) -> None:
    for label, cell in pairs:
        if not label:
            continue
        if FIELD_SYNONYMS.get(normalize_label(label)) == "description":
            value = _cell_text_with_links(cell)
        else:
            value = clean_text(cell.get_text(" "))
        _add_field(detail, label, value)


def find_apply_url(soup: BeautifulSoup, base_url: str = config.BASE_URL) -> Optional[str]:
    """
    Find the "apply" link on a detail page.

    Tried in order: class contains "apply", link text contains "apply",
    href contains "apply".
    """
    links = soup.find_all("a", href=True)

    for link in links:
        if "apply" in " ".join(link.get("class") or []).lower():
            return normalize_url(link["href"], base_url)

    for link in links:
        if "apply" in link.get_text().lower():
            return normalize_url(link["href"], base_url)

    for link in links:
        if "apply" in link["href"].lower():
            return normalize_url(link["href"], base_url)

    return None


def parse_job_detail(html: str, base_url: str = config.BASE_URL) -> JobDetail:
    """
    Parse a job detail page.

    The page is a label/value table (| Label | Value | Label | Value |)
    with a full-width Notes row holding the description.

    Args:
        html: Detail page HTML
        base_url: URL the page was fetched from

    Returns:
        JobDetail with description, apply_url and the mapped fields
    """
    detail = JobDetail()
    if not html:
        return detail

    soup = BeautifulSoup(html, "html.parser")

    _apply_pairs(detail, _row_pairs(soup))

    if not detail.fields and not detail.description:
        logger.debug("No label/value rows found, trying header/value fallback")
        _apply_pairs(detail, _adjacent_pairs(soup))

    detail.apply_url = find_apply_url(soup, base_url)
    return detail
