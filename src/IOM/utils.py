"""
Field normalizers for Isle of Man job data.

Pure functions: raw page text in, typed values out. None of these raise on
bad input.
"""

import html
import random
import re
import string
import time
from datetime import date, datetime
from typing import Optional
from urllib.parse import urljoin

from dateutil import parser as date_parser

from . import config
from .models import SalaryRange


MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7,
    "aug": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

SALARY_TYPES = [
    ("annual", ("per annum", "p.a.", "annual")),
    ("hourly", ("per hour", "hourly", "/hour")),
    ("daily", ("per day", "daily", "/day")),
    ("weekly", ("per week", "weekly")),
]

SALARY_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)(k(?![a-z]))?")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
NUMERIC_DATE_RE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})")
TEXT_DATE_RE = re.compile(r"(\d{1,2})(?:st|nd|rd|th)?\s+([a-z]+)\.?,?\s+(\d{4})")

# dateutil fills missing parts from its default; a full date parses the same against both
DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2004, 2, 2))

BASE36 = string.digits + string.ascii_lowercase


def clean_text(text: Optional[str]) -> str:
    """
    Clean extracted text by collapsing whitespace.

    Args:
        text: Raw text string

    Returns:
        Cleaned text ("" for empty input)
    """
    if not text:
        return ""
    text = text.replace("\xa0", " ")
    return re.sub(r"\s+", " ", text).strip()


def normalize_url(url: Optional[str], base_url: str = config.LISTING_URL) -> Optional[str]:
    """
    Resolve an href against the page it came from.

    Args:
        url: Raw href (absolute, protocol-relative or relative)
        base_url: URL of the page the link was found on

    Returns:
        Absolute URL or None
    """
    if not url:
        return None
    url = url.strip()
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    return urljoin(base_url, url)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36[remainder])
    return "".join(reversed(digits))


def string_hash(text: str) -> int:
    """32-bit rolling hash (h * 31 + c, signed wraparound), returned as abs value."""
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def generate_job_guid(source_url: Optional[str]) -> str:
    """
    Generate the deduplication key for a job.

    The same URL (ignoring case and surrounding whitespace) always yields
    the same guid. Without a URL the guid is time/random based and cannot
    deduplicate across runs.

    Args:
        source_url: Job detail page URL

    Returns:
        "iom-gov-<base36 hash>" or "job-<millis>-<random>"
    """
    if not source_url or not source_url.strip():
        suffix = "".join(random.choice(BASE36) for _ in range(7))
        return f"job-{int(time.time() * 1000)}-{suffix}"

    return f"iom-gov-{_to_base36(string_hash(source_url.lower().strip()))}"


def _salary_type(text: str) -> Optional[str]:
    for salary_type, keywords in SALARY_TYPES:
        if any(keyword in text for keyword in keywords):
            return salary_type
    return None


def parse_salary_range(
    salary_text: Optional[str],
    annual_small_numbers_in_thousands: bool = config.ANNUAL_SMALL_NUMBERS_IN_THOUSANDS,
) -> SalaryRange:
    """
    Parse salary bounds from free text.

    Handles "£25,000 - £30,000 per annum", "£12.50/hour", "£25k-£30k".

    Args:
        salary_text: Raw salary string
        annual_small_numbers_in_thousands: Read a bare number under 1000 as
            thousands when the text says it is annual

    Returns:
        SalaryRange (all None when no number is present)
    """
    if not salary_text or not isinstance(salary_text, str):
        return SalaryRange()

    text = salary_text.lower().replace(",", "")
    for symbol in ("£", "$", "€"):
        text = text.replace(symbol, " ")
    text = text.strip()

    salary_type = _salary_type(text)

    numbers = []
    for match in SALARY_NUMBER_RE.finditer(text):
        token, thousands = match.group(1), match.group(2)
        value = float(token)
        if thousands:
            value *= 1000
        elif (annual_small_numbers_in_thousands and salary_type == "annual"
              and "." not in token and value < 1000):
            value *= 1000
        numbers.append(value)

    if not numbers:
        return SalaryRange()

    numbers.sort()
    return SalaryRange(min=numbers[0], max=numbers[-1], type=salary_type or "annual")


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date(date_text: Optional[str]) -> Optional[str]:
    """
    Parse a date string into YYYY-MM-DD.

    Tries a general parse first (day-first, as the site is British), then
    DD/MM/YYYY, then "31 December 2025".

    Args:
        date_text: Raw date string from the page

    Returns:
        ISO date string or None
    """
    if not date_text or not isinstance(date_text, str):
        return None

    text = date_text.strip()
    if not text:
        return None

    if ISO_DATE_RE.match(text):
        return _safe_date(int(text[0:4]), int(text[5:7]), int(text[8:10]))

    # Strings without digits ("Monday", "May") would parse to a date relative to today
    if any(char.isdigit() for char in text):
        try:
            first, second = (
                date_parser.parse(text, dayfirst=True, default=default) for default in DATE_DEFAULTS
            )
        except (ValueError, OverflowError):
            pass
        else:
            # Partial dates ("September 2026", "Friday 12th") are not dates
            if first == second:
                return first.date().isoformat()

    match = NUMERIC_DATE_RE.search(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            return parsed

    match = TEXT_DATE_RE.search(text.lower())
    if match:
        day, month_name, year = match.groups()
        month = MONTHS.get(month_name)
        if month:
            return _safe_date(int(year), month, int(day))

    return None


def derive_hours_type(hours_text: Optional[str]) -> Optional[str]:
    """Map an hours description to "full-time", "part-time" or None."""
    if not hours_text:
        return None
    lowered = hours_text.lower()
    if "full time" in lowered or "full-time" in lowered:
        return "full-time"
    if "part time" in lowered or "part-time" in lowered:
        return "part-time"
    return None


def html_to_text(markup: Optional[str]) -> Optional[str]:
    """
    Convert an HTML fragment into plain text with paragraph breaks.

    Block-level closing tags become line breaks, remaining tags are
    dropped, and named/numeric entities are decoded.
    """
    if not markup:
        return None

    text = re.sub(r"</p>", "\n\n", markup, flags=re.IGNORECASE)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(?:div|li|tr)>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</h[1-6]>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text).replace("\xa0", " ")

    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: Optional[str], max_length: int) -> Optional[str]:
    if text is None or len(text) <= max_length:
        return text
    return text[:max_length]
