"""
Configuration for the Isle of Man Government job scraper (services.gov.im)
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs" / "IOM"

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Base URLs
BASE_URL = "https://services.gov.im"
LISTING_URL = f"{BASE_URL}/job-search/results"
FULL_LISTING_PARAMS = "AreaId=&ClassificationId=&SearchText=&LastThreeDays=False&JobHoursOption="
RECENT_LISTING_PARAMS = "AreaId=&ClassificationId=&SearchText=&LastThreeDays=True&JobHoursOption="
FULL_LISTING_URL = f"{LISTING_URL}?{FULL_LISTING_PARAMS}"
RECENT_LISTING_URL = f"{LISTING_URL}?{RECENT_LISTING_PARAMS}"

# Detail pages are linked as ".../viewjob?Id=12345"
DETAIL_URL_MARKER = "viewjob"

# Secondary job board that some postings redirect to
SECONDARY_BOARD_DOMAIN = "jobtrain.co.uk"
STUB_REDIRECT_MAX_LENGTH = 500  # descriptions shorter than this are treated as redirects

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY")
JOBS_TABLE = "iom_jobs"
SCRAPE_LOG_TABLE = "iom_scrape_log"

# Scraping settings
REQUEST_DELAY = _env_float("IOM_REQUEST_DELAY", 1.0)  # seconds between requests
REQUEST_TIMEOUT = _env_int("IOM_REQUEST_TIMEOUT_MS", 30000)  # per request, milliseconds
MAX_PAGES = _env_int("IOM_MAX_PAGES", 20)  # listing pages per run
ENRICH_BATCH_SIZE = _env_int("IOM_ENRICH_BATCH_SIZE", 100)

# Outbound request quota per run. Enrichment only runs inline while the
# listing crawl stayed under this many fetch attempts.
FETCH_BUDGET = _env_int("IOM_FETCH_BUDGET", 40)

# Failure classification
HIGH_FAILURE_RATE = 0.5
SAMPLE_HTML_MAX_CHARS = 5000

# Salary parsing: treat a bare number under 1000 as thousands when the text
# says "per annum" (e.g. "£25 - £30 per annum")
ANNUAL_SMALL_NUMBERS_IN_THOUSANDS = _env_bool("IOM_ANNUAL_SMALL_NUMBERS_IN_THOUSANDS", True)

# Health check thresholds
HEALTH_LOOKBACK_DAYS = 7
HEALTH_MAX_HOURS_SINCE_SCRAPE = 48
HEALTH_MIN_SCRAPES_FOR_RATE = 3

# gov.im sits behind an F5/Volterra WAF; these phrases only appear on its block page
WAF_BLOCK_SIGNATURES = [
    "Request Rejected",
    "URL was rejected",
]

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
}

# Navigation labels that look like titles in the link-scan fallback
NAVIGATION_LABELS = {"job search", "jobs", "vacancies", "next", "previous", "back"}
