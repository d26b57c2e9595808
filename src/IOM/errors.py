"""
Exception types for the Isle of Man job scraper.

Transport problems are not raised by the fetcher; they are attached to the
FetchResult it returns so callers can count them. Parse errors are caught
per row. Only ScrapeFailure ends a run.
"""

from typing import Optional


class ScraperError(Exception):
    """Base class for scraper errors."""


class NetworkError(ScraperError):
    """The request itself failed (timeout, DNS, connection reset)."""


class AntiBotBlock(ScraperError):
    """The response body is a WAF block page."""


class HttpError(ScraperError):
    """Non-2xx response without a block-page signature."""

    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} for {url}")
        self.status = status
        self.url = url


class ParseError(ScraperError):
    """A single row or section of HTML could not be parsed."""


class StructuralDriftError(ScraperError):
    """Pages loaded fine but the extraction rules matched nothing."""


class MergeConflictError(ScraperError):
    """A unique-key violation on insert; handled as an update."""

    def __init__(self, guid: str):
        super().__init__(f"Job {guid} already exists")
        self.guid = guid


class ScrapeFailure(ScraperError):
    """Run-level failure after the listing crawl."""

    ALL_BLOCKED = "all_blocked"
    HIGH_FAILURE_RATE = "high_failure_rate"
    PARSER_DRIFT = "parser_drift"

    def __init__(self, category: str, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.category = category
        self.cause = cause
