"""
Page fetcher for services.gov.im and jobtrain.co.uk

Plain GETs through Playwright's request context with browser-like
headers. gov.im's WAF checks Referer/Origin, so both are set from the
target's own origin. Every call returns a FetchResult; nothing is raised
for transport problems.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from urllib.parse import urlparse

from playwright.sync_api import (
    sync_playwright, APIRequestContext, Error as PlaywrightError, TimeoutError as PWTimeout,
)

from . import config
from .errors import NetworkError, AntiBotBlock, HttpError
from .models import (
    FetchResult, FETCH_SUCCESS, FETCH_BLOCKED, FETCH_HTTP_ERROR, FETCH_NETWORK_ERROR,
)

logger = logging.getLogger(__name__)


def is_blocked_page(body: Optional[str]) -> bool:
    """Check a response body for the WAF block page phrases."""
    if not body:
        return False
    return any(signature in body for signature in config.WAF_BLOCK_SIGNATURES)


def build_headers(url: str) -> Dict[str, str]:
    """Browser headers plus Referer/Origin for the target's origin."""
    parsed = urlparse(url)
    origin = f"{parsed.scheme}://{parsed.netloc}"

    headers = dict(config.BROWSER_HEADERS)
    headers["User-Agent"] = config.USER_AGENT
    headers["Referer"] = f"{origin}/"
    headers["Origin"] = origin
    return headers


class PageFetcher:
    """
    Fetch pages and classify each response.

    Outcomes:
        success: response ok and no block signature
        blocked: block signature in the body, whatever the status
        http_error: non-2xx without a block signature
        network_error: request failed (timeout, DNS, reset)
    """

    def __init__(self, context: APIRequestContext, timeout_ms: int = config.REQUEST_TIMEOUT):
        self.context = context
        self.timeout_ms = timeout_ms

    def fetch(self, url: str) -> FetchResult:
        """
        GET a URL.

        Args:
            url: Absolute URL

        Returns:
            FetchResult (body kept even when blocked, for diagnostics)
        """
        logger.debug(f"GET {url}")
        try:
            response = self.context.get(url, headers=build_headers(url), timeout=self.timeout_ms)
            body = response.text()
        except PWTimeout as e:
            logger.warning(f"✗ Timeout fetching {url}")
            return FetchResult(url=url, outcome=FETCH_NETWORK_ERROR, error=NetworkError(f"Timeout: {e}"))
        except PlaywrightError as e:
            logger.warning(f"✗ Network error fetching {url}: {e}")
            return FetchResult(url=url, outcome=FETCH_NETWORK_ERROR, error=NetworkError(str(e)))

        status = response.status

        if is_blocked_page(body):
            logger.warning(f"✗ WAF block page for {url} (HTTP {status})")
            return FetchResult(
                url=url, outcome=FETCH_BLOCKED, status_code=status, body=body,
                error=AntiBotBlock(f"Request rejected by WAF: {url}"),
            )

        if not response.ok:
            logger.warning(f"✗ HTTP {status} for {url}")
            return FetchResult(
                url=url, outcome=FETCH_HTTP_ERROR, status_code=status, body=body,
                error=HttpError(status, url),
            )

        logger.debug(f"✓ {url} ({len(body)} chars)")
        return FetchResult(url=url, outcome=FETCH_SUCCESS, status_code=status, body=body)


@contextmanager
def open_fetcher(timeout_ms: int = config.REQUEST_TIMEOUT) -> Iterator[PageFetcher]:
    """
    Start Playwright and yield a PageFetcher, disposing of it afterwards.

    Usage:
        with open_fetcher() as fetcher:
            result = fetcher.fetch(url)
    """
    with sync_playwright() as p:
        context = p.request.new_context(user_agent=config.USER_AGENT)
        try:
            yield PageFetcher(context, timeout_ms)
        finally:
            context.dispose()
