"""
Isle of Man Government Job Data Models

JobRecord is the stored entity. The parser produces partial JobRecords
(listing pages) and JobDetail / SecondaryDetail objects (detail pages),
which the enrichment step folds into column updates.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any


# Fetch outcomes
FETCH_SUCCESS = "success"
FETCH_BLOCKED = "blocked"
FETCH_HTTP_ERROR = "http_error"
FETCH_NETWORK_ERROR = "network_error"

# Scrape log statuses
STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

# Scrape log url types
URL_TYPE_FULL = "full"
URL_TYPE_RECENT = "recent"
URL_TYPE_ENRICHMENT = "enrichment"

# Detail-page keys that also populate first-class columns. Everything else
# the detail table yields stays in additional_info.
PROMOTED_FIELDS = (
    "employer",
    "area",
    "location",
    "salary",
    "hours_option",
    "job_type",
    "closing_date",
    "start_date",
    "reference",
    "contact_name",
    "contact_email",
    "contact_phone",
    "qualifications",
    "experience",
    "benefits",
    "how_to_apply",
)


@dataclass
class SalaryRange:
    """Parsed salary bounds."""
    min: Optional[float] = None
    max: Optional[float] = None
    type: Optional[str] = None  # annual, hourly, daily, weekly


@dataclass
class JobRecord:
    """
    A job posting as stored in iom_jobs.

    guid is the deduplication key and never changes once a row exists.
    Listing pages only fill title, employer, classification, hours and
    the links; detail pages fill the rest during enrichment.
    """

    # Identity
    guid: str
    source_url: str
    title: Optional[str] = None

    # Core fields
    employer: Optional[str] = None
    location: Optional[str] = None
    classification: Optional[str] = None
    area: Optional[str] = None
    job_type: Optional[str] = None
    hours_option: Optional[str] = None
    hours_type: Optional[str] = None  # full-time, part-time

    # Compensation
    salary_text: Optional[str] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_type: Optional[str] = None

    # Dates (YYYY-MM-DD)
    posted_date: Optional[str] = None
    closing_date: Optional[str] = None
    start_date: Optional[str] = None

    # Content
    summary: Optional[str] = None
    description: Optional[str] = None
    raw_html: Optional[str] = None

    # Structured extras
    reference: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    qualifications: Optional[str] = None
    experience: Optional[str] = None
    benefits: Optional[str] = None
    how_to_apply: Optional[str] = None
    additional_info: Dict[str, str] = field(default_factory=dict)
    additional_labels: Dict[str, str] = field(default_factory=dict)

    # Links
    apply_url: Optional[str] = None

    # Lifecycle
    scraped_at: Optional[str] = None
    updated_at: Optional[str] = None
    is_active: bool = True
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a column dictionary (id omitted when unset)."""
        data = asdict(self)
        if data["id"] is None:
            del data["id"]
        return data

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JobRecord":
        """Build a JobRecord from a database row, ignoring unknown columns."""
        known = cls.__dataclass_fields__.keys()
        values = {k: v for k, v in row.items() if k in known}
        if values.get("additional_info") is None:
            values["additional_info"] = {}
        if values.get("additional_labels") is None:
            values["additional_labels"] = {}
        return cls(**values)


@dataclass
class Pagination:
    """Pagination signals read from a listing page."""
    has_more: bool = False
    next_url: Optional[str] = None
    current_page: int = 1
    total_pages: int = 1


@dataclass
class JobDetail:
    """
    Parsed primary detail page.

    fields maps canonical keys to values; labels keeps the label text as it
    appeared on the page for each key.
    """
    description: Optional[str] = None
    apply_url: Optional[str] = None
    fields: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def extras(self) -> Dict[str, str]:
        """Fields that have no column of their own."""
        return {k: v for k, v in self.fields.items() if k not in PROMOTED_FIELDS}

    @property
    def extra_labels(self) -> Dict[str, str]:
        return {k: v for k, v in self.labels.items() if k in self.extras}


@dataclass
class SecondaryDetail:
    """Parsed secondary job board (jobtrain) page."""
    description: Optional[str] = None
    salary: Optional[str] = None
    employer: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    closing_date: Optional[str] = None
    posted_date: Optional[str] = None
    title: Optional[str] = None


@dataclass
class FetchResult:
    """
    Outcome of a single GET.

    body is always the raw response text when one was received (kept for
    diagnostics even on a block page); html is only set on success.
    """
    url: str
    outcome: str
    status_code: Optional[int] = None
    body: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.outcome == FETCH_SUCCESS

    @property
    def html(self) -> Optional[str]:
        return self.body if self.ok else None


@dataclass
class FetchStats:
    """Fetch counters across one crawl."""
    attempts: int = 0
    successes: int = 0
    waf_blocks: int = 0
    errors: int = 0

    def record(self, result: FetchResult) -> None:
        self.attempts += 1
        if result.outcome == FETCH_SUCCESS:
            self.successes += 1
        elif result.outcome == FETCH_BLOCKED:
            self.waf_blocks += 1
        else:
            self.errors += 1

    @property
    def failure_rate(self) -> float:
        if not self.attempts:
            return 0.0
        return (self.waf_blocks + self.errors) / self.attempts


@dataclass
class FetchBudget:
    """Outbound requests left in a run (None means no limit)."""
    remaining: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0

    def spend(self) -> None:
        if self.remaining is not None:
            self.remaining -= 1


@dataclass
class ScrapeLog:
    """One row of iom_scrape_log."""
    url_type: str
    id: Optional[int] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    jobs_found: int = 0
    jobs_inserted: int = 0
    jobs_updated: int = 0
    status: str = STATUS_RUNNING
    error_message: Optional[str] = None
    sample_html: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ScrapeLog":
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnrichmentResult:
    """Counts from one enrichment batch."""
    attempted: int = 0
    enriched: int = 0
    failed: int = 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return STATUS_SUCCESS
        if self.enriched == 0:
            return STATUS_FAILED
        return STATUS_PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScrapeResult:
    """Summary returned by a scrape run."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    status: str = STATUS_SUCCESS
    url_type: Optional[str] = None
    failure_category: Optional[str] = None
    found: int = 0
    inserted: int = 0
    updated: int = 0
    duration_seconds: float = 0.0
    fetch_stats: FetchStats = field(default_factory=FetchStats)
    enrichment: Optional[EnrichmentResult] = None
    enrichment_skipped: bool = False
    expired: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the result shape handed back to the admin trigger.

        Returns:
            {success, message|error, stats: {...}}
        """
        data: Dict[str, Any] = {"success": self.success}
        if self.success:
            data["message"] = self.message
        else:
            data["error"] = self.error
        data["status"] = self.status
        if self.failure_category:
            data["category"] = self.failure_category
        data["stats"] = {
            "found": self.found,
            "inserted": self.inserted,
            "updated": self.updated,
            "duration": f"{self.duration_seconds:.1f}s",
            "fetchAttempts": self.fetch_stats.attempts,
            "fetchSuccesses": self.fetch_stats.successes,
            "wafBlocks": self.fetch_stats.waf_blocks,
            "fetchErrors": self.fetch_stats.errors,
        }
        if self.enrichment is not None:
            data["enrichment"] = self.enrichment.to_dict()
        if self.enrichment_skipped:
            data["enrichmentSkipped"] = True
        data["expired"] = self.expired
        return data


@dataclass
class HealthReport:
    """Result of a health check over recent scrape logs."""
    healthy: bool
    status: str
    issues: List[str] = field(default_factory=list)
    last_scrape: Optional[Dict[str, Any]] = None
    last_enrichment: Optional[Dict[str, Any]] = None
    recent_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
