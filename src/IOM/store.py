"""
Supabase storage for Isle of Man jobs

Jobs live in iom_jobs keyed by guid; every run writes one row to
iom_scrape_log. Field reconciliation between an existing row and fresh
scrape data is done by merge_job() before anything is written, so the
database only ever sees the merged result.
"""

import logging
from datetime import datetime, timezone, timedelta, date
from typing import Optional, List, Dict, Any, Tuple, Iterable

from postgrest.exceptions import APIError
from supabase import create_client, Client

from . import config
from .errors import MergeConflictError
from .jobtrain import is_jobtrain_redirect
from .models import JobRecord, ScrapeLog, STATUS_RUNNING, URL_TYPE_FULL, URL_TYPE_RECENT

logger = logging.getLogger(__name__)


UNIQUE_VIOLATION = "23505"
IN_FILTER_CHUNK = 100
STUB_PAGE_SIZE = 100

# Never touched once the row exists
IMMUTABLE_FIELDS = {"id", "guid", "scraped_at"}
# Always taken from the incoming data when present
REFRESHED_FIELDS = {"is_active", "updated_at"}


def get_supabase_client() -> Client:
    """
    Create and return a Supabase client.

    Returns:
        Supabase client instance

    Raises:
        ValueError: If credentials are not set
    """
    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        raise ValueError(
            "Supabase credentials not found. Please set SUPABASE_URL and SUPABASE_KEY "
            "environment variables.\n\n"
            "Example:\n"
            "export SUPABASE_URL='https://your-project.supabase.co'\n"
            "export SUPABASE_KEY='your-service-role-key'\n"
        )

    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == {} or value == []


def merge_job(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge fresh scrape data into an existing job row.

    Rules:
        - id, guid and scraped_at are never overwritten
        - is_active and updated_at always take the incoming value
        - every other field (title and description included) takes the
          incoming value only when it is non-empty, so a missing value
          never erases a known one
        - additional_info / additional_labels are merged key by key

    Args:
        existing: Current row
        incoming: New values (partial rows allowed)

    Returns:
        New merged row; neither input is modified
    """
    merged = dict(existing)

    for key, value in incoming.items():
        if key in IMMUTABLE_FIELDS and not _is_empty(existing.get(key)):
            continue

        if key in REFRESHED_FIELDS:
            if value is not None:
                merged[key] = value
            continue

        if _is_empty(value):
            continue

        if isinstance(value, dict) and isinstance(existing.get(key), dict):
            merged[key] = {**existing[key], **value}
        else:
            merged[key] = value

    return merged


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class JobStore:
    """Reads and writes iom_jobs and iom_scrape_log."""

    def __init__(self, client: Client):
        self.client = client

    def _jobs(self):
        return self.client.table(config.JOBS_TABLE)

    def _logs(self):
        return self.client.table(config.SCRAPE_LOG_TABLE)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def count_jobs(self) -> int:
        """Number of stored jobs (active or not)."""
        response = self._jobs().select("id", count="exact").limit(1).execute()
        return response.count or 0

    def get_existing_jobs(self, guids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch stored rows for the given guids, keyed by guid."""
        existing = {}
        for chunk in _chunks(list(guids), IN_FILTER_CHUNK):
            response = self._jobs().select("*").in_("guid", chunk).execute()
            for row in response.data or []:
                existing[row["guid"]] = row
        return existing

    def _insert_rows(self, rows: List[Dict[str, Any]]) -> Tuple[int, List[Dict[str, Any]]]:
        """
        Insert new rows.

        Returns:
            (inserted count, rows that turned out to exist already)
        """
        if not rows:
            return 0, []

        try:
            self._jobs().insert(rows).execute()
            return len(rows), []
        except APIError as e:
            if e.code != UNIQUE_VIOLATION:
                raise
            logger.warning("Batch insert hit an existing guid, retrying row by row")

        inserted = 0
        conflicts = []
        for row in rows:
            try:
                self._insert_one(row)
                inserted += 1
            except MergeConflictError as e:
                logger.info(f"{e}, merging as update")
                conflicts.append(row)
        return inserted, conflicts

    def _insert_one(self, row: Dict[str, Any]) -> None:
        """
        Raises:
            MergeConflictError: If a row with this guid already exists
        """
        try:
            self._jobs().insert(row).execute()
        except APIError as e:
            if e.code != UNIQUE_VIOLATION:
                raise
            raise MergeConflictError(row["guid"]) from e

    def upsert_jobs(self, jobs: List[JobRecord]) -> Tuple[int, int]:
        """
        Insert new jobs and merge known ones.

        Every job passed in is (re)marked active. Duplicate guids within
        the batch are folded into one row first.

        Args:
            jobs: Parsed JobRecords

        Returns:
            (inserted, updated) counts for this call
        """
        if not jobs:
            return 0, 0

        now = _now()
        incoming: Dict[str, Dict[str, Any]] = {}
        for job in jobs:
            row = job.to_dict()
            row["is_active"] = True
            row["updated_at"] = now
            if job.guid in incoming:
                incoming[job.guid] = merge_job(incoming[job.guid], row)
            else:
                incoming[job.guid] = row

        existing = self.get_existing_jobs(list(incoming))

        new_rows = []
        merged_rows = []
        for guid, row in incoming.items():
            if guid in existing:
                merged_rows.append(merge_job(existing[guid], row))
            else:
                row["scraped_at"] = row.get("scraped_at") or now
                new_rows.append(row)

        inserted, conflicts = self._insert_rows(new_rows)
        if conflicts:
            raced = self.get_existing_jobs([row["guid"] for row in conflicts])
            for row in conflicts:
                current = raced.get(row["guid"])
                if current is None:
                    logger.warning(f"Job {row['guid']} conflicted on insert but could not be read back")
                    continue
                merged_rows.append(merge_job(current, row))

        if merged_rows:
            self._jobs().upsert(merged_rows, on_conflict="guid").execute()

        logger.debug(f"Upserted {len(incoming)} jobs: {inserted} new, {len(merged_rows)} updated")
        return inserted, len(merged_rows)

    def update_job_details(self, guid: str, updates: Dict[str, Any]) -> bool:
        """
        Merge enrichment results into one stored job.

        Only columns whose value changes are written.

        Args:
            guid: Job guid
            updates: Column values from the detail page

        Returns:
            False when the job does not exist
        """
        current = self.get_existing_jobs([guid]).get(guid)
        if current is None:
            logger.warning(f"Cannot update {guid}: job not found")
            return False

        merged = merge_job(current, {**updates, "updated_at": _now()})
        changes = {
            k: v for k, v in merged.items()
            if k not in IMMUTABLE_FIELDS and current.get(k) != v
        }
        if changes:
            self._jobs().update(changes).eq("guid", guid).execute()
        return True

    def mark_expired_jobs(self, today: Optional[str] = None) -> int:
        """
        Deactivate active jobs whose closing date has passed.

        Args:
            today: ISO date to compare against (defaults to today)

        Returns:
            Number of jobs deactivated
        """
        today = today or date.today().isoformat()
        response = (
            self._jobs()
            .update({"is_active": False, "updated_at": _now()})
            .eq("is_active", True)
            .lt("closing_date", today)
            .execute()
        )
        expired = len(response.data or [])
        logger.info(f"Marked {expired} jobs as expired")
        return expired

    def _jobtrain_stubs(self, limit: int) -> List[Dict[str, Any]]:
        """
        Newest active rows whose description is a short jobtrain stub.

        Enriched jobtrain adverts keep the domain in their footer, so the
        ilike matches are paged through until enough short ones turn up.
        """
        stubs: List[Dict[str, Any]] = []
        offset = 0
        while len(stubs) < limit:
            response = (
                self._jobs().select("*")
                .eq("is_active", True)
                .ilike("description", f"%{config.SECONDARY_BOARD_DOMAIN}%")
                .order("scraped_at", desc=True)
                .range(offset, offset + STUB_PAGE_SIZE - 1)
                .execute()
            )
            page = response.data or []
            stubs.extend(row for row in page if is_jobtrain_redirect(row.get("description")))
            if len(page) < STUB_PAGE_SIZE:
                break
            offset += STUB_PAGE_SIZE
        return stubs[:limit]

    def get_jobs_needing_enrichment(self, limit: int = config.ENRICH_BATCH_SIZE) -> List[JobRecord]:
        """
        Active jobs with no description, or only a jobtrain stub, newest first.

        Args:
            limit: Maximum number of jobs

        Returns:
            JobRecords to enrich
        """
        missing = (
            self._jobs().select("*")
            .eq("is_active", True)
            .is_("description", "null")
            .order("scraped_at", desc=True)
            .limit(limit)
            .execute()
        )
        rows = {}
        for row in missing.data or []:
            rows[row["guid"]] = row
        for row in self._jobtrain_stubs(limit):
            rows[row["guid"]] = row

        candidates = [r for r in rows.values() if r.get("source_url") and r.get("is_active", True)]
        candidates.sort(key=lambda r: r.get("scraped_at") or "", reverse=True)
        return [JobRecord.from_row(r) for r in candidates[:limit]]

    # ------------------------------------------------------------------
    # Scrape log
    # ------------------------------------------------------------------

    def start_scrape_log(self, url_type: str) -> Optional[int]:
        """
        Create a "running" log row.

        Returns:
            Log id, or None if the row could not be written
        """
        log = ScrapeLog(url_type=url_type, started_at=_now(), status=STATUS_RUNNING)
        row = log.to_dict()
        del row["id"]
        try:
            response = self._logs().insert(row).execute()
            return response.data[0]["id"] if response.data else None
        except APIError as e:
            logger.error(f"Failed to create scrape log: {e}")
            return None

    def update_scrape_progress(self, log_id: Optional[int], found: int, inserted: int, updated: int) -> None:
        """Write running counters to the log row."""
        if log_id is None:
            return
        try:
            self._logs().update({
                "jobs_found": found,
                "jobs_inserted": inserted,
                "jobs_updated": updated,
            }).eq("id", log_id).execute()
        except APIError as e:
            logger.error(f"Failed to update scrape log {log_id}: {e}")

    def finish_scrape_log(
        self,
        log_id: Optional[int],
        status: str,
        found: int = 0,
        inserted: int = 0,
        updated: int = 0,
        error_message: Optional[str] = None,
        sample_html: Optional[str] = None,
    ) -> None:
        """Finalize the log row (status, completed_at, counters, diagnostics)."""
        if log_id is None:
            return
        try:
            self._logs().update({
                "status": status,
                "completed_at": _now(),
                "jobs_found": found,
                "jobs_inserted": inserted,
                "jobs_updated": updated,
                "error_message": error_message,
                "sample_html": sample_html,
            }).eq("id", log_id).execute()
        except APIError as e:
            logger.error(f"Failed to finalize scrape log {log_id}: {e}")

    def get_recent_scrape_logs(self, days: int = config.HEALTH_LOOKBACK_DAYS) -> List[ScrapeLog]:
        """Log rows started within the last `days` days, newest first."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        response = (
            self._logs().select("*")
            .gte("started_at", cutoff)
            .order("started_at", desc=True)
            .execute()
        )
        return [ScrapeLog.from_row(row) for row in response.data or []]

    def get_last_scrape_log(self, url_types: Optional[List[str]] = None) -> Optional[ScrapeLog]:
        """
        Most recent log row.

        Args:
            url_types: Restrict to these url types (defaults to listing scrapes)
        """
        url_types = url_types or [URL_TYPE_FULL, URL_TYPE_RECENT]
        response = (
            self._logs().select("*")
            .in_("url_type", url_types)
            .order("started_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return ScrapeLog.from_row(response.data[0])
