"""External patent sources and the cursor-based page walker."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol

import httpx
from google.api_core import exceptions as google_exceptions
from google.cloud import bigquery

from app.core.config import Settings, get_settings
from app.services.ingestion.normalize import (
    PUBLICATION_DATE_FIELDS,
    PUBLICATION_NUMBER_FIELDS,
    get_string,
    get_value,
    normalize_date,
    to_date_int,
)

LOGGER = logging.getLogger(__name__)

BYTES_PER_TB = 1_000_000_000_000
BYTES_PER_GIB = 1024**3


class SourceError(RuntimeError):
    """Raised when an external source cannot be queried or returns unusable data."""


# ---------------------------------------------------------------------------
# Page requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cursor:
    """Sort key of the last record seen: publication date and publication number."""

    date: str
    record_id: str


@dataclass(frozen=True)
class PageRequest:
    page_size: int
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    cursor: Optional[Cursor] = None
    include_citations: bool = False
    max_bytes_billed: Optional[int] = None


class PatentSource(Protocol):
    """Interface for paged upstream patent sources."""

    name: str

    def fetch_page(self, request: PageRequest) -> List[Dict[str, Any]]:
        ...

    def estimate_bytes(self, request: PageRequest) -> int:
        ...


def cursor_from_record(record: Dict[str, Any]) -> Optional[Cursor]:
    """Cursor positioned at ``record``; None when its date or id cannot be read."""

    record_date = normalize_date(get_value(record, PUBLICATION_DATE_FIELDS))
    record_id = get_string(record, PUBLICATION_NUMBER_FIELDS)
    if not record_date or not record_id:
        return None
    return Cursor(date=record_date, record_id=record_id)


def walk_pages(source: PatentSource, request: PageRequest, limit: int) -> Iterator[List[Dict[str, Any]]]:
    """Yield pages ordered by (date, id) until ``limit`` records or the source runs dry.

    Each page is requested strictly after the previous page's last record, so
    rows inserted upstream mid-run never shift the window.
    """

    if request.page_size < 1:
        raise ValueError("page_size must be positive")

    fetched = 0
    cursor = request.cursor
    while fetched < limit:
        remaining = limit - fetched
        page_request = replace(request, page_size=min(request.page_size, remaining), cursor=cursor)
        LOGGER.info("Fetching up to %s records from %s after %s", page_request.page_size, source.name, cursor)
        rows = source.fetch_page(page_request)
        if not rows:
            break
        batch = rows[:remaining]
        fetched += len(batch)
        yield batch

        cursor = cursor_from_record(batch[-1])
        if cursor is None:
            LOGGER.warning("Last record of page has no date or publication number; stopping pagination")
            break


def estimate_cost_usd(bytes_processed: int, cost_per_tb: float) -> float:
    return (bytes_processed / BYTES_PER_TB) * cost_per_tb


# ---------------------------------------------------------------------------
# BigQuery
# ---------------------------------------------------------------------------


BIGQUERY_FIELDS = [
    "publication_number",
    "publication_date",
    "filing_date",
    "priority_date",
    "title_localized",
    "abstract_localized",
    "assignee",
    "inventor",
    "cpc",
    "ipc",
    "assignee_harmonized",
    "inventor_harmonized",
]


def build_bigquery_query(table_id: str, request: PageRequest) -> tuple[str, List[bigquery.ScalarQueryParameter]]:
    """SQL and parameters for one page of ``patents.publications``."""

    fields = list(BIGQUERY_FIELDS)
    if request.include_citations:
        fields.append("citation")

    where_parts: List[str] = []
    params = [bigquery.ScalarQueryParameter("limit", "INT64", request.page_size)]

    start_date = to_date_int(request.start_date)
    if start_date:
        where_parts.append("publication_date >= @startDate")
        params.append(bigquery.ScalarQueryParameter("startDate", "INT64", start_date))

    end_date = to_date_int(request.end_date)
    if end_date:
        where_parts.append("publication_date <= @endDate")
        params.append(bigquery.ScalarQueryParameter("endDate", "INT64", end_date))

    if request.cursor:
        where_parts.append(
            "(publication_date > @cursorDate OR "
            "(publication_date = @cursorDate AND publication_number > @cursorNumber))"
        )
        params.append(bigquery.ScalarQueryParameter("cursorDate", "INT64", to_date_int(request.cursor.date)))
        params.append(bigquery.ScalarQueryParameter("cursorNumber", "STRING", request.cursor.record_id))

    where_clause = " AND ".join(where_parts) if where_parts else "1=1"
    columns = ",\n      ".join(fields)
    query = (
        f"SELECT\n      {columns}\n"
        f"FROM `{table_id}`\n"
        f"WHERE {where_clause}\n"
        "ORDER BY publication_date ASC, publication_number ASC\n"
        "LIMIT @limit"
    )
    return query, params


class BigQuerySource:
    """Google Patents public data (or a copy of it) in BigQuery."""

    name = "bigquery"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[bigquery.Client] = None) -> None:
        self._settings = settings or get_settings()
        self._client = client or bigquery.Client(project=self._settings.bigquery_project_id or None)

    def _job_config(self, request: PageRequest, dry_run: bool = False) -> tuple[str, bigquery.QueryJobConfig]:
        query, params = build_bigquery_query(self._settings.bigquery_table_id, request)
        job_config = bigquery.QueryJobConfig(
            query_parameters=params,
            use_query_cache=False,
            dry_run=dry_run,
        )
        if request.max_bytes_billed:
            job_config.maximum_bytes_billed = int(request.max_bytes_billed)
        return query, job_config

    def fetch_page(self, request: PageRequest) -> List[Dict[str, Any]]:
        query, job_config = self._job_config(request)
        try:
            job = self._client.query(query, job_config=job_config, location=self._settings.bigquery_location)
            return [dict(row.items()) for row in job.result()]
        except google_exceptions.GoogleAPIError as exc:
            raise SourceError(f"BigQuery page fetch failed: {exc}") from exc

    def estimate_bytes(self, request: PageRequest) -> int:
        """Bytes the page query would scan, from a dry-run job."""

        query, job_config = self._job_config(request, dry_run=True)
        try:
            job = self._client.query(query, job_config=job_config, location=self._settings.bigquery_location)
        except google_exceptions.GoogleAPIError as exc:
            raise SourceError(f"BigQuery dry run failed: {exc}") from exc
        return int(job.total_bytes_processed or 0)


# ---------------------------------------------------------------------------
# PatentsView REST API
# ---------------------------------------------------------------------------


PATENTSVIEW_FIELDS = [
    "patent_id",
    "patent_title",
    "patent_abstract",
    "patent_date",
    "patent_earliest_application_date",
    "assignees",
    "inventors",
    "cpc_current",
    "ipcr",
]


def build_patentsview_query(request: PageRequest) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = []
    if request.start_date:
        clauses.append({"_gte": {"patent_date": request.start_date}})
    if request.end_date:
        clauses.append({"_lte": {"patent_date": request.end_date}})
    if request.cursor:
        clauses.append(
            {
                "_or": [
                    {"_gt": {"patent_date": request.cursor.date}},
                    {
                        "_and": [
                            {"patent_date": request.cursor.date},
                            {"_gt": {"patent_id": request.cursor.record_id}},
                        ]
                    },
                ]
            }
        )

    if not clauses:
        return {"_gte": {"patent_date": "1976-01-01"}}
    if len(clauses) == 1:
        return clauses[0]
    return {"_and": clauses}


class PatentsViewSource:
    """Client for the USPTO PatentsView search API."""

    name = "patentsview"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.Client] = None) -> None:
        self._settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=self._settings.http_timeout_seconds)

    def fetch_page(self, request: PageRequest) -> List[Dict[str, Any]]:
        fields = list(PATENTSVIEW_FIELDS)
        if request.include_citations:
            fields.append("us_patent_citations")
        body = {
            "q": build_patentsview_query(request),
            "f": fields,
            "s": [{"patent_date": "asc"}, {"patent_id": "asc"}],
            "o": {"size": request.page_size},
        }
        headers = {"Accept": "application/json"}
        if self._settings.patentsview_api_key:
            headers["X-Api-Key"] = self._settings.patentsview_api_key

        try:
            response = self._client.post(self._settings.patentsview_endpoint, json=body, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceError(f"PatentsView request failed: {exc}") from exc

        patents = data.get("patents") if isinstance(data, dict) else None
        return [item for item in patents or [] if isinstance(item, dict)]

    def estimate_bytes(self, request: PageRequest) -> int:
        raise SourceError("Cost estimation is only available for the BigQuery source")


# ---------------------------------------------------------------------------
# Local files
# ---------------------------------------------------------------------------


def load_local_records(path: Path) -> List[Dict[str, Any]]:
    """Read a JSON array of raw records exported from one of the sources."""

    path = Path(path).expanduser()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SourceError(f"Cannot read local source file {path}: {exc}") from exc
    if not isinstance(data, list):
        raise SourceError("Local source file must contain an array of patent records")
    LOGGER.info("Loaded %s records from %s", len(data), path)
    return data
