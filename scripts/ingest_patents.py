"""Ingest patent bibliographic data into the relational store."""

from __future__ import annotations

import argparse
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from app.core.config import Settings, get_settings
from app.db.base import Base
from app.db.session import build_engine, build_session_factory
from app import models  # noqa: F401
from app.services.ingestion.normalize import normalize_records
from app.services.ingestion.sources import (
    BYTES_PER_GIB,
    BigQuerySource,
    PageRequest,
    PatentSource,
    PatentsViewSource,
    estimate_cost_usd,
    load_local_records,
    walk_pages,
)
from app.services.ingestion.writer import PatentUpsertWriter

LOGGER = logging.getLogger("ingest_patents")

SOURCES = {
    "bigquery": BigQuerySource,
    "patentsview": PatentsViewSource,
}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def iso_date(value: str) -> Optional[str]:
    if not value:
        return None
    if not _ISO_DATE.match(value):
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")
    return value


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def parse_args(argv: Optional[Sequence[str]], settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest patents from BigQuery, PatentsView or a local JSON export")
    parser.add_argument("--limit", type=positive_int, default=settings.ingest_limit, help="Maximum number of records to fetch")
    parser.add_argument("--page-size", type=positive_int, default=settings.ingest_page_size, help="Records requested per page")
    parser.add_argument("--start-date", type=iso_date, default=settings.ingest_start_date, help="Earliest publication date (YYYY-MM-DD); empty to disable")
    parser.add_argument("--end-date", type=iso_date, help="Latest publication date (YYYY-MM-DD)")
    parser.add_argument("--source", choices=sorted(SOURCES), default="bigquery", help="External source to page through")
    parser.add_argument("--source-file", type=Path, help="JSON array of raw records to ingest instead of querying a source")
    parser.add_argument("--include-citations", action="store_true", help="Fetch and persist citation lists")
    parser.add_argument("--dry-run", action="store_true", help="Estimate query cost (or normalise a source file) without writing")
    parser.add_argument("--max-bytes-billed", type=positive_int, help="Fail BigQuery jobs that would bill more than this many bytes")
    parser.add_argument("--database-url", help="Override the configured SQLAlchemy database URL")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables before writing")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level), format="%(asctime)s %(levelname)s %(message)s")


def build_page_request(args: argparse.Namespace) -> PageRequest:
    return PageRequest(
        page_size=args.page_size,
        start_date=args.start_date,
        end_date=args.end_date,
        include_citations=args.include_citations,
        max_bytes_billed=args.max_bytes_billed,
    )


def build_source(name: str, settings: Settings) -> PatentSource:
    return SOURCES[name](settings=settings)


def iter_raw_batches(args: argparse.Namespace, settings: Settings) -> Iterator[List[Dict[str, Any]]]:
    if args.source_file:
        yield load_local_records(args.source_file)
        return
    source = build_source(args.source, settings)
    yield from walk_pages(source, build_page_request(args), args.limit)


def estimate(args: argparse.Namespace, settings: Settings) -> None:
    source = build_source(args.source, settings)
    bytes_processed = source.estimate_bytes(build_page_request(args))
    cost = estimate_cost_usd(bytes_processed, settings.bigquery_cost_per_tb_usd)
    print(
        f"Dry run estimate: {bytes_processed} bytes "
        f"({bytes_processed / BYTES_PER_GIB:.2f} GiB, ~${cost:.4f})"
    )


def ingest(args: argparse.Namespace, settings: Settings) -> int:
    engine = build_engine(args.database_url or settings.database_url, echo=settings.database_echo)
    try:
        if args.create_tables:
            Base.metadata.create_all(bind=engine)
        writer = PatentUpsertWriter(build_session_factory(engine))
        total = 0
        for batch in iter_raw_batches(args, settings):
            patents = normalize_records(batch)
            LOGGER.info("Normalised %s of %s fetched records", len(patents), len(batch))
            total += writer.write_batch(patents)
        return total
    finally:
        engine.dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = get_settings()
    args = parse_args(argv, settings)
    configure_logging(args.log_level)

    try:
        if args.dry_run and not args.source_file:
            estimate(args, settings)
            return 0

        if args.dry_run:
            patents = normalize_records(load_local_records(args.source_file))
            LOGGER.info("Dry run enabled: skipping database writes")
            print(f"Normalised {len(patents)} patents (dry run).")
            return 0

        total = ingest(args, settings)
    except Exception:
        LOGGER.exception("Ingestion failed")
        return 1

    if not total:
        LOGGER.warning("No patent records to ingest.")
    print(f"Ingested {total} patents.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
