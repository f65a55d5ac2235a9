"""Ingestion pipeline: source paging, record normalisation and upserts."""

from .normalize import (  # noqa: F401
    NormalizedPatent,
    normalize_date,
    normalize_record,
    normalize_records,
    stable_id,
)
from .sources import (  # noqa: F401
    BigQuerySource,
    Cursor,
    PageRequest,
    PatentsViewSource,
    SourceError,
    load_local_records,
    walk_pages,
)
from .writer import PatentUpsertWriter, UpsertError  # noqa: F401
