"""Idempotent persistence of normalised patents across the relational tables."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from sqlalchemy import Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models import (
    Assignee,
    Citation,
    Classification,
    Inventor,
    Patent,
    PatentAssignee,
    PatentClassification,
    PatentInventor,
)
from app.models.patent import utcnow
from app.services.ingestion.normalize import (
    NormalizedAssignee,
    NormalizedCitation,
    NormalizedClassification,
    NormalizedInventor,
    NormalizedPatent,
    to_calendar_date,
)

LOGGER = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class UpsertError(RuntimeError):
    """A patent could not be written; its transaction was rolled back."""

    def __init__(self, patent_id: str, cause: Exception) -> None:
        super().__init__(f"Failed to upsert patent {patent_id}: {cause}")
        self.patent_id = patent_id


def citation_dedupe_key(patent_id: str, cited_patent_id: Optional[str], citation_type: Optional[str]) -> str:
    """Key equal for citations that agree on all three fields, NULLs included."""

    payload = json.dumps([patent_id, cited_patent_id, citation_type], ensure_ascii=False)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


class PatentUpsertWriter:
    """Write normalised patents with insert-or-update semantics.

    Every patent is written in its own transaction: entity rows first, then
    the junction rows that reference them. Re-running a batch leaves the
    tables unchanged apart from ``updated_at`` timestamps.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def write_batch(self, patents: Sequence[NormalizedPatent]) -> int:
        written = 0
        for patent in patents:
            try:
                with self._session_factory.begin() as session:
                    self.write_patent(session, patent)
            except SQLAlchemyError as exc:
                LOGGER.error("Rolled back patent %s after %s committed in this batch", patent.id, written)
                raise UpsertError(patent.id, exc) from exc
            written += 1
        LOGGER.info("Upserted %s patents", written)
        return written

    def write_patent(self, session: Session, patent: NormalizedPatent) -> None:
        now = self._clock()
        insert = _insert_factory(session)

        self._upsert_patent(session, insert, patent, now)

        for assignee in _unique_by_id(patent.assignees).values():
            self._upsert_assignee(session, insert, assignee, now)
            session.execute(
                insert(_table(PatentAssignee))
                .values(patent_id=patent.id, assignee_id=assignee.id)
                .on_conflict_do_nothing()
            )

        for inventor in _unique_by_id(patent.inventors).values():
            self._upsert_inventor(session, insert, inventor, now)
            session.execute(
                insert(_table(PatentInventor))
                .values(patent_id=patent.id, inventor_id=inventor.id)
                .on_conflict_do_nothing()
            )

        for classification in patent.classifications:
            classification_id = self._upsert_classification(session, insert, classification, now)
            session.execute(
                insert(_table(PatentClassification))
                .values(patent_id=patent.id, classification_id=classification_id)
                .on_conflict_do_nothing()
            )

        for citation in patent.citations:
            self._insert_citation(session, insert, patent.id, citation, now)

    def _upsert_patent(self, session: Session, insert, patent: NormalizedPatent, now: datetime) -> None:
        fields: Dict[str, Any] = {
            "title": patent.title,
            "abstract": patent.abstract,
            "claims": patent.claims,
            "ipc_codes": list(patent.ipc_codes),
            "cpc_codes": list(patent.cpc_codes),
            "publication_date": to_calendar_date(patent.publication_date),
            "priority_date": to_calendar_date(patent.priority_date),
            "filing_date": to_calendar_date(patent.filing_date),
        }
        stmt = insert(_table(Patent)).values(id=patent.id, created_at=now, updated_at=now, **fields)
        session.execute(
            stmt.on_conflict_do_update(index_elements=["id"], set_={**fields, "updated_at": now})
        )

    def _upsert_assignee(self, session: Session, insert, assignee: NormalizedAssignee, now: datetime) -> None:
        fields = {
            "name": assignee.name,
            "country": assignee.country,
            "state": assignee.state,
            "city": assignee.city,
        }
        stmt = insert(_table(Assignee)).values(id=assignee.id, created_at=now, updated_at=now, **fields)
        session.execute(
            stmt.on_conflict_do_update(index_elements=["id"], set_={**fields, "updated_at": now})
        )

    def _upsert_inventor(self, session: Session, insert, inventor: NormalizedInventor, now: datetime) -> None:
        fields = {
            "first_name": inventor.first_name,
            "last_name": inventor.last_name,
            "country": inventor.country,
            "state": inventor.state,
            "city": inventor.city,
        }
        stmt = insert(_table(Inventor)).values(id=inventor.id, created_at=now, updated_at=now, **fields)
        session.execute(
            stmt.on_conflict_do_update(index_elements=["id"], set_={**fields, "updated_at": now})
        )

    def _upsert_classification(
        self, session: Session, insert, classification: NormalizedClassification, now: datetime
    ) -> int:
        stmt = insert(_table(Classification)).values(
            code=classification.code,
            scheme=classification.scheme,
            description=classification.description,
            created_at=now,
            updated_at=now,
        )
        session.execute(
            stmt.on_conflict_do_update(
                index_elements=["code", "scheme"],
                set_={"description": classification.description, "updated_at": now},
            )
        )
        return session.execute(
            select(Classification.id).where(
                Classification.code == classification.code,
                Classification.scheme == classification.scheme,
            )
        ).scalar_one()

    def _insert_citation(
        self, session: Session, insert, patent_id: str, citation: NormalizedCitation, now: datetime
    ) -> None:
        stmt = insert(_table(Citation)).values(
            patent_id=patent_id,
            cited_patent_id=citation.cited_patent_id,
            citation_type=citation.citation_type,
            dedupe_key=citation_dedupe_key(patent_id, citation.cited_patent_id, citation.citation_type),
            created_at=now,
        )
        session.execute(stmt.on_conflict_do_nothing(index_elements=["dedupe_key"]))


def _table(model) -> Table:
    return model.__table__


def _unique_by_id(entities):
    return {entity.id: entity for entity in entities}


def _insert_factory(session: Session):
    dialect = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError:
        raise ValueError(f"Upserts are not supported on the {dialect!r} dialect") from None
