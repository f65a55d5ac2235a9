"""Patent search and read endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app import models, schemas
from app.api.dependencies import AppSettings, DbSession
from app.services.search import PatentSearchService, SearchHit

router = APIRouter(prefix="/patents", tags=["patents"])

MIN_QUERY_LENGTH = 2


@router.get("/search", response_model=schemas.SearchResponse)
def search_patents(
    db: DbSession,
    settings: AppSettings,
    q: Optional[str] = Query(None, description="Free-text query matched against title and abstract."),
    limit: Optional[int] = Query(None, description="Maximum number of results."),
) -> schemas.SearchResponse:
    """Rank persisted patents whose title or abstract contains the query."""

    query = (q or "").strip()
    if len(query) < MIN_QUERY_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Query must be at least {MIN_QUERY_LENGTH} characters.",
        )

    size = min(settings.search_max_limit, max(1, limit or settings.search_default_limit))
    hits = PatentSearchService(db).search(query, size)
    return schemas.SearchResponse(results=[_to_result(hit) for hit in hits])


def _to_result(hit: SearchHit) -> schemas.SearchResult:
    patent = hit.patent
    assignee = next((entry.name for entry in patent.assignees if entry.name), "Unknown assignee")
    inventors = [name for name in (entry.display_name for entry in patent.inventors) if name]
    backward = [citation.cited_patent_id for citation in patent.citations if citation.cited_patent_id]
    return schemas.SearchResult(
        patent=schemas.SearchPatent(
            id=patent.id,
            title=patent.title or "Untitled patent",
            abstract=patent.abstract or "",
            publication_date=hit.display_date,
            assignee=assignee,
            inventors=inventors,
            classifications=hit.classification_codes,
            citation_count=len(patent.citations),
            backward_citations=backward,
        ),
        score=hit.score,
        highlights=hit.highlights,
    )


@router.get("/", response_model=List[schemas.PatentRead])
def list_patents(
    db: DbSession,
    q: Optional[str] = Query(None, description="Simple search across title and publication number."),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of records."),
) -> List[schemas.PatentRead]:
    """Return persisted patents, newest publication first."""

    stmt = select(models.Patent)

    if q:
        like_pattern = f"%{q}%"
        stmt = stmt.filter(
            (models.Patent.title.ilike(like_pattern)) | (models.Patent.id.ilike(like_pattern))
        )

    results = db.execute(
        stmt.order_by(models.Patent.publication_date.desc().nullslast(), models.Patent.id).limit(limit)
    )
    return results.scalars().all()


@router.get("/{patent_id}", response_model=schemas.PatentDetail)
def get_patent(patent_id: str, db: DbSession) -> schemas.PatentDetail:
    """Fetch a single patent with its parties, classifications and citations."""

    stmt = (
        select(models.Patent)
        .where(models.Patent.id == patent_id)
        .options(
            selectinload(models.Patent.assignees),
            selectinload(models.Patent.inventors),
            selectinload(models.Patent.classifications),
            selectinload(models.Patent.citations),
        )
    )
    document = db.execute(stmt).scalar_one_or_none()
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patent not found")
    return document
