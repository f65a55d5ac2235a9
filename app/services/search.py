"""Keyword search over persisted patents with a token-overlap score."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app import models

MIN_SCORE = 0.3
MAX_SCORE = 0.98
NEUTRAL_SCORE = 0.5
MAX_HIGHLIGHTS = 4
PLACEHOLDER_HIGHLIGHT = "text match"


def unique_list(values: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(values))


def tokenize_query(query: str) -> List[str]:
    """Lower-cased whitespace tokens longer than one character."""

    return [token for token in query.lower().split() if len(token) > 1]


def compute_score(tokens: Sequence[str], title: str, abstract: str) -> float:
    if not tokens:
        return NEUTRAL_SCORE
    haystack = f"{title} {abstract}".lower()
    hits = sum(1 for token in tokens if token in haystack)
    ratio = hits / len(tokens)
    return min(MAX_SCORE, max(MIN_SCORE, MIN_SCORE + ratio * 0.68))


def build_highlights(tokens: Sequence[str], classifications: Sequence[str]) -> List[str]:
    highlights = unique_list([*classifications, *tokens])[:MAX_HIGHLIGHTS]
    return highlights or [PLACEHOLDER_HIGHLIGHT]


@dataclass
class SearchHit:
    patent: models.Patent
    score: float
    highlights: List[str]

    @property
    def display_date(self) -> Optional[str]:
        for value in (self.patent.publication_date, self.patent.filing_date, self.patent.priority_date):
            if value:
                return value.isoformat()
        return None

    @property
    def classification_codes(self) -> List[str]:
        return unique_list([*(self.patent.cpc_codes or []), *(self.patent.ipc_codes or [])])


class PatentSearchService:
    """Match patents by substring, then rank them with the token-overlap score."""

    def __init__(self, db: Session):
        self.db = db

    def search(self, query: str, limit: int) -> List[SearchHit]:
        query = query.strip()
        if not query:
            return []

        pattern = f"%{query}%"
        stmt = (
            select(models.Patent)
            .where(or_(models.Patent.title.ilike(pattern), models.Patent.abstract.ilike(pattern)))
            .options(
                selectinload(models.Patent.assignees),
                selectinload(models.Patent.inventors),
                selectinload(models.Patent.citations),
            )
            .order_by(models.Patent.publication_date.desc().nullslast(), models.Patent.id)
            .limit(limit)
        )
        patents = self.db.execute(stmt).scalars().all()

        tokens = tokenize_query(query)
        hits = []
        for patent in patents:
            hit = SearchHit(patent=patent, score=0.0, highlights=[])
            hit.score = compute_score(tokens, patent.title or "", patent.abstract or "")
            hit.highlights = build_highlights(tokens, hit.classification_codes)
            hits.append(hit)

        # sort is stable: equal scores keep newest-first order
        hits.sort(key=lambda item: item.score, reverse=True)
        return hits
