"""Pydantic schemas for API payloads."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AssigneeRead(BaseModel):
    id: str
    name: str
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InventorRead(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ClassificationRead(BaseModel):
    code: str
    scheme: str = Field(..., description="Classification scheme, ipc or cpc.")
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CitationRead(BaseModel):
    cited_patent_id: Optional[str] = Field(
        None, description="Cited publication number; absent when the source could not resolve it."
    )
    citation_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PatentRead(BaseModel):
    id: str = Field(..., description="Publication number.")
    title: Optional[str] = None
    abstract: Optional[str] = None
    claims: Optional[str] = None
    ipc_codes: List[str] = Field(default_factory=list)
    cpc_codes: List[str] = Field(default_factory=list)
    publication_date: Optional[date] = None
    priority_date: Optional[date] = None
    filing_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PatentDetail(PatentRead):
    assignees: List[AssigneeRead] = Field(default_factory=list)
    inventors: List[InventorRead] = Field(default_factory=list)
    classifications: List[ClassificationRead] = Field(default_factory=list)
    citations: List[CitationRead] = Field(default_factory=list)


class SearchPatent(BaseModel):
    id: str
    title: str
    abstract: str
    publication_date: Optional[str] = Field(
        None, description="Publication date, falling back to filing then priority date."
    )
    assignee: str
    inventors: List[str]
    classifications: List[str]
    citation_count: int
    backward_citations: List[str]


class SearchResult(BaseModel):
    patent: SearchPatent
    score: float
    highlights: List[str]


class SearchResponse(BaseModel):
    results: List[SearchResult]
