"""ORM models representing patent-related entities."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


class Patent(Base):
    """Patent keyed by its publication number."""

    __tablename__ = "patent"

    id: Mapped[str] = mapped_column(Text(), primary_key=True)
    title: Mapped[Optional[str]] = mapped_column(Text())
    abstract: Mapped[Optional[str]] = mapped_column(Text())
    claims: Mapped[Optional[str]] = mapped_column(Text())
    ipc_codes: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    cpc_codes: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    publication_date: Mapped[Optional[date]] = mapped_column(Date(), index=True)
    priority_date: Mapped[Optional[date]] = mapped_column(Date())
    filing_date: Mapped[Optional[date]] = mapped_column(Date())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    assignees: Mapped[List[Assignee]] = relationship(
        "Assignee", secondary="patent_assignee", order_by="Assignee.name", viewonly=True
    )
    inventors: Mapped[List[Inventor]] = relationship(
        "Inventor", secondary="patent_inventor", order_by="Inventor.id", viewonly=True
    )
    classifications: Mapped[List[Classification]] = relationship(
        "Classification",
        secondary="patent_classification",
        order_by="Classification.code",
        viewonly=True,
    )
    citations: Mapped[List[Citation]] = relationship(
        "Citation", back_populates="patent", order_by="Citation.id"
    )


class Assignee(Base):
    """Organisation (or person) holding rights in a patent."""

    __tablename__ = "assignee"

    id: Mapped[str] = mapped_column(Text(), primary_key=True)
    name: Mapped[str] = mapped_column(Text(), nullable=False)
    country: Mapped[Optional[str]] = mapped_column(Text())
    state: Mapped[Optional[str]] = mapped_column(Text())
    city: Mapped[Optional[str]] = mapped_column(Text())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class Inventor(Base):
    __tablename__ = "inventor"

    id: Mapped[str] = mapped_column(Text(), primary_key=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text())
    last_name: Mapped[Optional[str]] = mapped_column(Text())
    country: Mapped[Optional[str]] = mapped_column(Text())
    state: Mapped[Optional[str]] = mapped_column(Text())
    city: Mapped[Optional[str]] = mapped_column(Text())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Classification(Base):
    """IPC or CPC code, unique per (code, scheme)."""

    __tablename__ = "classification"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(Text(), nullable=False)
    scheme: Mapped[str] = mapped_column(String(8), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("code", "scheme", name="classification_code_scheme_key"),
        CheckConstraint("scheme IN ('ipc','cpc')", name="classification_scheme_check"),
    )


class PatentAssignee(Base):
    __tablename__ = "patent_assignee"

    patent_id: Mapped[str] = mapped_column(
        Text(), ForeignKey("patent.id", ondelete="CASCADE"), primary_key=True
    )
    assignee_id: Mapped[str] = mapped_column(
        Text(), ForeignKey("assignee.id", ondelete="CASCADE"), primary_key=True
    )


class PatentInventor(Base):
    __tablename__ = "patent_inventor"

    patent_id: Mapped[str] = mapped_column(
        Text(), ForeignKey("patent.id", ondelete="CASCADE"), primary_key=True
    )
    inventor_id: Mapped[str] = mapped_column(
        Text(), ForeignKey("inventor.id", ondelete="CASCADE"), primary_key=True
    )


class PatentClassification(Base):
    __tablename__ = "patent_classification"

    patent_id: Mapped[str] = mapped_column(
        Text(), ForeignKey("patent.id", ondelete="CASCADE"), primary_key=True
    )
    classification_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("classification.id", ondelete="CASCADE"), primary_key=True
    )


class Citation(Base):
    """Directed citation edge; the cited patent need not be ingested."""

    __tablename__ = "citation"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patent_id: Mapped[str] = mapped_column(
        Text(), ForeignKey("patent.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cited_patent_id: Mapped[Optional[str]] = mapped_column(Text())
    citation_type: Mapped[Optional[str]] = mapped_column(Text())
    # Hash of (patent_id, cited_patent_id, citation_type) with NULLs encoded,
    # since unique indexes never treat two NULLs as equal.
    dedupe_key: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    patent: Mapped[Patent] = relationship("Patent", back_populates="citations")
