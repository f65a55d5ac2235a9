"""Schema exports."""

from app.schemas.patent import (
	AssigneeRead,
	CitationRead,
	ClassificationRead,
	InventorRead,
	PatentDetail,
	PatentRead,
	SearchPatent,
	SearchResponse,
	SearchResult,
)

__all__ = [
	"AssigneeRead",
	"CitationRead",
	"ClassificationRead",
	"InventorRead",
	"PatentDetail",
	"PatentRead",
	"SearchPatent",
	"SearchResponse",
	"SearchResult",
]
