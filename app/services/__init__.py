"""Service exports."""

from app.services.search import PatentSearchService, SearchHit

__all__ = [
	"PatentSearchService",
	"SearchHit",
]
