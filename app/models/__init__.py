"""ORM model exports."""

from app.models.patent import (
	Assignee,
	Citation,
	Classification,
	Inventor,
	Patent,
	PatentAssignee,
	PatentClassification,
	PatentInventor,
)

__all__ = [
	"Assignee",
	"Citation",
	"Classification",
	"Inventor",
	"Patent",
	"PatentAssignee",
	"PatentClassification",
	"PatentInventor",
]
