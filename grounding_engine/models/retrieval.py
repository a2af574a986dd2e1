"""Retrieval result and citation models."""

from enum import Enum
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field


class RelevanceClass(str, Enum):
    """Coarse relevance bucket of a retrieval result."""

    HIGH = "high"
    STANDARD = "standard"


class RankedChunk(BaseModel):
    """A chunk that survived similarity filtering."""

    chunk_id: str
    document_id: UUID
    title: str
    chunk_index: int
    content: str
    score: float
    relevance: RelevanceClass


class RetrievalResult(BaseModel):
    """Ranked retrieval output for a single query."""

    results: List[RankedChunk] = Field(default_factory=list)
    no_grounding: bool = False

    @property
    def has_high_relevance(self) -> bool:
        """Whether any result is classified as high relevance."""
        return any(r.relevance == RelevanceClass.HIGH for r in self.results)

    @classmethod
    def empty(cls) -> "RetrievalResult":
        """Explicit 'no grounding found' result."""
        return cls(results=[], no_grounding=True)


class Citation(BaseModel):
    """Document-level attribution for a generated answer."""

    document_id: UUID
    title: str
