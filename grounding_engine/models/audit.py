"""Audit and repair report models."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AffectedDocument(BaseModel):
    """A document with at least one chunk missing a valid embedding."""

    document_id: UUID
    title: str
    missing_chunks: int


class AuditReport(BaseModel):
    """Read-only snapshot of embedding completeness."""

    total_chunks: int
    embedded: int
    missing: int
    affected_documents: List[AffectedDocument] = Field(default_factory=list)


class RepairRequest(BaseModel):
    """Optional bounds for a repair pass."""

    limit: Optional[int] = Field(None, ge=1)


class RepairReport(BaseModel):
    """Outcome of a re-embedding pass."""

    processed: int
    skipped: int
    message: str
    failed_chunk_ids: List[str] = Field(default_factory=list)
    promoted_documents: List[UUID] = Field(default_factory=list)
