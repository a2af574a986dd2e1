"""Pydantic models for the document ingestion API."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from grounding_engine.models.document import DocumentStatus, SourceType


class DocumentCreate(BaseModel):
    """Model for ingesting pasted text."""

    title: str = Field(..., min_length=1, max_length=500)
    raw_text: str = Field(..., min_length=1)
    owner_id: Optional[str] = None
    is_shared: bool = False


class DocumentUpdate(BaseModel):
    """Model for replacing a document's title or content."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    raw_text: Optional[str] = Field(None, min_length=1)

    @model_validator(mode="after")
    def _require_one_field(self) -> "DocumentUpdate":
        if self.title is None and self.raw_text is None:
            raise ValueError("At least one field (title or raw_text) must be provided")
        return self


class IngestionRequest(BaseModel):
    """Internal ingestion request: pasted text or uploaded file bytes."""

    title: str = Field(..., min_length=1, max_length=500)
    raw_text: Optional[str] = None
    file_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    owner_id: Optional[str] = None
    is_shared: bool = False

    @model_validator(mode="after")
    def _require_content(self) -> "IngestionRequest":
        if self.raw_text is None and self.file_bytes is None:
            raise ValueError("Either raw_text or file_bytes must be provided")
        if self.file_bytes is not None and not self.mime_type:
            raise ValueError("mime_type is required with file_bytes")
        return self

    @property
    def source_type(self) -> SourceType:
        return SourceType.FILE if self.file_bytes is not None else SourceType.TEXT


class IngestionReport(BaseModel):
    """Diagnostics payload returned by every ingestion run."""

    document_id: Optional[UUID] = None
    status: Optional[DocumentStatus] = None
    chunks_created: int = 0
    embeddings_generated: int = 0
    processing_time_ms: float = 0.0
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class DocumentResponse(BaseModel):
    """Model for document response."""

    id: str
    title: str
    source_type: SourceType
    status: DocumentStatus
    owner_id: Optional[str] = None
    is_shared: bool = False
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        """Pydantic config."""

        from_attributes = True


class DocumentListResponse(BaseModel):
    """Model for document list response."""

    documents: list[DocumentResponse]
    total: int
    limit: int
    offset: int
