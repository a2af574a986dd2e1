"""Document and chunk models for the knowledge base."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Processing status of a document."""

    PROCESSING = "PROCESSING"
    READY = "READY"
    ERROR = "ERROR"


class SourceType(str, Enum):
    """How the document text reached the engine."""

    TEXT = "TEXT"
    FILE = "FILE"


class Document(BaseModel):
    """Document model representing an ingested unit of knowledge."""

    id: UUID
    title: str
    raw_text: Optional[str] = None
    source_type: SourceType = SourceType.TEXT
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    status: DocumentStatus = DocumentStatus.PROCESSING
    owner_id: Optional[str] = None
    is_shared: bool = False
    version: int = Field(default=1, ge=1)
    created_at: datetime
    updated_at: datetime

    class Config:
        """Pydantic config."""

        from_attributes = True


class TextFragment(BaseModel):
    """A window of document text produced by the chunker."""

    chunk_index: int = Field(ge=0)
    content: str
    start_char: int = Field(ge=0)
    end_char: int = Field(ge=0)


class Chunk(BaseModel):
    """Chunk model representing a stored document fragment."""

    id: str
    document_id: UUID
    chunk_index: int = Field(ge=0)
    content: str
    start_char: int = 0
    end_char: int = 0
    document_version: int = Field(default=1, ge=1)
    embedding: Optional[List[float]] = None
    created_at: Optional[datetime] = None


class MissingChunk(BaseModel):
    """A chunk whose embedding is absent or malformed."""

    chunk_id: str
    document_id: UUID
    document_title: str
    chunk_index: int
    content: str


class CandidateChunk(BaseModel):
    """An embedded chunk of a READY document, eligible for retrieval."""

    chunk_id: str
    document_id: UUID
    title: str
    chunk_index: int
    content: str
    embedding: List[float]
