"""Database service for PostgreSQL operations on documents and configuration."""

import json
import logging
from typing import List, Optional
from uuid import UUID

import asyncpg
from pydantic import ValidationError

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import DatabaseError, DocumentNotFoundError
from grounding_engine.models.document import Document, DocumentStatus, SourceType
from grounding_engine.models.grounding_config import GroundingConfig

logger = logging.getLogger(__name__)

CONFIG_ROW_ID = "singleton"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS knowledge_documents (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title TEXT NOT NULL,
    raw_text TEXT,
    source_type TEXT NOT NULL DEFAULT 'TEXT',
    mime_type TEXT,
    file_name TEXT,
    status TEXT NOT NULL DEFAULT 'PROCESSING',
    owner_id TEXT,
    is_shared BOOLEAN NOT NULL DEFAULT FALSE,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS knowledge_chunks (
    id TEXT PRIMARY KEY,
    document_id UUID NOT NULL REFERENCES knowledge_documents(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    start_char INTEGER NOT NULL DEFAULT 0,
    end_char INTEGER NOT NULL DEFAULT 0,
    document_version INTEGER NOT NULL DEFAULT 1,
    embedding TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (document_id, chunk_index)
);

ALTER TABLE knowledge_chunks
    ADD COLUMN IF NOT EXISTS document_version INTEGER NOT NULL DEFAULT 1;

CREATE INDEX IF NOT EXISTS knowledge_documents_status_idx
    ON knowledge_documents (status, owner_id);

CREATE TABLE IF NOT EXISTS grounding_config (
    id TEXT PRIMARY KEY,
    payload JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

DOCUMENT_COLUMNS = (
    "id, title, raw_text, source_type, mime_type, file_name, status, "
    "owner_id, is_shared, version, created_at, updated_at"
)


def _to_document(row: asyncpg.Record) -> Document:
    return Document(**dict(row))


class DatabaseService:
    """Service for PostgreSQL database operations."""

    def __init__(self) -> None:
        """Initialize database service."""
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool and make sure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                settings.postgres_url,
                min_size=settings.postgres_pool_min_size,
                max_size=settings.postgres_pool_max_size,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e
        await self.ensure_schema()

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise DatabaseError("Database not connected")
        return self.pool

    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except Exception as e:
            raise DatabaseError(f"Failed to create schema: {str(e)}") from e

    async def count_documents(self, owner_id: Optional[str] = None) -> int:
        """
        Count documents, optionally for one owner.

        Args:
            owner_id: Restrict to documents owned by this user.

        Returns:
            Total document count.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM knowledge_documents "
                    "WHERE $1::text IS NULL OR owner_id = $1",
                    owner_id,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to count documents: {str(e)}") from e

    async def list_documents(
        self, limit: int = 100, offset: int = 0, owner_id: Optional[str] = None
    ) -> List[Document]:
        """
        Get list of documents, most recently updated first.

        Args:
            limit: Maximum number of documents to return.
            offset: Number of documents to skip.
            owner_id: Restrict to documents owned by this user.

        Returns:
            List of documents.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {DOCUMENT_COLUMNS}
                    FROM knowledge_documents
                    WHERE $3::text IS NULL OR owner_id = $3
                    ORDER BY updated_at DESC
                    LIMIT $1 OFFSET $2
                    """,
                    limit,
                    offset,
                    owner_id,
                )
                return [_to_document(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch documents: {str(e)}") from e

    async def get_document(self, document_id: UUID) -> Optional[Document]:
        """
        Get a single document by ID.

        Args:
            document_id: Document UUID.

        Returns:
            Document or None if not found.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM knowledge_documents WHERE id = $1",
                    document_id,
                )
                return _to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

    async def create_document(
        self,
        title: str,
        raw_text: Optional[str],
        source_type: SourceType = SourceType.TEXT,
        mime_type: Optional[str] = None,
        file_name: Optional[str] = None,
        owner_id: Optional[str] = None,
        is_shared: bool = False,
    ) -> Document:
        """
        Create a new document in PROCESSING state at version 1.

        Returns:
            Created document.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO knowledge_documents
                        (title, raw_text, source_type, mime_type, file_name,
                         status, owner_id, is_shared, version)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, 1)
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    title,
                    raw_text,
                    source_type.value,
                    mime_type,
                    file_name,
                    DocumentStatus.PROCESSING.value,
                    owner_id,
                    is_shared,
                )
                return _to_document(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create document: {str(e)}") from e

    async def begin_processing(
        self,
        document_id: UUID,
        title: Optional[str] = None,
        raw_text: Optional[str] = None,
    ) -> Document:
        """
        Mark a document PROCESSING and bump its version.

        The returned version is the one a subsequent chunk replacement must
        present; any older in-flight processing of the same document will
        then be rejected as stale.

        Args:
            document_id: Document UUID.
            title: New title (optional).
            raw_text: New content (optional).

        Returns:
            Updated document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE knowledge_documents
                    SET status = $2,
                        version = version + 1,
                        title = COALESCE($3, title),
                        raw_text = COALESCE($4, raw_text),
                        updated_at = now()
                    WHERE id = $1
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    document_id,
                    DocumentStatus.PROCESSING.value,
                    title,
                    raw_text,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to update document: {str(e)}") from e
        if not row:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return _to_document(row)

    async def set_status(
        self,
        document_id: UUID,
        status: DocumentStatus,
        expected_version: Optional[int] = None,
        raw_text: Optional[str] = None,
    ) -> bool:
        """
        Set a document's status, optionally guarded by version.

        Args:
            document_id: Document UUID.
            status: New status.
            expected_version: Only apply if the document is still at this version.
            raw_text: Extracted text to store alongside the status (optional).

        Returns:
            True if the row was updated.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE knowledge_documents
                    SET status = $2,
                        raw_text = COALESCE($4, raw_text),
                        updated_at = now()
                    WHERE id = $1 AND ($3::int IS NULL OR version = $3)
                    """,
                    document_id,
                    status.value,
                    expected_version,
                    raw_text,
                )
                return result == "UPDATE 1"
        except Exception as e:
            raise DatabaseError(
                f"Failed to update document status: {str(e)}") from e

    async def delete_document(self, document_id: UUID) -> bool:
        """
        Delete a document; its chunks and embeddings cascade.

        Args:
            document_id: Document UUID.

        Returns:
            True if deleted, False if not found.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM knowledge_documents WHERE id = $1",
                    document_id,
                )
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete document: {str(e)}") from e

    async def get_grounding_config(self) -> GroundingConfig:
        """
        Load the grounding configuration singleton.

        A missing row yields the defaults. A stored payload that no longer
        validates is logged and replaced by the defaults for this read.

        Returns:
            Grounding configuration.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                payload = await conn.fetchval(
                    "SELECT payload FROM grounding_config WHERE id = $1",
                    CONFIG_ROW_ID,
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to load grounding configuration: {str(e)}") from e

        if payload is None:
            return GroundingConfig()
        try:
            data = json.loads(payload) if isinstance(payload, str) else payload
            return GroundingConfig(**data)
        except (ValidationError, TypeError, ValueError) as e:
            logger.error(f"Stored grounding configuration is invalid, using defaults: {str(e)}")
            return GroundingConfig()

    async def save_grounding_config(self, config: GroundingConfig) -> GroundingConfig:
        """
        Persist the grounding configuration singleton.

        Args:
            config: Already validated configuration.

        Returns:
            The saved configuration.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO grounding_config (id, payload, updated_at)
                    VALUES ($1, $2::jsonb, now())
                    ON CONFLICT (id) DO UPDATE
                    SET payload = EXCLUDED.payload, updated_at = now()
                    """,
                    CONFIG_ROW_ID,
                    config.model_dump_json(),
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to save grounding configuration: {str(e)}") from e
        return config
