"""Chunk and embedding storage on PostgreSQL."""

import json
import logging
import math
from typing import Any, List, Optional
from uuid import UUID

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    StaleDocumentVersionError,
)
from grounding_engine.models.document import CandidateChunk, Chunk, DocumentStatus, MissingChunk
from grounding_engine.services.database import DatabaseService

logger = logging.getLogger(__name__)


def serialize_embedding(embedding: Optional[List[float]]) -> Optional[str]:
    """Encode a vector for storage; None stays None."""
    if embedding is None:
        return None
    return json.dumps(embedding)


def parse_embedding(raw: Any, dimensions: Optional[int] = None) -> Optional[List[float]]:
    """
    Decode a stored vector.

    Args:
        raw: Stored value (JSON text or an already decoded list).
        dimensions: Expected vector length.

    Returns:
        The vector, or None if it is absent, unparseable, of the wrong
        length, or holds non-numeric or non-finite values.
    """
    dimensions = dimensions or settings.embedding_dimensions
    if raw is None:
        return None
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            return None
    if not isinstance(raw, list) or len(raw) != dimensions:
        return None
    vector = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not math.isfinite(value):
            return None
        vector.append(float(value))
    return vector


class VectorStoreService:
    """Service for storing chunks with their embeddings."""

    def __init__(self, database: DatabaseService) -> None:
        """
        Initialize the vector store.

        Args:
            database: Database service whose pool is shared.
        """
        self.database = database
        self.dimensions = settings.embedding_dimensions

    def _require_pool(self):
        return self.database._require_pool()

    async def replace_chunks(
        self,
        document_id: UUID,
        chunks: List[Chunk],
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Replace every chunk of a document with a new set.

        Runs in one transaction under a per-document advisory lock. Old and
        new chunk sets are never merged.

        Args:
            document_id: Owning document.
            chunks: New chunk set, with embeddings where available.
            expected_version: Reject the write if the document moved on.

        Returns:
            Number of chunks stored.

        Raises:
            StaleDocumentVersionError: If a newer processing request exists.
            DocumentNotFoundError: If the document was deleted.
        """
        pool = self._require_pool()
        if any(c.document_id != document_id for c in chunks):
            raise DatabaseError("All chunks must belong to the target document")

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "SELECT pg_advisory_xact_lock(hashtext($1))", str(document_id))
                    version = await conn.fetchval(
                        "SELECT version FROM knowledge_documents WHERE id = $1 FOR UPDATE",
                        document_id,
                    )
                    if version is None:
                        raise DocumentNotFoundError(f"Document {document_id} not found")
                    if expected_version is not None and version != expected_version:
                        raise StaleDocumentVersionError(
                            f"Document {document_id} is at version {version}, "
                            f"write was for version {expected_version}"
                        )

                    await conn.execute(
                        "DELETE FROM knowledge_chunks WHERE document_id = $1", document_id)
                    await conn.executemany(
                        """
                        INSERT INTO knowledge_chunks
                            (id, document_id, chunk_index, content, start_char, end_char,
                             document_version, embedding)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                        """,
                        [
                            (
                                c.id,
                                document_id,
                                c.chunk_index,
                                c.content,
                                c.start_char,
                                c.end_char,
                                version,
                                serialize_embedding(c.embedding),
                            )
                            for c in chunks
                        ],
                    )
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to replace chunks: {str(e)}") from e

        logger.info(f"Replaced chunks for document {document_id}: {len(chunks)} stored")
        return len(chunks)

    async def update_chunk_embedding(
        self, chunk_id: str, content: str, embedding: List[float]
    ) -> bool:
        """
        Store an embedding if the chunk still holds the content that was embedded.

        Args:
            chunk_id: Chunk to update.
            content: Content the embedding was generated from.
            embedding: New vector.

        Returns:
            True if the chunk was updated.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "UPDATE knowledge_chunks SET embedding = $3 WHERE id = $1 AND content = $2",
                    chunk_id,
                    content,
                    serialize_embedding(embedding),
                )
                return result == "UPDATE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to store embedding: {str(e)}") from e

    async def count_chunks(self) -> int:
        """Count all stored chunks."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM knowledge_chunks")
        except Exception as e:
            raise DatabaseError(f"Failed to count chunks: {str(e)}") from e

    async def list_chunks_missing_embeddings(self) -> List[MissingChunk]:
        """
        List chunks whose embedding is null or not a valid vector.

        Returns:
            Missing chunks in document and index order.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT c.id, c.document_id, d.title, c.chunk_index, c.content, c.embedding
                    FROM knowledge_chunks c
                    JOIN knowledge_documents d ON d.id = c.document_id
                    ORDER BY d.created_at, c.document_id, c.chunk_index
                    """
                )
        except Exception as e:
            raise DatabaseError(f"Failed to list chunks: {str(e)}") from e

        return [
            MissingChunk(
                chunk_id=row["id"],
                document_id=row["document_id"],
                document_title=row["title"],
                chunk_index=row["chunk_index"],
                content=row["content"],
            )
            for row in rows
            if parse_embedding(row["embedding"], self.dimensions) is None
        ]

    async def fetch_candidates(self, user_id: Optional[str] = None) -> List[CandidateChunk]:
        """
        Load embedded chunks of READY documents visible to a user.

        Args:
            user_id: Requesting user; shared documents are always visible.

        Returns:
            Candidates in insertion order. Malformed vectors are skipped.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT c.id, c.document_id, d.title, c.chunk_index, c.content, c.embedding
                    FROM knowledge_chunks c
                    JOIN knowledge_documents d ON d.id = c.document_id
                    WHERE d.status = $1
                      AND c.embedding IS NOT NULL
                      AND (d.is_shared OR ($2::text IS NOT NULL AND d.owner_id = $2))
                    ORDER BY d.created_at, d.id, c.chunk_index
                    """,
                    DocumentStatus.READY.value,
                    user_id,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch candidates: {str(e)}") from e

        candidates = []
        for row in rows:
            vector = parse_embedding(row["embedding"], self.dimensions)
            if vector is None:
                continue
            candidates.append(
                CandidateChunk(
                    chunk_id=row["id"],
                    document_id=row["document_id"],
                    title=row["title"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    embedding=vector,
                )
            )
        return candidates

    async def promote_complete_documents(self, document_ids: List[UUID]) -> List[UUID]:
        """
        Mark PROCESSING documents READY once every chunk has a valid vector.

        Only a chunk set cut from the current document version counts. A
        document re-opened by a newer edit keeps its old chunks until that
        edit stores its own, and those old chunks never promote it.

        Args:
            document_ids: Documents to check.

        Returns:
            Documents that were promoted.
        """
        pool = self._require_pool()
        promoted = []
        try:
            async with pool.acquire() as conn:
                for document_id in document_ids:
                    async with conn.transaction():
                        await conn.execute(
                            "SELECT pg_advisory_xact_lock(hashtext($1))", str(document_id))
                        rows = await conn.fetch(
                            """
                            SELECT c.embedding, c.document_version, d.version
                            FROM knowledge_chunks c
                            JOIN knowledge_documents d ON d.id = c.document_id
                            WHERE c.document_id = $1 AND d.status = $2
                            """,
                            document_id,
                            DocumentStatus.PROCESSING.value,
                        )
                        if not rows or any(
                            r["document_version"] != r["version"]
                            or parse_embedding(r["embedding"], self.dimensions) is None
                            for r in rows
                        ):
                            continue
                        result = await conn.execute(
                            """
                            UPDATE knowledge_documents SET status = $2, updated_at = now()
                            WHERE id = $1 AND status = $3 AND version = $4
                            """,
                            document_id,
                            DocumentStatus.READY.value,
                            DocumentStatus.PROCESSING.value,
                            rows[0]["version"],
                        )
                        if result != "UPDATE 1":
                            continue
                        promoted.append(document_id)
        except Exception as e:
            raise DatabaseError(f"Failed to promote documents: {str(e)}") from e

        if promoted:
            logger.info(f"Promoted {len(promoted)} documents to READY")
        return promoted
