"""Embedding consistency audit and repair."""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional
from uuid import UUID

from grounding_engine.models.audit import AffectedDocument, AuditReport, RepairReport
from grounding_engine.models.document import Chunk, MissingChunk
from grounding_engine.services.embedding import EmbeddingService
from grounding_engine.services.vector_db import VectorStoreService

logger = logging.getLogger(__name__)


class ConsistencyAuditor:
    """Finds chunks without a valid embedding and re-embeds them."""

    def __init__(
        self,
        vector_store: VectorStoreService,
        embedding_service: EmbeddingService,
    ) -> None:
        """
        Initialize the auditor.

        Args:
            vector_store: Chunk storage.
            embedding_service: Embedding generation service.
        """
        self.vector_store = vector_store
        self.embedding_service = embedding_service

    async def audit(self) -> AuditReport:
        """
        Count embedded and missing chunks. Read only.

        Returns:
            Audit report with per-document missing counts.
        """
        total = await self.vector_store.count_chunks()
        missing = await self.vector_store.list_chunks_missing_embeddings()

        affected: Dict[UUID, AffectedDocument] = OrderedDict()
        for chunk in missing:
            entry = affected.get(chunk.document_id)
            if entry is None:
                entry = AffectedDocument(
                    document_id=chunk.document_id,
                    title=chunk.document_title,
                    missing_chunks=0,
                )
                affected[chunk.document_id] = entry
            entry.missing_chunks += 1

        report = AuditReport(
            total_chunks=total,
            embedded=total - len(missing),
            missing=len(missing),
            affected_documents=list(affected.values()),
        )
        logger.info(
            f"Audit: {report.embedded}/{report.total_chunks} chunks embedded, "
            f"{report.missing} missing across {len(report.affected_documents)} documents"
        )
        return report

    async def reembed_missing_chunks(self, limit: Optional[int] = None) -> RepairReport:
        """
        Re-embed chunks that are missing a valid embedding.

        The missing set is read at the start of the pass, so chunks repaired
        by a concurrent run or replaced by re-ingestion are not re-embedded.
        Only successful embeddings are written. Documents whose chunks are
        all embedded afterwards are promoted to READY.

        Args:
            limit: Maximum number of chunks to process in this pass.

        Returns:
            Repair report.
        """
        missing = await self.vector_store.list_chunks_missing_embeddings()
        if limit is not None:
            missing = missing[:limit]

        if not missing:
            return RepairReport(
                processed=0, skipped=0, message="All chunks have valid embeddings")

        processed = 0
        skipped = 0
        failed: List[str] = []

        by_document: Dict[UUID, List[MissingChunk]] = OrderedDict()
        for item in missing:
            by_document.setdefault(item.document_id, []).append(item)

        for document_id, items in by_document.items():
            chunks = [
                Chunk(
                    id=item.chunk_id,
                    document_id=item.document_id,
                    chunk_index=item.chunk_index,
                    content=item.content,
                )
                for item in items
            ]
            result = await self.embedding_service.embed_document_chunks(
                items[0].document_title, chunks)

            for item in items:
                vector = result.embeddings.get(item.chunk_id)
                if vector is None:
                    failed.append(item.chunk_id)
                    continue
                stored = await self.vector_store.update_chunk_embedding(
                    item.chunk_id, item.content, vector)
                if stored:
                    processed += 1
                else:
                    logger.info(f"Chunk {item.chunk_id} changed during repair, skipping")
                    skipped += 1

        promoted = await self.vector_store.promote_complete_documents(list(by_document))

        message = f"Re-embedded {processed} of {len(missing)} chunks"
        if skipped:
            message += f", {skipped} skipped"
        if failed:
            message += f", {len(failed)} failed"
        logger.info(message)

        return RepairReport(
            processed=processed,
            skipped=skipped,
            message=message,
            failed_chunk_ids=failed,
            promoted_documents=promoted,
        )
