"""Document ingestion pipeline: extract, chunk, embed, store."""

import logging
import time
from typing import Optional
from uuid import UUID

from grounding_engine.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    IngestionError,
    ProviderNotConfiguredError,
    StaleDocumentVersionError,
)
from grounding_engine.models.document import Document, DocumentStatus
from grounding_engine.models.document_api import IngestionReport, IngestionRequest
from grounding_engine.monitoring.metrics import (
    chunk_embedding_failures_total,
    ingestion_duration_seconds,
    ingestion_errors_total,
    ingestions_total,
)
from grounding_engine.services.chunking import ChunkingService
from grounding_engine.services.database import DatabaseService
from grounding_engine.services.embedding import EmbeddingService
from grounding_engine.services.extraction import extract_text
from grounding_engine.services.retry import retry_with_backoff
from grounding_engine.services.vector_db import VectorStoreService

logger = logging.getLogger(__name__)


class IngestionProcessor:
    """Turns documents into embedded, retrievable chunks."""

    def __init__(
        self,
        database: DatabaseService,
        vector_store: VectorStoreService,
        embedding_service: EmbeddingService,
        chunking_service: ChunkingService,
    ) -> None:
        """
        Initialize the ingestion processor.

        Args:
            database: Document storage.
            vector_store: Chunk storage.
            embedding_service: Embedding generation service.
            chunking_service: Text chunking service.
        """
        self.database = database
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.chunking_service = chunking_service

    async def ingest(self, request: IngestionRequest) -> IngestionReport:
        """
        Create a document and process it.

        Extraction failures are reported in the returned report and leave the
        document in ERROR; they are not raised.

        Args:
            request: Pasted text or uploaded file.

        Returns:
            Ingestion report.
        """
        start_time = time.time()
        report = IngestionReport()

        try:
            text = extract_text(
                raw_text=request.raw_text,
                file_bytes=request.file_bytes,
                mime_type=request.mime_type,
            )
        except IngestionError as e:
            logger.warning(f"Extraction failed for '{request.title}': {str(e)}")
            report.errors.append(str(e))
            text = None

        document = await self.database.create_document(
            title=request.title,
            raw_text=text,
            source_type=request.source_type,
            mime_type=request.mime_type,
            file_name=request.file_name,
            owner_id=request.owner_id,
            is_shared=request.is_shared,
        )
        report.document_id = document.id
        logger.info(f"Created document {document.id} ('{document.title}')")

        if text is None:
            await self.database.set_status(
                document.id, DocumentStatus.ERROR, expected_version=document.version)
            return self._finish(report, DocumentStatus.ERROR, start_time)

        return await self._process(document, text, report, start_time)

    async def reprocess(
        self,
        document_id: UUID,
        title: Optional[str] = None,
        raw_text: Optional[str] = None,
    ) -> IngestionReport:
        """
        Re-run the pipeline for an existing document.

        Bumps the document version first, so an older run still in flight
        for the same document can no longer write its chunks.

        Args:
            document_id: Document to process.
            title: Replacement title (optional).
            raw_text: Replacement content (optional).

        Returns:
            Ingestion report.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        start_time = time.time()
        report = IngestionReport(document_id=document_id)

        text = extract_text(raw_text=raw_text) if raw_text is not None else None
        document = await self.database.begin_processing(
            document_id, title=title, raw_text=text)
        if text is None:
            text = document.raw_text or ""

        return await self._process(document, text, report, start_time)

    async def _process(
        self,
        document: Document,
        text: str,
        report: IngestionReport,
        start_time: float,
    ) -> IngestionReport:
        """Run the pipeline, marking the document ERROR if storage gives up."""
        try:
            return await self._chunk_and_store(document, text, report, start_time)
        except DatabaseError as e:
            logger.error(f"Storage failed for document {document.id}: {str(e)}")
            report.errors.append(str(e))

        try:
            marked = await self.database.set_status(
                document.id, DocumentStatus.ERROR, expected_version=document.version)
        except DatabaseError as e:
            logger.error(f"Could not mark document {document.id} as ERROR: {str(e)}")
            report.errors.append(str(e))
            marked = False
        return self._finish(report, DocumentStatus.ERROR if marked else None, start_time)

    async def _chunk_and_store(
        self,
        document: Document,
        text: str,
        report: IngestionReport,
        start_time: float,
    ) -> IngestionReport:
        chunks = self.chunking_service.chunk_document(text, document.id, document.version)
        report.chunks_created = len(chunks)

        if not chunks:
            report.warnings.append("No usable text was extracted from the document")
            if not await self._replace(document, [], report):
                return self._finish(report, None, start_time)
            await self.database.set_status(
                document.id, DocumentStatus.ERROR, expected_version=document.version)
            return self._finish(report, DocumentStatus.ERROR, start_time)

        try:
            result = await self.embedding_service.embed_document_chunks(document.title, chunks)
        except ProviderNotConfiguredError as e:
            logger.error(f"Cannot embed document {document.id}: {str(e)}")
            report.errors.append(str(e))
            await self.database.set_status(
                document.id, DocumentStatus.ERROR, expected_version=document.version)
            return self._finish(report, DocumentStatus.ERROR, start_time)

        for chunk in chunks:
            chunk.embedding = result.embeddings.get(chunk.id)
        report.embeddings_generated = result.succeeded
        for chunk_id, reason in result.failures.items():
            report.warnings.append(f"Chunk {chunk_id} was not embedded: {reason}")

        if not await self._replace(document, chunks, report):
            return self._finish(report, None, start_time)

        if result.failures:
            chunk_embedding_failures_total.inc(len(result.failures))
            logger.warning(
                f"Document {document.id} has {len(result.failures)} chunks without "
                f"embeddings; it stays PROCESSING until repaired"
            )
            status = DocumentStatus.PROCESSING
        else:
            status = DocumentStatus.READY

        updated = await self.database.set_status(
            document.id, status, expected_version=document.version)
        if not updated:
            report.errors.append(
                f"Document {document.id} was changed by a newer request during processing")
            return self._finish(report, None, start_time)

        return self._finish(report, status, start_time)

    async def _replace(self, document: Document, chunks, report: IngestionReport) -> bool:
        """Store the chunk set, reporting a stale or deleted document as an error."""
        try:
            await retry_with_backoff(
                lambda: self.vector_store.replace_chunks(
                    document.id, chunks, expected_version=document.version)
            )
        except (StaleDocumentVersionError, DocumentNotFoundError) as e:
            logger.warning(f"Discarding chunks for document {document.id}: {str(e)}")
            report.errors.append(str(e))
            return False
        return True

    def _finish(
        self,
        report: IngestionReport,
        status: Optional[DocumentStatus],
        start_time: float,
    ) -> IngestionReport:
        elapsed = time.time() - start_time
        report.status = status
        report.processing_time_ms = round(elapsed * 1000, 2)
        ingestion_duration_seconds.observe(elapsed)
        if status is None or status == DocumentStatus.ERROR:
            ingestion_errors_total.inc()
        ingestions_total.labels(status=status.value if status else "DISCARDED").inc()
        logger.info(
            f"Ingestion of {report.document_id} finished: status={status}, "
            f"chunks={report.chunks_created}, embedded={report.embeddings_generated} "
            f"in {report.processing_time_ms:.0f}ms"
        )
        return report
