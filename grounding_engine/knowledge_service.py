"""Knowledge Service: document ingestion, consistency repair and grounding configuration."""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from grounding_engine.api.health import check_all_dependencies, check_readiness
from grounding_engine.core.dependencies import services
from grounding_engine.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    IngestionError,
    ProviderNotConfiguredError,
)
from grounding_engine.models.audit import AuditReport, RepairReport, RepairRequest
from grounding_engine.models.document_api import (
    DocumentCreate,
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdate,
    IngestionReport,
    IngestionRequest,
)
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.monitoring.metrics import audits_total, repaired_chunks_total

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Knowledge Service started")
    yield
    await services.shutdown()
    logger.info("Knowledge Service stopped")


app = FastAPI(title="Knowledge Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://localhost:5174"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(services.database, services.cache_service)
    return {"service": "knowledge-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services.database, services.cache_service)
    return {"service": "knowledge-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/documents", response_model=DocumentListResponse)
async def list_documents(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    owner_id: Optional[str] = Query(None),
) -> DocumentListResponse:
    """
    List documents.

    Args:
        limit: Maximum number of documents to return.
        offset: Number of documents to skip.
        owner_id: Restrict to one owner's documents.

    Returns:
        List of documents.
    """
    try:
        documents = await services.database.list_documents(
            limit=limit, offset=offset, owner_id=owner_id)
        total = await services.database.count_documents(owner_id=owner_id)
    except DatabaseError as e:
        logger.error(f"Failed to list documents: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    return DocumentListResponse(
        documents=[_to_response(doc) for doc in documents],
        total=total,
        limit=limit,
        offset=offset,
    )


@app.get("/api/documents/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: UUID) -> DocumentResponse:
    """
    Get a document by ID.

    Args:
        document_id: Document UUID.

    Returns:
        Document details.
    """
    try:
        document = await services.database.get_document(document_id)
    except DatabaseError as e:
        logger.error(f"Failed to get document: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return _to_response(document)


@app.post("/api/documents", response_model=IngestionReport, status_code=201)
async def create_document(document: DocumentCreate) -> IngestionReport:
    """
    Ingest pasted text as a new document.

    Args:
        document: Document data.

    Returns:
        Ingestion report.
    """
    request = IngestionRequest(
        title=document.title,
        raw_text=document.raw_text,
        owner_id=document.owner_id,
        is_shared=document.is_shared,
    )
    return await _run_ingestion(services.ingestion.ingest(request))


@app.post("/api/documents/upload", response_model=IngestionReport, status_code=201)
async def upload_document(
    title: str = Form(..., min_length=1, max_length=500),
    file: UploadFile = File(...),
    owner_id: Optional[str] = Form(None),
    is_shared: bool = Form(False),
) -> IngestionReport:
    """
    Ingest an uploaded file as a new document.

    Args:
        title: Document title.
        file: PDF, HTML or plain text file.
        owner_id: Owning user.
        is_shared: Whether every user may retrieve the document.

    Returns:
        Ingestion report.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=422, detail="Uploaded file is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")

    request = IngestionRequest(
        title=title,
        file_bytes=content,
        mime_type=file.content_type or "application/octet-stream",
        file_name=file.filename,
        owner_id=owner_id,
        is_shared=is_shared,
    )
    return await _run_ingestion(services.ingestion.ingest(request))


@app.put("/api/documents/{document_id}", response_model=IngestionReport)
async def update_document(document_id: UUID, document: DocumentUpdate) -> IngestionReport:
    """
    Replace a document's title or content and re-ingest it.

    Args:
        document_id: Document UUID.
        document: Updated document data.

    Returns:
        Ingestion report.
    """
    return await _run_ingestion(
        services.ingestion.reprocess(
            document_id, title=document.title, raw_text=document.raw_text)
    )


@app.post("/api/documents/{document_id}/reprocess", response_model=IngestionReport)
async def reprocess_document(document_id: UUID) -> IngestionReport:
    """
    Re-ingest a document from its stored text.

    Args:
        document_id: Document UUID.

    Returns:
        Ingestion report.
    """
    return await _run_ingestion(services.ingestion.reprocess(document_id))


@app.delete("/api/documents/{document_id}", status_code=204)
async def delete_document(document_id: UUID) -> None:
    """
    Delete a document with its chunks and embeddings.

    Args:
        document_id: Document UUID.
    """
    try:
        deleted = await services.database.delete_document(document_id)
    except DatabaseError as e:
        logger.error(f"Failed to delete document: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")


@app.get("/api/admin/audit", response_model=AuditReport)
async def audit_embeddings() -> AuditReport:
    """
    Report how many chunks are missing a valid embedding.

    Returns:
        Audit report.
    """
    audits_total.inc()
    try:
        return await services.auditor.audit()
    except DatabaseError as e:
        logger.error(f"Audit failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/admin/audit", response_model=RepairReport)
async def repair_embeddings(request: Optional[RepairRequest] = None) -> RepairReport:
    """
    Re-embed chunks that are missing a valid embedding.

    Args:
        request: Optional bound on the number of chunks processed.

    Returns:
        Repair report.
    """
    limit = request.limit if request else None
    try:
        report = await services.auditor.reembed_missing_chunks(limit=limit)
    except ProviderNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except DatabaseError as e:
        logger.error(f"Repair failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    repaired_chunks_total.inc(report.processed)
    return report


@app.get("/api/admin/config", response_model=GroundingConfig)
async def get_config() -> GroundingConfig:
    """Return the current grounding configuration."""
    try:
        return await services.database.get_grounding_config()
    except DatabaseError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/api/admin/config", response_model=GroundingConfig)
async def update_config(config: GroundingConfig) -> GroundingConfig:
    """
    Replace the grounding configuration.

    The body is validated before this handler runs, so out-of-range or
    unknown fields are answered with 422 and nothing is stored.

    Args:
        config: New configuration.

    Returns:
        The stored configuration.
    """
    try:
        saved = await services.database.save_grounding_config(config)
    except DatabaseError as e:
        logger.error(f"Failed to save configuration: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    logger.info(
        f"Grounding configuration updated: floor={saved.similarity_floor}, "
        f"max_chunks={saved.max_chunks}, high={saved.high_relevance_floor}"
    )
    return saved


def _to_response(document) -> DocumentResponse:
    return DocumentResponse(
        id=str(document.id),
        title=document.title,
        source_type=document.source_type,
        status=document.status,
        owner_id=document.owner_id,
        is_shared=document.is_shared,
        version=document.version,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


async def _run_ingestion(pipeline) -> IngestionReport:
    try:
        return await pipeline
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Document not found")
    except IngestionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DatabaseError as e:
        logger.error(f"Ingestion failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
