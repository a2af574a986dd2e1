"""
Shared fixtures: in-memory document and chunk stores, a scripted embedding
provider and a recording LLM.
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import (
    DocumentNotFoundError,
    StaleDocumentVersionError,
)
from grounding_engine.models.document import (
    CandidateChunk,
    Chunk,
    Document,
    DocumentStatus,
    MissingChunk,
    SourceType,
)
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.services.auditor import ConsistencyAuditor
from grounding_engine.services.cache import CacheService
from grounding_engine.services.chunking import ChunkingService
from grounding_engine.services.embedding import EmbeddingService
from grounding_engine.services.ingestion import IngestionProcessor
from grounding_engine.services.query_processor import QueryProcessor
from grounding_engine.services.retrieval import Retriever
from grounding_engine.services.vector_db import parse_embedding

DIMS = settings.embedding_dimensions


def make_vector(*head: float) -> List[float]:
    """A vector of the configured dimensionality starting with ``head``."""
    return list(head) + [0.0] * (DIMS - len(head))


class FakeDatabase:
    """In-memory stand-in for DatabaseService."""

    def __init__(self) -> None:
        self.documents: Dict[UUID, Document] = {}
        self.config: Optional[GroundingConfig] = None
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def create_document(
        self,
        title,
        raw_text,
        source_type=SourceType.TEXT,
        mime_type=None,
        file_name=None,
        owner_id=None,
        is_shared=False,
    ) -> Document:
        now = self._tick()
        document = Document(
            id=uuid.uuid4(),
            title=title,
            raw_text=raw_text,
            source_type=source_type,
            mime_type=mime_type,
            file_name=file_name,
            status=DocumentStatus.PROCESSING,
            owner_id=owner_id,
            is_shared=is_shared,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.documents[document.id] = document
        return document.model_copy()

    async def get_document(self, document_id):
        document = self.documents.get(document_id)
        return document.model_copy() if document else None

    async def list_documents(self, limit=100, offset=0, owner_id=None):
        docs = [d for d in self.documents.values() if owner_id is None or d.owner_id == owner_id]
        docs.sort(key=lambda d: d.updated_at, reverse=True)
        return [d.model_copy() for d in docs[offset:offset + limit]]

    async def count_documents(self, owner_id=None):
        return len(await self.list_documents(limit=10**6, owner_id=owner_id))

    async def begin_processing(self, document_id, title=None, raw_text=None) -> Document:
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        document.status = DocumentStatus.PROCESSING
        document.version += 1
        if title is not None:
            document.title = title
        if raw_text is not None:
            document.raw_text = raw_text
        document.updated_at = self._tick()
        return document.model_copy()

    async def set_status(self, document_id, status, expected_version=None, raw_text=None) -> bool:
        document = self.documents.get(document_id)
        if document is None:
            return False
        if expected_version is not None and document.version != expected_version:
            return False
        document.status = status
        if raw_text is not None:
            document.raw_text = raw_text
        document.updated_at = self._tick()
        return True

    async def delete_document(self, document_id) -> bool:
        return self.documents.pop(document_id, None) is not None

    async def get_grounding_config(self) -> GroundingConfig:
        return self.config or GroundingConfig()

    async def save_grounding_config(self, config: GroundingConfig) -> GroundingConfig:
        self.config = config
        return config


class FakeVectorStore:
    """In-memory stand-in for VectorStoreService with the same visibility rules."""

    def __init__(self, database: FakeDatabase) -> None:
        self.database = database
        self.chunks: Dict[UUID, List[Chunk]] = {}

    async def replace_chunks(self, document_id, chunks, expected_version=None) -> int:
        document = self.database.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if expected_version is not None and document.version != expected_version:
            raise StaleDocumentVersionError(
                f"Document {document_id} is at version {document.version}")
        self.chunks[document_id] = [
            c.model_copy(deep=True, update={"document_version": document.version}) for c in chunks
        ]
        return len(chunks)

    def _all(self):
        for document_id, chunks in self.chunks.items():
            if document_id in self.database.documents:
                for chunk in chunks:
                    yield self.database.documents[document_id], chunk

    async def update_chunk_embedding(self, chunk_id, content, embedding) -> bool:
        for _, chunk in self._all():
            if chunk.id == chunk_id and chunk.content == content:
                chunk.embedding = list(embedding)
                return True
        return False

    async def count_chunks(self) -> int:
        return sum(1 for _ in self._all())

    async def list_chunks_missing_embeddings(self) -> List[MissingChunk]:
        return [
            MissingChunk(
                chunk_id=chunk.id,
                document_id=document.id,
                document_title=document.title,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
            )
            for document, chunk in self._all()
            if parse_embedding(chunk.embedding, DIMS) is None
        ]

    async def fetch_candidates(self, user_id=None) -> List[CandidateChunk]:
        candidates = []
        for document, chunk in self._all():
            if document.status != DocumentStatus.READY:
                continue
            if not (document.is_shared or (user_id is not None and document.owner_id == user_id)):
                continue
            vector = parse_embedding(chunk.embedding, DIMS)
            if vector is None:
                continue
            candidates.append(
                CandidateChunk(
                    chunk_id=chunk.id,
                    document_id=document.id,
                    title=document.title,
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    embedding=vector,
                )
            )
        return candidates

    async def promote_complete_documents(self, document_ids) -> List[UUID]:
        promoted = []
        for document_id in document_ids:
            document = self.database.documents.get(document_id)
            chunks = self.chunks.get(document_id, [])
            if document is None or document.status != DocumentStatus.PROCESSING or not chunks:
                continue
            if all(
                c.document_version == document.version
                and parse_embedding(c.embedding, DIMS) is not None
                for c in chunks
            ):
                document.status = DocumentStatus.READY
                promoted.append(document_id)
        return promoted


class ScriptedEmbeddings:
    """
    Fake ``client.embeddings`` endpoint.

    Every input gets the same unit vector unless it contains one of the
    ``fail_on`` markers, in which case the call raises. Inputs containing a
    key of ``vectors`` get that vector instead.
    """

    def __init__(self) -> None:
        self.fail_on: List[str] = []
        self.vector = make_vector(1.0)
        self.vectors: Dict[str, List[float]] = {}
        self.inputs: List[str] = []
        self.create = AsyncMock(side_effect=self._create)

    async def _create(self, model, input, dimensions):
        self.inputs.append(input)
        if any(marker in input for marker in self.fail_on):
            raise RuntimeError("provider unavailable")
        vector = next(
            (v for marker, v in self.vectors.items() if marker in input), self.vector)
        return SimpleNamespace(data=[SimpleNamespace(embedding=list(vector))])


class RecordingLLM:
    """Fake LLMService that records prompts and returns a fixed answer."""

    def __init__(self, answer: str = "Train close to failure in the 5-10 rep range.") -> None:
        self.answer = answer
        self.calls: List[dict] = []

    async def generate(self, messages, config):
        self.calls.append({"messages": messages, "config": config})
        return self.answer


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def vector_store(database):
    return FakeVectorStore(database)


@pytest.fixture
def provider():
    return ScriptedEmbeddings()


@pytest.fixture
def embedding_service(provider):
    service = EmbeddingService(client=SimpleNamespace(embeddings=provider))
    service.batch_delay = 0
    return service


@pytest.fixture
def chunking_service():
    return ChunkingService(chunk_size=500, chunk_overlap=100, min_chunk_length=50)


@pytest.fixture
def ingestion(database, vector_store, embedding_service, chunking_service):
    return IngestionProcessor(
        database=database,
        vector_store=vector_store,
        embedding_service=embedding_service,
        chunking_service=chunking_service,
    )


@pytest.fixture
def auditor(vector_store, embedding_service):
    return ConsistencyAuditor(vector_store, embedding_service)


@pytest.fixture
def llm():
    return RecordingLLM()


@pytest.fixture
def query_processor(vector_store, embedding_service, llm):
    return QueryProcessor(
        retriever=Retriever(vector_store),
        embedding_service=embedding_service,
        llm_service=llm,
        cache_service=CacheService(),
    )
