"""Dependency injection for services."""

import logging

from grounding_engine.core.exceptions import CacheError
from grounding_engine.services.auditor import ConsistencyAuditor
from grounding_engine.services.cache import CacheService
from grounding_engine.services.chunking import ChunkingService
from grounding_engine.services.database import DatabaseService
from grounding_engine.services.embedding import EmbeddingService
from grounding_engine.services.ingestion import IngestionProcessor
from grounding_engine.services.llm import LLMService
from grounding_engine.services.prompt_builder import PromptBuilder
from grounding_engine.services.query_processor import QueryProcessor
from grounding_engine.services.retrieval import Retriever
from grounding_engine.services.vector_db import VectorStoreService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances."""

    def __init__(self) -> None:
        """Initialize service container."""
        self.database = DatabaseService()
        self.vector_store = VectorStoreService(self.database)
        self.embedding_service = EmbeddingService()
        self.chunking_service = ChunkingService()
        self.cache_service = CacheService()
        self.llm_service = LLMService()
        self.retriever = Retriever(self.vector_store)
        self.ingestion = IngestionProcessor(
            database=self.database,
            vector_store=self.vector_store,
            embedding_service=self.embedding_service,
            chunking_service=self.chunking_service,
        )
        self.auditor = ConsistencyAuditor(self.vector_store, self.embedding_service)
        self.query_processor = QueryProcessor(
            retriever=self.retriever,
            embedding_service=self.embedding_service,
            llm_service=self.llm_service,
            cache_service=self.cache_service,
            prompt_builder=PromptBuilder(),
        )

    async def initialize(self) -> None:
        """Initialize all services."""
        await self.database.connect()
        try:
            await self.cache_service.connect()
        except CacheError as e:
            logger.warning(f"Redis unavailable, query embeddings will not be cached: {str(e)}")
            self.cache_service.client = None

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.database.disconnect()
        await self.cache_service.disconnect()


services = ServiceContainer()
