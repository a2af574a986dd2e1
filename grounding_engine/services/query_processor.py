"""Grounded query processing: retrieve, assemble, generate."""

import logging
from typing import Any, Dict, List, Optional

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import (
    EmbeddingError,
    ProviderNotConfiguredError,
    RetrievalDegraded,
)
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.models.response import ConversationTurn, QueryRequest, QueryResponse
from grounding_engine.models.retrieval import RetrievalResult
from grounding_engine.monitoring.metrics import retrieval_degraded_total
from grounding_engine.services.cache import CacheService, embedding_cache_key
from grounding_engine.services.citations import build_citations
from grounding_engine.services.embedding import EmbeddingService
from grounding_engine.services.llm import LLMService
from grounding_engine.services.prompt_builder import PromptBuilder
from grounding_engine.services.retrieval import Retriever

logger = logging.getLogger(__name__)

EMPTY_ANSWER_FALLBACK = (
    "I'm sorry, I wasn't able to put together an answer to that. "
    "Could you rephrase or add a bit more detail?"
)


class QueryProcessor:
    """Processes grounded queries."""

    def __init__(
        self,
        retriever: Retriever,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        cache_service: CacheService,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        """
        Initialize query processor.

        Args:
            retriever: Chunk retriever.
            embedding_service: Embedding generation service.
            llm_service: LLM service.
            cache_service: Query embedding cache.
            prompt_builder: Prompt assembly; a default builder otherwise.
        """
        self.retriever = retriever
        self.embedding_service = embedding_service
        self.llm_service = llm_service
        self.cache_service = cache_service
        self.prompt_builder = prompt_builder or PromptBuilder()

    async def _embed_query(self, query_text: str) -> List[float]:
        """
        Embed the query, reusing a cached vector when available.

        Raises:
            RetrievalDegraded: If the embedding cannot be produced.
        """
        key = embedding_cache_key(
            settings.embedding_model, settings.embedding_dimensions, query_text)
        cached = await self.cache_service.get_embedding(key)
        if cached and len(cached) == settings.embedding_dimensions:
            logger.info(f"Cache hit for query embedding: {query_text[:50]}...")
            return cached

        try:
            embedding = await self.embedding_service.generate_embedding(query_text)
        except EmbeddingError as e:
            raise RetrievalDegraded(f"Query embedding failed: {str(e)}") from e

        await self.cache_service.set_embedding(key, embedding)
        return embedding

    async def _retrieve(
        self, request: QueryRequest, config: GroundingConfig
    ) -> RetrievalResult:
        try:
            embedding = await self._embed_query(request.query_text)
            return await self.retriever.retrieve(
                embedding, config, request.requesting_user_id)
        except (RetrievalDegraded, EmbeddingError, ProviderNotConfiguredError) as e:
            logger.warning(f"Retrieval degraded, answering without grounding: {str(e)}")
            retrieval_degraded_total.inc()
            return RetrievalResult.empty()

    async def process_query(
        self,
        request: QueryRequest,
        config: GroundingConfig,
        profile: Optional[Dict[str, Any]] = None,
        history: Optional[List[ConversationTurn]] = None,
    ) -> QueryResponse:
        """
        Answer a query under the grounding protocol.

        Args:
            request: Query request.
            config: Grounding configuration read for this request.
            profile: User profile; defaults to the one on the request.
            history: Conversation history; defaults to the one on the request.

        Returns:
            Answer with document-level citations.

        Raises:
            LLMError: If generation fails.
        """
        if config.use_knowledge_base:
            retrieval = await self._retrieve(request, config)
        else:
            retrieval = RetrievalResult.empty()

        prompt = self.prompt_builder.build(
            query_text=request.query_text,
            config=config,
            retrieval=retrieval,
            profile=profile if profile is not None else request.profile,
            history=history if history is not None else request.history,
        )
        logger.info(
            f"Generating in {prompt.mode.value} mode with "
            f"{len(prompt.knowledge_used)} knowledge fragments"
        )

        answer = await self.llm_service.generate(prompt.as_messages(), config)
        if not answer.strip():
            logger.warning("LLM returned an empty answer, using fallback text")
            answer = EMPTY_ANSWER_FALLBACK

        return QueryResponse(
            answer_text=answer,
            citations=build_citations(prompt.knowledge_used),
            used_grounding=bool(prompt.knowledge_used),
        )
