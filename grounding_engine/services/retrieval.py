"""Similarity search over stored chunk embeddings."""

import logging
from typing import List, Optional, Sequence

import numpy as np

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import EmbeddingError
from grounding_engine.models.document import CandidateChunk
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.models.retrieval import RankedChunk, RelevanceClass, RetrievalResult
from grounding_engine.services.vector_db import VectorStoreService

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors."""
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def classify(score: float, config: GroundingConfig) -> RelevanceClass:
    if score >= config.high_relevance_floor:
        return RelevanceClass.HIGH
    return RelevanceClass.STANDARD


def rank_candidates(
    query_embedding: Sequence[float],
    candidates: List[CandidateChunk],
    config: GroundingConfig,
) -> RetrievalResult:
    """
    Score, filter, order and truncate candidate chunks.

    Candidates scoring below the similarity floor are discarded. Survivors
    are sorted by descending score; equal scores keep candidate order.

    Args:
        query_embedding: Query vector.
        candidates: Chunks in insertion order.
        config: Grounding configuration for this request.

    Returns:
        At most ``max_chunks`` results, or an explicit no-grounding result.
    """
    scored = []
    for candidate in candidates:
        score = cosine_similarity(query_embedding, candidate.embedding)
        if score >= config.similarity_floor:
            scored.append((candidate, score))

    # sorted() is stable, so ties stay in insertion order
    scored = sorted(scored, key=lambda item: -item[1])[:config.max_chunks]

    if not scored:
        return RetrievalResult.empty()

    return RetrievalResult(
        results=[
            RankedChunk(
                chunk_id=candidate.chunk_id,
                document_id=candidate.document_id,
                title=candidate.title,
                chunk_index=candidate.chunk_index,
                content=candidate.content,
                score=score,
                relevance=classify(score, config),
            )
            for candidate, score in scored
        ],
        no_grounding=False,
    )


class Retriever:
    """Retrieves the chunks most relevant to a query embedding."""

    def __init__(self, vector_store: VectorStoreService) -> None:
        self.vector_store = vector_store
        self.dimensions = settings.embedding_dimensions

    async def retrieve(
        self,
        query_embedding: List[float],
        config: GroundingConfig,
        user_id: Optional[str] = None,
    ) -> RetrievalResult:
        """
        Rank the chunks visible to a user against a query.

        Args:
            query_embedding: Query vector.
            config: Grounding configuration for this request.
            user_id: Requesting user; None sees shared documents only.

        Returns:
            Retrieval result.

        Raises:
            EmbeddingError: If the query vector has the wrong dimensionality.
        """
        if len(query_embedding) != self.dimensions:
            raise EmbeddingError(
                f"Query embedding has {len(query_embedding)} dimensions, "
                f"expected {self.dimensions}"
            )

        candidates = await self.vector_store.fetch_candidates(user_id)
        result = rank_candidates(query_embedding, candidates, config)
        logger.info(
            f"Retrieved {len(result.results)} of {len(candidates)} candidates "
            f"(floor={config.similarity_floor}, max={config.max_chunks})"
        )
        return result
