"""OpenAI embedding generation service."""

import asyncio
import logging
import math
from typing import Dict, List, Optional

from openai import APITimeoutError, AsyncOpenAI
from pydantic import BaseModel, Field

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import (
    EmbeddingError,
    EmbeddingTimeoutError,
    ProviderNotConfiguredError,
)
from grounding_engine.models.document import Chunk

logger = logging.getLogger(__name__)


class EmbeddingBatchResult(BaseModel):
    """Per-chunk outcome of embedding a document's chunks."""

    embeddings: Dict[str, List[float]] = Field(default_factory=dict)
    failures: Dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.embeddings)


def with_title_prefix(title: str, content: str) -> str:
    """Bias a chunk's embedding toward its document topic."""
    return f"{title}\n\n{content}" if title else content


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        """
        Initialize the embedding service.

        Args:
            client: Pre-built client; created lazily from settings otherwise.
        """
        self._client = client
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.batch_size = settings.embedding_batch_size
        self.batch_delay = settings.embedding_batch_delay_seconds

    def get_client(self) -> AsyncOpenAI:
        """Return the provider client, building it on first use."""
        if self._client is None:
            if not settings.openai_api_key:
                raise ProviderNotConfiguredError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.provider_timeout_seconds,
                max_retries=0,
            )
        return self._client

    def _validate(self, vector: List[float]) -> List[float]:
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Expected {self.dimensions} dimensions, got {len(vector)}")
        if not all(math.isfinite(v) for v in vector):
            raise EmbeddingError("Embedding contains non-finite values")
        return vector

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.

        Raises:
            EmbeddingError: If embedding generation fails.
            ProviderNotConfiguredError: If no API key is configured.
        """
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty for embedding generation")

        client = self.get_client()
        try:
            response = await client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except APITimeoutError as e:
            raise EmbeddingTimeoutError(
                f"Embedding provider timed out: {str(e)}") from e
        except Exception as e:
            raise EmbeddingError(f"Failed to generate embedding: {str(e)}") from e

        if not response.data:
            raise EmbeddingError("Embedding provider returned no vectors")
        return self._validate(list(response.data[0].embedding))

    async def embed_document_chunks(
        self, title: str, chunks: List[Chunk]
    ) -> EmbeddingBatchResult:
        """
        Embed chunks in bounded batches, isolating per-chunk failures.

        A failed chunk never aborts its siblings; it is reported in
        ``failures`` and left for the repair pass.

        Args:
            title: Parent document title, prefixed to every chunk.
            chunks: Chunks to embed.

        Returns:
            Successful vectors and failure reasons keyed by chunk id.
        """
        # Fail fast before cutting any batch when no provider is configured
        self.get_client()

        result = EmbeddingBatchResult()
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.generate_embedding(with_title_prefix(title, c.content)) for c in batch),
                return_exceptions=True,
            )
            for chunk, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.warning(
                        f"Embedding failed for chunk {chunk.id} "
                        f"(index {chunk.chunk_index}): {str(outcome)}"
                    )
                    result.failures[chunk.id] = str(outcome)
                else:
                    result.embeddings[chunk.id] = outcome

            if start + self.batch_size < len(chunks) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        logger.info(
            f"Embedded {result.succeeded}/{len(chunks)} chunks "
            f"({self.model}, {self.dimensions}d)"
        )
        return result
