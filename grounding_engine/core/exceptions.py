"""Custom exceptions for the grounding engine."""


class GroundingEngineError(Exception):
    """Base class for all engine errors."""

    pass


class IngestionError(GroundingEngineError):
    """Raised when extraction or chunking produces nothing usable."""

    pass


class EmbeddingError(GroundingEngineError):
    """Raised when embedding generation fails."""

    pass


class EmbeddingTimeoutError(EmbeddingError):
    """Raised when the embedding provider does not answer in time."""

    pass


class ProviderNotConfiguredError(GroundingEngineError):
    """Raised when a provider API key or model is not configured."""

    pass


class RetrievalDegraded(GroundingEngineError):
    """Raised when retrieval cannot run and the answer must be ungrounded."""

    pass


class ConfigurationError(GroundingEngineError):
    """Raised when configuration values are out of bounds."""

    pass


class LLMError(GroundingEngineError):
    """Raised when LLM operations fail."""

    pass


class LLMTimeoutError(LLMError):
    """Raised when the generation provider does not answer in time."""

    pass


class CacheError(GroundingEngineError):
    """Raised when cache operations fail."""

    pass


class DatabaseError(GroundingEngineError):
    """Raised when database operations fail."""

    pass


class StaleDocumentVersionError(DatabaseError):
    """Raised when a newer processing request superseded this write."""

    pass


class DocumentNotFoundError(DatabaseError):
    """Raised when a document does not exist."""

    pass
