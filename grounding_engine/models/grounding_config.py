"""Grounding configuration: the singleton record of retrieval and generation knobs."""

from pydantic import BaseModel, ConfigDict, Field

from grounding_engine.core.config import settings

DEFAULT_SYSTEM_PROMPT = (
    "You are an elite, evidence-based personal trainer. Your expertise is "
    "muscle hypertrophy, exercise science, biomechanics and performance "
    "nutrition. Your tone is professional, expert and concise. You address "
    "the user as your client."
)

DEFAULT_DOMAIN = "fitness, strength training, exercise science, nutrition, health and human physiology"


class GroundingConfig(BaseModel):
    """
    Tunable parameters read on every retrieval.

    Unknown fields and out-of-range values are rejected when the model is
    built, so an invalid configuration can never be persisted.
    """

    model_config = ConfigDict(
        extra="forbid", validate_assignment=True, protected_namespaces=())

    similarity_floor: float = Field(default=0.6, ge=0.01, le=1.0)
    max_chunks: int = Field(default=5, ge=1, le=20)
    high_relevance_floor: float = Field(default=0.8, ge=0.01, le=1.0)
    use_knowledge_base: bool = True
    use_profile_context: bool = True
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, min_length=1)
    domain: str = Field(default=DEFAULT_DOMAIN, min_length=1)
    model_name: str = Field(default=settings.llm_model, min_length=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1, le=65536)
