"""Query request and response models."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from grounding_engine.models.retrieval import Citation


class ConversationTurn(BaseModel):
    """A prior message in the conversation."""

    role: Literal["user", "assistant"]
    content: str


class QueryRequest(BaseModel):
    """Query request model."""

    query_text: str = Field(..., min_length=1)
    requesting_user_id: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None
    history: List[ConversationTurn] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """Caller-facing answer with document-level attribution only."""

    answer_text: str
    citations: List[Citation] = Field(default_factory=list)
    used_grounding: bool = False
