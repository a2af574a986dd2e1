"""Prompt assembly for grounded generation."""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from grounding_engine.core.config import settings
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.models.response import ConversationTurn
from grounding_engine.models.retrieval import RankedChunk, RetrievalResult

PROFILE_FIELDS = [
    "name",
    "age",
    "experienceLevel",
    "primaryGoals",
    "currentProgram",
    "trainingFrequency",
    "availableEquipment",
    "timeConstraints",
    "injuries",
    "medicalConditions",
    "supplementation",
    "nutritionPlan",
]
MAX_PROFILE_VALUE_LENGTH = 500

NO_PROFILE = (
    "No user profile information available. Ask clarifying questions to "
    "gather relevant training information."
)
NO_USABLE_PROFILE = "No detailed user profile available. Ask clarifying questions."
NO_KNOWLEDGE = "No relevant knowledge base material was found for this question."


class GroundingMode(str, Enum):
    """How strictly the answer must follow retrieved material."""

    STRICT = "STRICT"
    GENERALIZE = "GENERALIZE"


STRICT_INSTRUCTIONS = """# PRIMARY DIRECTIVE: KNOWLEDGE BASE GROUNDING
Your single source of truth is the provided [KNOWLEDGE] context. Synthesize your
answer strictly from it: integrate the fragments into one coherent answer rather
than repeating sentences, and justify recommendations by the principles they
contain. Do not cite document titles."""

GENERALIZE_INSTRUCTIONS = """# FALLBACK PROTOCOL
The [KNOWLEDGE] context does not directly answer this question.
1. Attempt to generalize: answer from the foundational principles present in
   the context where that is plausible.
2. Otherwise state the limitation clearly, for example: "Based on my current
   knowledge base, the specific guidelines for that are not detailed. However,
   based on the principle of..."
3. For questions inside your domain, still give evidence-based general
   guidance while stating the knowledge base limitation."""


class PromptMessages(BaseModel):
    """Chat messages ready for the generation provider."""

    mode: GroundingMode
    system: str
    user: str
    knowledge_used: List[RankedChunk]

    def as_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def _readable_key(key: str) -> str:
    spaced = re.sub(r"([A-Z])", r" \1", key)
    return spaced[:1].upper() + spaced[1:]


def sanitize_profile(profile: Optional[Dict[str, Any]]) -> str:
    """
    Render the allow-listed profile fields as prompt text.

    Values are trimmed; empty values and values of 500 characters or more
    are dropped.

    Args:
        profile: Free-form profile mapping.

    Returns:
        One "Key: value" line per kept field, or a placeholder.
    """
    if not profile:
        return NO_PROFILE

    lines = []
    for field in PROFILE_FIELDS:
        value = profile.get(field)
        if value is None:
            continue
        text = str(value).strip()
        if 0 < len(text) < MAX_PROFILE_VALUE_LENGTH:
            lines.append(f"{_readable_key(field)}: {text}")

    if not lines:
        return NO_USABLE_PROFILE
    return "\n".join(lines)


class PromptBuilder:
    """Builds the system and user messages for one query."""

    def __init__(
        self,
        max_context_chars: Optional[int] = None,
        max_history_turns: Optional[int] = None,
        max_history_chars: Optional[int] = None,
    ) -> None:
        self.max_context_chars = max_context_chars or settings.max_context_chars
        self.max_history_turns = max_history_turns or settings.max_history_turns
        self.max_history_chars = max_history_chars or settings.max_history_chars

    @staticmethod
    def select_mode(retrieval: RetrievalResult) -> GroundingMode:
        if retrieval.has_high_relevance:
            return GroundingMode.STRICT
        return GroundingMode.GENERALIZE

    def _build_knowledge(self, results: List[RankedChunk]) -> tuple[str, List[RankedChunk]]:
        """
        Place fragments in rank order until the context budget is spent.

        Args:
            results: Ranked chunks.

        Returns:
            Tuple of (knowledge text, chunks actually placed).
        """
        parts = []
        used = []
        total_chars = 0
        for result in results:
            separator_length = 2 if parts else 0
            remaining = self.max_context_chars - total_chars - separator_length
            if remaining <= 0:
                break
            content = result.content
            if len(content) > remaining:
                # Keep a truncated fragment only if it still carries something
                if remaining <= 100:
                    break
                content = content[:remaining]
            parts.append(content)
            used.append(result)
            total_chars += len(content) + separator_length
        return "\n\n".join(parts), used

    def _build_history(self, history: List[ConversationTurn]) -> str:
        """Keep the most recent turns that fit the history bounds."""
        recent = history[-self.max_history_turns:] if self.max_history_turns else []
        lines: List[str] = []
        total_chars = 0
        for turn in reversed(recent):
            line = f"{turn.role.capitalize()}: {turn.content.strip()}"
            if total_chars + len(line) > self.max_history_chars:
                break
            lines.append(line)
            total_chars += len(line) + 1
        return "\n".join(reversed(lines))

    def build(
        self,
        query_text: str,
        config: GroundingConfig,
        retrieval: RetrievalResult,
        profile: Optional[Dict[str, Any]] = None,
        history: Optional[List[ConversationTurn]] = None,
    ) -> PromptMessages:
        """
        Assemble the prompt for one query.

        Args:
            query_text: The user's question.
            config: Grounding configuration for this request.
            retrieval: Retrieval result; may be empty.
            profile: User profile, used when the configuration allows it.
            history: Prior conversation turns, oldest first.

        Returns:
            Prompt messages, the grounding mode and the fragments placed.
        """
        knowledge_text, used = self._build_knowledge(retrieval.results)
        mode = self.select_mode(RetrievalResult(results=used, no_grounding=not used))

        instructions = [
            "# MISSION & PERSONA",
            config.system_prompt.strip(),
            "",
            STRICT_INSTRUCTIONS if mode == GroundingMode.STRICT else GENERALIZE_INSTRUCTIONS,
            "",
            "# DOMAIN",
            f"Your expertise is confined to: {config.domain}. "
            "Refuse to answer any question outside this domain.",
        ]

        system_sections = ["[INSTRUCTIONS]", "\n".join(instructions), "[/INSTRUCTIONS]"]
        if config.use_profile_context:
            system_sections += [
                "",
                "The user's profile is in the [USER_PROFILE] tags. Tailor your advice "
                "to it, especially experience level, goals and injuries.",
                "[USER_PROFILE]",
                sanitize_profile(profile),
                "[/USER_PROFILE]",
            ]

        user_sections = [
            "[KNOWLEDGE]",
            knowledge_text or NO_KNOWLEDGE,
            "[/KNOWLEDGE]",
        ]
        history_text = self._build_history(history or [])
        if history_text:
            user_sections += ["", "[CONVERSATION HISTORY]", history_text, "[/CONVERSATION HISTORY]"]
        user_sections += ["", "[QUESTION]", query_text.strip(), "[/QUESTION]"]

        return PromptMessages(
            mode=mode,
            system="\n".join(system_sections),
            user="\n".join(user_sections),
            knowledge_used=used,
        )
