"""OpenAI LLM service for response generation."""

import logging
from typing import Dict, List, Optional

from openai import APITimeoutError, AsyncOpenAI

from grounding_engine.core.config import settings
from grounding_engine.core.exceptions import (
    LLMError,
    LLMTimeoutError,
    ProviderNotConfiguredError,
)
from grounding_engine.models.grounding_config import GroundingConfig

logger = logging.getLogger(__name__)


class LLMService:
    """Service for generating LLM responses."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        """
        Initialize the LLM service.

        Args:
            client: Pre-built client; created lazily from settings otherwise.
        """
        self._client = client

    def get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise ProviderNotConfiguredError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.provider_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def generate(self, messages: List[Dict[str, str]], config: GroundingConfig) -> str:
        """
        Generate a single response.

        Args:
            messages: Chat messages.
            config: Grounding configuration supplying model and sampling.

        Returns:
            Generated text, possibly empty.

        Raises:
            LLMError: If response generation fails.
            LLMTimeoutError: If the provider does not answer in time.
        """
        client = self.get_client()
        try:
            response = await client.chat.completions.create(
                model=config.model_name,
                messages=messages,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except APITimeoutError as e:
            raise LLMTimeoutError(f"LLM provider timed out: {str(e)}") from e
        except Exception as e:
            raise LLMError(f"Failed to generate response: {str(e)}") from e

        if not response.choices:
            logger.warning("LLM returned no choices")
            return ""
        return response.choices[0].message.content or ""
