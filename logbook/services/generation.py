"""Generative text backend (OpenAI-compatible chat completions)."""

import logging
from functools import lru_cache
from typing import Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from logbook.core.config import settings
from logbook.core.exceptions import GenerationError

logger = logging.getLogger(__name__)


class GenerativeBackend(Protocol):
    """generate(system_prompt, user_prompt) -> text"""

    async def generate(self, system_prompt: str, user_prompt: str, model: Optional[str] = None) -> str: ...


class OpenAIGenerationService:
    """
    Chat-completions client for any OpenAI-compatible endpoint.

    Defaults point at Google's OpenAI-compatible Gemini endpoint. Without an
    API key the service still constructs, but every call raises
    GenerationError so the rest of the app keeps working.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        api_key = api_key if api_key is not None else settings.GENAI_API_KEY
        self.default_model = default_model or settings.GENAI_TRANSCRIPT_MODEL

        if api_key:
            self._client: Optional[AsyncOpenAI] = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url if base_url is not None else settings.GENAI_BASE_URL,
                timeout=timeout if timeout is not None else settings.GENAI_TIMEOUT_SEC,
            )
            logger.info(f"Generative AI client initialized (model={self.default_model})")
        else:
            self._client = None
            logger.warning("GENAI_API_KEY not set; AI features will be disabled")

    async def generate(self, system_prompt: str, user_prompt: str, model: Optional[str] = None) -> str:
        """
        Run one chat completion and return the text.

        Raises:
            GenerationError: If the backend is not configured, fails, or returns no text
        """
        if self._client is None:
            raise GenerationError("Generative AI API key not configured")

        target_model = model or self.default_model
        try:
            response = await self._client.chat.completions.create(
                model=target_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except OpenAIError as e:
            logger.error(f"Generation failed (model={target_model}): {e}")
            raise GenerationError(f"Generative AI request failed: {e}") from e

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise GenerationError(f"Generative AI model {target_model} returned an empty response")
        return text


@lru_cache
def get_generation_service() -> OpenAIGenerationService:
    """Get cached generation service instance."""
    return OpenAIGenerationService()
