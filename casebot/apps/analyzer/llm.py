"""
Language model client wrapper around the OpenAI chat completions API.
"""

import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from casebot.utils.config import settings

logger = logging.getLogger(__name__)


class LLMClient:
    """Chat completion calls with the configured model."""

    def __init__(self, client: Optional[Any] = None, model: Optional[str] = None) -> None:
        self.model = model or settings.OPENAI_MODEL
        self._client = client
        self.calls = 0

    @property
    def client(self) -> Any:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY is required for summarization")
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    async def complete(self, messages: list[dict[str, str]], temperature: float, max_tokens: int) -> str:
        """Return the first choice's content. Raises on API failure or empty content."""
        self.calls += 1
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("OpenAI API returned empty content")
        return content
