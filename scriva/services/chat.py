"""
Chat completion collaborator.

The indexer only needs the final text of a completion (it parses JSON out of
it), but the provider call is streamed so long analyses do not hit a single
response timeout.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from scriva.config import get_settings
from scriva.errors import ProviderError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


@runtime_checkable
class ChatProvider(Protocol):
    async def complete(
        self, system_prompt: str, messages: List[Message], model_tier: str
    ) -> str:
        ...


def _to_contents(messages: List[Message]) -> List[types.Content]:
    contents = []
    for message in messages:
        text = message.get("content", "")
        if not text.strip():
            continue
        role = "model" if message.get("role") in ("assistant", "model") else "user"
        contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
    return contents


class GeminiChatClient:
    """Streams completions from Gemini. Model tiers map to model names via settings."""

    provider = "gemini"

    def __init__(self, api_key: Optional[str] = None, client: Optional[genai.Client] = None):
        settings = get_settings()
        self._settings = settings
        self._client = client or genai.Client(api_key=api_key or settings.google_api_key or None)

    async def stream(
        self, system_prompt: str, messages: List[Message], model_tier: str
    ) -> AsyncIterator[str]:
        model = self._settings.model_for_tier(model_tier)
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            max_output_tokens=self._settings.chat_max_output_tokens,
        )
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=model,
                contents=_to_contents(messages),
                config=config,
            )
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except genai_errors.APIError as exc:
            raise ProviderError(self.provider, str(exc.message or exc), status_code=exc.code) from exc

    async def complete(
        self, system_prompt: str, messages: List[Message], model_tier: str
    ) -> str:
        parts = []
        async for text in self.stream(system_prompt, messages, model_tier):
            parts.append(text)
        result = "".join(parts)
        logger.debug("chat complete | tier=%s | chars=%d", model_tier, len(result))
        return result
