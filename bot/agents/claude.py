"""ClaudeAgent: Anthropic Claude via the anthropic SDK with native async."""

from __future__ import annotations

import logging
import os

import anthropic as anthropic_sdk

from bot.agent import ChunkCallback, ProviderError
from bot.agents._shared import LLMDecisionService

logger = logging.getLogger(__name__)


class ClaudeAgent(LLMDecisionService):
    def __init__(self, model_id: str, stream: bool = True, temperature: float = 0.7) -> None:
        super().__init__(model_id, stream=stream)
        api_key = os.environ.get("ANTHROPIC_API_KEY", "").strip()
        if not api_key:
            raise ProviderError("claude", "Missing API key: ANTHROPIC_API_KEY")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)
        self._temperature = temperature

    async def _call_api(self, messages: list[dict], on_chunk: ChunkCallback | None) -> str:
        # Anthropic takes the system prompt separately from the turns.
        system = messages[0]["content"]
        turns = messages[1:]
        try:
            if on_chunk is None:
                response = await self._client.messages.create(
                    model=self._model_id,
                    max_tokens=150,
                    temperature=self._temperature,
                    system=system,
                    messages=turns,
                )
                return "\n".join(b.text for b in response.content if b.type == "text")

            parts: list[str] = []
            async with self._client.messages.stream(
                model=self._model_id,
                max_tokens=500,
                temperature=self._temperature,
                system=system,
                messages=turns,
            ) as stream:
                async for text in stream.text_stream:
                    parts.append(text)
                    on_chunk(text)
            return "".join(parts)
        except anthropic_sdk.APIError as exc:
            raise ProviderError("claude", f"API call failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.close()
