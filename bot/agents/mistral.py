"""
MistralAgent: calls the Mistral API each turn to choose a battle action.

Reads MISTRAL_API_KEY from the environment (loaded via load_dotenv() in main.py).
Streams its reasoning when stream=True; the decision loop handles fallbacks.
"""

from __future__ import annotations

import asyncio
import logging
import os

from mistralai import Mistral
from mistralai.models import SDKError

from bot.agent import ChunkCallback, ProviderError
from bot.agents._shared import LLMDecisionService

logger = logging.getLogger(__name__)

_RETRY_DELAYS = [5, 15, 30]  # seconds between retries on 429


class MistralAgent(LLMDecisionService):
    def __init__(self, model_id: str, stream: bool = True, throttle_s: float = 1.0) -> None:
        super().__init__(model_id, throttle_s=throttle_s, stream=stream)
        api_key = os.environ.get("MISTRAL_API_KEY", "").strip()
        if not api_key:
            raise ProviderError("mistral", "Missing API key: MISTRAL_API_KEY")
        self._client = Mistral(api_key=api_key)

    async def _call_api(self, messages: list[dict], on_chunk: ChunkCallback | None) -> str:
        for attempt, delay in enumerate([0] + _RETRY_DELAYS):
            if delay:
                logger.warning(
                    "[%s] Rate limited — retrying in %ds (attempt %d/%d).",
                    self._model_id,
                    delay,
                    attempt,
                    len(_RETRY_DELAYS),
                )
                await asyncio.sleep(delay)
            try:
                if on_chunk is None:
                    r = await self._client.chat.complete_async(
                        model=self._model_id,
                        messages=messages,
                        max_tokens=150,
                    )
                    return r.choices[0].message.content or ""
                return await self._stream(messages, on_chunk)
            except SDKError as e:
                if e.status_code != 429:
                    raise ProviderError("mistral", str(e)) from e
        raise ProviderError("mistral", "Rate limit exceeded after all retries")

    async def _stream(self, messages: list[dict], on_chunk: ChunkCallback) -> str:
        parts: list[str] = []
        response = await self._client.chat.stream_async(
            model=self._model_id,
            messages=messages,
            max_tokens=500,
        )
        async for event in response:
            delta = event.data.choices[0].delta.content
            if isinstance(delta, str) and delta:
                parts.append(delta)
                on_chunk(delta)
        return "".join(parts)
