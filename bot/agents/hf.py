"""
HFAgent: calls the Hugging Face Inference API each turn to choose a battle action.

Uses the chat-completion route so any instruction-tuned model on the Hub works
with the shared prompts. HF_TOKEN is read from the environment.
"""

from __future__ import annotations

import logging
import os

from huggingface_hub import AsyncInferenceClient

from bot.agent import ChunkCallback
from bot.agents._shared import LLMDecisionService

logger = logging.getLogger(__name__)


class HFAgent(LLMDecisionService):
    def __init__(self, model_id: str, stream: bool = True) -> None:
        super().__init__(model_id, stream=stream)
        self._client = AsyncInferenceClient(model=model_id, api_key=os.environ.get("HF_TOKEN"))

    async def _call_api(self, messages: list[dict], on_chunk: ChunkCallback | None) -> str:
        if on_chunk is None:
            r = await self._client.chat_completion(messages, max_tokens=150)
            return r.choices[0].message.content or ""

        parts: list[str] = []
        stream = await self._client.chat_completion(messages, max_tokens=500, stream=True)
        async for event in stream:
            if not event.choices:
                continue
            delta = event.choices[0].delta.content
            if delta:
                parts.append(delta)
                on_chunk(delta)
        raw = "".join(parts)
        logger.debug("[%s] raw='%s'", self._model_id, raw.strip()[:300])
        return raw

    async def aclose(self) -> None:
        await self._client.close()
