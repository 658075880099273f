"""
Shared prompts, reply splitting, and base class for LLM decision services.

MistralAgent, HFAgent and ClaudeAgent inherit LLMDecisionService from here.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from abc import abstractmethod

from bot.agent import ChunkCallback, DecisionContext, DecisionService
from bot.schema import AgentReply

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert Pokemon battle AI. You are playing a competitive Pokemon battle and must make strategic decisions.

RULES:
1. You MUST respond with ONLY one of these exact formats:
   - "move N" where N is 1-4 (to use that move)
   - "switch N" where N is 2-6 (to switch to that Pokemon)
   - "default" (only for team preview)
2. Consider type matchups, remaining HP, status conditions, and your opponent's likely moves.
3. Your response should be ONLY the command, optionally followed by brief reasoning on a new line.
"""

STREAMING_SYSTEM_PROMPT = """\
You are an expert Pokemon battle AI competing in a Pokemon battle. THINK OUT LOUD as you analyze the situation.

RESPONSE FORMAT:
1. Briefly analyze the current situation (type matchups, HP, threats).
2. Consider 2-3 options and their pros and cons.
3. Make your final decision.
4. End with EXACTLY one of these on its own line:
   - ACTION: move N (where N is 1-4)
   - ACTION: switch N (where N is 2-6)
   - ACTION: default (only for team preview)
"""

_ACTION_RE = re.compile(r"ACTION:\s*(.+)", re.IGNORECASE)


def extract_command(text: str) -> AgentReply:
    """Split a raw model reply into command text and reasoning.

    A trailing "ACTION: ..." line wins; otherwise the first non-empty line is
    the command and the rest is reasoning.
    """
    text = text.strip()
    matches = _ACTION_RE.findall(text)
    if matches:
        return AgentReply(text=matches[-1].strip(), reasoning=text or None)

    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return AgentReply(text="")
    reasoning = "\n".join(lines[1:]).strip() or None
    return AgentReply(text=lines[0].strip().strip('"'), reasoning=reasoning)


class LLMDecisionService(DecisionService):
    """Base class for LLM services with per-battle conversation history.

    Subclasses only need to implement _call_api(messages, on_chunk) -> str.
    History resets automatically when a new battle tag shows up.
    """

    def __init__(self, model_id: str, throttle_s: float = 0.0, stream: bool = True) -> None:
        self._model_id = model_id
        self._name = f"{model_id}-{uuid.uuid4().hex[:6]}"
        self._throttle_s = throttle_s
        self._stream = stream
        self._last_call_end: float = 0.0
        self._current_tag: str | None = None
        self._last_exchange: tuple[str, str] | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def streams(self) -> bool:
        return self._stream

    @abstractmethod
    async def _call_api(self, messages: list[dict], on_chunk: ChunkCallback | None) -> str:
        """Call the model and return the full raw text response."""
        ...

    def _system_prompt(self) -> str:
        return STREAMING_SYSTEM_PROMPT if self._stream else SYSTEM_PROMPT

    def _build_messages(self, prompt: str) -> list[dict]:
        msgs: list[dict] = [{"role": "system", "content": self._system_prompt()}]
        if self._last_exchange is not None:
            prev_prompt, prev_response = self._last_exchange
            msgs += [
                {"role": "user", "content": prev_prompt},
                {"role": "assistant", "content": prev_response},
            ]
        msgs.append({"role": "user", "content": prompt})
        return msgs

    async def decide(
        self, context: DecisionContext, on_chunk: ChunkCallback | None = None
    ) -> AgentReply:
        tag = context.battle_tag or str(id(self))
        if tag != self._current_tag:
            self._current_tag = tag
            self._last_exchange = None

        messages = self._build_messages(context.prompt)
        logger.debug("[%s] Turn %d", self._model_id, context.turn)

        if self._throttle_s > 0:
            wait = self._throttle_s - (time.perf_counter() - self._last_call_end)
            if wait > 0:
                await asyncio.sleep(wait)

        try:
            raw = await self._call_api(messages, on_chunk if self._stream else None)
        finally:
            self._last_call_end = time.perf_counter()

        logger.debug("[%s] Response: %s", self._model_id, raw)
        self._last_exchange = (context.prompt, raw)
        return extract_command(raw)
