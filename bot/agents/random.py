"""RandomAgent: picks a random legal action each turn."""

from __future__ import annotations

import random
import uuid

from bot.agent import ChunkCallback, DecisionContext, DecisionService
from bot.parser import random_choice
from bot.schema import AgentReply


class RandomAgent(DecisionService):
    """Chooses uniformly at random between all legal moves and switches."""

    def __init__(self, seed: int | None = None) -> None:
        self._name = f"random-{uuid.uuid4().hex[:6]}"
        self._rng = random.Random(seed)

    @property
    def name(self) -> str:
        return self._name

    async def decide(
        self, context: DecisionContext, on_chunk: ChunkCallback | None = None
    ) -> AgentReply:
        return AgentReply(text=random_choice(context.request, self._rng))
