"""
Extension point: implement DecisionService to plug in any decision model.

Adding a new model requires only a new subclass and a registry entry in
main.py. AgentLoop and BattleGate never need to change.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

from bot.schema import AgentReply, DecisionRequest

ChunkCallback = Callable[[str], None]


class ProviderError(Exception):
    """Raised when a decision service call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass
class DecisionContext:
    turn: int
    request: DecisionRequest
    prompt: str  # situation description rendered by bot.formatter
    battle_format: str
    battle_tag: str = ""
    battle_log: list[str] = field(default_factory=list, repr=False)


class DecisionService(ABC):
    """Abstract decision engine.

    Receives a DecisionContext, returns the agent's raw text. Validation is
    the caller's job: the text may name an illegal action or nothing at all.
    """

    @abstractmethod
    async def decide(
        self, context: DecisionContext, on_chunk: ChunkCallback | None = None
    ) -> AgentReply:
        """Produce a reply. Streaming services call on_chunk per text fragment."""
        ...

    @property
    def name(self) -> str:
        """Human-readable identifier used in logs and reports."""
        return self.__class__.__name__

    @property
    def streams(self) -> bool:
        return False

    async def aclose(self) -> None:
        """Release clients held by the service."""
        return None
