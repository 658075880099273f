"""Shared pytest fixtures and test doubles. No simulator, no network."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from arena.broadcast import Broadcaster
from arena.config import Settings
from arena.errors import EngineStartError
from arena.export import JsonBattleStore
from arena.gate import BattleGate
from arena.simulator import BattleEngine, MatchStreams
from arena.types import AgentIdentity
from bot.agent import ChunkCallback, DecisionContext, DecisionService
from bot.extractor import RequestExtractor
from bot.schema import AgentReply


# ── Request factories (raw engine JSON, run through the real extractor) ──────


def raw_pokemon(species: str, condition: str = "100/100", active: bool = False) -> dict:
    return {
        "ident": f"p1: {species}",
        "details": f"{species}, L80, M",
        "condition": condition,
        "active": active,
    }


def raw_team(conditions: dict[int, str] | None = None) -> list[dict]:
    species = ["Pikachu", "Charizard", "Blastoise", "Venusaur", "Gengar", "Snorlax"]
    conditions = conditions or {}
    return [
        raw_pokemon(name, conditions.get(i + 1, "100/100"), active=(i == 0))
        for i, name in enumerate(species)
    ]


def raw_moves(disabled: set[int] | None = None) -> list[dict]:
    names = [("Thunderbolt", "thunderbolt"), ("Quick Attack", "quickattack"), ("Iron Tail", "irontail"), ("Volt Tackle", "volttackle")]
    disabled = disabled or set()
    return [
        {"move": name, "id": move_id, "pp": 10, "maxpp": 16, "target": "normal", "disabled": (i + 1) in disabled}
        for i, (name, move_id) in enumerate(names)
    ]


def active_request(disabled: set[int] | None = None, trapped: bool = False, conditions: dict[int, str] | None = None):
    active = {"moves": raw_moves(disabled)}
    if trapped:
        active["trapped"] = True
    return RequestExtractor().extract(
        {"active": [active], "side": {"name": "p1", "id": "p1", "pokemon": raw_team(conditions)}, "rqid": 1}
    )


def forced_switch_request(conditions: dict[int, str] | None = None):
    conditions = {1: "0 fnt", **(conditions or {})}
    return RequestExtractor().extract(
        {"forceSwitch": [True], "side": {"name": "p1", "id": "p1", "pokemon": raw_team(conditions)}, "rqid": 2}
    )


def team_preview_request():
    return RequestExtractor().extract(
        {"teamPreview": True, "side": {"name": "p1", "id": "p1", "pokemon": raw_team()}, "maxTeamSize": 6}
    )


def wait_request():
    return RequestExtractor().extract({"wait": True, "side": {"name": "p1", "id": "p1", "pokemon": raw_team()}})


# ── Engine double ────────────────────────────────────────────────────────────


class FakeMatch(MatchStreams):
    """In-memory match: tests push chunks and requests, writes are recorded."""

    def __init__(self, tie_on_force: bool = True) -> None:
        super().__init__()
        self.written: list[str] = []
        self.closed = False
        self._tie_on_force = tie_on_force

    async def write(self, command: str) -> None:
        if self.closed:
            raise ConnectionResetError("match closed")
        self.written.append(command)
        if command == ">forcetie" and self._tie_on_force:
            self.omniscient.put("|\n|tie")

    def choices(self, side: str) -> list[str]:
        prefix = f">{side} "
        return [w[len(prefix) :] for w in self.written if w.startswith(prefix)]

    async def close(self) -> None:
        self.closed = True
        self.close_streams()


class FakeEngine(BattleEngine):
    def __init__(self, fail: bool = False, tie_on_force: bool = True) -> None:
        self.fail = fail
        self.tie_on_force = tie_on_force
        self.matches: list[FakeMatch] = []
        self.names: list[tuple[str, str]] = []

    @property
    def match(self) -> FakeMatch:
        return self.matches[-1]

    async def start_match(self, battle_format: str, p1_name: str, p2_name: str) -> FakeMatch:
        await asyncio.sleep(0)
        if self.fail:
            raise EngineStartError("simulator not installed")
        self.names.append((p1_name, p2_name))
        match = FakeMatch(tie_on_force=self.tie_on_force)
        self.matches.append(match)
        return match


# ── Decision service double ──────────────────────────────────────────────────


class ScriptedAgent(DecisionService):
    """Replies with fixed text; can stream, stall or raise."""

    def __init__(
        self,
        text: str = "move 1",
        reasoning: str | None = None,
        chunks: list[str] | None = None,
        delay_s: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.text = text
        self.reasoning = reasoning
        self.chunks = chunks or []
        self.delay_s = delay_s
        self.error = error
        self.contexts: list[DecisionContext] = []
        self.cancelled = False
        self.closed = False

    @property
    def streams(self) -> bool:
        return bool(self.chunks)

    async def decide(self, context: DecisionContext, on_chunk: ChunkCallback | None = None) -> AgentReply:
        self.contexts.append(context)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        for chunk in self.chunks:
            if on_chunk is not None:
                on_chunk(chunk)
        return AgentReply(text=self.text, reasoning=self.reasoning)

    async def aclose(self) -> None:
        self.closed = True


async def until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def p1() -> AgentIdentity:
    return AgentIdentity("mistral", "mistral-large-latest")


@pytest.fixture
def p2() -> AgentIdentity:
    return AgentIdentity("claude", "claude-sonnet-4-20250514")


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster()


@pytest.fixture
def store(tmp_path: Path) -> JsonBattleStore:
    return JsonBattleStore(tmp_path / "runs")


@pytest.fixture
def settings() -> Settings:
    return Settings(llm_timeout_s=0.5, end_grace_s=0.2)


@pytest.fixture
def agents() -> dict[str, ScriptedAgent]:
    return {}


@pytest.fixture
def gate(engine, broadcaster, store, settings, agents) -> BattleGate:
    def factory(identity: AgentIdentity) -> DecisionService:
        agent = ScriptedAgent()
        agents.setdefault(identity.label, agent)
        return agent

    return BattleGate(engine, broadcaster, factory, store=store, settings=settings)
