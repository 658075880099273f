"""Typed containers for sessions, observer snapshots and persisted battle records."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from arena.protocol import ProtocolLog


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AgentIdentity:
    provider: str  # "random" | "mistral" | "hf" | "claude"
    model: str = ""

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.model}" if self.model else self.provider

    def to_dict(self) -> dict:
        return {"provider": self.provider, "model": self.model}

    @classmethod
    def parse(cls, spec: str) -> AgentIdentity:
        """Parse a CLI agent spec: "random", "mistral:mistral-large-latest", ..."""
        provider, _, model = spec.partition(":")
        return cls(provider=provider.strip(), model=model.strip())


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class BattleSession:
    battle_id: str
    battle_format: str
    p1: AgentIdentity
    p2: AgentIdentity
    status: SessionStatus = SessionStatus.PENDING
    turn: int = 0
    winner: str | None = None  # "p1" | "p2" | "tie" | None
    started_at: datetime = field(default_factory=utcnow)
    ended_at: datetime | None = None
    log: ProtocolLog = field(default_factory=ProtocolLog, repr=False)

    @property
    def ended(self) -> bool:
        return self.status is SessionStatus.ENDED

    def identity(self, side: str) -> AgentIdentity:
        return self.p1 if side == "p1" else self.p2

    def advance_turn(self, turn: int) -> None:
        if turn > self.turn:
            self.turn = turn


@dataclass
class ObserverSnapshot:
    active: bool
    observer_count: int
    battle_id: str | None = None
    battle_format: str | None = None
    turn: int = 0
    p1: AgentIdentity | None = None
    p2: AgentIdentity | None = None
    winner: str | None = None
    battle_log: list[str] = field(default_factory=list)
    agent_turns: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "battle_id": self.battle_id,
            "format": self.battle_format,
            "turn": self.turn,
            "p1": self.p1.to_dict() if self.p1 else None,
            "p2": self.p2.to_dict() if self.p2 else None,
            "winner": self.winner,
            "observer_count": self.observer_count,
            "battle_log": list(self.battle_log),
            "agent_turns": dict(self.agent_turns),
        }


@dataclass
class BattleRecord:
    battle_id: str
    battle_format: str
    p1: AgentIdentity
    p2: AgentIdentity
    winner_side: str | None  # "p1" | "p2" | None for tie or no result
    total_turns: int
    started_at: datetime
    ended_at: datetime
    battle_log: list[str] = field(default_factory=list)

    @property
    def winner(self) -> AgentIdentity | None:
        if self.winner_side == "p1":
            return self.p1
        if self.winner_side == "p2":
            return self.p2
        return None

    @classmethod
    def from_session(cls, session: BattleSession) -> BattleRecord:
        return cls(
            battle_id=session.battle_id,
            battle_format=session.battle_format,
            p1=session.p1,
            p2=session.p2,
            winner_side=session.winner if session.winner in ("p1", "p2") else None,
            total_turns=session.turn,
            started_at=session.started_at,
            ended_at=session.ended_at or utcnow(),
            battle_log=session.log.chunks(),
        )


@dataclass
class ScoreboardEntry:
    provider: str
    model: str
    wins: int = 0
    losses: int = 0
    total_battles: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_battles == 0:
            return 0.0
        return round(self.wins / self.total_battles * 100, 1)


@dataclass
class RunSummary:
    p1_agent: str
    p2_agent: str
    n_games: int
    p1_wins: int = 0
    p2_wins: int = 0
    draws: int = 0
    battle_ids: list[str] = field(default_factory=list)
    turns: list[int] = field(default_factory=list)
    total_duration_s: float = 0.0

    @property
    def p1_win_rate(self) -> float:
        if self.n_games == 0:
            return 0.0
        return self.p1_wins / self.n_games

    @property
    def avg_game_length(self) -> float:
        if not self.turns:
            return 0.0
        return sum(self.turns) / len(self.turns)
