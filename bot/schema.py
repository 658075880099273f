"""
Data contract between the engine's side channel and the decision loop.

The engine sends one request per decision point. RequestExtractor turns the
raw JSON into one of the variants below; everything downstream (parser,
formatter, decision services) only sees these typed shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class MoveOption:
    slot: int  # 1-based, as the engine numbers them
    name: str
    move_id: str
    disabled: bool = False
    pp: int | None = None
    max_pp: int | None = None


@dataclass
class RosterMember:
    slot: int  # 1-based
    species: str
    condition: str  # "100/100", "54/100 par", "0 fnt"
    active: bool = False

    @property
    def fainted(self) -> bool:
        return self.condition.endswith(" fnt")

    @property
    def status(self) -> str | None:
        parts = self.condition.split(" ")
        if len(parts) > 1 and parts[1] != "fnt":
            return parts[1]
        return None


@dataclass
class ActiveChoice:
    moves: list[MoveOption]
    roster: list[RosterMember]
    trapped: bool = False
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class ForcedSwitch:
    roster: list[RosterMember]
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class TeamPreview:
    roster: list[RosterMember]
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class Wait:
    raw: dict = field(default_factory=dict, repr=False)


DecisionRequest = ActiveChoice | ForcedSwitch | TeamPreview | Wait


@dataclass
class EngineError:
    """An `|error|` line the engine sent to one side."""

    message: str

    @property
    def unavailable_choice(self) -> bool:
        return self.message.startswith("[Unavailable choice]")

    @property
    def invalid_choice(self) -> bool:
        return self.message.startswith("[Invalid choice]")


SideMessage = ActiveChoice | ForcedSwitch | TeamPreview | Wait | EngineError


@dataclass
class AgentReply:
    text: str
    reasoning: str | None = None


@dataclass
class Decision:
    slot: str  # "p1" | "p2"
    turn: int
    command: str
    reasoning: str | None
    latency_ms: float
    used_fallback: bool
