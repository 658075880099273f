"""
Protocol log and outcome detection for the engine's omniscient stream.

Lines look like `|marker|arg1|arg2|...`. Chunks are stored verbatim and in
arrival order; the detector only reads them. replay() rebuilds the same
turn/winner/active state from a stored log, which is how late joiners catch up.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from arena.types import BattleSession

logger = logging.getLogger(__name__)


def parse_line(line: str) -> tuple[str, list[str]]:
    """Split a protocol line into (marker, args). Non-protocol lines give ("", [])."""
    if not line.startswith("|"):
        return "", []
    parts = line[1:].split("|")
    return parts[0], parts[1:]


def _side_of(ident: str) -> str:
    # "p1a: Pikachu" → "p1"
    return ident[:2]


class ProtocolLog:
    """Append-only sequence of raw protocol chunks."""

    def __init__(self) -> None:
        self._chunks: list[str] = []

    def append(self, chunk: str) -> None:
        self._chunks.append(chunk)

    def chunks(self) -> list[str]:
        return list(self._chunks)

    def lines(self) -> list[str]:
        return [line for chunk in self._chunks for line in chunk.split("\n")]

    def __len__(self) -> int:
        return len(self._chunks)


@dataclass
class Outcome:
    winner: str | None  # "p1" | "p2" | "tie" | None when the name is unknown
    winner_name: str | None = None


@dataclass
class ReplayResult:
    turn: int = 0
    winner: str | None = None
    winner_name: str | None = None
    active: dict[str, str] = field(default_factory=dict)  # side → species


def _to_id(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _winner_side(name: str, names: dict[str, str]) -> str | None:
    side = names.get(name)
    if side is None:
        # The engine may normalise player names; compare their ids.
        side = {_to_id(n): s for n, s in names.items()}.get(_to_id(name))
    if side is None:
        logger.warning("Winner '%s' does not match either player name %s.", name, list(names))
    return side


def _parse_turn(line: str, args: list[str]) -> int | None:
    try:
        return int(args[0])
    except (IndexError, ValueError):
        logger.warning("Malformed turn marker: %r", line)
        return None


def replay(chunks: list[str], names: dict[str, str] | None = None) -> ReplayResult:
    """Rebuild turn, winner and active roster members from a stored log.

    Uses the same rules as OutcomeDetector.feed, so a stored log always
    reproduces the live turn and outcome.
    """
    names = names or {}
    result = ReplayResult()
    ended = False
    for chunk in chunks:
        for line in chunk.split("\n"):
            marker, args = parse_line(line)
            if marker == "turn":
                turn = _parse_turn(line, args)
                if turn is not None:
                    result.turn = max(result.turn, turn)
            elif marker in ("switch", "drag", "replace") and len(args) >= 2:
                result.active[_side_of(args[0])] = args[1].split(",")[0]
            elif marker == "win" and not ended:
                ended = True
                result.winner_name = args[0] if args else ""
                result.winner = _winner_side(result.winner_name, names)
            elif marker == "tie" and not ended:
                ended = True
                result.winner = "tie"
    return result


class OutcomeDetector:
    """Feeds omniscient chunks into a session: log, turn, initial state, outcome.

    The first win/tie marker ends the session; any later one (a duplicated or
    re-delivered chunk) is ignored.
    """

    def __init__(self, session: BattleSession, names: dict[str, str]) -> None:
        self._session = session
        self._names = names  # engine player name → side
        self._ended = False
        self.ready = asyncio.Event()
        self.initial_log: list[str] = []

    @property
    def ended(self) -> bool:
        return self._ended

    def feed(self, chunk: str) -> Outcome | None:
        self._session.log.append(chunk)
        outcome: Outcome | None = None

        for line in chunk.split("\n"):
            marker, args = parse_line(line)
            if marker == "turn":
                turn = _parse_turn(line, args)
                if turn is None:
                    continue
                self._session.advance_turn(turn)
                logger.info("[%s] Turn %d", self._session.battle_id, self._session.turn)
            elif marker in ("switch", "drag") and not self.ready.is_set():
                self._mark_ready()
            elif marker == "win" and not self._ended:
                name = args[0] if args else ""
                self._ended = True
                outcome = Outcome(winner=_winner_side(name, self._names), winner_name=name)
            elif marker == "tie" and not self._ended:
                self._ended = True
                outcome = Outcome(winner="tie")

        return outcome

    def _mark_ready(self) -> None:
        self.initial_log = self._session.log.chunks()
        self.ready.set()
        logger.debug(
            "[%s] Initial state ready after %d chunk(s).",
            self._session.battle_id,
            len(self.initial_log),
        )
