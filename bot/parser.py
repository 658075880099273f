"""
Response interpretation: free-form agent text → canonical engine command.

interpret() never guesses: it returns None when the text does not name a
legal action, and the caller falls back to random_choice(), which always
returns something the engine will accept.
"""

from __future__ import annotations

import logging
import random
import re

from bot.schema import (
    ActiveChoice,
    DecisionRequest,
    ForcedSwitch,
    MoveOption,
    RosterMember,
    TeamPreview,
)

logger = logging.getLogger(__name__)

_MOVE_RE = re.compile(r"\b(?:move|use|attack)\s*(\d+)\b")
_SWITCH_RE = re.compile(r"\b(?:switch|swap|change)\s*(?:to\s*)?(\d+)\b")
_TEAM_ORDER_RE = re.compile(r"\b([1-6]{6})\b")


def _moves(request: DecisionRequest) -> list[MoveOption]:
    return request.moves if isinstance(request, ActiveChoice) else []


def _trapped(request: DecisionRequest) -> bool:
    return isinstance(request, ActiveChoice) and request.trapped


def _switch_targets(request: DecisionRequest) -> list[RosterMember]:
    if not isinstance(request, (ActiveChoice, ForcedSwitch)) or _trapped(request):
        return []
    return [p for p in request.roster if not p.fainted and not p.active]


def _valid_move(n: int, request: DecisionRequest) -> bool:
    moves = _moves(request)
    if n < 1 or n > len(moves):
        return False
    return not moves[n - 1].disabled


def _valid_switch(n: int, request: DecisionRequest) -> bool:
    if not isinstance(request, (ActiveChoice, ForcedSwitch)) or _trapped(request):
        return False
    if n < 2 or n > len(request.roster):
        return False
    target = request.roster[n - 1]
    return not target.fainted and not target.active


def interpret(text: str, request: DecisionRequest) -> str | None:
    """Parse agent text into a legal command for this request, or None.

    Precedence, first match wins: numeric move, numeric switch, species name,
    move name; team preview only accepts "default" or a six-digit lead order.
    """
    if not text:
        return None
    text = text.lower().strip()

    if isinstance(request, TeamPreview):
        if "default" in text:
            return "default"
        m = _TEAM_ORDER_RE.search(text)
        if m:
            return f"team {m.group(1)}"
        return None

    if not isinstance(request, (ActiveChoice, ForcedSwitch)):
        return None

    m = _MOVE_RE.search(text)
    if m:
        n = int(m.group(1))
        if 1 <= n <= 4 and _valid_move(n, request):
            return f"move {n}"

    m = _SWITCH_RE.search(text)
    if m:
        n = int(m.group(1))
        if 2 <= n <= 6 and _valid_switch(n, request):
            return f"switch {n}"

    for member in _switch_targets(request):
        if member.species and member.species.lower() in text:
            return f"switch {member.slot}"

    for move in _moves(request):
        if move.name and not move.disabled and move.name.lower() in text:
            return f"move {move.slot}"

    return None


def legal_choices(request: DecisionRequest) -> list[str]:
    """Every command the engine would accept for this request."""
    if isinstance(request, TeamPreview):
        return ["default"]
    if isinstance(request, ForcedSwitch):
        return [f"switch {p.slot}" for p in _switch_targets(request)]
    if isinstance(request, ActiveChoice):
        return [f"move {m.slot}" for m in request.moves if not m.disabled] + [
            f"switch {p.slot}" for p in _switch_targets(request)
        ]
    return []


def random_choice(request: DecisionRequest, rng: random.Random | None = None) -> str:
    """Uniformly random legal command; "pass" when nothing is legal."""
    options = legal_choices(request)
    if not options:
        logger.debug("No legal choice for %s — passing.", type(request).__name__)
        return "pass"
    return (rng or random).choice(options)
