"""
Situation descriptions: renders a DecisionRequest as a prompt an LLM can act on.

Three shapes: a regular turn, a forced switch after a faint, and team preview.
Every shape ends with the exact reply format bot.parser understands.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from bot.schema import (
    ActiveChoice,
    DecisionRequest,
    ForcedSwitch,
    MoveOption,
    RosterMember,
    TeamPreview,
)

logger = logging.getLogger(__name__)

_STATUS_NAMES = {
    "brn": "BURNED",
    "par": "PARALYZED",
    "slp": "ASLEEP",
    "frz": "FROZEN",
    "psn": "POISONED",
    "tox": "BADLY POISONED",
}

_EVENT_MARKERS = ("move", "-damage", "-heal", "switch", "faint", "-status", "-boost", "-unboost")


@lru_cache(maxsize=512)
def _move_info(move_id: str) -> str | None:
    """Type and base power from poke-env's gen 9 move data, e.g. "fire, 90bp"."""
    try:
        from poke_env.battle.move import Move

        move = Move(move_id, gen=9)
        kind = move.category.name.lower()
        if move.base_power:
            return f"{move.type.name.lower()}, {move.base_power}bp, {kind}"
        return f"{move.type.name.lower()}, {kind}"
    except Exception:
        logger.debug("move data lookup failed for %s", move_id)
        return None


def _fmt_member(p: RosterMember) -> str:
    s = f"{p.species} - {p.condition}"
    status = _STATUS_NAMES.get(p.status or "")
    if status:
        s += f" [{status}]"
    return s


def _fmt_move(m: MoveOption) -> str:
    s = f"{m.slot}. {m.name}"
    info = _move_info(m.move_id) if m.move_id else None
    if info:
        s += f" ({info})"
    if m.pp is not None:
        s += f" - {m.pp}/{m.max_pp} PP"
    if m.disabled:
        s += " (DISABLED)"
    return s


def _fmt_event(line: str) -> str:
    parts = [p for p in line.split("|") if p]
    kind = parts[0]
    if kind == "move":
        return f"{parts[1]} used {parts[2]}"
    if kind == "-damage":
        return f"{parts[1]} took damage ({parts[2]})"
    if kind == "-heal":
        return f"{parts[1]} healed ({parts[2]})"
    if kind == "switch":
        return f"{parts[1]} switched in"
    if kind == "faint":
        return f"{parts[1]} fainted"
    if kind == "-status":
        return f"{parts[1]} was inflicted with {parts[2]}"
    if kind == "-boost":
        return f"{parts[1]}'s {parts[2]} rose"
    if kind == "-unboost":
        return f"{parts[1]}'s {parts[2]} fell"
    return line


def recent_events(battle_log: list[str], limit: int = 10) -> list[str]:
    lines = "\n".join(battle_log[-3:]).split("\n")
    events = []
    for line in lines:
        parts = line.split("|")
        if len(parts) > 2 and parts[1] in _EVENT_MARKERS:
            try:
                events.append(_fmt_event(line))
            except IndexError:
                events.append(line)
    return events[-limit:]


def _describe_turn(request: ActiveChoice, battle_log: list[str], turn: int) -> list[str]:
    lines = [f"TURN {turn}", ""]

    active = next((p for p in request.roster if p.active), None)
    if active is not None:
        lines += ["YOUR ACTIVE POKEMON:", _fmt_member(active), ""]

    if request.moves:
        lines.append("AVAILABLE MOVES:")
        lines += [_fmt_move(m) for m in request.moves]
        lines.append("")

    if request.trapped:
        lines += ["(You are TRAPPED and cannot switch)", ""]
    else:
        switches = [p for p in request.roster if not p.active and not p.fainted]
        if switches:
            lines.append("AVAILABLE SWITCHES:")
            lines += [f"{p.slot}. {_fmt_member(p)}" for p in switches]
            lines.append("")

    lines.append("YOUR TEAM:")
    for p in request.roster:
        tag = " (active)" if p.active else ""
        tag += " [FAINTED]" if p.fainted else ""
        lines.append(f"{p.slot}. {p.species} - {p.condition}{tag}")
    lines.append("")

    events = recent_events(battle_log)
    if events:
        lines.append("RECENT EVENTS:")
        lines += [f"- {e}" for e in events]
        lines.append("")

    lines += [
        "---",
        "Choose your action. Respond with ONLY one of:",
        '- "move N" where N is 1-4 to use that move',
        '- "switch N" where N is 2-6 to switch to that Pokemon',
        "",
        'Example: "move 1" or "switch 3"',
    ]
    return lines


def _describe_forced_switch(request: ForcedSwitch, turn: int) -> list[str]:
    lines = [
        f"TURN {turn} - FORCED SWITCH",
        "",
        "Your Pokemon fainted! You must switch to another Pokemon.",
        "",
        "AVAILABLE POKEMON:",
    ]
    lines += [f"{p.slot}. {_fmt_member(p)}" for p in request.roster if not p.active and not p.fainted]
    lines += [
        "",
        "---",
        "Choose which Pokemon to switch to.",
        'Respond with ONLY "switch N" where N is the Pokemon number (2-6).',
        "",
        'Example: "switch 2"',
    ]
    return lines


def _describe_team_preview(request: TeamPreview) -> list[str]:
    lines = ["TEAM PREVIEW", "", "Your team:"]
    lines += [f"{p.slot}. {p.species}" for p in request.roster]
    lines += [
        "",
        "---",
        "Choose your lead Pokemon order or use default.",
        'Respond with "default" to use standard order, or specify order like "312456"',
    ]
    return lines


def describe(request: DecisionRequest, battle_log: list[str], turn: int) -> str:
    if isinstance(request, TeamPreview):
        lines = _describe_team_preview(request)
    elif isinstance(request, ForcedSwitch):
        lines = _describe_forced_switch(request, turn)
    elif isinstance(request, ActiveChoice):
        lines = _describe_turn(request, battle_log, turn)
    else:
        lines = ["Waiting for the opponent."]
    return "\n".join(lines)
