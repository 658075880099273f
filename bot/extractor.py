"""
RequestExtractor: converts the engine's raw `|request|` JSON into a typed request.

The engine's payload is loosely shaped (flags appear or not depending on the
situation); this is the only place that knows its field names.
"""

from __future__ import annotations

import json
import logging

from bot.schema import (
    ActiveChoice,
    DecisionRequest,
    ForcedSwitch,
    MoveOption,
    RosterMember,
    TeamPreview,
    Wait,
)

logger = logging.getLogger(__name__)


class RequestExtractor:
    """Turns a Showdown request object into a DecisionRequest variant."""

    def extract(self, payload: dict | str) -> DecisionRequest:
        if isinstance(payload, str):
            payload = json.loads(payload)

        if payload.get("wait"):
            return Wait(raw=payload)

        roster = self._extract_roster(payload)

        if payload.get("teamPreview"):
            return TeamPreview(roster=roster, raw=payload)

        if any(payload.get("forceSwitch") or []):
            return ForcedSwitch(roster=roster, raw=payload)

        active = (payload.get("active") or [None])[0]
        if active is None:
            logger.debug("Request without active slot or known flag, treating as wait: %s", payload)
            return Wait(raw=payload)

        return ActiveChoice(
            moves=self._extract_moves(active),
            roster=roster,
            trapped=bool(active.get("trapped")),
            raw=payload,
        )

    def _extract_moves(self, active: dict) -> list[MoveOption]:
        return [
            MoveOption(
                slot=i + 1,
                name=m.get("move", ""),
                move_id=m.get("id", ""),
                # "disabled" is sometimes a string naming the source (e.g. a Max move)
                disabled=bool(m.get("disabled")),
                pp=m.get("pp"),
                max_pp=m.get("maxpp"),
            )
            for i, m in enumerate(active.get("moves") or [])
        ]

    def _extract_roster(self, payload: dict) -> list[RosterMember]:
        side = payload.get("side") or {}
        return [
            RosterMember(
                slot=i + 1,
                species=p.get("details", "").split(",")[0],
                condition=p.get("condition", ""),
                active=bool(p.get("active")),
            )
            for i, p in enumerate(side.get("pokemon") or [])
        ]
