"""Errors raised by the session gate. Decision failures never surface here."""

from __future__ import annotations


class ArenaError(Exception):
    """Base class for errors the API layer maps to HTTP responses."""


class InvalidStartRequest(ArenaError):
    """Malformed start request; nothing was changed."""


class BattleAlreadyActive(ArenaError):
    """A battle is already in progress; the running one is untouched."""

    def __init__(self, battle_id: str) -> None:
        self.battle_id = battle_id
        super().__init__(f"Battle already in progress: {battle_id}")


class NoActiveBattle(ArenaError):
    def __init__(self) -> None:
        super().__init__("No active battle")


class EngineStartError(ArenaError):
    """The battle engine could not be started."""
