"""JSON battle store: one file per finished battle, plus history and scoreboard views."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from arena.types import AgentIdentity, BattleRecord, RunSummary, ScoreboardEntry

logger = logging.getLogger(__name__)

_REQUIRED_KEYS = {"battle_id", "format", "p1", "p2", "winner_side", "total_turns", "started_at", "ended_at"}


def record_to_dict(record: BattleRecord) -> dict:
    winner = record.winner
    return {
        "battle_id": record.battle_id,
        "format": record.battle_format,
        "p1": record.p1.to_dict(),
        "p2": record.p2.to_dict(),
        "winner_side": record.winner_side,
        "winner_provider": winner.provider if winner else None,
        "winner_model": winner.model if winner else None,
        "total_turns": record.total_turns,
        "started_at": record.started_at.isoformat(),
        "ended_at": record.ended_at.isoformat(),
        "battle_log": record.battle_log,
    }


def record_from_dict(data: dict) -> BattleRecord:
    missing = _REQUIRED_KEYS - data.keys()
    if missing:
        raise ValueError(f"Battle record missing required keys: {sorted(missing)}")
    return BattleRecord(
        battle_id=data["battle_id"],
        battle_format=data["format"],
        p1=AgentIdentity(**data["p1"]),
        p2=AgentIdentity(**data["p2"]),
        winner_side=data["winner_side"],
        total_turns=data["total_turns"],
        started_at=datetime.fromisoformat(data["started_at"]),
        ended_at=datetime.fromisoformat(data["ended_at"]),
        battle_log=data.get("battle_log", []),
    )


class JsonBattleStore:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path(self, battle_id: str) -> Path:
        return self._root / f"{battle_id}.json"

    def save(self, record: BattleRecord) -> Path:
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._path(record.battle_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record_to_dict(record), f, indent=2)
        return path

    def get(self, battle_id: str) -> BattleRecord | None:
        path = self._path(battle_id)
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return record_from_dict(json.load(f))

    def _load_all(self) -> list[BattleRecord]:
        if not self._root.exists():
            return []
        records = []
        for path in self._root.glob("battle-*.json"):
            try:
                with path.open(encoding="utf-8") as f:
                    records.append(record_from_dict(json.load(f)))
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable battle file %s: %s", path, e)
        return records

    def history(self, limit: int = 20, offset: int = 0) -> tuple[list[BattleRecord], int]:
        """Finished battles, newest first."""
        records = sorted(self._load_all(), key=lambda r: r.ended_at, reverse=True)
        return records[offset : offset + limit], len(records)

    def scoreboard(self) -> list[ScoreboardEntry]:
        entries: dict[tuple[str, str], ScoreboardEntry] = {}
        for r in self._load_all():
            for side, identity in (("p1", r.p1), ("p2", r.p2)):
                key = (identity.provider, identity.model)
                entry = entries.setdefault(key, ScoreboardEntry(identity.provider, identity.model))
                entry.total_battles += 1
                if r.winner_side == side:
                    entry.wins += 1
                elif r.winner_side is not None:
                    entry.losses += 1
        return sorted(entries.values(), key=lambda e: (e.wins, e.win_rate), reverse=True)


def write_summary(summary: RunSummary, path: str) -> None:
    data = {
        "p1_agent": summary.p1_agent,
        "p2_agent": summary.p2_agent,
        "n_games": summary.n_games,
        "p1_wins": summary.p1_wins,
        "p2_wins": summary.p2_wins,
        "draws": summary.draws,
        "p1_win_rate": summary.p1_win_rate,
        "avg_game_length": summary.avg_game_length,
        "total_duration_s": summary.total_duration_s,
        "battle_ids": summary.battle_ids,
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
