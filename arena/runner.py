"""
BattleRunner: plays N battles in a row through the gate, without a web server.

Knows nothing about which agents are playing — works identically for
random vs random or Mistral vs Claude.
"""

from __future__ import annotations

import asyncio
import logging
import time

from arena.gate import BattleGate
from arena.types import AgentIdentity, RunSummary

logger = logging.getLogger(__name__)


class BattleRunner:
    def __init__(self, gate: BattleGate, battle_format: str | None = None, timeout_s: float | None = None) -> None:
        self._gate = gate
        self._battle_format = battle_format
        self._timeout_s = timeout_s

    async def run(self, p1: AgentIdentity, p2: AgentIdentity, n_battles: int) -> RunSummary:
        summary = RunSummary(p1_agent=p1.label, p2_agent=p2.label, n_games=n_battles)

        logger.info("Battle session: %s vs %s · %d battle(s)", p1.label, p2.label, n_battles)

        start = time.time()
        for i in range(n_battles):
            if i > 0:
                await asyncio.sleep(1.0)
            battle_id = await self._gate.start(p1, p2, self._battle_format)
            print(f"  [{i + 1}/{n_battles}] {battle_id}  {p1.label}  vs  {p2.label}")
            session = await self._gate.wait_until_ended(timeout=self._timeout_s)

            summary.battle_ids.append(battle_id)
            summary.turns.append(session.turn)
            if session.winner == "p1":
                summary.p1_wins += 1
            elif session.winner == "p2":
                summary.p2_wins += 1
            else:
                summary.draws += 1
        await self._gate.wait_for_persistence()
        summary.total_duration_s = time.time() - start

        logger.info(
            "Done: %d battles in %.1fs · %s %dW/%dL · win rate %.1f%% · avg %.1f turns",
            n_battles,
            summary.total_duration_s,
            p1.label,
            summary.p1_wins,
            summary.p2_wins,
            summary.p1_win_rate * 100,
            summary.avg_game_length,
        )

        print(f"  Done — {n_battles} battle(s) in {summary.total_duration_s:.1f}s")
        print(
            f"  {p1.label} {summary.p1_wins}W / {summary.p2_wins}L · win rate {summary.p1_win_rate:.1%} · avg {summary.avg_game_length:.1f} turns"
        )
        return summary
