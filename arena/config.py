"""Runtime settings read from the environment (after load_dotenv() in main.py)."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field


def _default_showdown_command() -> tuple[str, ...]:
    return ("npx", "pokemon-showdown", "simulate-battle")


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    battle_format: str = "gen9randombattle"
    llm_timeout_s: float = 30.0
    runs_dir: str = "runs"
    showdown_command: tuple[str, ...] = field(default_factory=_default_showdown_command)
    observer_queue_size: int = 1000
    # How long the gate waits for the omniscient stream to report an outcome
    # after a side channel closed or a forced tie was requested.
    end_grace_s: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        command = os.getenv("SHOWDOWN_COMMAND")
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            battle_format=os.getenv("BATTLE_FORMAT", "gen9randombattle"),
            llm_timeout_s=int(os.getenv("LLM_TIMEOUT_MS", "30000")) / 1000,
            runs_dir=os.getenv("RUNS_DIR", "runs"),
            showdown_command=tuple(shlex.split(command)) if command else _default_showdown_command(),
            observer_queue_size=int(os.getenv("OBSERVER_QUEUE_SIZE", "1000")),
            end_grace_s=float(os.getenv("END_GRACE_S", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
