"""
LLM Showdown Arena — entry point.

    uv run python main.py serve
    uv run python main.py run --p1 random --p2 mistral:mistral-large-latest --n 3

Needs Pokemon Showdown's simulator on the path (override with SHOWDOWN_COMMAND):
    npx pokemon-showdown simulate-battle

Log level (default INFO, set via env or flag):
    LOG_LEVEL=DEBUG uv run python main.py serve
    uv run python main.py --log-level DEBUG run ...
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
import uuid
from pathlib import Path

from dotenv import load_dotenv

from arena.broadcast import Broadcaster
from arena.config import Settings
from arena.export import JsonBattleStore, write_summary
from arena.gate import BattleGate
from arena.runner import BattleRunner
from arena.simulator import ShowdownSimulator
from arena.types import AgentIdentity
from bot.agent import DecisionService
from bot.agents.random import RandomAgent

logger = logging.getLogger(__name__)


def _setup_logging(level_name: str) -> None:
    level = getattr(logging, level_name)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s — %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)  # silence third-party noise by default

    # Our packages follow the user-specified level.
    for name in ("__main__", "arena", "bot", "server"):
        logging.getLogger(name).setLevel(level)
    logging.getLogger("uvicorn").setLevel(logging.INFO)


def _safe(name: str) -> str:
    """Sanitize an agent name for use in a filename."""
    return re.sub(r"[^a-zA-Z0-9_-]", "-", name)


def _default_output(runs_dir: str, p1: str, p2: str, n: int) -> str:
    tag = uuid.uuid4().hex[:6]
    filename = f"summary_{_safe(p1)}_vs_{_safe(p2)}_n{n}_{tag}.json"
    return str(Path(runs_dir) / filename)


def build_agent(identity: AgentIdentity) -> DecisionService:
    """Agent registry. Add new agents here — nothing else needs to change.

    Available agents:
      random
      mistral:<model-id>   e.g. mistral:mistral-large-latest
      hf:<model-id>        e.g. hf:mistralai/Mistral-7B-Instruct-v0.3
      claude:<model-id>    e.g. claude:claude-sonnet-4-20250514
    """
    if identity.provider == "random":
        return RandomAgent()
    if not identity.model:
        raise ValueError(f"Agent '{identity.provider}' needs a model id")
    if identity.provider == "mistral":
        from bot.agents.mistral import MistralAgent

        return MistralAgent(model_id=identity.model)
    if identity.provider == "hf":
        from bot.agents.hf import HFAgent

        return HFAgent(model_id=identity.model)
    if identity.provider == "claude":
        from bot.agents.claude import ClaudeAgent

        return ClaudeAgent(model_id=identity.model)
    raise ValueError(
        f"Unknown agent '{identity.provider}'. Available: random, mistral:<model-id>, hf:<model-id>, claude:<model-id>"
    )


def _build_gate(settings: Settings) -> tuple[BattleGate, Broadcaster, JsonBattleStore]:
    broadcaster = Broadcaster(queue_size=settings.observer_queue_size)
    store = JsonBattleStore(settings.runs_dir)
    gate = BattleGate(
        engine=ShowdownSimulator(settings.showdown_command),
        broadcaster=broadcaster,
        agent_factory=build_agent,
        store=store,
        settings=settings,
    )
    return gate, broadcaster, store


def _serve(settings: Settings) -> None:
    import uvicorn

    from server.app import create_app

    gate, broadcaster, store = _build_gate(settings)
    app = create_app(gate, broadcaster, store)
    logger.info("Listening on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


def _run(settings: Settings, args: argparse.Namespace) -> None:
    p1 = AgentIdentity.parse(args.p1)
    p2 = AgentIdentity.parse(args.p2)

    print(f"Arena — {p1.label} vs {p2.label} · {args.n} battle(s) · {settings.battle_format}")
    print()

    gate, _, _ = _build_gate(settings)
    runner = BattleRunner(gate, battle_format=settings.battle_format)
    summary = asyncio.run(runner.run(p1, p2, n_battles=args.n))

    out = args.output or _default_output(settings.runs_dir, p1.label, p2.label, args.n)
    Path(out).parent.mkdir(parents=True, exist_ok=True)
    write_summary(summary, out)
    print(f"  Summary saved to {out}")


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="LLM Showdown Arena")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity (also reads LOG_LEVEL env var). Default: INFO.",
    )
    parser.add_argument("--format", default=None, help="Battle format (default: BATTLE_FORMAT or gen9randombattle)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Deadline for each agent decision before a random legal move is used. Default: 30.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP/WebSocket API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    run = sub.add_parser("run", help="Play battles headless and write a summary")
    run.add_argument("--p1", default="random", help="Agent for player 1")
    run.add_argument("--p2", default="random", help="Agent for player 2")
    run.add_argument("--n", type=int, default=1, help="Number of battles")
    run.add_argument(
        "--output",
        default=None,
        metavar="PATH",
        help="Write the JSON summary to this path (default: runs/summary_<p1>_vs_<p2>_n<n>_<hash>.json).",
    )
    args = parser.parse_args()

    _setup_logging(args.log_level)

    if args.format:
        settings.battle_format = args.format
    if args.timeout is not None:
        settings.llm_timeout_s = args.timeout

    if args.command == "serve":
        if args.host:
            settings.host = args.host
        if args.port:
            settings.port = args.port
        _serve(settings)
    else:
        _run(settings, args)


if __name__ == "__main__":
    main()
