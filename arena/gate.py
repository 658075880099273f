"""
BattleGate: owns the one current battle and everything running for it.

start() checks and claims the slot before its first await, so two concurrent
calls can never both get past the check. Every way a battle can end (an
outcome in the protocol stream, force_end(), an engine stream dying) goes
through _finish(), which runs once per battle: observers hear about the end
first, persistence happens afterwards in the background.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from arena.broadcast import BATTLE_END, BATTLE_STARTED, BATTLE_UPDATE, Broadcaster
from arena.config import Settings
from arena.errors import BattleAlreadyActive, EngineStartError, InvalidStartRequest, NoActiveBattle
from arena.export import JsonBattleStore
from arena.protocol import OutcomeDetector
from arena.simulator import BattleEngine, MatchStreams
from arena.types import (
    AgentIdentity,
    BattleRecord,
    BattleSession,
    ObserverSnapshot,
    SessionStatus,
    utcnow,
)
from bot.agent import DecisionService
from bot.player import AgentLoop

logger = logging.getLogger(__name__)

AgentFactory = Callable[[AgentIdentity], DecisionService]

_FORMAT_RE = re.compile(r"^[a-z0-9]+$")
SIDES = ("p1", "p2")


def _new_battle_id() -> str:
    return f"battle-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def _player_names(p1: AgentIdentity, p2: AgentIdentity) -> dict[str, str]:
    """Names given to the engine; they come back in `|win|` and must tell the sides apart."""
    if p1.label == p2.label:
        return {"p1": f"{p1.label} (p1)", "p2": f"{p2.label} (p2)"}
    return {"p1": p1.label, "p2": p2.label}


@dataclass
class _Match:
    session: BattleSession
    services: dict[str, DecisionService] = field(default_factory=dict)
    streams: MatchStreams | None = None
    detector: OutcomeDetector | None = None
    loops: dict[str, AgentLoop] = field(default_factory=dict)
    tasks: list[asyncio.Task] = field(default_factory=list)
    pump: asyncio.Task | None = None
    finished: bool = False
    forcing: bool = False
    ended: asyncio.Event = field(default_factory=asyncio.Event)


class BattleGate:
    def __init__(
        self,
        engine: BattleEngine,
        broadcaster: Broadcaster,
        agent_factory: AgentFactory,
        store: JsonBattleStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._engine = engine
        self._broadcaster = broadcaster
        self._agent_factory = agent_factory
        self._store = store
        self._settings = settings or Settings()
        self._current: _Match | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def session(self) -> BattleSession | None:
        return self._current.session if self._current else None

    # ── Commands ────────────────────────────────────────────────────────────

    async def start(
        self, p1: AgentIdentity, p2: AgentIdentity, battle_format: str | None = None
    ) -> str:
        battle_format = battle_format or self._settings.battle_format
        self._validate(p1, p2, battle_format)

        # Check and claim with no await in between.
        previous = self._current
        if previous is not None and not previous.session.ended:
            raise BattleAlreadyActive(previous.session.battle_id)
        session = BattleSession(
            battle_id=_new_battle_id(), battle_format=battle_format, p1=p1, p2=p2
        )
        match = _Match(session)
        self._current = match

        try:
            for side, identity in (("p1", p1), ("p2", p2)):
                match.services[side] = self._agent_factory(identity)
        except Exception as e:
            self._current = previous
            await self._close_services(match)
            raise InvalidStartRequest(f"Could not create agents: {e}") from e

        logger.info(
            "Starting battle %s: %s vs %s · %s",
            session.battle_id,
            p1.label,
            p2.label,
            battle_format,
        )

        names = _player_names(p1, p2)
        try:
            streams = await self._engine.start_match(battle_format, names["p1"], names["p2"])
        except Exception as e:
            logger.error("Engine failed to start battle %s: %s", session.battle_id, e)
            await self._finish(match, None, "engine_error")
            if isinstance(e, EngineStartError):
                raise
            raise EngineStartError(str(e)) from e

        match.streams = streams
        if match.finished:
            # force_end() arrived while the engine was starting; _finish ran
            # without streams, so the record is saved here.
            if self._store is not None:
                self._spawn(self._persist(BattleRecord.from_session(session)))
            await streams.close()
            return session.battle_id

        session.status = SessionStatus.ACTIVE
        match.detector = OutcomeDetector(session, {name: side for side, name in names.items()})
        for side in SIDES:
            match.loops[side] = AgentLoop(
                slot=side,
                channel=streams.sides[side],
                service=match.services[side],
                broadcaster=self._broadcaster,
                log=session.log,
                battle_id=session.battle_id,
                battle_format=battle_format,
                timeout_s=self._settings.llm_timeout_s,
            )
        match.pump = asyncio.create_task(self._pump(match))
        match.tasks = [asyncio.create_task(self._drive(match, loop)) for loop in match.loops.values()]
        return session.battle_id

    async def force_end(self) -> None:
        match = self._current
        if match is None or match.session.ended:
            raise NoActiveBattle()

        logger.info("Force-ending battle %s.", match.session.battle_id)
        match.forcing = True
        if match.streams is not None:
            try:
                await match.streams.force_tie()
                await asyncio.wait_for(match.ended.wait(), timeout=self._settings.end_grace_s)
            except asyncio.TimeoutError:
                logger.warning("Engine did not confirm the forced tie in time.")
            except OSError as e:
                logger.warning("Could not ask the engine for a tie: %s", e)
        await self._finish(match, "tie", "forced")

    # ── Queries ─────────────────────────────────────────────────────────────

    def status(self) -> ObserverSnapshot:
        observers = self._broadcaster.observer_count
        match = self._current
        if match is None:
            return ObserverSnapshot(active=False, observer_count=observers)
        s = match.session
        return ObserverSnapshot(
            active=not s.ended,
            observer_count=observers,
            battle_id=s.battle_id,
            battle_format=s.battle_format,
            turn=s.turn,
            p1=s.p1,
            p2=s.p2,
            winner=s.winner,
            battle_log=s.log.chunks(),
            agent_turns={side: loop.turn for side, loop in match.loops.items()},
        )

    def log(self) -> list[str]:
        return self._current.session.log.chunks() if self._current else []

    async def wait_until_ended(self, timeout: float | None = None) -> BattleSession | None:
        match = self._current
        if match is None:
            return None
        await asyncio.wait_for(match.ended.wait(), timeout=timeout)
        return match.session

    async def wait_for_persistence(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ── Internals ───────────────────────────────────────────────────────────

    def _validate(self, p1: AgentIdentity, p2: AgentIdentity, battle_format: str) -> None:
        for side, identity in (("p1", p1), ("p2", p2)):
            if identity is None or not identity.provider:
                raise InvalidStartRequest(f"{side} must have a provider specified")
        if not _FORMAT_RE.match(battle_format):
            raise InvalidStartRequest(f"Invalid battle format: {battle_format!r}")

    async def _pump(self, match: _Match) -> None:
        """Feed omniscient chunks to the detector and observers, in arrival order."""
        session = match.session
        detector = match.detector
        try:
            async for chunk in match.streams.omniscient:
                was_ready = detector.ready.is_set()
                outcome = detector.feed(chunk)
                if was_ready:
                    self._broadcaster.emit(BATTLE_UPDATE, battle_id=session.battle_id, chunk=chunk)
                elif detector.ready.is_set():
                    # Chunks before the first switch-in are only sent as part of this event.
                    self._broadcaster.emit(
                        BATTLE_STARTED,
                        battle_id=session.battle_id,
                        p1=session.p1.to_dict(),
                        p2=session.p2.to_dict(),
                        format=session.battle_format,
                        initial_log=detector.initial_log,
                    )
                if outcome is not None:
                    await self._finish(match, outcome.winner, "forced" if match.forcing else "outcome")
                    return
        except Exception:
            logger.exception("Omniscient stream of battle %s failed.", session.battle_id)

        if not match.finished:
            logger.error("Battle %s: engine stream ended without a result.", session.battle_id)
            await self._finish(match, None, "engine_error")

    async def _drive(self, match: _Match, loop: AgentLoop) -> None:
        await loop.run()
        if match.finished:
            return
        # The outcome usually trails the side channels closing by a moment.
        if match.pump is not None:
            await asyncio.wait({match.pump}, timeout=self._settings.end_grace_s)
        if not match.finished:
            logger.error(
                "Battle %s: %s channel closed before the battle ended.",
                match.session.battle_id,
                loop.slot,
            )
            await self._finish(match, None, "engine_error")

    async def _finish(self, match: _Match, winner: str | None, reason: str) -> None:
        if match.finished:
            return
        match.finished = True

        session = match.session
        session.status = SessionStatus.ENDED
        session.winner = winner
        session.ended_at = utcnow()
        winner_identity = session.identity(winner).to_dict() if winner in SIDES else None

        logger.info(
            "Battle %s ended (%s) · winner=%s · %d turn(s)",
            session.battle_id,
            reason,
            winner_identity["provider"] if winner_identity else winner,
            session.turn,
        )
        self._broadcaster.emit(
            BATTLE_END,
            battle_id=session.battle_id,
            winner=winner,
            winner_identity=winner_identity,
            p1=session.p1.to_dict(),
            p2=session.p2.to_dict(),
            turn=session.turn,
            reason=reason,
        )
        match.ended.set()

        if self._store is not None and match.streams is not None:
            self._spawn(self._persist(BattleRecord.from_session(session)))

        current = asyncio.current_task()
        for task in [*match.tasks, match.pump]:
            if task is not None and task is not current:
                task.cancel()

        if match.streams is not None:
            try:
                await match.streams.close()
            except Exception:
                logger.exception("Closing the engine for battle %s failed.", session.battle_id)
        await self._close_services(match)

    async def _close_services(self, match: _Match) -> None:
        for service in match.services.values():
            try:
                await service.aclose()
            except Exception as e:
                logger.warning("Closing %s failed: %s", service.name, e)

    async def _persist(self, record: BattleRecord) -> None:
        try:
            path = await asyncio.to_thread(self._store.save, record)
            logger.info("Battle %s saved to %s", record.battle_id, path)
        except Exception:
            logger.exception("Failed to save battle %s", record.battle_id)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
