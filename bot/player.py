"""
AgentLoop: drives one side of a match. Written once, never modified.

Wires SideChannel → formatter → DecisionService → parser → SideChannel.
To use a different model, pass a different DecisionService — that's all.
Every actionable request gets a command: timeouts, service errors and
unparsable replies all end in a random legal choice.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time

from arena.broadcast import (
    BATTLE_DECISION,
    BATTLE_REASONING,
    BATTLE_THINKING,
    Broadcaster,
)
from arena.protocol import ProtocolLog
from arena.simulator import SideChannel
from bot.agent import DecisionContext, DecisionService
from bot.formatter import describe
from bot.parser import interpret, random_choice
from bot.schema import AgentReply, Decision, DecisionRequest, EngineError, Wait

logger = logging.getLogger(__name__)


class AgentLoop:
    def __init__(
        self,
        slot: str,
        channel: SideChannel,
        service: DecisionService,
        broadcaster: Broadcaster,
        log: ProtocolLog,
        battle_id: str,
        battle_format: str,
        timeout_s: float = 30.0,
        rng: random.Random | None = None,
    ) -> None:
        self._slot = slot
        self._channel = channel
        self._service = service
        self._broadcaster = broadcaster
        self._log = log
        self._battle_id = battle_id
        self._battle_format = battle_format
        self._timeout_s = timeout_s
        self._rng = rng
        self._turn = 0
        self._last_request: DecisionRequest | None = None
        self._last_decision: Decision | None = None
        self._retried_invalid = False

    @property
    def slot(self) -> str:
        return self._slot

    @property
    def turn(self) -> int:
        return self._turn

    @property
    def last_decision(self) -> Decision | None:
        return self._last_decision

    async def run(self) -> None:
        """Process requests in arrival order until the channel closes."""
        async for message in self._channel:
            if isinstance(message, EngineError):
                await self._on_engine_error(message)
            elif isinstance(message, Wait):
                logger.debug("[%s] Waiting on opponent.", self._slot)
            else:
                await self._on_request(message)
        logger.info("[%s] Side channel closed.", self._slot)

    async def _on_request(self, request: DecisionRequest) -> None:
        self._turn += 1
        self._last_request = request
        self._retried_invalid = False

        t0 = time.perf_counter()
        self._broadcaster.emit(
            BATTLE_THINKING, battle_id=self._battle_id, player=self._slot, start_time=time.time()
        )

        command: str | None = None
        reasoning: str | None = None
        try:
            reply = await self._ask(request)
            if reply is None:
                logger.warning(
                    "[%s] Turn %d · %s timed out after %.0fs — using fallback.",
                    self._slot,
                    self._turn,
                    self._service.name,
                    self._timeout_s,
                )
            else:
                reasoning = reply.reasoning
                command = interpret(reply.text, request)
                if command is None:
                    logger.warning(
                        "[%s] Turn %d · could not parse %r — using fallback.",
                        self._slot,
                        self._turn,
                        reply.text[:200],
                    )
        except Exception as e:
            logger.warning("[%s] Turn %d · %s failed: %s — using fallback.", self._slot, self._turn, self._service.name, e)
        finally:
            self._broadcaster.emit(
                BATTLE_REASONING, battle_id=self._battle_id, player=self._slot, chunk="", done=True
            )

        used_fallback = command is None
        if command is None:
            command = random_choice(request, self._rng)
        latency_ms = (time.perf_counter() - t0) * 1000

        logger.info(
            "[%s] Turn %d · submitting %s (%.0fms%s)",
            self._slot,
            self._turn,
            command,
            latency_ms,
            ", fallback" if used_fallback else "",
        )
        await self._submit(command, request)

        self._last_decision = Decision(
            slot=self._slot,
            turn=self._turn,
            command=command,
            reasoning=reasoning,
            latency_ms=latency_ms,
            used_fallback=used_fallback,
        )
        self._broadcaster.emit(
            BATTLE_DECISION,
            battle_id=self._battle_id,
            player=self._slot,
            turn=self._turn,
            choice=command,
            reasoning=reasoning,
            time=round(latency_ms),
            fallback=used_fallback,
        )

    async def _ask(self, request: DecisionRequest) -> AgentReply | None:
        """Ask the service under a deadline; None when the deadline wins.

        wait_for cancels the losing service call instead of leaving it running.
        """
        battle_log = self._log.chunks()
        context = DecisionContext(
            turn=self._turn,
            request=request,
            prompt=describe(request, battle_log, self._turn),
            battle_format=self._battle_format,
            battle_tag=self._battle_id,
            battle_log=battle_log,
        )

        def on_chunk(chunk: str) -> None:
            self._broadcaster.emit(
                BATTLE_REASONING, battle_id=self._battle_id, player=self._slot, chunk=chunk, done=False
            )

        try:
            return await asyncio.wait_for(self._service.decide(context, on_chunk), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            return None

    async def _submit(self, command: str, request: DecisionRequest) -> None:
        try:
            await self._channel.choose(command)
        except Exception as e:
            fallback = random_choice(request, self._rng)
            logger.warning("[%s] Could not submit %s (%s) — retrying with %s.", self._slot, command, e, fallback)
            try:
                await self._channel.choose(fallback)
            except Exception:
                logger.exception("[%s] Engine refused input; skipping this request.", self._slot)

    async def _on_engine_error(self, error: EngineError) -> None:
        if error.unavailable_choice:
            # The engine follows up with a corrected request.
            logger.info("[%s] %s — waiting for a new request.", self._slot, error.message)
            return

        if error.invalid_choice and self._last_request is not None and not self._retried_invalid:
            self._retried_invalid = True
            command = random_choice(self._last_request, self._rng)
            logger.warning("[%s] %s — resubmitting %s.", self._slot, error.message, command)
            await self._submit(command, self._last_request)
            return

        logger.error("[%s] Engine error: %s", self._slot, error.message)
