"""
HTTP and WebSocket API for starting, ending and watching battles.

    GET  /api/health           liveness check
    POST /api/battle/start     start a battle (409 if one is running)
    GET  /api/battle/status    observer snapshot
    GET  /api/battle/log       protocol log of the current battle
    POST /api/battle/end       force a tie (404 if nothing is running)
    GET  /api/history          finished battles, newest first
    GET  /api/history/{id}     one finished battle
    GET  /api/scoreboard       wins/losses per model
    WS   /ws                   live battle events + status on request
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from arena.broadcast import BATTLE_STATUS, Broadcaster
from arena.errors import BattleAlreadyActive, EngineStartError, InvalidStartRequest, NoActiveBattle
from arena.export import JsonBattleStore, record_to_dict
from arena.gate import BattleGate
from arena.types import AgentIdentity, utcnow

logger = logging.getLogger(__name__)


class AgentConfig(BaseModel):
    provider: str = ""
    model: str = ""


class StartBattleRequest(BaseModel):
    p1: AgentConfig | None = None
    p2: AgentConfig | None = None
    format: str | None = None


def create_app(gate: BattleGate, broadcaster: Broadcaster, store: JsonBattleStore | None = None) -> FastAPI:
    app = FastAPI(title="LLM Showdown Arena")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def status_message() -> dict:
        return {"type": BATTLE_STATUS, **gate.status().to_dict()}

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": utcnow().isoformat()}

    # ── Battle ──────────────────────────────────────────────────────────────

    @app.post("/api/battle/start")
    async def start_battle(body: StartBattleRequest):
        if body.p1 is None or body.p2 is None or not body.p1.provider or not body.p2.provider:
            raise HTTPException(status_code=400, detail="Both p1 and p2 must have a provider specified")
        try:
            battle_id = await gate.start(
                AgentIdentity(body.p1.provider, body.p1.model),
                AgentIdentity(body.p2.provider, body.p2.model),
                body.format,
            )
        except InvalidStartRequest as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except BattleAlreadyActive as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except EngineStartError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        session = gate.session
        ended = session is not None and session.battle_id == battle_id and session.ended
        return {"battle_id": battle_id, "status": "ended" if ended else "started"}

    @app.get("/api/battle/status")
    async def battle_status():
        return gate.status().to_dict()

    @app.get("/api/battle/log")
    async def battle_log():
        session = gate.session
        if session is None:
            return {"log": [], "active": False, "turn": 0}
        return {"log": session.log.chunks(), "active": not session.ended, "turn": session.turn}

    @app.post("/api/battle/end")
    async def end_battle():
        try:
            await gate.force_end()
        except NoActiveBattle as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return {"status": "ended"}

    # ── History ─────────────────────────────────────────────────────────────

    @app.get("/api/history")
    async def history(limit: int = Query(20, ge=1), offset: int = Query(0, ge=0)):
        limit = min(limit, 100)
        if store is None:
            return {"battles": [], "total": 0, "limit": limit, "offset": offset, "has_more": False}
        records, total = await asyncio.to_thread(store.history, limit, offset)
        return {
            "battles": [record_to_dict(r) for r in records],
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(records) < total,
        }

    @app.get("/api/history/{battle_id}")
    async def history_battle(battle_id: str):
        record = await asyncio.to_thread(store.get, battle_id) if store is not None else None
        if record is None:
            raise HTTPException(status_code=404, detail="Battle not found")
        return {"battle": record_to_dict(record)}

    @app.get("/api/scoreboard")
    async def scoreboard():
        entries = await asyncio.to_thread(store.scoreboard) if store is not None else []
        return {
            "scoreboard": [
                {
                    "provider": e.provider,
                    "model": e.model,
                    "wins": e.wins,
                    "losses": e.losses,
                    "total_battles": e.total_battles,
                    "win_rate": e.win_rate,
                }
                for e in entries
            ]
        }

    # ── Live channel ────────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def battle_socket(websocket: WebSocket):
        await websocket.accept()
        sub = broadcaster.subscribe()

        async def forward_events() -> None:
            async for event in sub:
                await websocket.send_json(event.to_message())

        forwarder = asyncio.create_task(forward_events())
        try:
            # Late joiners get the whole log up front and replay it locally.
            await websocket.send_json(status_message())
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.debug("Ignoring non-JSON observer message: %r", raw[:100])
                    continue
                if isinstance(message, dict) and message.get("type") == "battle:getStatus":
                    await websocket.send_json(status_message())
        except WebSocketDisconnect:
            logger.debug("Observer socket closed.")
        finally:
            forwarder.cancel()
            sub.close()
            # A send on a closed socket fails the forwarder; that is expected here.
            await asyncio.gather(forwarder, return_exceptions=True)

    return app
