"""
Broadcaster: publish/subscribe fan-out of battle events to observers.

publish() never blocks the battle. Each observer has its own bounded queue;
an observer that falls behind loses events rather than slowing anyone down,
and catches up with a status query, which carries the full protocol log.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

BATTLE_STARTED = "battle:started"
BATTLE_UPDATE = "battle:update"
BATTLE_THINKING = "battle:thinking"
BATTLE_REASONING = "battle:reasoning"
BATTLE_DECISION = "battle:decision"
BATTLE_END = "battle:end"
BATTLE_STATUS = "battle:status"


@dataclass
class BattleEvent:
    type: str
    payload: dict = field(default_factory=dict)

    def to_message(self) -> dict:
        return {"type": self.type, **self.payload}


class Subscription:
    """One observer's view of the event stream."""

    def __init__(self, broadcaster: Broadcaster, maxsize: int) -> None:
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[BattleEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, event: BattleEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Observer queue full — dropped %s (%d dropped so far).", event.type, self.dropped)

    async def get(self) -> BattleEvent:
        return await self._queue.get()

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> BattleEvent:
        return await self.get()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


class Broadcaster:
    def __init__(self, queue_size: int = 1000) -> None:
        self._queue_size = queue_size
        self._subscriptions: set[Subscription] = set()

    @property
    def observer_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self._queue_size)
        self._subscriptions.add(sub)
        logger.info("Observer connected. Total: %d", self.observer_count)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.discard(sub)
            logger.info("Observer disconnected. Total: %d", self.observer_count)

    def publish(self, event: BattleEvent) -> None:
        logger.debug("Publishing %s to %d observer(s).", event.type, self.observer_count)
        for sub in list(self._subscriptions):
            sub._offer(event)

    def emit(self, event_type: str, **payload) -> None:
        self.publish(BattleEvent(event_type, payload))
