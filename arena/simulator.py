"""
Battle engine boundary.

BattleEngine starts a match and hands back MatchStreams: one SideChannel per
player (requests in, commands out) and the omniscient chunk stream.
ShowdownSimulator runs Pokemon Showdown's `simulate-battle` command as a
subprocess and demultiplexes its output into those streams.

    npx pokemon-showdown simulate-battle
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod

from arena.errors import EngineStartError
from bot.extractor import RequestExtractor
from bot.schema import EngineError, SideMessage

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChunkStream:
    """Async iterator over omniscient protocol chunks; ends when closed."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()

    def put(self, chunk: str) -> None:
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the stream closed for any later reader.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item


class SideChannel(ChunkStream):
    """One player's channel: yields SideMessages, accepts one command per request."""

    def __init__(self, side: str, match: MatchStreams) -> None:
        super().__init__()
        self.side = side
        self._match = match

    def put(self, message: SideMessage) -> None:  # type: ignore[override]
        self._queue.put_nowait(message)

    async def __anext__(self) -> SideMessage:  # type: ignore[override]
        return await super().__anext__()

    async def choose(self, command: str) -> None:
        await self._match.write(f">{self.side} {command}")


class MatchStreams(ABC):
    """Streams of one running match."""

    def __init__(self) -> None:
        self.sides: dict[str, SideChannel] = {
            "p1": SideChannel("p1", self),
            "p2": SideChannel("p2", self),
        }
        self.omniscient = ChunkStream()

    @abstractmethod
    async def write(self, command: str) -> None:
        """Send one input line to the engine."""
        ...

    async def force_tie(self) -> None:
        await self.write(">forcetie")

    def close_streams(self) -> None:
        self.omniscient.close()
        for channel in self.sides.values():
            channel.close()

    @abstractmethod
    async def close(self) -> None: ...


class BattleEngine(ABC):
    @abstractmethod
    async def start_match(self, battle_format: str, p1_name: str, p2_name: str) -> MatchStreams:
        """Start a match; raises EngineStartError when the engine cannot run."""
        ...


def omniscient_lines(lines: list[str]) -> list[str]:
    """Resolve `|split|SIDE` pairs to their secret (full-information) line."""
    out: list[str] = []
    i = 0
    while i < len(lines):
        if lines[i].startswith("|split|"):
            # |split|p1, then the secret line, then the public line
            if i + 1 < len(lines):
                out.append(lines[i + 1])
            i += 3
            continue
        out.append(lines[i])
        i += 1
    return out


class ShowdownMatch(MatchStreams):
    def __init__(self, process: asyncio.subprocess.Process) -> None:
        super().__init__()
        self._process = process
        self._extractor = RequestExtractor()
        self._reader = asyncio.create_task(self._read_stdout())
        self._stderr = asyncio.create_task(self._read_stderr())

    async def write(self, command: str) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            raise ConnectionResetError("simulator input is closed")
        logger.debug("→ %s", command)
        stdin.write((command + "\n").encode())
        await stdin.drain()

    async def _read_stdout(self) -> None:
        stdout = self._process.stdout
        block: list[str] = []
        try:
            while True:
                raw = await stdout.readline()
                if not raw:
                    break
                line = raw.decode("utf-8").rstrip("\r\n")
                if line:
                    block.append(line)
                elif block:
                    self.dispatch(block)
                    block = []
            if block:
                self.dispatch(block)
        except (OSError, ValueError):
            logger.exception("Simulator output failed.")
        finally:
            self.close_streams()

    async def _read_stderr(self) -> None:
        while True:
            raw = await self._process.stderr.readline()
            if not raw:
                return
            logger.warning("simulator: %s", raw.decode("utf-8", "replace").rstrip())

    def dispatch(self, block: list[str]) -> None:
        kind = block[0]
        if kind == "update":
            self.omniscient.put("\n".join(omniscient_lines(block[1:])))
        elif kind == "sideupdate" and len(block) > 1:
            channel = self.sides.get(block[1])
            if channel is None:
                logger.warning("sideupdate for unknown side %r", block[1])
                return
            for line in block[2:]:
                if line.startswith("|request|"):
                    payload = line[len("|request|") :]
                    if payload:
                        channel.put(self._extractor.extract(payload))
                elif line.startswith("|error|"):
                    channel.put(EngineError(line[len("|error|") :]))
        elif kind == "end":
            logger.debug("Simulator reported end of battle.")
            self.close_streams()
        else:
            logger.debug("Ignoring simulator block %r", kind)

    async def close(self) -> None:
        if self._process.returncode is None:
            self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
        for task in (self._reader, self._stderr):
            task.cancel()
        self.close_streams()


class ShowdownSimulator(BattleEngine):
    """Runs each match in a fresh `pokemon-showdown simulate-battle` process.

    Random-battle formats build both teams inside the simulator.
    """

    def __init__(self, command: tuple[str, ...] = ("npx", "pokemon-showdown", "simulate-battle")) -> None:
        self._command = command

    async def start_match(self, battle_format: str, p1_name: str, p2_name: str) -> ShowdownMatch:
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EngineStartError(f"Could not launch simulator {self._command!r}: {e}") from e

        match = ShowdownMatch(process)
        try:
            await match.write(f">start {json.dumps({'formatid': battle_format})}")
            await match.write(f">player p1 {json.dumps({'name': p1_name})}")
            await match.write(f">player p2 {json.dumps({'name': p2_name})}")
        except OSError as e:
            await match.close()
            raise EngineStartError(f"Simulator rejected start commands: {e}") from e

        logger.info("Simulator started (pid %s): %s vs %s · %s", process.pid, p1_name, p2_name, battle_format)
        return match
