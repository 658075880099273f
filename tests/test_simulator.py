"""Tests for arena/simulator.py: Showdown output demultiplexing, without a real subprocess."""

import asyncio
import json

import pytest

from arena.errors import EngineStartError
from arena.simulator import ChunkStream, ShowdownMatch, ShowdownSimulator, omniscient_lines
from bot.schema import ActiveChoice, EngineError
from tests.conftest import raw_moves, raw_team


class FakeStdin:
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.closing = False

    def write(self, data: bytes) -> None:
        self.lines.append(data.decode())

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closing


class FakeProcess:
    pid = 4242

    def __init__(self) -> None:
        self.stdin = FakeStdin()
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self.terminated = False

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15
        self.stdout.feed_eof()
        self.stderr.feed_eof()

    def kill(self) -> None:
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


@pytest.fixture
async def showdown():
    process = FakeProcess()
    match = ShowdownMatch(process)
    yield process, match
    await match.close()


def _feed(process: FakeProcess, *blocks: str) -> None:
    for block in blocks:
        process.stdout.feed_data((block + "\n\n").encode())


async def _next(stream: ChunkStream):
    return await asyncio.wait_for(stream.__anext__(), timeout=1)


def test_omniscient_lines_keep_secret_line():
    lines = [
        "|split|p1",
        "|switch|p1a: Pikachu|Pikachu, L80, M|211/211",
        "|switch|p1a: Pikachu|Pikachu, L80, M|100/100",
        "|turn|1",
    ]
    assert omniscient_lines(lines) == ["|switch|p1a: Pikachu|Pikachu, L80, M|211/211", "|turn|1"]


def test_omniscient_lines_without_split():
    assert omniscient_lines(["|start", "|turn|1"]) == ["|start", "|turn|1"]


async def test_update_blocks_become_chunks(showdown):
    process, match = showdown
    _feed(process, "update\n|init|battle\n|gen|9", "update\n|\n|turn|1")

    assert await _next(match.omniscient) == "|init|battle\n|gen|9"
    assert await _next(match.omniscient) == "|\n|turn|1"


async def test_sideupdate_routes_requests_and_errors(showdown):
    process, match = showdown
    request = json.dumps({"active": [{"moves": raw_moves()}], "side": {"pokemon": raw_team()}, "rqid": 3})
    _feed(
        process,
        f"sideupdate\np1\n|request|{request}",
        "sideupdate\np2\n|error|[Invalid choice] Can't move: Volt Tackle is disabled",
    )

    p1_message = await _next(match.sides["p1"])
    assert isinstance(p1_message, ActiveChoice)
    assert len(p1_message.moves) == 4

    p2_message = await _next(match.sides["p2"])
    assert isinstance(p2_message, EngineError)
    assert p2_message.invalid_choice


async def test_end_block_closes_every_stream(showdown):
    process, match = showdown
    _feed(process, "update\n|\n|win|random", 'end\n{"winner":"random","turns":3}')

    assert await _next(match.omniscient) == "|\n|win|random"
    with pytest.raises(StopAsyncIteration):
        await _next(match.omniscient)
    with pytest.raises(StopAsyncIteration):
        await _next(match.sides["p1"])
    # Stays closed for later readers.
    with pytest.raises(StopAsyncIteration):
        await _next(match.omniscient)


async def test_stdout_eof_closes_streams(showdown):
    process, match = showdown
    process.stdout.feed_eof()
    with pytest.raises(StopAsyncIteration):
        await _next(match.sides["p2"])


async def test_choose_writes_side_command(showdown):
    process, match = showdown
    await match.sides["p2"].choose("switch 3")
    await match.force_tie()
    assert process.stdin.lines == [">p2 switch 3\n", ">forcetie\n"]


async def test_write_after_input_closed(showdown):
    process, match = showdown
    process.stdin.closing = True
    with pytest.raises(ConnectionResetError):
        await match.sides["p1"].choose("move 1")


async def test_close_terminates_process(showdown):
    process, match = showdown
    await match.close()
    assert process.terminated
    with pytest.raises(StopAsyncIteration):
        await _next(match.omniscient)


async def test_missing_simulator_binary():
    simulator = ShowdownSimulator(("/nonexistent/pokemon-showdown-binary",))
    with pytest.raises(EngineStartError):
        await simulator.start_match("gen9randombattle", "a", "b")
