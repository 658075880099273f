"""Tests for arena/protocol.py: log, detector, replay."""

from arena.protocol import OutcomeDetector, ProtocolLog, parse_line, replay
from arena.types import AgentIdentity, BattleSession

NAMES = {"mistral/mistral-large-latest": "p1", "claude/claude-sonnet-4-20250514": "p2"}

INIT = "|init|battle\n|player|p1|mistral/mistral-large-latest|\n|player|p2|claude/claude-sonnet-4-20250514|\n|gen|9"
START = "|start\n|switch|p1a: Pikachu|Pikachu, L80, M|100/100\n|switch|p2a: Gengar|Gengar, L82, F|100/100\n|turn|1"
TURN_2 = "|\n|move|p1a: Pikachu|Thunderbolt|p2a: Gengar\n|-damage|p2a: Gengar|40/100\n|turn|2"
TURN_3 = "|\n|move|p2a: Gengar|Shadow Ball|p1a: Pikachu\n|-damage|p1a: Pikachu|0 fnt\n|faint|p1a: Pikachu"
DRAG = "|\n|switch|p1a: Charizard|Charizard, L80, M|100/100\n|turn|3"
WIN_P2 = "|\n|win|claude/claude-sonnet-4-20250514"


def _session() -> BattleSession:
    return BattleSession(
        battle_id="battle-1-abcdef",
        battle_format="gen9randombattle",
        p1=AgentIdentity("mistral", "mistral-large-latest"),
        p2=AgentIdentity("claude", "claude-sonnet-4-20250514"),
    )


def test_parse_line():
    assert parse_line("|turn|3") == ("turn", ["3"])
    assert parse_line("|") == ("", [])
    assert parse_line("plain text") == ("", [])


def test_protocol_log_keeps_order_and_copies():
    log = ProtocolLog()
    log.append("a")
    log.append("b\nc")
    chunks = log.chunks()
    chunks.append("mutated")
    assert log.chunks() == ["a", "b\nc"]
    assert log.lines() == ["a", "b", "c"]
    assert len(log) == 2


def test_feed_appends_and_tracks_turn():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    for chunk in (INIT, START, TURN_2):
        assert detector.feed(chunk) is None
    assert session.turn == 2
    assert session.log.chunks() == [INIT, START, TURN_2]


def test_turn_never_decreases():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    detector.feed("|turn|5")
    detector.feed("|turn|3")
    assert session.turn == 5


def test_malformed_turn_is_ignored():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    detector.feed("|turn|x\n|turn|2")
    assert session.turn == 2
    assert replay(session.log.chunks(), NAMES).turn == 2


def test_ready_after_first_switch():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    detector.feed(INIT)
    assert not detector.ready.is_set()
    detector.feed(START)
    assert detector.ready.is_set()
    assert detector.initial_log == [INIT, START]
    detector.feed(TURN_2)
    assert detector.initial_log == [INIT, START]


def test_win_resolves_side():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    outcome = detector.feed(WIN_P2)
    assert outcome is not None
    assert outcome.winner == "p2"
    assert outcome.winner_name == "claude/claude-sonnet-4-20250514"
    assert detector.ended


def test_win_matches_normalised_name():
    detector = OutcomeDetector(_session(), {"Mistral Large": "p1", "Claude": "p2"})
    assert detector.feed("|win|mistrallarge").winner == "p1"


def test_unknown_winner_name():
    detector = OutcomeDetector(_session(), NAMES)
    outcome = detector.feed("|win|someone else")
    assert outcome.winner is None
    assert outcome.winner_name == "someone else"


def test_tie():
    detector = OutcomeDetector(_session(), NAMES)
    assert detector.feed("|\n|tie").winner == "tie"


def test_first_outcome_wins():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    assert detector.feed(WIN_P2).winner == "p2"
    assert detector.feed("|win|mistral/mistral-large-latest") is None
    assert detector.feed("|tie") is None
    # Later chunks are still logged.
    assert len(session.log) == 3


def test_replay_matches_live_state():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    chunks = [INIT, START, TURN_2, TURN_3, DRAG]
    for chunk in chunks:
        detector.feed(chunk)

    result = replay(session.log.chunks(), NAMES)
    assert result.turn == session.turn == 3
    assert result.winner is None
    assert result.active == {"p1": "Charizard", "p2": "Gengar"}


def test_replay_keeps_first_outcome_like_detector():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    first = detector.feed("|\n|win|somebody else")
    second = detector.feed("|\n|tie")

    assert first.winner is None
    assert first.winner_name == "somebody else"
    assert second is None

    result = replay(session.log.chunks(), NAMES)
    assert result.winner is None
    assert result.winner_name == "somebody else"


def test_late_join_replays_ended_battle():
    session = _session()
    detector = OutcomeDetector(session, NAMES)
    for chunk in (INIT, START, TURN_2, WIN_P2):
        detector.feed(chunk)

    result = replay(session.log.chunks(), NAMES)
    assert result.turn == 2
    assert result.winner == "p2"
    assert result.winner_name == "claude/claude-sonnet-4-20250514"


def test_replay_empty_log():
    result = replay([])
    assert result.turn == 0
    assert result.winner is None
    assert result.active == {}
