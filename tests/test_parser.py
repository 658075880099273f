"""Tests for bot/parser.py."""

import random

from bot.parser import interpret, legal_choices, random_choice
from tests.conftest import (
    active_request,
    forced_switch_request,
    team_preview_request,
    wait_request,
)


def test_numeric_move():
    assert interpret("move 2", active_request()) == "move 2"
    assert interpret("I will ATTACK 3 now", active_request()) == "move 3"


def test_numeric_move_out_of_range():
    assert interpret("move 5", active_request()) is None
    assert interpret("move 0", active_request()) is None


def test_disabled_move_is_rejected():
    assert interpret("move 2", active_request(disabled={2})) is None


def test_fallback_never_picks_disabled_move():
    request = active_request(disabled={2})
    rng = random.Random(7)
    picks = {random_choice(request, rng) for _ in range(300)}
    assert "move 2" not in picks
    assert {"move 1", "move 3", "move 4"} <= picks
    assert any(p.startswith("switch") for p in picks)


def test_numeric_switch():
    assert interpret("switch 3", active_request()) == "switch 3"
    assert interpret("swap to 4", active_request()) == "switch 4"
    assert interpret("change 6", active_request()) == "switch 6"


def test_switch_to_active_or_first_slot_rejected():
    assert interpret("switch 1", active_request()) is None


def test_switch_to_fainted_rejected():
    assert interpret("switch 3", active_request(conditions={3: "0 fnt"})) is None


def test_switch_when_trapped_rejected():
    request = active_request(trapped=True)
    assert interpret("switch 3", request) is None
    assert interpret("go Blastoise", request) is None


def test_species_name_switch():
    assert interpret("Bring in blastoise, it resists fire", active_request()) == "switch 3"


def test_species_name_skips_fainted():
    request = active_request(conditions={3: "0 fnt"})
    assert interpret("blastoise", request) is None


def test_move_name_match():
    assert interpret("Use Iron Tail!", active_request()) == "move 3"


def test_move_name_skips_disabled():
    assert interpret("iron tail", active_request(disabled={3})) is None


def test_numeric_move_takes_precedence_over_switch():
    assert interpret("move 1 or switch 3", active_request()) == "move 1"


def test_invalid_numeric_move_falls_through_to_names():
    assert interpret("move 2 — actually Gengar", active_request(disabled={2})) == "switch 5"


def test_unparsable_text():
    assert interpret("I am not sure what to do", active_request()) is None
    assert interpret("", active_request()) is None


def test_team_preview_default():
    assert interpret("default", team_preview_request()) == "default"
    assert interpret("I'll go with the Default order", team_preview_request()) == "default"


def test_team_preview_custom_order_is_passed_through():
    assert interpret("314265", team_preview_request()) == "team 314265"
    # No permutation check: duplicates go through unchanged.
    assert interpret("111111", team_preview_request()) == "team 111111"


def test_team_preview_ignores_move_and_switch_commands():
    assert interpret("move 1", team_preview_request()) is None
    assert interpret("switch 2", team_preview_request()) is None


def test_forced_switch_only_accepts_switches():
    request = forced_switch_request()
    assert interpret("move 1", request) is None
    assert interpret("switch 2", request) == "switch 2"
    assert interpret("charizard", request) == "switch 2"


def test_wait_request_never_parses():
    assert interpret("move 1", wait_request()) is None


def test_legal_choices_active():
    request = active_request(disabled={4}, conditions={2: "0 fnt"})
    assert legal_choices(request) == ["move 1", "move 2", "move 3", "switch 3", "switch 4", "switch 5", "switch 6"]


def test_legal_choices_trapped_has_no_switches():
    assert legal_choices(active_request(trapped=True)) == ["move 1", "move 2", "move 3", "move 4"]


def test_random_choice_forced_switch():
    request = forced_switch_request(conditions={2: "0 fnt", 3: "0 fnt"})
    rng = random.Random(1)
    picks = {random_choice(request, rng) for _ in range(100)}
    assert picks == {"switch 4", "switch 5", "switch 6"}


def test_random_choice_team_preview():
    assert random_choice(team_preview_request()) == "default"


def test_random_choice_pass_when_nothing_legal():
    conditions = {i: "0 fnt" for i in range(1, 7)}
    assert random_choice(forced_switch_request(conditions=conditions)) == "pass"
    assert random_choice(active_request(disabled={1, 2, 3, 4}, trapped=True)) == "pass"
    assert random_choice(wait_request()) == "pass"
