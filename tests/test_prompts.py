from __future__ import annotations

import pytest

from conftest import make_card
from tarot_session.prompts import (
    POSITION_ROLES,
    build_advice_prompt,
    build_fortune_prompt,
    build_opening_prompt,
    build_position_prompt,
    build_synthesis_prompt,
    build_title_prompt,
    clean_remark,
    short_title,
)
from tarot_session.tarot_core import Position, bind_positions

CONCERN = "Should I change my career?"


@pytest.fixture
def drawn():
    return bind_positions([make_card(i) for i in range(4)])


def test_position_prompt_is_deterministic(drawn):
    a = build_position_prompt(Position.INNER, CONCERN, "Mina", drawn[:2])
    b = build_position_prompt(Position.INNER, CONCERN, "Mina", drawn[:2])
    assert a == b


@pytest.mark.parametrize("index,position", [
    (0, Position.PAST_PRESENT),
    (1, Position.INNER),
    (2, Position.FUTURE),
])
def test_position_prompt_contents(drawn, index, position):
    prompt = build_position_prompt(position, CONCERN, "Mina", drawn[: index + 1])
    assert f"This card stands for the {POSITION_ROLES[position]}." in prompt
    assert '"Mina"' in prompt
    assert CONCERN in prompt
    assert "Around 100 characters" in prompt
    assert "Never repeat" in prompt
    assert f"Current card: Card {index}" in prompt
    assert f"Keyword: kw{index}" in prompt
    for earlier in range(index):
        assert f"Card {earlier}" in prompt


def test_first_position_has_no_earlier_cards(drawn):
    prompt = build_position_prompt(Position.PAST_PRESENT, CONCERN, "Mina", drawn[:1])
    assert "Card 1" not in prompt
    assert "Connect naturally" not in prompt


def test_supplementary_prompt(drawn):
    prompt = build_position_prompt(Position.SUPPLEMENTARY, CONCERN, "Mina", drawn)
    assert "supplementary message" in prompt
    assert "Cards already drawn: Card 0, Card 1, Card 2" in prompt
    assert "Current card: Card 3" in prompt
    assert "Around 50 characters" in prompt


def test_position_prompt_requires_a_card():
    with pytest.raises(ValueError):
        build_position_prompt(Position.PAST_PRESENT, CONCERN, "Mina", [])


def test_synthesis_prompt_covers_spread_only(drawn):
    prompt = build_synthesis_prompt(CONCERN, "Mina", drawn)
    assert "past / present situation: Card 0" in prompt
    assert "inner feelings / subconscious: Card 1" in prompt
    assert "future / outcome: Card 2" in prompt
    assert "Card 3" not in prompt
    assert "Around 150 characters" in prompt
    assert "supplementary card" in prompt


def test_followup_prompts(drawn):
    advice = build_advice_prompt(CONCERN, "Mina", drawn)
    fortune = build_fortune_prompt("Mina", drawn)
    for prompt in (advice, fortune):
        assert "Card 0, Card 1, Card 2, Card 3" in prompt
        assert "Around 50 characters" in prompt
        assert '"Mina"' in prompt
    assert "one concrete action" in advice
    assert CONCERN not in fortune


def test_opening_and_title_prompts():
    assert "Within 30 characters" in build_opening_prompt(f"  {CONCERN} ")
    assert f'"{CONCERN}"' in build_title_prompt(CONCERN)
    assert "100 characters" in build_title_prompt(CONCERN)


def test_clean_remark():
    assert clean_remark(' "So this is about work. Let\'s shuffle." \n') == "So this is about work. Lets shuffle."


def test_short_title():
    assert short_title("short") == "short"
    assert short_title("a" * 31) == "a" * 30 + "..."
    assert short_title("a" * 30) == "a" * 30
