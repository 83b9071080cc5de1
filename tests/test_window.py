"""Tests for the conversation window and eviction."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from chatrelay.core.types import Role, TextContent, Turn
from chatrelay.core.window import EvictionPolicy, Window

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def turn(role: Role, tokens: int, minutes_ago: float = 0, text: str = "x") -> Turn:
    return Turn(
        role=role,
        content=TextContent(text),
        tokens=tokens,
        timestamp=NOW - timedelta(minutes=minutes_ago),
    )


def make_window(*history: Turn, system_tokens: int = 20) -> Window:
    window = Window(turn(Role.SYSTEM, system_tokens, minutes_ago=600))
    for t in history:
        window.append(t)
    return window


class TestWindow:
    def test_first_turn_must_be_system(self):
        with pytest.raises(ValueError):
            Window(turn(Role.USER, 1))

    def test_cannot_append_second_system(self):
        window = make_window()
        with pytest.raises(ValueError):
            window.append(turn(Role.SYSTEM, 1))

    def test_totals(self):
        window = make_window(turn(Role.USER, 30), turn(Role.ASSISTANT, 40))
        assert window.total_tokens == 90
        assert window.history_tokens == 70
        assert len(window) == 3

    def test_pop_oldest_never_takes_system(self):
        window = make_window()
        with pytest.raises(IndexError):
            window.pop_oldest()


class TestEviction:
    def test_token_budget_scenario(self):
        policy = EvictionPolicy(minutes_to_keep=60, tokens_to_keep=100)
        window = make_window()

        window.append(turn(Role.USER, 30, text="u1"))
        assert policy.evict(window, NOW) == 0
        assert window.total_tokens == 50

        window.append(turn(Role.ASSISTANT, 40, text="a1"))
        assert policy.evict(window, NOW) == 0
        assert window.total_tokens == 90

        window.append(turn(Role.USER, 50, text="u2"))
        assert policy.evict(window, NOW) == 2
        assert [(t.role, t.tokens) for t in window.turns] == [(Role.SYSTEM, 20), (Role.USER, 50)]

    def test_time_budget(self):
        policy = EvictionPolicy(minutes_to_keep=30, tokens_to_keep=10_000)
        window = make_window(
            turn(Role.USER, 1, minutes_ago=45, text="old"),
            turn(Role.ASSISTANT, 1, minutes_ago=40, text="old answer"),
            turn(Role.USER, 1, minutes_ago=10, text="new"),
        )
        policy.evict(window, NOW)
        assert [t.text for t in window.history] == ["new"]

    def test_time_pass_stops_at_first_fresh_turn(self):
        policy = EvictionPolicy(minutes_to_keep=30, tokens_to_keep=10_000)
        window = make_window(
            turn(Role.USER, 1, minutes_ago=5, text="fresh"),
            turn(Role.ASSISTANT, 1, minutes_ago=45, text="stale but later"),
        )
        assert policy.evict(window, NOW) == 0
        assert len(window.history) == 2

    def test_last_turn_survives_time_budget(self):
        policy = EvictionPolicy(minutes_to_keep=30, tokens_to_keep=10_000)
        window = make_window(turn(Role.USER, 1, minutes_ago=120))
        assert policy.evict(window, NOW) == 0
        assert len(window.history) == 1

    def test_last_turn_survives_token_budget(self):
        policy = EvictionPolicy(minutes_to_keep=60, tokens_to_keep=100)
        window = make_window(turn(Role.USER, 30), turn(Role.ASSISTANT, 500))
        policy.evict(window, NOW)
        assert [t.tokens for t in window.history] == [500]
        assert window.total_tokens > 100

    def test_system_turn_never_evicted(self):
        policy = EvictionPolicy(minutes_to_keep=1, tokens_to_keep=1)
        window = make_window(*(turn(Role.USER, 10, minutes_ago=100 - i) for i in range(10)))
        policy.evict(window, NOW)
        assert window.turns[0].role == Role.SYSTEM
        assert len(window.history) == 1

    def test_idempotent(self):
        policy = EvictionPolicy(minutes_to_keep=30, tokens_to_keep=100)
        window = make_window(
            turn(Role.USER, 40, minutes_ago=50),
            turn(Role.ASSISTANT, 40, minutes_ago=20),
            turn(Role.USER, 40, minutes_ago=10),
            turn(Role.ASSISTANT, 40, minutes_ago=5),
        )
        policy.evict(window, NOW)
        first = window.turns
        assert policy.evict(window, NOW) == 0
        assert window.turns == first

    def test_invariants_hold_after_eviction(self):
        policy = EvictionPolicy(minutes_to_keep=30, tokens_to_keep=120)
        window = make_window(
            *(turn(Role.USER if i % 2 == 0 else Role.ASSISTANT, 15 + i, minutes_ago=60 - 5 * i) for i in range(12))
        )
        policy.evict(window, NOW)
        cutoff = NOW - timedelta(minutes=30)
        assert window.total_tokens <= 120 or len(window.history) == 1
        assert all(t.timestamp >= cutoff for t in window.history) or len(window.history) == 1
