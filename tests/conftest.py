# tests/conftest.py
# ============================================================
# Shared pytest fixtures for all tests under tests/:
#   - deck / visitor: small synthetic reading inputs
#   - ScriptedGenerator: text generator returning numbered replies,
#     optionally failing on prompts that match a predicate
#   - RecordingArchiver / ListDeckProvider: in-memory collaborators
#   - BlockingArchiver: archiver that holds the reset open
#   - make_orchestrator: orchestrator factory with zero pacing
#   - FakeSupabase: chainable query builder recording every call
# ============================================================

from __future__ import annotations

import asyncio
import sys
import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest

# ---------- Ensure project root is importable ----------
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tarot_session.identity import Visitor  # noqa: E402
from tarot_session.llm import DEFAULT_OPTIONS, GenerationOptions  # noqa: E402
from tarot_session.orchestrator import INSTANT, ReadingOrchestrator  # noqa: E402
from tarot_session.tarot_core import (  # noqa: E402
    Card,
    GenerationFailed,
    PersistenceFailed,
)

INNER_TASK = "This card stands for the inner feelings / subconscious."


async def no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


class ScriptedGenerator:
    def __init__(self, fail_when: Optional[Callable[[str], bool]] = None, fail_times: Optional[int] = None) -> None:
        self.fail_when = fail_when
        self.fail_times = fail_times
        self.failures = 0
        self.calls: List[tuple] = []

    async def generate(self, prompt: str, options: GenerationOptions = DEFAULT_OPTIONS) -> str:
        self.calls.append((prompt, options))
        if self.fail_when is not None and self.fail_when(prompt):
            if self.fail_times is None or self.failures < self.fail_times:
                self.failures += 1
                raise GenerationFailed("scripted failure")
        return f"reply {len(self.calls)}"

    @property
    def prompts(self) -> List[str]:
        return [p for p, _ in self.calls]


class GatedGenerator(ScriptedGenerator):
    """Blocks on prompts containing `marker` until `gate` is set."""

    def __init__(self, marker: str) -> None:
        super().__init__()
        self.marker = marker
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()

    async def generate(self, prompt: str, options: GenerationOptions = DEFAULT_OPTIONS) -> str:
        if self.marker in prompt:
            self.waiting.set()
            await self.gate.wait()
        return await super().generate(prompt, options)


class ListDeckProvider:
    def __init__(self, cards: List[Card], error: Optional[Exception] = None) -> None:
        self.cards = cards
        self.error = error
        self.calls: List[str] = []

    def list_cards(self, deck_id: str) -> List[Card]:
        self.calls.append(deck_id)
        if self.error is not None:
            raise self.error
        return list(self.cards)


class RecordingArchiver:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def save_session(self, user_id, user_name, concern, title, drawn_card_names, timestamp):
        self.calls.append({
            "user_id": user_id,
            "user_name": user_name,
            "concern": concern,
            "title": title,
            "drawn_card_names": list(drawn_card_names),
            "timestamp": timestamp,
        })
        if self.fail:
            raise PersistenceFailed("store offline")
        return f"session-{len(self.calls)}"


class BlockingArchiver(RecordingArchiver):
    """Holds save_session open until `release` is set; `entered` marks the call."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def save_session(self, *args, **kwargs):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().save_session(*args, **kwargs)


class FakeSupabase:
    """Chainable stand-in for a supabase client; every builder call is recorded."""

    def __init__(self, data: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None) -> None:
        self.data = data if data is not None else []
        self.error = error
        self.calls: List[tuple] = []

    def _record(self, name: str, *args, **kwargs) -> "FakeSupabase":
        self.calls.append((name, args, kwargs))
        return self

    def table(self, *a, **k):
        return self._record("table", *a, **k)

    def select(self, *a, **k):
        return self._record("select", *a, **k)

    def eq(self, *a, **k):
        return self._record("eq", *a, **k)

    def order(self, *a, **k):
        return self._record("order", *a, **k)

    def limit(self, *a, **k):
        return self._record("limit", *a, **k)

    def insert(self, *a, **k):
        return self._record("insert", *a, **k)

    def execute(self):
        self.calls.append(("execute", (), {}))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


def make_card(i: int) -> Card:
    return Card(id=f"card_{i}", name=f"Card {i}", keyword=f"kw{i}", meaning=f"meaning {i}", ordinal=i)


@pytest.fixture
def deck() -> List[Card]:
    return [make_card(i) for i in range(5)]


@pytest.fixture
def visitor() -> Visitor:
    return Visitor(user_id="free_1700000000000_abc123def", user_name="Mina", visit_count=2)


@pytest.fixture
def archiver() -> RecordingArchiver:
    return RecordingArchiver()


@pytest.fixture
def make_orchestrator(deck, visitor, archiver):
    def factory(generator=None, cards=None, provider=None, archiver_=archiver, on_change=None):
        return ReadingOrchestrator(
            provider or ListDeckProvider(deck if cards is None else cards),
            generator or ScriptedGenerator(),
            visitor,
            deck_id="test",
            archiver=archiver_,
            timings=INSTANT,
            sleep=no_sleep,
            seed="test-seed",
            on_change=on_change,
        )
    return factory


def run(coro):
    return asyncio.run(coro)
