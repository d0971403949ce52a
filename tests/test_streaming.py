from __future__ import annotations

import asyncio

from conftest import run
from tarot_session.streaming import StreamingPresenter, iter_prefixes


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def _collect(text, presenter):
    emitted = []
    done = run(presenter.present(text, emitted.append))
    return emitted, done


def test_emits_every_prefix_in_order():
    sleep = SleepRecorder()
    emitted, done = _collect("hello", StreamingPresenter(0.02, sleep))
    assert emitted == ["h", "he", "hel", "hell", "hello"]
    assert done is True
    assert sleep.calls == [0.02] * 5


def test_emission_count_equals_length():
    text = "🔮 The Star brings hope."
    emitted, _ = _collect(text, StreamingPresenter(0.0, SleepRecorder()))
    assert len(emitted) == len(text)
    assert emitted[-1] == text


def test_empty_text_completes_without_emissions():
    emitted, done = _collect("", StreamingPresenter(0.02, SleepRecorder()))
    assert emitted == []
    assert done is True


def test_cancel_stops_the_stream():
    presenter = StreamingPresenter(0.0, SleepRecorder())
    emitted = []

    def on_prefix(prefix):
        emitted.append(prefix)
        if len(emitted) == 2:
            presenter.cancel()

    done = run(presenter.present("abcdef", on_prefix))
    assert emitted == ["a", "ab"]
    assert done is False
    assert presenter.active is False


def test_cancel_without_stream_is_harmless():
    presenter = StreamingPresenter()
    presenter.cancel()
    assert presenter.active is False


def test_iter_prefixes_honours_preset_cancel():
    async def scenario():
        cancel = asyncio.Event()
        cancel.set()
        return [p async for p in iter_prefixes("abc", 0.0, SleepRecorder(), cancel)]

    assert run(scenario()) == []
