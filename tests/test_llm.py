from __future__ import annotations

import pytest

from conftest import run
from tarot_session import config, llm
from tarot_session.llm import (
    INTERPRETATION_OPTIONS,
    GeminiClient,
    GenerationOptions,
    parse_response,
)
from tarot_session.tarot_core import GenerationFailed


def _payload(*texts, finish_reason="STOP"):
    return {
        "candidates": [
            {"content": {"parts": [{"text": t} for t in texts], "role": "model"}, "finish_reason": finish_reason}
        ]
    }


def test_parse_success_joins_parts():
    assert parse_response(_payload("The Star ", "shines.")) == "The Star shines."


@pytest.mark.parametrize("payload", [
    {},
    {"candidates": []},
    _payload(),
    _payload("   "),
    {"candidates": [{"content": {"parts": [{"inline_data": {}}]}}]},
])
def test_parse_empty_variants_fail(payload):
    with pytest.raises(GenerationFailed):
        parse_response(payload)


@pytest.mark.parametrize("payload", [
    None,
    "text",
    {"candidates": "nope"},
    {"candidates": [{"no_content": True}]},
    {"candidates": [{"content": {"parts": "abc"}}]},
])
def test_parse_malformed_fails(payload):
    with pytest.raises(GenerationFailed):
        parse_response(payload)


def test_options_drop_unset_fields():
    assert GenerationOptions().as_config() == {}
    assert INTERPRETATION_OPTIONS.as_config() == {
        "temperature": 0.9,
        "top_p": 0.95,
        "top_k": 40,
        "max_output_tokens": 200,
    }


class _FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def to_dict(self):
        return self.payload


class _FakeModel:
    calls = []
    payload = None
    error = None

    def __init__(self, model_name):
        self.model_name = model_name

    async def generate_content_async(self, prompt, generation_config=None):
        _FakeModel.calls.append((self.model_name, prompt, generation_config))
        if _FakeModel.error is not None:
            raise _FakeModel.error
        return _FakeResponse(_FakeModel.payload)


@pytest.fixture
def fake_genai(monkeypatch):
    _FakeModel.calls = []
    _FakeModel.payload = _payload("A new dawn.")
    _FakeModel.error = None
    configured = []
    monkeypatch.setattr(llm.genai, "configure", lambda api_key: configured.append(api_key))
    monkeypatch.setattr(llm.genai, "GenerativeModel", _FakeModel)
    return configured


def test_client_forwards_prompt_and_options(fake_genai):
    client = GeminiClient(api_key="key", model="gemini-test")
    text = run(client.generate("hello", INTERPRETATION_OPTIONS))
    assert text == "A new dawn."
    assert fake_genai == ["key"]
    assert _FakeModel.calls == [("gemini-test", "hello", INTERPRETATION_OPTIONS.as_config())]


def test_client_wraps_sdk_errors(fake_genai):
    _FakeModel.error = RuntimeError("quota exceeded")
    with pytest.raises(GenerationFailed, match="quota exceeded"):
        run(GeminiClient(api_key="key").generate("hello"))


def test_client_rejects_empty_response(fake_genai):
    _FakeModel.payload = {"candidates": []}
    with pytest.raises(GenerationFailed):
        run(GeminiClient(api_key="key").generate("hello"))


def test_client_without_token(monkeypatch, fake_genai):
    monkeypatch.setattr(config, "GEMINI_TOKEN", None)
    with pytest.raises(GenerationFailed, match="GEMINI_TOKEN"):
        run(GeminiClient().generate("hello"))
    assert _FakeModel.calls == []
