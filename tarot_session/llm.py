from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

# pip install google-generativeai python-dotenv
import google.generativeai as genai
from pydantic import BaseModel, ValidationError as SchemaError

from . import config
from .tarot_core import GenerationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_output_tokens: Optional[int] = None

    def as_config(self) -> Dict[str, Any]:
        """generation_config dict with unset fields left to the model defaults."""
        cfg = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "max_output_tokens": self.max_output_tokens,
        }
        return {k: v for k, v in cfg.items() if v is not None}


DEFAULT_OPTIONS = GenerationOptions()
INTERPRETATION_OPTIONS = GenerationOptions(temperature=0.9, top_p=0.95, top_k=40, max_output_tokens=200)
SYNTHESIS_OPTIONS = GenerationOptions(temperature=0.9, top_p=0.95, top_k=40, max_output_tokens=250)
SHORT_OPTIONS = GenerationOptions(temperature=0.9, top_p=0.95, top_k=40, max_output_tokens=100)


class TextGenerator(Protocol):
    async def generate(self, prompt: str, options: GenerationOptions = DEFAULT_OPTIONS) -> str:
        ...


# -----------------------------------------------------------------------------
# Response schema
# -----------------------------------------------------------------------------

class _Part(BaseModel):
    text: Optional[str] = None


class _Content(BaseModel):
    parts: List[_Part] = []


class _Candidate(BaseModel):
    content: _Content
    finish_reason: Optional[Any] = None


class GenerateResponse(BaseModel):
    candidates: List[_Candidate] = []


def parse_response(payload: Any) -> str:
    """
    Extract the text of the first candidate from a generateContent payload.

    Success is a non-empty text. An empty candidate list or a candidate without
    text raises GenerationFailed, as does any payload that does not match the
    schema.
    """
    try:
        resp = GenerateResponse.model_validate(payload)
    except SchemaError as e:
        raise GenerationFailed(f"Malformed response: {e.error_count()} schema error(s)") from e

    if not resp.candidates:
        raise GenerationFailed("Empty response: no candidates")

    text = "".join(p.text for p in resp.candidates[0].content.parts if p.text).strip()
    if not text:
        raise GenerationFailed(
            f"Empty response (finish_reason={resp.candidates[0].finish_reason})"
        )
    return text


# -----------------------------------------------------------------------------
# Gemini client
# -----------------------------------------------------------------------------

class GeminiClient:
    """
    One call = one complete response. No retries; every failure surfaces as
    GenerationFailed.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None) -> None:
        self.api_key = api_key or config.GEMINI_TOKEN
        self.model_name = model or config.DEFAULT_MODEL

    def _get_model(self):
        # A fresh model per call: its async transport is bound to the running loop
        if not self.api_key:
            raise GenerationFailed(
                "Missing GEMINI_TOKEN in environment. "
                "Create one in Google AI Studio and set it in your .env."
            )
        genai.configure(api_key=self.api_key)
        return genai.GenerativeModel(model_name=self.model_name)

    async def generate(self, prompt: str, options: GenerationOptions = DEFAULT_OPTIONS) -> str:
        gmodel = self._get_model()
        try:
            resp = await gmodel.generate_content_async(
                prompt, generation_config=options.as_config()
            )
            payload = resp.to_dict()
        except Exception as e:
            logger.warning("Gemini request failed: %s: %s", type(e).__name__, e)
            raise GenerationFailed(f"{type(e).__name__}: {e}") from e

        text = parse_response(payload)
        logger.debug("Gemini returned %d chars", len(text))
        return text
