# -*- coding: utf-8 -*-
"""
tarot_core.py — Core reading records and draw mechanics

Responsibilities:
- Define the error taxonomy shared by every collaborator of a reading
- Define immutable Card / DrawnCard / Message records and the mutable Session
- Define the built-in Major Arcana deck (id / name / keyword / meaning / ordinal)
- Provide unbiased shuffling (Fisher–Yates) and drawing without replacement
- Provide reproducible randomness (seed can be int or str; str will be hashed)

Note:
- This module only implements card mechanics and records; it is UI/LLM agnostic.
  Sequencing lives in orchestrator.py.
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Union


# =========================
# Error classes
# =========================

class TarotSessionError(Exception):
    """Base class for reading errors."""


class ValidationError(TarotSessionError):
    """Blank concern or empty deck; the user must correct input."""


class GenerationFailed(TarotSessionError):
    """Text service error or malformed/empty response."""


class DeckExhaustedError(TarotSessionError):
    """No undrawn card remains for a supplementary draw."""


class PersistenceFailed(TarotSessionError):
    """Archive write failed."""


class BackendUnavailable(TarotSessionError):
    """The deck could not be loaded from its backend."""


class InvalidParameterError(TarotSessionError):
    """A draw or spread parameter is out of range."""


# =========================
# Records
# =========================

@dataclass(frozen=True)
class Card:
    """Card definition as supplied by a deck provider."""
    id: str              # e.g., "major_00_the_fool"
    name: str            # e.g., "The Fool"
    keyword: str
    meaning: str
    ordinal: int         # deck order (card_num in the remote store)


class Position(str, Enum):
    PAST_PRESENT = "past_present"
    INNER = "inner"
    FUTURE = "future"
    SUPPLEMENTARY = "supplementary"


# Narrative roles of the main spread, in draw order
SPREAD_POSITIONS: List[Position] = [Position.PAST_PRESENT, Position.INNER, Position.FUTURE]


def position_for(index: int) -> Position:
    """Position of the index-th draw in a session (0-based)."""
    if index < len(SPREAD_POSITIONS):
        return SPREAD_POSITIONS[index]
    return Position.SUPPLEMENTARY


@dataclass(frozen=True)
class DrawnCard:
    card: Card
    position: Position
    index: int           # draw order in this session (0-based)

    @property
    def name(self) -> str:
        return self.card.name


@dataclass(frozen=True)
class Message:
    role: str            # "user" | "assistant"
    content: str


class Phase(str, Enum):
    IDLE = "IDLE"
    OPENING = "OPENING"
    SHUFFLING = "SHUFFLING"
    REVEALING = "REVEALING"
    INTERPRETING = "INTERPRETING"
    SUMMARIZING = "SUMMARIZING"
    COMPLETE = "COMPLETE"


# Phases that carry the interpretation index in their label
_INDEXED_PHASES = (Phase.REVEALING, Phase.INTERPRETING)


def phase_label(phase: Phase, index: int = 0) -> str:
    """e.g. "REVEALING(1)", "COMPLETE"."""
    if phase in _INDEXED_PHASES:
        return f"{phase.value}({index})"
    return phase.value


@dataclass
class Session:
    """
    The active reading. Mutated only by the ReadingOrchestrator.

    `generation` identifies the session instance; it changes on every start and
    reset so late responses for a discarded session can be recognised.
    """
    generation: int = 0
    concern: str = ""
    title: str = ""
    display_title: str = ""
    drawn: List[DrawnCard] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    phase: Phase = Phase.IDLE
    interpretation_index: int = 0
    finalized: bool = False
    streaming_text: str = ""
    status: str = ""
    halted: bool = False
    phase_history: List[str] = field(default_factory=list)

    @property
    def phase_label(self) -> str:
        return phase_label(self.phase, self.interpretation_index)

    @property
    def drawn_ids(self) -> List[str]:
        return [d.card.id for d in self.drawn]

    @property
    def drawn_names(self) -> List[str]:
        return [d.card.name for d in self.drawn]

    def assistant_messages(self) -> List[Message]:
        return [m for m in self.messages if m.role == "assistant"]


# =========================
# Built-in Major Arcana deck
# =========================

def _slug(s: str) -> str:
    return (
        s.lower()
        .replace(" ", "_")
        .replace("-", "_")
        .replace("’", "")
        .replace("'", "")
    )


_MAJOR_ARCANA = [
    ("The Fool", "beginnings", "A leap into the unknown with an open heart."),
    ("The Magician", "willpower", "The tools you need are already in your hands."),
    ("The High Priestess", "intuition", "Quiet knowing beneath the surface."),
    ("The Empress", "abundance", "Nurturing growth and creative fertility."),
    ("The Emperor", "structure", "Order, authority and steady foundations."),
    ("The Hierophant", "tradition", "Guidance found in shared wisdom and custom."),
    ("The Lovers", "choice", "A meaningful union or a decision of the heart."),
    ("The Chariot", "determination", "Victory through focus and self-control."),
    ("Strength", "courage", "Gentle inner strength that tames fear."),
    ("The Hermit", "reflection", "Stepping back to find your own light."),
    ("Wheel of Fortune", "cycles", "Turning points and the rhythm of change."),
    ("Justice", "balance", "Fairness, truth and consequences of actions."),
    ("The Hanged Man", "surrender", "A pause that reveals a new perspective."),
    ("Death", "transformation", "An ending that clears the way for renewal."),
    ("Temperance", "harmony", "Patience and the art of blending opposites."),
    ("The Devil", "attachment", "Ties and habits that hold you back."),
    ("The Tower", "upheaval", "Sudden change that breaks false structures."),
    ("The Star", "hope", "Healing, faith and a guiding light."),
    ("The Moon", "uncertainty", "Illusions and feelings not yet understood."),
    ("The Sun", "joy", "Clarity, vitality and success."),
    ("Judgement", "awakening", "A calling to rise and reassess."),
    ("The World", "completion", "Fulfilment and the close of a cycle."),
]


def _build_major_arcana() -> List[Card]:
    """Build the 22-card Major Arcana registry (stable order; useful for tests/repro)."""
    registry = [
        Card(id=f"major_{i:02d}_{_slug(name)}", name=name, keyword=kw, meaning=meaning, ordinal=i)
        for i, (name, kw, meaning) in enumerate(_MAJOR_ARCANA)
    ]
    assert len(registry) == 22, f"Major Arcana registry size should be 22, got {len(registry)}"
    return registry


MAJOR_ARCANA: List[Card] = _build_major_arcana()


# =========================
# RNG / Shuffling
# =========================

def _norm_seed(seed: Optional[Union[int, str]]) -> Optional[int]:
    """
    Normalize seed to int. If str, hash with sha256 and take the first 8 bytes
    as an unsigned 64-bit integer. None stays None.
    """
    if seed is None:
        return None
    if isinstance(seed, int):
        return seed
    if isinstance(seed, str):
        h = hashlib.sha256(seed.encode("utf-8")).digest()
        return int.from_bytes(h[:8], byteorder="big", signed=False)
    raise TypeError("seed must be int | str | None")


def make_rng(seed: Optional[Union[int, str]] = None) -> random.Random:
    return random.Random(_norm_seed(seed))


def _fisher_yates_shuffle(items: Sequence[Card], rng: random.Random) -> List[Card]:
    """
    Fisher–Yates (Knuth) shuffle.
    Returns a new list and does not mutate the input.
    """
    arr = list(items)
    n = len(arr)
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)  # inclusive
        arr[i], arr[j] = arr[j], arr[i]
    return arr


# =========================
# Draw
# =========================

def draw_cards(
    deck: Sequence[Card],
    count: int,
    rng: random.Random,
    exclude: Iterable[str] = (),
) -> List[Card]:
    """
    Draw `count` distinct cards uniformly at random, skipping ids in `exclude`.

    Shuffle-then-take-prefix over the eligible cards. Raises DeckExhaustedError
    when fewer than `count` eligible cards remain.
    """
    if count <= 0:
        raise InvalidParameterError("count must be a positive integer")

    excluded = set(exclude)
    eligible: List[Card] = []
    seen = set()
    for card in deck:
        # duplicate ids in a backend deck would break the uniqueness invariant
        if card.id in excluded or card.id in seen:
            continue
        seen.add(card.id)
        eligible.append(card)

    if len(eligible) < count:
        raise DeckExhaustedError(
            f"Only {len(eligible)} undrawn card(s) left; {count} requested."
        )
    return _fisher_yates_shuffle(eligible, rng)[:count]


def bind_positions(cards: Sequence[Card], start_index: int = 0) -> List[DrawnCard]:
    """Attach draw index and narrative position to freshly drawn cards."""
    return [
        DrawnCard(card=c, position=position_for(start_index + offset), index=start_index + offset)
        for offset, c in enumerate(cards)
    ]
