"""
orchestrator.py — Reading Orchestrator: the phase state machine of one reading.

Responsibilities:
- Validate and start a reading, draw the three spread cards, reveal and
  interpret them in order, then deliver the closing synthesis.
- Run the follow-up actions (supplementary card, advice, fortune, share) once
  the reading is complete, and archive the reading on reset.
- Degrade every collaborator failure to a transcript message or a log line.

Phase path of a successful reading:
  IDLE → OPENING → SHUFFLING → REVEALING(0) → INTERPRETING(0) → REVEALING(1)
  → INTERPRETING(1) → REVEALING(2) → INTERPRETING(2) → SUMMARIZING → COMPLETE

Notes:
- One generation call is in flight at a time. Every await is followed by a
  check that the session it belongs to is still current; a reset in between
  makes the rest of that flow a no-op.
- A failed interpretation or synthesis halts the flow where it is; resume()
  retries that step once and continues.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Union

from . import config
from .archive import SessionArchiver
from .deck import DeckProvider
from .identity import GreetingPhase, Visitor
from .llm import (
    DEFAULT_OPTIONS,
    INTERPRETATION_OPTIONS,
    SHORT_OPTIONS,
    SYNTHESIS_OPTIONS,
    GenerationOptions,
    TextGenerator,
)
from .prompts import (
    TITLE_LENGTH,
    build_advice_prompt,
    build_fortune_prompt,
    build_opening_prompt,
    build_position_prompt,
    build_synthesis_prompt,
    build_title_prompt,
    clean_remark,
    short_title,
)
from .share import format_share_text
from .streaming import StreamingPresenter
from .tarot_core import (
    SPREAD_POSITIONS,
    BackendUnavailable,
    Card,
    DeckExhaustedError,
    DrawnCard,
    GenerationFailed,
    Message,
    PersistenceFailed,
    Phase,
    Position,
    Session,
    ValidationError,
    bind_positions,
    draw_cards,
    make_rng,
    phase_label,
)

logger = logging.getLogger(__name__)

FALLBACK_OPENING = "I can feel what is on your mind. Let me shuffle the cards."
FALLBACK_INTERPRETATION = "An error occurred while interpreting the card."
FALLBACK_SUMMARY = "An error occurred while preparing the overall reading."
FALLBACK_ADVICE = "An error occurred while preparing your advice."
FALLBACK_FORTUNE = "An error occurred while preparing your fortune tip."
DECK_EXHAUSTED_MESSAGE = "There are no more cards to draw!"
SHUFFLING_STATUS = "Shuffling the cards..."

_ORDINALS = ["First", "Second", "Third"]


@dataclass(frozen=True)
class Timings:
    """Pauses between steps, in seconds."""
    stream_interval: float = config.STREAM_INTERVAL
    greeting: float = config.GREETING_DELAY
    draw: float = config.DRAW_DELAY
    shuffle: float = config.SHUFFLE_DELAY
    reveal: float = config.REVEAL_DELAY
    advance: float = config.ADVANCE_DELAY


INSTANT = Timings(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


class _StaleSession(Exception):
    """The session a pending step belongs to was reset."""


class ReadingOrchestrator:
    def __init__(
        self,
        deck_provider: DeckProvider,
        generator: TextGenerator,
        visitor: Visitor,
        *,
        deck_id: str = config.CARD_TYPE,
        archiver: Optional[SessionArchiver] = None,
        timings: Timings = Timings(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        seed: Optional[Union[int, str]] = None,
        on_change: Optional[Callable[[Session], None]] = None,
    ) -> None:
        self.deck_provider = deck_provider
        self.generator = generator
        self.visitor = visitor
        self.deck_id = deck_id
        self.archiver = archiver
        self.timings = timings
        self.sleep = sleep
        self.rng = make_rng(seed)
        self.on_change = on_change
        self.presenter = StreamingPresenter(timings.stream_interval, sleep)

        self.deck: List[Card] = []
        self._generation = 0
        self._busy_gen: Optional[int] = None
        self.session = Session(phase_history=[Phase.IDLE.value])

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def user_name(self) -> str:
        return self.visitor.user_name or "Guest"

    @property
    def greeting_phase(self) -> GreetingPhase:
        return self.visitor.greeting_phase

    @property
    def deck_ready(self) -> bool:
        return bool(self.deck)

    @property
    def busy(self) -> bool:
        return self._busy_gen is not None

    @property
    def followups_available(self) -> bool:
        return self.session.phase is Phase.COMPLETE and self.session.finalized and not self.busy

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.session)

    def _check(self, gen: int) -> None:
        if gen != self._generation:
            raise _StaleSession(gen)

    def _enter(self, phase: Phase, index: Optional[int] = None) -> None:
        s = self.session
        if index is not None:
            s.interpretation_index = index
        s.phase = phase
        s.phase_history.append(phase_label(phase, s.interpretation_index))
        logger.debug("Phase -> %s", s.phase_label)
        self._notify()

    def _append(self, gen: int, content: str, role: str = "assistant") -> None:
        self._check(gen)
        self.session.messages.append(Message(role=role, content=content))
        self._notify()

    async def _pause(self, gen: int, seconds: float) -> None:
        await self.sleep(seconds)
        self._check(gen)

    def _on_prefix(self, gen: int, prefix: str) -> None:
        if gen == self._generation:
            self.session.streaming_text = prefix
            self._notify()

    async def _generate(self, gen: int, prompt: str, options: GenerationOptions) -> str:
        """Single attempt; raises GenerationFailed, or _StaleSession if reset meanwhile."""
        self._check(gen)
        try:
            text = await self.generator.generate(prompt, options)
        except GenerationFailed:
            self._check(gen)
            raise
        self._check(gen)
        return text

    async def _generate_and_stream(
        self, gen: int, prompt: str, options: GenerationOptions, fallback: str
    ) -> bool:
        """Generate, stream, append. On failure append `fallback` and return False."""
        try:
            text = await self._generate(gen, prompt, options)
        except GenerationFailed as e:
            logger.warning("Generation failed: %s", e)
            self.session.streaming_text = ""
            self._append(gen, fallback)
            return False

        await self.presenter.present(text, lambda prefix: self._on_prefix(gen, prefix))
        self._check(gen)
        self.session.streaming_text = ""
        self._append(gen, text)
        return True

    async def _guarded(self, gen: int, step: Awaitable[Any]) -> Any:
        """Run one public step for session `gen`; stale completions become no-ops."""
        self._busy_gen = gen
        try:
            return await step
        except _StaleSession:
            logger.info("Discarded result for reset session #%d", gen)
            return None
        finally:
            if self._busy_gen == gen:
                self._busy_gen = None

    # ------------------------------------------------------------------
    # Deck
    # ------------------------------------------------------------------

    async def load_deck(self) -> bool:
        """Load the deck once per process; False when unavailable or empty."""
        if self.deck:
            return True
        try:
            cards = await asyncio.to_thread(self.deck_provider.list_cards, self.deck_id)
        except BackendUnavailable as e:
            logger.error("Loading deck %s failed: %s", self.deck_id, e)
            return False
        self.deck = list(cards)
        if not self.deck:
            logger.warning("Deck %s is empty", self.deck_id)
        return self.deck_ready

    # ------------------------------------------------------------------
    # Reading flow
    # ------------------------------------------------------------------

    async def start_reading(self, concern: str) -> Session:
        """
        Start a reading and run it until COMPLETE or until a step fails.

        Raises ValidationError, without touching the session, for a blank
        concern, a deck too small for the spread or a reading already in
        progress.
        """
        concern = (concern or "").strip()
        if not concern:
            raise ValidationError("Please enter your concern.")
        if not self.deck:
            raise ValidationError("The cards are still loading. Please try again shortly.")
        if len({c.id for c in self.deck}) < len(SPREAD_POSITIONS):
            raise ValidationError(
                f"This deck has too few cards for a {len(SPREAD_POSITIONS)}-card reading."
            )
        if self.session.phase is not Phase.IDLE or self.busy:
            raise ValidationError("A reading is already in progress.")

        self._generation += 1
        gen = self._generation
        self.session = Session(
            generation=gen,
            concern=concern,
            title=short_title(concern),
            phase_history=[Phase.IDLE.value],
        )
        await self._guarded(gen, self._run_opening(gen))
        return self.session

    async def _run_opening(self, gen: int) -> None:
        s = self.session
        self._enter(Phase.OPENING)
        self._append(gen, s.concern, role="user")

        try:
            title = await self._generate(gen, build_title_prompt(s.concern), DEFAULT_OPTIONS)
            s.display_title = clean_remark(title)[:TITLE_LENGTH]
        except GenerationFailed as e:
            logger.info("Title summary unavailable: %s", e)
            s.display_title = s.concern[:TITLE_LENGTH]

        try:
            remark = clean_remark(
                await self._generate(gen, build_opening_prompt(s.concern), DEFAULT_OPTIONS)
            )
        except GenerationFailed as e:
            logger.info("Opening remark unavailable: %s", e)
            remark = FALLBACK_OPENING
        self._append(gen, remark or FALLBACK_OPENING)

        await self._pause(gen, self.timings.greeting)
        self._append(gen, f"{self.user_name}, your tarot reading begins.")
        await self._pause(gen, self.timings.draw)

        self._enter(Phase.SHUFFLING)
        s.status = SHUFFLING_STATUS
        self._notify()
        await self._pause(gen, self.timings.shuffle)
        s.drawn = bind_positions(draw_cards(self.deck, len(SPREAD_POSITIONS), self.rng))
        s.status = ""
        logger.info("Drew %s", ", ".join(s.drawn_names))

        await self._pause(gen, self.timings.draw)
        await self._advance(gen, 0)

    async def _advance(self, gen: int, start: int) -> None:
        """Reveal and interpret spread cards from `start`, then summarize."""
        s = self.session
        for i in range(start, len(SPREAD_POSITIONS)):
            self._enter(Phase.REVEALING, i)
            self._append(gen, f"{_ORDINALS[i]} card: {s.drawn[i].card.name}")
            await self._pause(gen, self.timings.reveal)

            if not await self._interpret(gen, i):
                return
            await self._pause(gen, self.timings.advance)
        await self._summarize(gen)

    async def _interpret(self, gen: int, index: int) -> bool:
        s = self.session
        self._enter(Phase.INTERPRETING, index)
        card = s.drawn[index]
        prompt = build_position_prompt(card.position, s.concern, self.user_name, s.drawn[: index + 1])
        ok = await self._generate_and_stream(gen, prompt, INTERPRETATION_OPTIONS, FALLBACK_INTERPRETATION)
        s.halted = not ok
        return ok

    async def _summarize(self, gen: int) -> None:
        s = self.session
        self._enter(Phase.SUMMARIZING)
        prompt = build_synthesis_prompt(s.concern, self.user_name, s.drawn)
        if not await self._generate_and_stream(gen, prompt, SYNTHESIS_OPTIONS, FALLBACK_SUMMARY):
            s.halted = True
            return
        s.halted = False
        s.finalized = True
        self._enter(Phase.COMPLETE)

    async def resume(self) -> bool:
        """Retry the step that failed and continue the automatic flow."""
        s = self.session
        if not s.halted or self.busy:
            return False
        s.halted = False
        gen = self._generation
        await self._guarded(gen, self._resume(gen))
        return self.session.generation == gen and not self.session.halted

    async def _resume(self, gen: int) -> None:
        s = self.session
        if s.phase is Phase.SUMMARIZING:
            await self._summarize(gen)
            return
        index = s.interpretation_index
        if await self._interpret(gen, index):
            await self._pause(gen, self.timings.advance)
            await self._advance(gen, index + 1)

    # ------------------------------------------------------------------
    # Follow-up actions (COMPLETE only; phase never changes)
    # ------------------------------------------------------------------

    async def draw_supplementary(self) -> Union[DrawnCard, DeckExhaustedError, None]:
        """
        Draw one more undrawn card and interpret it.

        Returns the DeckExhaustedError (after telling the user) when no card is
        left, and None when follow-ups are not available.
        """
        if not self.followups_available:
            return None
        gen = self._generation
        return await self._guarded(gen, self._supplementary(gen))

    async def _supplementary(self, gen: int) -> Union[DrawnCard, DeckExhaustedError]:
        s = self.session
        try:
            card = draw_cards(self.deck, 1, self.rng, exclude=s.drawn_ids)[0]
        except DeckExhaustedError as e:
            logger.info("Supplementary draw refused: %s", e)
            self._append(gen, DECK_EXHAUSTED_MESSAGE)
            return e

        drawn = bind_positions([card], start_index=len(s.drawn))[0]
        s.drawn.append(drawn)
        extra_no = len(s.drawn) - len(SPREAD_POSITIONS)
        self._append(gen, f"Extra card {extra_no}: {card.name}")

        prompt = build_position_prompt(Position.SUPPLEMENTARY, s.concern, self.user_name, s.drawn)
        await self._generate_and_stream(gen, prompt, SHORT_OPTIONS, FALLBACK_INTERPRETATION)
        return drawn

    async def give_advice(self) -> bool:
        if not self.followups_available:
            return False
        s = self.session
        gen = self._generation
        prompt = build_advice_prompt(s.concern, self.user_name, s.drawn)
        return bool(await self._guarded(
            gen, self._generate_and_stream(gen, prompt, SHORT_OPTIONS, FALLBACK_ADVICE)
        ))

    async def give_fortune(self) -> bool:
        if not self.followups_available:
            return False
        gen = self._generation
        prompt = build_fortune_prompt(self.user_name, self.session.drawn)
        return bool(await self._guarded(
            gen, self._generate_and_stream(gen, prompt, SHORT_OPTIONS, FALLBACK_FORTUNE)
        ))

    def share_text(self) -> Optional[str]:
        if self.session.phase is not Phase.COMPLETE:
            return None
        return format_share_text(self.session, self.deck_id)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def reset(self) -> Optional[Any]:
        """
        Return to IDLE, then archive the old reading if any card was drawn.

        An in-flight generation call is not aborted; its late result is
        discarded. Archive failures are logged and never block the reset.
        """
        old = self.session
        self._generation += 1
        self._busy_gen = None
        self.presenter.cancel()
        # IDLE before the archive await so no action can start on `old`
        self.session = Session(generation=self._generation, phase_history=[Phase.IDLE.value])
        self._notify()

        archived_id = None
        if old.drawn and self.archiver is not None:
            try:
                archived_id = await asyncio.to_thread(
                    self.archiver.save_session,
                    self.visitor.user_id,
                    self.user_name,
                    old.concern,
                    old.title,
                    old.drawn_names,
                    datetime.now(timezone.utc),
                )
            except PersistenceFailed as e:
                logger.error("Archiving reading failed: %s", e)
        return archived_id
