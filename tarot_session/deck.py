"""
deck.py — Card Deck Providers.

A provider returns the full, ordinal-ordered card list for one deck identity
(`card_type` in the remote store). Providers are read-only and stateless.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ValidationError as SchemaError
from supabase import create_client

from . import config
from .tarot_core import MAJOR_ARCANA, BackendUnavailable, Card

logger = logging.getLogger(__name__)


class DeckProvider(Protocol):
    def list_cards(self, deck_id: str) -> List[Card]:
        ...


class CardRow(BaseModel):
    """Row shape of the `tarot_cards` table."""
    card_id: str
    name: str
    keyword: str = ""
    meaning: str = ""
    card_num: int
    card_type: Optional[str] = None

    def to_card(self) -> Card:
        return Card(
            id=self.card_id,
            name=self.name,
            keyword=self.keyword,
            meaning=self.meaning,
            ordinal=self.card_num,
        )


def rows_to_cards(rows: List[Dict[str, Any]]) -> List[Card]:
    """Validate raw rows and return cards ordered by ordinal."""
    try:
        cards = [CardRow.model_validate(r).to_card() for r in rows]
    except SchemaError as e:
        raise BackendUnavailable(f"Malformed card row: {e}") from e
    return sorted(cards, key=lambda c: c.ordinal)


class StaticDeckProvider:
    """Built-in Major Arcana for offline use; only the "rws" identity is served."""

    def __init__(self, deck_id: str = "rws", cards: Optional[List[Card]] = None) -> None:
        self.deck_id = deck_id
        self.cards = list(cards if cards is not None else MAJOR_ARCANA)

    def list_cards(self, deck_id: str) -> List[Card]:
        if deck_id != self.deck_id:
            raise BackendUnavailable(f"Unsupported deck: {deck_id}")
        return sorted(self.cards, key=lambda c: c.ordinal)


class SupabaseDeckProvider:
    """Reads `tarot_cards` filtered by `card_type`, ordered by `card_num`."""

    table = "tarot_cards"

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = create_supabase_client()
        return self._client

    def list_cards(self, deck_id: str) -> List[Card]:
        try:
            resp = (
                self.client.table(self.table)
                .select("*")
                .eq("card_type", deck_id)
                .order("card_num")
                .execute()
            )
        except Exception as e:
            raise BackendUnavailable(f"{type(e).__name__}: {e}") from e

        cards = rows_to_cards(resp.data or [])
        logger.info("Loaded %d card(s) for deck %s", len(cards), deck_id)
        return cards


def create_supabase_client():
    """Build a Supabase client from settings; BackendUnavailable if unconfigured."""
    if not config.SUPABASE_URL or not config.SUPABASE_ANON_KEY:
        raise BackendUnavailable(
            "Missing SUPABASE_URL / SUPABASE_ANON_KEY in environment."
        )
    return create_client(config.SUPABASE_URL, config.SUPABASE_ANON_KEY)


def default_provider(deck_id: str) -> DeckProvider:
    """Supabase when configured, otherwise the built-in deck."""
    if config.SUPABASE_URL and config.SUPABASE_ANON_KEY:
        return SupabaseDeckProvider()
    logger.info("Supabase not configured; using built-in deck for %s", deck_id)
    return StaticDeckProvider()
