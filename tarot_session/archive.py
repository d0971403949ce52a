"""
archive.py — Session Archiver (remote store writes and history reads).

Write-only from the orchestrator's perspective: save_session() raises
PersistenceFailed and the caller logs and moves on.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .deck import create_supabase_client
from .tarot_core import PersistenceFailed

logger = logging.getLogger(__name__)

VERSION_TYPE = "free"


class SessionArchiver(Protocol):
    def save_session(
        self,
        user_id: str,
        user_name: str,
        concern: str,
        title: str,
        drawn_card_names: Sequence[str],
        timestamp: datetime,
    ) -> Any:
        ...


class SupabaseArchiver:
    """
    Persists readings to `consultations` and first-time users to `free_users`.
    Every row is tagged with the deck identity (`card_type`).
    """

    def __init__(self, deck_id: str, client: Any = None) -> None:
        self.deck_id = deck_id
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = create_supabase_client()
        return self._client

    def save_session(
        self,
        user_id: str,
        user_name: str,
        concern: str,
        title: str,
        drawn_card_names: Sequence[str],
        timestamp: Optional[datetime] = None,
    ) -> Any:
        row = {
            "free_user_id": user_id,
            "free_user_name": user_name,
            "version_type": VERSION_TYPE,
            "card_type": self.deck_id,
            "title": title,
            "concern": concern,
            "cards_drawn": ", ".join(drawn_card_names),
            "created_at": (timestamp or datetime.now(timezone.utc)).isoformat(),
        }
        try:
            resp = self.client.table("consultations").insert(row).execute()
        except Exception as e:
            raise PersistenceFailed(f"{type(e).__name__}: {e}") from e

        data = resp.data or []
        if not data:
            raise PersistenceFailed("Insert returned no row")
        session_id = data[0].get("id")
        logger.info("Session archived (%s): %s", self.deck_id, session_id)
        return session_id

    def register_user(self, user_id: str, name: str, visit_count: int = 1) -> bool:
        """Record a first-time visitor; failures are logged, never raised."""
        row = {
            "free_user_id": user_id,
            "name": name,
            "visit_count": visit_count,
            "card_type": self.deck_id,
        }
        try:
            self.client.table("free_users").insert(row).execute()
        except Exception as e:
            logger.error("Saving user %s failed: %s: %s", user_id, type(e).__name__, e)
            return False
        logger.info("User saved (%s): %s", self.deck_id, user_id)
        return True

    def list_sessions(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent archived readings for this user and deck, newest first."""
        try:
            resp = (
                self.client.table("consultations")
                .select("*")
                .eq("free_user_id", user_id)
                .eq("version_type", VERSION_TYPE)
                .eq("card_type", self.deck_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("Loading past sessions failed: %s: %s", type(e).__name__, e)
            return []
        return list(resp.data or [])
