"""
identity.py — Local user identity and per-deck visit tracking.

Keys are namespaced by deck identity, except the user's name which is shared
by all decks:
  tarot_user_id_<deck>, tarot_visit_count_<deck>, tarot_user_name
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from .tarot_core import ValidationError

logger = logging.getLogger(__name__)

NAME_KEY = "tarot_user_name"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """Flat string map persisted as one JSON object."""

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self) -> Dict[str, Any]:
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        # write a sibling temp file, then swap it in
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)


class GreetingPhase(str, Enum):
    NAME_INPUT = "name_input"   # no saved name at all
    WELCOME = "welcome"         # name known, first visit to this deck
    RETURNING = "returning"     # this deck visited before


@dataclass(frozen=True)
class Visitor:
    user_id: str
    user_name: str
    visit_count: int

    @property
    def greeting_phase(self) -> GreetingPhase:
        if not self.user_name:
            return GreetingPhase.NAME_INPUT
        if self.visit_count > 1:
            return GreetingPhase.RETURNING
        return GreetingPhase.WELCOME

    def greeting(self) -> str:
        if self.greeting_phase is GreetingPhase.RETURNING:
            return f"{self.user_name}, welcome back!"
        return f"{self.user_name}, welcome!"


def new_user_id() -> str:
    return f"free_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class IdentityService:
    def __init__(self, store: KeyValueStore, deck_id: str) -> None:
        self.store = store
        self.deck_id = deck_id

    @property
    def _id_key(self) -> str:
        return f"tarot_user_id_{self.deck_id}"

    @property
    def _visit_key(self) -> str:
        return f"tarot_visit_count_{self.deck_id}"

    def user_id(self) -> str:
        uid = self.store.get(self._id_key)
        if not uid:
            uid = new_user_id()
            self.store.set(self._id_key, uid)
            logger.info("New user id (%s): %s", self.deck_id, uid)
        return uid

    def resolve(self, new_visit: bool = True) -> Visitor:
        """
        Identity for this deck. A new visit (a fresh app session) bumps the
        per-deck counter before it is reported.
        """
        uid = self.user_id()
        try:
            count = int(self.store.get(self._visit_key) or "0")
        except ValueError:
            count = 0
        if new_visit:
            count += 1
            self.store.set(self._visit_key, str(count))
        return Visitor(user_id=uid, user_name=self.store.get(NAME_KEY) or "", visit_count=count)

    def save_name(self, name: str) -> Visitor:
        name = name.strip()
        if not name:
            raise ValidationError("Please enter your name.")
        self.store.set(NAME_KEY, name)
        return self.resolve(new_visit=False)
