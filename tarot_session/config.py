"""
config.py — Environment-driven settings for tarot_session.

All values come from the process environment (optionally a local .env file).
Missing credentials are reported, not raised, so the package stays importable
for offline use with the built-in deck.
"""

from __future__ import annotations

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

# -----------------------------------------------------------------------------
# Text generation (Gemini)
# -----------------------------------------------------------------------------
GEMINI_TOKEN = os.getenv("GEMINI_TOKEN")
DEFAULT_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

# -----------------------------------------------------------------------------
# Remote store (Supabase)
# -----------------------------------------------------------------------------
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")

# Deck identity; "rws" is served by the built-in Major Arcana deck
CARD_TYPE = os.getenv("CARD_TYPE", "rws")

# -----------------------------------------------------------------------------
# Local key-value persistence (user id, name, visit counters)
# -----------------------------------------------------------------------------
STATE_FILE = os.getenv("TAROT_STATE_FILE", os.path.expanduser("~/.tarot_session.json"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# -----------------------------------------------------------------------------
# Pacing (seconds)
# -----------------------------------------------------------------------------
STREAM_INTERVAL = float(os.getenv("STREAM_INTERVAL", "0.02"))
GREETING_DELAY = float(os.getenv("GREETING_DELAY", "1.0"))
DRAW_DELAY = float(os.getenv("DRAW_DELAY", "1.0"))
SHUFFLE_DELAY = float(os.getenv("SHUFFLE_DELAY", "2.0"))
REVEAL_DELAY = float(os.getenv("REVEAL_DELAY", "1.0"))
ADVANCE_DELAY = float(os.getenv("ADVANCE_DELAY", "1.5"))


def missing_settings() -> List[str]:
    """Names of credentials that are not set."""
    required = {
        "GEMINI_TOKEN": GEMINI_TOKEN,
        "SUPABASE_URL": SUPABASE_URL,
        "SUPABASE_ANON_KEY": SUPABASE_ANON_KEY,
    }
    return [name for name, value in required.items() if not value]
