"""Plain-text export of a reading for the "share" follow-up."""

from __future__ import annotations

from .tarot_core import Session

SHARE_TITLE = "🔮 Tarot reading"


def format_share_text(session: Session, deck_name: str = "tarot") -> str:
    conversation = "\n\n".join(m.content for m in session.assistant_messages())
    tag = deck_name.replace(" ", "")
    return (
        f"{SHARE_TITLE}\n\n"
        f"📝 Concern: {session.concern}\n\n"
        f"🃏 Cards drawn: {', '.join(session.drawn_names)}\n\n"
        f"💬 Reading:\n{conversation}\n\n"
        f"#tarot #tarotreading #{tag}"
    )
