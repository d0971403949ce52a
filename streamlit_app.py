# streamlit_app.py — Chat UI for a tarot reading session
# Run:  streamlit run streamlit_app.py

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Optional

import streamlit as st

# Ensure repo root is importable (so `tarot_session` can be imported in all environments)
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from tarot_session import config  # noqa: E402
from tarot_session.archive import SupabaseArchiver  # noqa: E402
from tarot_session.deck import default_provider  # noqa: E402
from tarot_session.identity import GreetingPhase, IdentityService, JsonFileStore  # noqa: E402
from tarot_session.llm import GeminiClient  # noqa: E402
from tarot_session.orchestrator import ReadingOrchestrator  # noqa: E402
from tarot_session.tarot_core import Phase, Session, ValidationError  # noqa: E402

logging.basicConfig(level=config.LOG_LEVEL)

# -----------------------------
# Page setup
# -----------------------------
st.set_page_config(
    page_title="Tarot Session",
    page_icon="🔮",
    layout="centered",
)

# -----------------------------
# One identity / orchestrator per browser session
# -----------------------------
if "orchestrator" not in st.session_state:
    identity = IdentityService(JsonFileStore(config.STATE_FILE), config.CARD_TYPE)
    visitor = identity.resolve(new_visit=True)
    archiver: Optional[SupabaseArchiver] = None
    if config.SUPABASE_URL and config.SUPABASE_ANON_KEY:
        archiver = SupabaseArchiver(config.CARD_TYPE)
    orch = ReadingOrchestrator(
        default_provider(config.CARD_TYPE),
        GeminiClient(),
        visitor,
        deck_id=config.CARD_TYPE,
        archiver=archiver,
    )
    asyncio.run(orch.load_deck())
    st.session_state["identity"] = identity
    st.session_state["archiver"] = archiver
    st.session_state["orchestrator"] = orch
    st.session_state["step"] = visitor.greeting_phase.value

orch: ReadingOrchestrator = st.session_state["orchestrator"]
identity: IdentityService = st.session_state["identity"]


def run_action(coro) -> None:
    """Run one orchestrator step, streaming into a placeholder as it goes."""
    live = st.empty()

    def render_live(session: Session) -> None:
        if session.streaming_text:
            live.markdown(f"🔮 {session.streaming_text}▌")
        elif session.status:
            live.info(session.status)
        elif session.messages:
            live.markdown(f"🔮 {session.messages[-1].content}")

    orch.on_change = render_live
    try:
        asyncio.run(coro)
    finally:
        orch.on_change = None
    st.rerun()


st.title(f"🔮 {config.CARD_TYPE} Tarot")

if not orch.deck_ready:
    st.warning("Card data could not be loaded. Please try again later.")

# -----------------------------
# Name input (first visit ever)
# -----------------------------
step = st.session_state["step"]

if step == GreetingPhase.NAME_INPUT.value:
    st.subheader("Welcome!")
    st.caption("Your first visit. Please tell us your name before the reading.")
    name = st.text_input("Your name", placeholder="Enter your name")
    if st.button("Start", use_container_width=True):
        try:
            visitor = identity.save_name(name)
        except ValidationError as e:
            st.error(str(e))
        else:
            orch.visitor = visitor
            archiver = st.session_state.get("archiver")
            if archiver is not None:
                archiver.register_user(visitor.user_id, visitor.user_name, visitor.visit_count)
            st.session_state["step"] = "input"
            st.rerun()
    st.caption("Your name is stored locally and remembered on your next visit.")

# -----------------------------
# Welcome (first visit to this deck)
# -----------------------------
elif step == GreetingPhase.WELCOME.value:
    st.subheader(f"{orch.visitor.user_name}, welcome! 🎉")
    st.write(f"This is your first visit to the {config.CARD_TYPE} deck. Find a new insight today.")
    if st.button("Start a reading", use_container_width=True):
        st.session_state["step"] = "input"
        st.rerun()

# -----------------------------
# Concern input / consultation
# -----------------------------
else:
    session = orch.session
    if session.phase is Phase.IDLE:
        st.subheader(orch.visitor.greeting())
        if orch.deck_ready:
            st.caption(f"{len(orch.deck)} cards ready")
        concern = st.text_area("What is on your mind today?", height=100)
        if st.button("Start the reading", use_container_width=True, disabled=not orch.deck_ready):
            try:
                run_action(orch.start_reading(concern))
            except ValidationError as e:
                st.error(str(e))

        archiver = st.session_state.get("archiver")
        if archiver is not None:
            past = archiver.list_sessions(orch.visitor.user_id)
            if past:
                with st.expander("Past readings"):
                    for row in past:
                        st.markdown(f"**{row.get('title')}** · {row.get('cards_drawn')}")
    else:
        if st.button("← New reading"):
            run_action(orch.reset())

        if session.display_title:
            st.caption(session.display_title)
        if session.drawn:
            st.markdown(
                f"**Cards drawn ({len(session.drawn)})**: "
                + " · ".join(d.card.name for d in session.drawn)
            )

        for m in session.messages:
            with st.chat_message(m.role):
                st.markdown(m.content)

        if session.halted:
            if st.button("Try again", use_container_width=True):
                run_action(orch.resume())

        if orch.followups_available:
            c1, c2, c3 = st.columns(3)
            with c1:
                if st.button("Extra card", use_container_width=True):
                    run_action(orch.draw_supplementary())
            with c2:
                if st.button("Advice", use_container_width=True):
                    run_action(orch.give_advice())
            with c3:
                if st.button("Fortune", use_container_width=True):
                    run_action(orch.give_fortune())

            share_text = orch.share_text()
            if share_text:
                with st.expander("📤 Share"):
                    st.code(share_text, language=None)

            if st.button("🔄 Another reading", use_container_width=True):
                run_action(orch.reset())
