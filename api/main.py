# api/main.py
from __future__ import annotations

import logging
import os
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Allow starting from the repo root without installing
import sys, pathlib
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tarot_session import config
from tarot_session.archive import SupabaseArchiver
from tarot_session.deck import default_provider
from tarot_session.identity import IdentityService, JsonFileStore
from tarot_session.llm import GeminiClient
from tarot_session.orchestrator import ReadingOrchestrator
from tarot_session.tarot_core import DeckExhaustedError, Session, ValidationError

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("tarot_session.api")

# ---------- Pydantic Schemas ----------
class ReadingRequest(BaseModel):
    concern: str = Field(..., min_length=1, max_length=2000)
    user_name: Optional[str] = Field(None, max_length=50)

class CardView(BaseModel):
    id: str
    name: str
    position: str
    index: int

class MessageView(BaseModel):
    role: str
    content: str

class ReadingView(BaseModel):
    phase: str
    concern: str
    title: str
    display_title: str
    cards: List[CardView]
    messages: List[MessageView]
    finalized: bool
    halted: bool
    status: str
    followups_available: bool

class ResetResponse(BaseModel):
    archived_id: Optional[Any] = None
    reading: ReadingView

class HealthResponse(BaseModel):
    status: str
    version: str
    has_gemini_token: bool
    missing_settings: List[str]

# ---------- FastAPI app ----------
app = FastAPI(title="Tarot Session API", version="0.2.0")

# CORS for browser front-ends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_methods=["*"], allow_headers=["*"], allow_credentials=False
)

_orchestrator: Optional[ReadingOrchestrator] = None
_identity: Optional[IdentityService] = None


def get_identity() -> IdentityService:
    global _identity
    if _identity is None:
        _identity = IdentityService(JsonFileStore(config.STATE_FILE), config.CARD_TYPE)
    return _identity


def get_orchestrator() -> ReadingOrchestrator:
    """One reading per process."""
    global _orchestrator
    if _orchestrator is None:
        visitor = get_identity().resolve(new_visit=True)
        archiver = SupabaseArchiver(config.CARD_TYPE) if config.SUPABASE_URL and config.SUPABASE_ANON_KEY else None
        _orchestrator = ReadingOrchestrator(
            default_provider(config.CARD_TYPE),
            GeminiClient(),
            visitor,
            deck_id=config.CARD_TYPE,
            archiver=archiver,
        )
    return _orchestrator


def to_view(orch: ReadingOrchestrator) -> ReadingView:
    s: Session = orch.session
    return ReadingView(
        phase=s.phase_label,
        concern=s.concern,
        title=s.title,
        display_title=s.display_title,
        cards=[CardView(id=d.card.id, name=d.card.name, position=d.position.value, index=d.index) for d in s.drawn],
        messages=[MessageView(role=m.role, content=m.content) for m in s.messages],
        finalized=s.finalized,
        halted=s.halted,
        status=s.status,
        followups_available=orch.followups_available,
    )


def _require_followups(orch: ReadingOrchestrator) -> None:
    if not orch.followups_available:
        raise HTTPException(status_code=409, detail="Follow-up actions are available once the reading is complete.")


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="ok",
        version=app.version,
        has_gemini_token=bool(os.getenv("GEMINI_TOKEN")),
        missing_settings=config.missing_settings(),
    )

@app.get("/v1/deck")
async def get_deck(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    if not await orch.load_deck():
        raise HTTPException(status_code=503, detail="Card data could not be loaded. Please try again later.")
    return {
        "deck_id": orch.deck_id,
        "cards": [{"id": c.id, "name": c.name, "keyword": c.keyword, "ordinal": c.ordinal} for c in orch.deck],
    }

@app.get("/v1/reading", response_model=ReadingView)
def get_reading(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    return to_view(orch)

@app.post("/v1/readings", response_model=ReadingView)
async def create_reading(
    req: ReadingRequest,
    orch: ReadingOrchestrator = Depends(get_orchestrator),
    identity: IdentityService = Depends(get_identity),
):
    if not await orch.load_deck():
        raise HTTPException(status_code=503, detail="Card data could not be loaded. Please try again later.")
    if req.user_name and req.user_name.strip():
        try:
            orch.visitor = identity.save_name(req.user_name)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
    try:
        await orch.start_reading(req.concern)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return to_view(orch)

@app.post("/v1/reading/resume", response_model=ReadingView)
async def resume_reading(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    if not orch.session.halted:
        raise HTTPException(status_code=409, detail="Nothing to resume.")
    await orch.resume()
    return to_view(orch)

@app.post("/v1/reading/supplementary", response_model=ReadingView)
async def supplementary_card(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    _require_followups(orch)
    result = await orch.draw_supplementary()
    if isinstance(result, DeckExhaustedError):
        logger.info("Supplementary draw: deck exhausted")
    return to_view(orch)

@app.post("/v1/reading/advice", response_model=ReadingView)
async def advice(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    _require_followups(orch)
    await orch.give_advice()
    return to_view(orch)

@app.post("/v1/reading/fortune", response_model=ReadingView)
async def fortune(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    _require_followups(orch)
    await orch.give_fortune()
    return to_view(orch)

@app.get("/v1/reading/share")
def share(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    text = orch.share_text()
    if text is None:
        raise HTTPException(status_code=409, detail="Nothing to share yet.")
    return {"text": text}

@app.post("/v1/reading/reset", response_model=ResetResponse)
async def reset(orch: ReadingOrchestrator = Depends(get_orchestrator)):
    archived_id = await orch.reset()
    return ResetResponse(archived_id=archived_id, reading=to_view(orch))
