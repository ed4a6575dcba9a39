from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import quiz as sessions
from ..db import get_db
from ..deps import get_gemini_client
from ..errors import BackendUnavailableError
from ..gemini_client import GeminiClient
from ..progress import finalize_session, known_words
from ..schemas import Level, QuizSession, UserProgress, VocabItem
from ..settings import settings
from ..store import load_progress, update_progress
from ..vocab_service import fetch_quiz_batch


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quiz", tags=["quiz"])


class StartRequest(BaseModel):
    level: Level
    count: Optional[int] = Field(default=None, ge=1, description="Batch size (50, 75 or 100 in the UI)")


class SessionView(BaseModel):
    session: QuizSession
    current: Optional[VocabItem]
    progress_current: int
    progress_total: int


class AnswerRequest(BaseModel):
    item_id: str
    mastered: bool


class AnswerResponse(BaseModel):
    finished: bool
    progress_current: int
    progress_total: int
    current: Optional[VocabItem] = None
    mastered: List[VocabItem] = Field(default_factory=list)
    to_study: List[VocabItem] = Field(default_factory=list)
    progress: Optional[UserProgress] = None


def _view(session: QuizSession) -> SessionView:
    return SessionView(
        session=session,
        current=sessions.current_item(session),
        progress_current=sessions.answered_count(session),
        progress_total=len(session.items),
    )


@router.post("/start", response_model=SessionView)
async def start(
    req: StartRequest,
    db: Session = Depends(get_db),
    client: GeminiClient = Depends(get_gemini_client),
):
    count = req.count or settings.quiz_default_size
    if count > settings.quiz_max_size:
        raise HTTPException(status_code=400, detail=f"count must be at most {settings.quiz_max_size}")
    exclude = known_words(load_progress(db))
    try:
        batch = await fetch_quiz_batch(client, req.level, count, exclude)
    except BackendUnavailableError as exc:
        logger.error("Failed to start quiz: %s", exc)
        raise HTTPException(status_code=503, detail="Failed to connect to active vocab engine.")
    if not batch:
        raise HTTPException(status_code=502, detail="Philologist returned empty word set. Please try again.")
    session = sessions.register(sessions.new_session(req.level, batch))
    logger.info("Started %s quiz %s with %d items", req.level, session.id, len(batch))
    return _view(session)


@router.get("/{session_id}", response_model=SessionView)
async def get_session(session_id: str):
    session = sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return _view(session)


@router.post("/{session_id}/answer", response_model=AnswerResponse)
async def answer(session_id: str, req: AnswerRequest, db: Session = Depends(get_db)):
    session = sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    try:
        session = sessions.classify(session, req.item_id, req.mastered)
    except KeyError:
        raise HTTPException(status_code=400, detail="Unknown item_id for this session")
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    if not sessions.is_complete(session):
        sessions.replace(session)
        return AnswerResponse(
            finished=False,
            progress_current=sessions.answered_count(session),
            progress_total=len(session.items),
            current=sessions.current_item(session),
        )

    results = session.results
    progress = update_progress(db, lambda prev: finalize_session(prev, results.mastered, results.to_study))
    sessions.discard(session.id)
    logger.info(
        "Quiz %s finished: %d mastered, %d to study",
        session.id,
        len(results.mastered),
        len(results.to_study),
    )
    return AnswerResponse(
        finished=True,
        progress_current=len(session.items),
        progress_total=len(session.items),
        mastered=results.mastered,
        to_study=results.to_study,
        progress=progress,
    )


@router.delete("/{session_id}", status_code=204)
async def abandon(session_id: str):
    sessions.discard(session_id)
