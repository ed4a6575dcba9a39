from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_gemini_client
from ..errors import GenerationError
from ..gemini_client import GeminiClient
from ..schemas import ChatMessage
from ..store import load_chat, load_progress, reset_chat, save_chat
from ..vocab_service import tutor_reply


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

CONNECTION_ERROR_REPLY = "I encountered a connection error. Please check the API key and try again."


class SendRequest(BaseModel):
    message: str


@router.get("", response_model=List[ChatMessage])
async def history(db: Session = Depends(get_db)):
    return load_chat(db)


@router.post("", response_model=List[ChatMessage])
async def send(
    req: SendRequest,
    db: Session = Depends(get_db),
    client: GeminiClient = Depends(get_gemini_client),
):
    text = req.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message must not be empty.")
    prior = load_chat(db)
    mastered = [i.word for i in load_progress(db).mastered_items]
    messages = prior + [ChatMessage(role="user", text=text)]
    try:
        reply = await tutor_reply(client, mastered, prior, text)
    except GenerationError as exc:
        logger.error("Tutor reply failed: %s", exc)
        # Close the user turn so the stored history keeps alternating roles
        messages.append(ChatMessage(role="model", text=CONNECTION_ERROR_REPLY))
        save_chat(db, messages)
        raise HTTPException(status_code=502, detail="The coach is unavailable right now. Please try again.")
    messages.append(ChatMessage(role="model", text=reply))
    save_chat(db, messages)
    return messages


@router.delete("", response_model=List[ChatMessage])
async def clear(db: Session = Depends(get_db)):
    return reset_chat(db)
