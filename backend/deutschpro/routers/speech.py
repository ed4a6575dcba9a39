from __future__ import annotations

import binascii
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..audio import PlaybackGuard, decode_base64, pcm_to_wav
from ..db import get_db
from ..deps import get_gemini_client, get_playback_guard
from ..gemini_client import GeminiClient
from ..progress import get_item
from ..schemas import speech_text
from ..store import load_progress
from ..vocab_service import generate_speech


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/speech", tags=["speech"])


class SpeakRequest(BaseModel):
    text: Optional[str] = None
    # When set, the lexicon entry's headword (with article for nouns) is spoken
    item_id: Optional[str] = None


@router.post("", responses={200: {"content": {"audio/wav": {}}}, 204: {"description": "Dropped"}})
async def speak(
    req: SpeakRequest,
    db: Session = Depends(get_db),
    client: GeminiClient = Depends(get_gemini_client),
    guard: PlaybackGuard = Depends(get_playback_guard),
):
    text = (req.text or "").strip()
    if req.item_id:
        item = get_item(load_progress(db), req.item_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Item not found in lexicon")
        text = speech_text(item, text or None)
    if not text:
        raise HTTPException(status_code=400, detail="Nothing to speak.")

    if not guard.try_acquire(req.item_id or text):
        return Response(status_code=204)
    try:
        encoded = await generate_speech(client, text)
        if not encoded:
            return Response(status_code=204)
        try:
            pcm = decode_base64(encoded)
        except (binascii.Error, ValueError) as exc:
            logger.warning("Speech payload was not valid base64: %s", exc)
            return Response(status_code=204)
        return Response(content=pcm_to_wav(pcm), media_type="audio/wav")
    finally:
        guard.release()
