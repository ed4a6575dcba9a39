from __future__ import annotations

import logging
import random
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_gemini_client
from ..errors import DuplicateItemError
from ..gemini_client import GeminiClient
from ..progress import add_item, delete_item, filter_items, get_item, review_item
from ..schemas import UserProgress, VocabItem
from ..store import load_progress, update_progress
from ..vocab_service import fetch_word_details


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lexicon", tags=["lexicon"])


class LexiconView(BaseModel):
    tab: str
    search: str
    items: List[VocabItem]
    total: int


class AddWordRequest(BaseModel):
    word: str


class ReviewRequest(BaseModel):
    item_id: str
    correct: bool


@router.get("", response_model=LexiconView)
async def list_items(
    tab: Literal["ALL", "MASTERED", "LEARNING"] = "ALL",
    search: str = Query(default=""),
    db: Session = Depends(get_db),
):
    progress = load_progress(db)
    items = filter_items(progress, tab, search)
    return LexiconView(
        tab=tab,
        search=search,
        items=items,
        total=len(progress.mastered_items) + len(progress.learning_items),
    )


@router.post("/words", response_model=VocabItem, status_code=201)
async def add_word(
    req: AddWordRequest,
    db: Session = Depends(get_db),
    client: GeminiClient = Depends(get_gemini_client),
):
    word = req.word.strip()
    if not word:
        raise HTTPException(status_code=400, detail="Please enter a word.")
    details = await fetch_word_details(client, word)
    if details is None:
        raise HTTPException(status_code=502, detail="Could not connect to Philologist. Please try again.")
    if not details.exists:
        raise HTTPException(status_code=422, detail="No such word exists in German")
    item = VocabItem.model_validate(details.model_dump(exclude={"exists"}))
    try:
        update_progress(db, lambda prev: add_item(prev, item))
    except DuplicateItemError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    logger.info("Added %s (%s, %s) to lexicon", item.word, item.type, item.level)
    return item


@router.delete("/words/{item_id}", response_model=UserProgress)
async def remove_word(item_id: str, db: Session = Depends(get_db)):
    return update_progress(db, lambda prev: delete_item(prev, item_id))


@router.post("/review/start", response_model=List[VocabItem])
async def start_review(
    tab: Literal["ALL", "MASTERED", "LEARNING"] = "ALL",
    search: str = Query(default=""),
    db: Session = Depends(get_db),
):
    items = filter_items(load_progress(db), tab, search)
    random.shuffle(items)
    return items


@router.post("/review", response_model=UserProgress)
async def review(req: ReviewRequest, db: Session = Depends(get_db)):
    item = get_item(load_progress(db), req.item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found in lexicon")
    return update_progress(db, lambda prev: review_item(prev, item, req.correct))
