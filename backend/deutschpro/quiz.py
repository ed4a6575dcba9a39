from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from .schemas import QuizResults, QuizSession, VocabItem
from .settings import settings

logger = logging.getLogger(__name__)


def new_session(level: str, items: List[VocabItem]) -> QuizSession:
    return QuizSession(level=level, items=list(items))


def _classified_ids(session: QuizSession) -> set[str]:
    return {i.id for i in session.results.mastered} | {i.id for i in session.results.to_study}


def current_item(session: QuizSession) -> Optional[VocabItem]:
    done = _classified_ids(session)
    for item in session.items:
        if item.id not in done:
            return item
    return None


def is_complete(session: QuizSession) -> bool:
    return current_item(session) is None


def answered_count(session: QuizSession) -> int:
    return len(session.results.mastered) + len(session.results.to_study)


def classify(session: QuizSession, item_id: str, mastered: bool) -> QuizSession:
    """Return a new session with ``item_id`` marked mastered or to-study."""
    item = next((i for i in session.items if i.id == item_id), None)
    if item is None:
        raise KeyError(item_id)
    if item_id in _classified_ids(session):
        raise ValueError(f"Item {item_id} already answered")
    results = session.results
    if mastered:
        results = QuizResults(mastered=results.mastered + [item], to_study=list(results.to_study))
    else:
        results = QuizResults(mastered=list(results.mastered), to_study=results.to_study + [item])
    return session.model_copy(update={"results": results})


# Sessions live only in process memory until folded into progress.
# Insertion order doubles as age order for eviction.
_sessions: Dict[str, Tuple[float, QuizSession]] = {}


def _expired(started: float, now: float) -> bool:
    return now - started > settings.quiz_session_ttl_minutes * 60


def prune(now: Optional[float] = None) -> int:
    """Drop expired sessions, then the oldest ones beyond the cap. Returns how many went."""
    now = time.time() if now is None else now
    stale = [sid for sid, (started, _) in _sessions.items() if _expired(started, now)]
    overflow = len(_sessions) - len(stale) - settings.quiz_max_sessions
    if overflow > 0:
        stale += [sid for sid in _sessions if sid not in stale][:overflow]
    for sid in stale:
        del _sessions[sid]
    if stale:
        logger.info("Dropped %d abandoned quiz sessions", len(stale))
    return len(stale)


def register(session: QuizSession, now: Optional[float] = None) -> QuizSession:
    now = time.time() if now is None else now
    _sessions[session.id] = (now, session)
    prune(now)
    return session


def get_session(session_id: str, now: Optional[float] = None) -> Optional[QuizSession]:
    entry = _sessions.get(session_id)
    if entry is None:
        return None
    started, session = entry
    if _expired(started, time.time() if now is None else now):
        del _sessions[session_id]
        return None
    return session


def replace(session: QuizSession) -> None:
    entry = _sessions.get(session.id)
    if entry is not None:
        _sessions[session.id] = (entry[0], session)


def discard(session_id: str) -> None:
    _sessions.pop(session_id, None)


def clear() -> None:
    _sessions.clear()
