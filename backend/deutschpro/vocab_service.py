from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .errors import BackendUnavailableError, GenerationError
from .gemini_client import GeminiClient
from .json_repair import extract_json_object, parse_array, strip_code_fence
from .schemas import (
    GENDERS,
    LEVELS,
    WORD_TYPES,
    ChatMessage,
    VerbConjugation,
    VocabItem,
    WordLookup,
    new_item_id,
)
from .settings import settings


logger = logging.getLogger(__name__)


CEFR_GUIDELINES: Dict[str, str] = {
    "A1": "Absolute basics (Haus, Hund).",
    "A2": "Elementary level (Beruf, Wetter).",
    "B1": "Intermediate level (Erfahrung, Meinung).",
    "B2": "Upper-intermediate (Abstrakt, Politik).",
    "C1": "Advanced academic (Wissenschaft, Justiz).",
    "C2": "Mastery (Nuancen, Literatur).",
}

MAX_OUTPUT_TOKENS = 8192
TUTOR_FALLBACK_REPLY = "Entschuldigung, ich habe das nicht verstanden."


_CONJUGATION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "present3rd": {"type": "STRING"},
        "past": {"type": "STRING"},
        "pastParticiple": {"type": "STRING"},
    },
}

_ITEM_PROPERTIES: Dict[str, Any] = {
    "word": {"type": "STRING"},
    "translation": {"type": "STRING"},
    "type": {"type": "STRING", "enum": WORD_TYPES},
    "level": {"type": "STRING"},
    "example": {"type": "STRING"},
    "exampleTranslation": {"type": "STRING"},
    "gender": {"type": "STRING", "enum": GENDERS},
    "plural": {"type": "STRING"},
    "isIrregular": {"type": "BOOLEAN"},
    "conjugation": _CONJUGATION_SCHEMA,
    "cases": {"type": "ARRAY", "items": {"type": "STRING"}},
}

_ITEM_REQUIRED: List[str] = ["word", "translation", "type", "level", "example", "exampleTranslation"]

BATCH_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {"type": "OBJECT", "required": _ITEM_REQUIRED, "properties": _ITEM_PROPERTIES},
}

LOOKUP_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "required": _ITEM_REQUIRED + ["exists"],
    "properties": {"exists": {"type": "BOOLEAN"}, **_ITEM_PROPERTIES},
}


def _batch_prompt(level: str, count: int, exclude_words: List[str]) -> str:
    exclusion = f"EXCLUDE strictly: {', '.join(exclude_words)}." if exclude_words else ""
    return f"""
Act as a German Philologist. Generate EXACTLY {count} UNIQUE German vocab items for level {level}.

STRICT VERB RULES:
If type is 'verb', the 'conjugation' object MUST contain:
- "present3rd": 3rd person singular present
- "past": Präteritum
- "pastParticiple": Perfekt with auxiliary

CRITICAL FORMATTING:
1. No markdown.
2. NOUNS must have "plural" and "gender".
3. No duplicates.

{exclusion}
Level: {level} ({CEFR_GUIDELINES[level]})
""".strip()


def _lookup_prompt(word: str) -> str:
    return (
        f'German Philologist analysis for: "{word}". '
        "Set exists to false if this is not a real German word. "
        "Strictly provide conjugation present3rd/past/pastParticiple if it's a verb."
    )


def coerce_item(raw: Dict[str, Any], *, default_level: Optional[str] = None) -> VocabItem:
    """Turn one model-produced object into a VocabItem with a fresh id.

    Raises ``ValidationError`` when required fields are missing or invalid.
    """
    data = {k: v for k, v in raw.items() if v is not None}
    data["id"] = new_item_id()
    if default_level and data.get("level") not in LEVELS:
        data["level"] = default_level
    if data.get("gender") not in (None, *GENDERS):
        data.pop("gender")
    if data.get("type") == "verb" and not isinstance(data.get("conjugation"), dict):
        data["conjugation"] = VerbConjugation().model_dump(by_alias=True)
    return VocabItem.model_validate(data)


async def fetch_batch_chunk(
    client: GeminiClient,
    level: str,
    count: int,
    exclude_words: List[str],
    *,
    chunk_size: Optional[int] = None,
) -> List[VocabItem]:
    """Request one chunk of at most ``chunk_size`` items.

    Backend failures propagate as ``GenerationError``; a malformed or truncated
    body is repaired and yields whatever complete items it held.
    """
    requested = min(count, settings.quiz_chunk_size if chunk_size is None else chunk_size)
    prompt = _batch_prompt(level, requested, exclude_words)
    raw = await client.generate_json(
        prompt,
        response_schema=BATCH_SCHEMA,
        thinking_budget=0,
        max_output_tokens=MAX_OUTPUT_TOKENS,
    )
    items: List[VocabItem] = []
    for entry in parse_array(raw):
        if not isinstance(entry, dict):
            continue
        try:
            items.append(coerce_item(entry, default_level=level))
        except ValidationError as exc:
            logger.debug("Dropping malformed item %r: %s", entry.get("word"), exc)
    return items


def _unique_new(chunk: Iterable[VocabItem], seen: set[str]) -> List[VocabItem]:
    fresh: List[VocabItem] = []
    for item in chunk:
        key = item.word.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        fresh.append(item)
    return fresh


async def fetch_quiz_batch(
    client: GeminiClient,
    level: str,
    count: Optional[int] = None,
    exclude_words: Optional[List[str]] = None,
    *,
    chunk_size: Optional[int] = None,
    max_loops: Optional[int] = None,
    exclusion_window: Optional[int] = None,
    cooldown_seconds: Optional[float] = None,
) -> List[VocabItem]:
    """Collect ``count`` unique items for ``level`` in small sequential chunks.

    Words in ``exclude_words`` (case-insensitive) never come back. The result
    may be shorter than ``count`` when the backend keeps returning nothing new;
    only a run in which every call failed raises ``BackendUnavailableError``.
    """
    if level not in LEVELS:
        raise ValueError(f"level must be one of {LEVELS}")
    count = settings.quiz_default_size if count is None else count
    if not 1 <= count <= settings.quiz_max_size:
        raise ValueError(f"count must be between 1 and {settings.quiz_max_size}")
    chunk_size = settings.quiz_chunk_size if chunk_size is None else chunk_size
    max_loops = settings.quiz_max_loops if max_loops is None else max_loops
    window = settings.quiz_exclusion_window if exclusion_window is None else exclusion_window
    if min(chunk_size, max_loops, window) < 1:
        raise ValueError("chunk_size, max_loops and exclusion_window must be at least 1")
    cooldown = settings.quiz_retry_cooldown if cooldown_seconds is None else cooldown_seconds

    accepted: List[VocabItem] = []
    exclusions: List[str] = list(exclude_words or [])
    seen = {w.strip().lower() for w in exclusions}
    succeeded = 0
    last_error: Optional[Exception] = None

    for attempt in range(1, max_loops + 1):
        remaining = count - len(accepted)
        if remaining <= 0:
            break
        try:
            chunk = await fetch_batch_chunk(
                client, level, remaining, exclusions[-window:], chunk_size=chunk_size
            )
            succeeded += 1
        except GenerationError as exc:
            last_error = exc
            logger.warning("Chunk %d for %s failed: %s", attempt, level, exc)
            chunk = []
        fresh = _unique_new(chunk, seen)
        if not fresh:
            if cooldown > 0:
                await asyncio.sleep(cooldown)
            continue
        accepted.extend(fresh)
        exclusions.extend(item.word for item in fresh)
        logger.info("Chunk %d for %s: %d new items (%d/%d)", attempt, level, len(fresh), len(accepted), count)

    if succeeded == 0 and not accepted:
        raise BackendUnavailableError(f"Generation backend unavailable: {last_error}")
    if len(accepted) < count:
        logger.info("Batch for %s short: %d of %d items", level, len(accepted), count)
    return accepted[:count]


async def fetch_word_details(client: GeminiClient, word: str) -> Optional[WordLookup]:
    """Analyse a single word. Returns None if the backend fails or the reply is unusable."""
    try:
        raw = await client.generate_json(_lookup_prompt(word), response_schema=LOOKUP_SCHEMA)
        data = extract_json_object(strip_code_fence(raw))
    except GenerationError as exc:
        logger.error("Single word lookup for %r failed: %s", word, exc)
        return None
    if data.get("exists") is False:
        # Non-words may come back without the other fields filled in
        data.setdefault("word", word)
        data.setdefault("translation", "")
        data.setdefault("type", "phrase")
        data.setdefault("level", "A1")
    try:
        item = coerce_item(data, default_level="A1")
    except ValidationError as exc:
        logger.error("Single word lookup for %r returned an invalid item: %s", word, exc)
        return None
    return WordLookup(**item.model_dump(), exists=bool(data.get("exists", True)))


def tutor_instruction(mastered_words: List[str]) -> str:
    return (
        f"German tutor. Use words: [{', '.join(mastered_words)}]. Focus on active usage. "
        "Keep replies short and conversational, in German."
    )


async def tutor_reply(
    client: GeminiClient,
    mastered_words: List[str],
    history: List[ChatMessage],
    message: str,
) -> str:
    text = await client.chat(
        system_instruction=tutor_instruction(mastered_words),
        history=[{"role": m.role, "text": m.text} for m in history],
        message=message,
    )
    return (text or "").strip() or TUTOR_FALLBACK_REPLY


async def generate_speech(client: GeminiClient, text: str) -> Optional[str]:
    try:
        return await client.synthesize_speech(f"German: {text}")
    except GenerationError as exc:
        logger.warning("Speech synthesis failed: %s", exc)
        return None
