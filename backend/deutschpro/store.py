from __future__ import annotations
import json
import logging
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from .errors import CorruptProgressError, SnapshotVersionError
from .models import StoredBlob
from .progress import empty_progress
from .schemas import SNAPSHOT_VERSION, ChatMessage, ProgressSnapshot, UserProgress, VocabItem, empty_level_stats
from .settings import settings

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
	"Hallo! Ich bin dein DeutschPro Coach. Lass uns sprechen! "
	"Ich benutze nur die Wörter, die du schon gelernt hast. Wie geht es dir heute?"
)
RESTART_MESSAGE = "Hallo! Lass uns neu anfangen. Wie kann ich dir heute mit deinem Deutsch helfen?"

_chat_adapter = TypeAdapter(List[ChatMessage])


def _read(db: Session, key: str) -> Optional[str]:
	row = db.get(StoredBlob, key)
	return row.payload if row is not None else None


def _write(db: Session, key: str, payload: str) -> None:
	row = db.get(StoredBlob, key)
	if row is None:
		db.add(StoredBlob(key=key, payload=payload))
	else:
		row.payload = payload
	db.commit()


def _salvage_items(entries: object, label: str) -> List[VocabItem]:
	if not isinstance(entries, list):
		return []
	items: List[VocabItem] = []
	for entry in entries:
		try:
			items.append(VocabItem.model_validate(entry))
		except ValidationError as exc:
			logger.warning("Dropping unreadable %s item %r: %s", label, entry, exc)
	return items


def _salvage_progress(raw: str) -> UserProgress:
	"""Keep every stored item that still validates, dropping only the broken ones."""
	try:
		data = json.loads(raw)
	except ValueError as exc:
		raise CorruptProgressError(f"Stored progress is not JSON: {exc}") from exc
	if not isinstance(data, dict):
		raise CorruptProgressError("Stored progress is not an object")
	stats = data.get("levelStats")
	try:
		level_stats = UserProgress(level_stats=stats).level_stats if isinstance(stats, dict) else empty_level_stats()
	except ValidationError:
		logger.warning("Dropping unreadable level stats %r", stats)
		level_stats = empty_level_stats()
	return UserProgress(
		mastered_items=_salvage_items(data.get("masteredItems"), "mastered"),
		learning_items=_salvage_items(data.get("learningItems"), "learning"),
		level_stats=level_stats,
	)


def load_progress(db: Session, *, strict: bool = False) -> UserProgress:
	"""Read the stored progress.

	A row with a few broken items loses only those items. A row that cannot be
	read at all yields an empty progress, or raises ``CorruptProgressError``
	when ``strict`` is set so that callers about to write do not overwrite it.
	"""
	raw = _read(db, settings.progress_storage_key)
	if raw is None:
		return empty_progress()
	try:
		return UserProgress.model_validate_json(raw)
	except ValidationError as exc:
		logger.error("Stored progress failed validation, salvaging items: %s", exc)
	try:
		return _salvage_progress(raw)
	except CorruptProgressError as exc:
		if strict:
			raise
		logger.error("Stored progress is unreadable, showing empty progress: %s", exc)
		return empty_progress()


def save_progress(db: Session, progress: UserProgress) -> None:
	_write(db, settings.progress_storage_key, progress.model_dump_json(by_alias=True))


def update_progress(db: Session, fn: Callable[[UserProgress], UserProgress]) -> UserProgress:
	"""Apply a pure progress transformation and persist the result."""
	updated = fn(load_progress(db, strict=True))
	save_progress(db, updated)
	return updated


def initial_chat(text: str = WELCOME_MESSAGE) -> List[ChatMessage]:
	return [ChatMessage(role="model", text=text)]


def load_chat(db: Session) -> List[ChatMessage]:
	raw = _read(db, settings.chat_storage_key)
	if raw is None:
		return initial_chat()
	try:
		return _chat_adapter.validate_json(raw)
	except ValidationError as exc:
		logger.error("Failed to parse chat history: %s", exc)
		return initial_chat()


def save_chat(db: Session, messages: List[ChatMessage]) -> None:
	_write(db, settings.chat_storage_key, _chat_adapter.dump_json(messages, by_alias=True).decode("utf-8"))


def reset_chat(db: Session) -> List[ChatMessage]:
	messages = initial_chat(RESTART_MESSAGE)
	save_chat(db, messages)
	return messages


def export_snapshot(db: Session) -> ProgressSnapshot:
	return ProgressSnapshot(progress=load_progress(db), chat_history=load_chat(db))


def import_snapshot(db: Session, data: dict) -> ProgressSnapshot:
	version = data.get("version") if isinstance(data, dict) else None
	if version != SNAPSHOT_VERSION:
		raise SnapshotVersionError(version)
	snapshot = ProgressSnapshot.model_validate(data)
	save_progress(db, snapshot.progress)
	if snapshot.chat_history:
		save_chat(db, snapshot.chat_history)
	logger.info(
		"Imported snapshot: %d mastered, %d learning",
		len(snapshot.progress.mastered_items),
		len(snapshot.progress.learning_items),
	)
	return snapshot
