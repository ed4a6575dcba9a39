from __future__ import annotations
import re
import time
import uuid
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Level = Literal["A1", "A2", "B1", "B2", "C1", "C2"]
WordType = Literal["noun", "verb", "preposition", "adjective", "adverb", "phrase"]
Gender = Literal["der", "die", "das", "none"]

LEVELS: List[str] = ["A1", "A2", "B1", "B2", "C1", "C2"]
WORD_TYPES: List[str] = ["noun", "verb", "preposition", "adjective", "adverb", "phrase"]
GENDERS: List[str] = ["der", "die", "das", "none"]

# Goal word counts per CEFR level, used for the mastery percentage
LEVEL_TARGETS: Dict[str, int] = {
    "A1": 1000,
    "A2": 1000,
    "B1": 1500,
    "B2": 1500,
    "C1": 3000,
    "C2": 2000,
}

SNAPSHOT_VERSION = 1


def new_item_id() -> str:
    return uuid.uuid4().hex[:12]


def now_ms() -> int:
    return int(time.time() * 1000)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VerbConjugation(_CamelModel):
    present3rd: str = ""
    past: str = ""
    past_participle: str = Field(default="", alias="pastParticiple")


class VocabItem(_CamelModel):
    id: str = Field(default_factory=new_item_id)
    word: str
    translation: str
    type: WordType
    level: Level
    example: str = ""
    example_translation: str = Field(default="", alias="exampleTranslation")
    gender: Optional[Gender] = None
    plural: Optional[str] = None
    is_irregular: Optional[bool] = Field(default=None, alias="isIrregular")
    conjugation: Optional[VerbConjugation] = None
    cases: Optional[List[str]] = None

    def same_entry(self, other: "VocabItem") -> bool:
        return self.word.lower() == other.word.lower() and self.type == other.type


class WordLookup(VocabItem):
    exists: bool = True


def empty_level_stats() -> Dict[str, int]:
    return {level: 0 for level in LEVELS}


class UserProgress(_CamelModel):
    mastered_items: List[VocabItem] = Field(default_factory=list, alias="masteredItems")
    learning_items: List[VocabItem] = Field(default_factory=list, alias="learningItems")
    level_stats: Dict[str, int] = Field(default_factory=empty_level_stats, alias="levelStats")

    @field_validator("level_stats")
    @classmethod
    def _all_levels(cls, value: Dict[str, int]) -> Dict[str, int]:
        stats = empty_level_stats()
        stats.update({k: max(0, int(v)) for k, v in value.items() if k in stats})
        return stats

    @model_validator(mode="after")
    def _disjoint_lists(self) -> "UserProgress":
        # mastered wins when an id is in both lists
        mastered_ids = {item.id for item in self.mastered_items}
        if any(item.id in mastered_ids for item in self.learning_items):
            self.learning_items = [item for item in self.learning_items if item.id not in mastered_ids]
        return self


class QuizResults(_CamelModel):
    mastered: List[VocabItem] = Field(default_factory=list)
    to_study: List[VocabItem] = Field(default_factory=list, alias="toStudy")


class QuizSession(_CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    level: Level
    items: List[VocabItem]
    results: QuizResults = Field(default_factory=QuizResults)


class ChatMessage(_CamelModel):
    role: Literal["user", "model"]
    text: str
    timestamp: int = Field(default_factory=now_ms)


class ProgressSnapshot(_CamelModel):
    version: int = SNAPSHOT_VERSION
    exported_at: int = Field(default_factory=now_ms, alias="exportedAt")
    progress: UserProgress
    chat_history: List[ChatMessage] = Field(default_factory=list, alias="chatHistory")


_CONJUGATION_NOISE = re.compile(r"cant find|can't find|unknown|status:|pr\.\.\.|not found|missing|\?\?", re.IGNORECASE)
_CONJUGATION_ERROR_WORD = re.compile(r"^(cant|can't|find|unknown|not|found|missing)$", re.IGNORECASE)
EMPTY_FORM = "—"


def sanitize_conjugation(value: Optional[str]) -> str:
    """Clean a conjugation form for display, hiding model placeholders."""
    if not value or not value.strip() or value == "-":
        return EMPTY_FORM
    cleaned = _CONJUGATION_NOISE.sub("", value)
    cleaned = re.sub(r"\(.*\)", "", cleaned).strip()
    if not cleaned or _CONJUGATION_ERROR_WORD.match(cleaned):
        return EMPTY_FORM
    return cleaned


def speech_text(item: VocabItem, text: Optional[str] = None) -> str:
    # Nouns are spoken with their article
    text = item.word if text is None else text
    if text == item.word and item.type == "noun" and item.gender and item.gender != "none":
        return f"{item.gender} {item.word}"
    return text
