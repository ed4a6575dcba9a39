"""Pure transformations of learner progress.

Every function takes the previous ``UserProgress`` and returns a new one; none
mutates its input. Applying them through ``store.update_progress`` keeps an
item from ever sitting in both the mastered and the learning list.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Sequence

from .errors import DuplicateItemError
from .schemas import LEVEL_TARGETS, LEVELS, UserProgress, VocabItem, empty_level_stats


Tab = Literal["ALL", "MASTERED", "LEARNING"]


def empty_progress() -> UserProgress:
    return UserProgress()


def _stats(progress: UserProgress) -> Dict[str, int]:
    stats = empty_level_stats()
    stats.update(progress.level_stats)
    return stats


def _bump(stats: Dict[str, int], level: str, delta: int) -> None:
    stats[level] = max(0, stats.get(level, 0) + delta)


def _without(items: Sequence[VocabItem], ids: set[str]) -> List[VocabItem]:
    return [i for i in items if i.id not in ids]


def finalize_session(
    progress: UserProgress,
    mastered: Sequence[VocabItem],
    to_study: Sequence[VocabItem],
) -> UserProgress:
    """Fold a finished quiz into progress."""
    stats = _stats(progress)
    mastered_ids = {i.id for i in progress.mastered_items}
    learning_ids = {i.id for i in progress.learning_items}

    newly_mastered = [i for i in mastered if i.id not in mastered_ids]
    for item in newly_mastered:
        _bump(stats, item.level, 1)
    session_mastered_ids = {i.id for i in mastered}

    study = [i for i in to_study if i.id not in session_mastered_ids]
    study_ids = {i.id for i in study}
    for item in progress.mastered_items:
        if item.id in study_ids:
            _bump(stats, item.level, -1)

    return UserProgress(
        mastered_items=_without(progress.mastered_items, study_ids) + newly_mastered,
        learning_items=_without(progress.learning_items, session_mastered_ids)
        + [i for i in study if i.id not in learning_ids],
        level_stats=stats,
    )


def review_item(progress: UserProgress, item: VocabItem, correct: bool) -> UserProgress:
    """Apply one library review answer.

    A correct answer moves the item to mastered, an incorrect one to learning.
    Reviewing an item that is already where the answer would put it only
    clears it from the other list, so counters never drift.
    """
    stats = _stats(progress)
    in_mastered = any(i.id == item.id for i in progress.mastered_items)
    if correct:
        if not in_mastered:
            _bump(stats, item.level, 1)
        mastered = progress.mastered_items if in_mastered else [item] + list(progress.mastered_items)
        return UserProgress(
            mastered_items=mastered,
            learning_items=_without(progress.learning_items, {item.id}),
            level_stats=stats,
        )
    if in_mastered:
        _bump(stats, item.level, -1)
    in_learning = any(i.id == item.id for i in progress.learning_items)
    learning = progress.learning_items if in_learning else [item] + list(progress.learning_items)
    return UserProgress(
        mastered_items=_without(progress.mastered_items, {item.id}),
        learning_items=learning,
        level_stats=stats,
    )


def find_entry(progress: UserProgress, item: VocabItem) -> VocabItem | None:
    for existing in list(progress.mastered_items) + list(progress.learning_items):
        if existing.same_entry(item):
            return existing
    return None


def add_item(progress: UserProgress, item: VocabItem) -> UserProgress:
    if find_entry(progress, item) is not None:
        raise DuplicateItemError(item.word, item.type)
    stats = _stats(progress)
    _bump(stats, item.level, 1)
    return UserProgress(
        mastered_items=[item] + list(progress.mastered_items),
        learning_items=list(progress.learning_items),
        level_stats=stats,
    )


def delete_item(progress: UserProgress, item_id: str) -> UserProgress:
    stats = _stats(progress)
    for item in progress.mastered_items:
        if item.id == item_id:
            _bump(stats, item.level, -1)
            break
    return UserProgress(
        mastered_items=_without(progress.mastered_items, {item_id}),
        learning_items=_without(progress.learning_items, {item_id}),
        level_stats=stats,
    )


def get_item(progress: UserProgress, item_id: str) -> VocabItem | None:
    for item in list(progress.mastered_items) + list(progress.learning_items):
        if item.id == item_id:
            return item
    return None


def known_words(progress: UserProgress) -> List[str]:
    return [i.word for i in progress.mastered_items] + [i.word for i in progress.learning_items]


def filter_items(progress: UserProgress, tab: Tab = "ALL", search: str = "") -> List[VocabItem]:
    if tab == "MASTERED":
        items = list(progress.mastered_items)
    elif tab == "LEARNING":
        items = list(progress.learning_items)
    else:
        seen: set[str] = set()
        items = []
        for item in list(progress.mastered_items) + list(progress.learning_items):
            if item.id in seen:
                continue
            seen.add(item.id)
            items.append(item)
    needle = search.strip().lower()
    if not needle:
        return items
    return [i for i in items if needle in i.word.lower() or needle in i.translation.lower()]


def level_overview(progress: UserProgress) -> List[Dict[str, object]]:
    stats = _stats(progress)
    overview = []
    for level in LEVELS:
        mastered = stats.get(level, 0)
        target = LEVEL_TARGETS[level]
        overview.append(
            {
                "level": level,
                "mastered": mastered,
                "target": target,
                "percent": round(min(mastered / target * 100, 100)),
            }
        )
    return overview
