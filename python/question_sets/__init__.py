"""
Built-in interview question sets, looked up by the profile's question_set id.
"""

from __future__ import annotations

from collections.abc import Iterable

from question_sets.base import QuestionSet
from question_sets.behavioral import BEHAVIORAL_QUESTION_SET
from question_sets.default import DEFAULT_QUESTION_SET


def index_question_sets(question_sets: Iterable[QuestionSet]) -> dict[str, QuestionSet]:
    """Key question sets by id, refusing two sets that claim the same id."""
    indexed: dict[str, QuestionSet] = {}
    for question_set in question_sets:
        key = question_set.question_set_id
        if key in indexed:
            raise ValueError(f"Duplicate question set id '{key}'.")
        indexed[key] = question_set
    return indexed


BUILTIN_QUESTION_SETS = index_question_sets((DEFAULT_QUESTION_SET, BEHAVIORAL_QUESTION_SET))


def available_question_sets() -> tuple[str, ...]:
    return tuple(sorted(BUILTIN_QUESTION_SETS))


def load_question_set(question_set_id: str) -> QuestionSet:
    """
    Resolve a question set id from the bot profile.

    Ids are matched case-insensitively after trimming.

    Raises:
        ValueError: If the id is blank or names no built-in set.
    """
    key = (question_set_id or "").strip().lower()
    if not key:
        raise ValueError("Question set id is empty. Set question_set in the bot profile.")
    try:
        return BUILTIN_QUESTION_SETS[key]
    except KeyError:
        raise ValueError(
            f"Unknown question set '{question_set_id}'. "
            f"Supported question sets: {', '.join(available_question_sets())}."
        ) from None


__all__ = [
    "BUILTIN_QUESTION_SETS",
    "QuestionSet",
    "available_question_sets",
    "index_question_sets",
    "load_question_set",
]
