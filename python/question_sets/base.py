"""
Question set contract.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class QuestionSet:
    """Fixed, ordered interview questions shared by every session."""

    question_set_id: str
    display_name: str
    questions: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.questions:
            raise ValueError(f"Question set '{self.question_set_id}' has no questions.")
        if any(not question.strip() for question in self.questions):
            raise ValueError(f"Question set '{self.question_set_id}' contains a blank question.")

    def __len__(self) -> int:
        return len(self.questions)
