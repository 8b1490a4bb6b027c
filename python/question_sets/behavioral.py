"""
Behavioral question set.
"""

from __future__ import annotations

from question_sets.base import QuestionSet


BEHAVIORAL_QUESTION_SET = QuestionSet(
    question_set_id="behavioral",
    display_name="Behavioral",
    questions=(
        "Describe a time you disagreed with a teammate. How did you resolve it?",
        "Tell me about a deadline you missed or nearly missed. What happened?",
        "Give an example of feedback that changed how you work.",
        "Describe a situation where you had to make a decision with incomplete information.",
    ),
)
