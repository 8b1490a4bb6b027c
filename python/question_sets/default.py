"""
Default question set.
"""

from __future__ import annotations

from question_sets.base import QuestionSet


DEFAULT_QUESTION_SET = QuestionSet(
    question_set_id="default",
    display_name="General Screening",
    questions=(
        "Hello, thanks for joining. Could you start by introducing yourself and your background?",
        "Tell me about a recent project you worked on and the part you owned.",
        "What was the hardest technical tradeoff in that project, and how did you decide?",
        "How do you approach debugging an issue you cannot reproduce locally?",
        "Do you have any questions for me before we wrap up?",
    ),
)
