"""Answer comparison and scoring shared by completion and review views."""

from __future__ import annotations

from typing import Mapping

from .models import QuizData

__all__ = ["normalize_answer", "is_correct", "count_correct", "score_percent"]


def normalize_answer(value: str | None) -> str:
    return (value or "").strip().lower()


def is_correct(answer: str | None, correct_answer: str) -> bool:
    """Trimmed, case-insensitive equality. ``None`` counts as ``""``."""

    return normalize_answer(answer) == normalize_answer(correct_answer)


def count_correct(quiz: QuizData, answers: Mapping[int, str]) -> int:
    return sum(
        1
        for question in quiz.questions
        if is_correct(answers.get(question.id), question.correct_answer)
    )


def score_percent(quiz: QuizData, answers: Mapping[int, str]) -> int:
    """Return ``round(100 * correct / total)`` rounding halves up.

    An empty quiz scores 0.
    """

    total = len(quiz.questions)
    if total == 0:
        return 0
    correct = count_correct(quiz, answers)
    return (200 * correct + total) // (2 * total)
