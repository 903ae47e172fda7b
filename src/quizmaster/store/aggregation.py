"""Read-only views derived from sessions: per-quiz results and mistakes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .grading import count_correct, is_correct, score_percent
from .models import QuestionType, QuizData, QuizQuestion, QuizSession

__all__ = [
    "MistakeItem",
    "QuestionResult",
    "ResultFilter",
    "ResultSummary",
    "mistake_review_quiz",
    "mistakes",
    "question_results",
    "result_summary",
]

REVIEW_TITLE = "Mistake Book Review"
REVIEW_DESCRIPTION = (
    "A collection of questions you answered incorrectly or marked as unsure."
)


class ResultFilter(str, Enum):
    ALL = "all"
    INCORRECT = "incorrect"
    UNSURE = "unsure"


@dataclass(frozen=True)
class QuestionResult:
    """How one question of a session was answered."""

    question: QuizQuestion
    user_answer: str
    is_correct: bool
    is_unsure: bool


@dataclass(frozen=True)
class ResultSummary:
    correct: int
    total: int
    percentage: int


@dataclass(frozen=True)
class MistakeItem:
    """A question that was answered incorrectly or flagged unsure."""

    session_id: str
    quiz_title: str
    question_id: int
    question_text: str
    user_answer: str
    correct_answer: str
    explanation: str
    is_correct: bool
    is_unsure: bool
    timestamp: int
    type: QuestionType
    options: tuple[str, ...] | None


def question_results(
    session: QuizSession,
    result_filter: ResultFilter | str = ResultFilter.ALL,
) -> list[QuestionResult]:
    """Per-question outcome in quiz order, optionally filtered."""

    selected = ResultFilter(result_filter)
    rows: list[QuestionResult] = []
    for question in session.quiz_data.questions:
        answer = session.answer_for(question.id)
        row = QuestionResult(
            question=question,
            user_answer=answer,
            is_correct=is_correct(answer, question.correct_answer),
            is_unsure=session.is_unsure(question.id),
        )
        if selected is ResultFilter.INCORRECT and row.is_correct:
            continue
        if selected is ResultFilter.UNSURE and not row.is_unsure:
            continue
        rows.append(row)
    return rows


def result_summary(session: QuizSession) -> ResultSummary:
    quiz = session.quiz_data
    return ResultSummary(
        correct=count_correct(quiz, session.user_answers),
        total=len(quiz.questions),
        percentage=score_percent(quiz, session.user_answers),
    )


def mistakes(sessions: Iterable[QuizSession]) -> list[MistakeItem]:
    """Every incorrect or unsure question across ``sessions``.

    Items are ordered newest session first; questions keep their quiz order
    within a session. Nothing is cached, so callers always see current data.
    """

    items: list[MistakeItem] = []
    for session in sessions:
        for row in question_results(session):
            if row.is_correct and not row.is_unsure:
                continue
            question = row.question
            items.append(
                MistakeItem(
                    session_id=session.id,
                    quiz_title=session.quiz_data.title,
                    question_id=question.id,
                    question_text=question.question_text,
                    user_answer=row.user_answer,
                    correct_answer=question.correct_answer,
                    explanation=question.explanation,
                    is_correct=row.is_correct,
                    is_unsure=row.is_unsure,
                    timestamp=session.timestamp,
                    type=question.type,
                    options=question.options,
                )
            )
    items.sort(key=lambda item: item.timestamp, reverse=True)
    return items


def mistake_review_quiz(items: Sequence[MistakeItem]) -> QuizData:
    """Bundle mistake items into a quiz with questions re-numbered from 0."""

    return QuizData(
        title=REVIEW_TITLE,
        description=REVIEW_DESCRIPTION,
        questions=tuple(
            QuizQuestion(
                id=index,
                type=item.type,
                question_text=item.question_text,
                correct_answer=item.correct_answer,
                explanation=item.explanation,
                options=item.options,
            )
            for index, item in enumerate(items)
        ),
    )
