"""Quiz and session records kept by the store.

Records are immutable dataclasses. The lifecycle controller derives updated
copies with :func:`dataclasses.replace` and writes them through to the
repository, so a session object handed to a caller never changes under it.

The serialized form uses the camelCase field names of the portable backup
format (``quizData``, ``userAnswers``, ``unsureQuestionIds`` ...), which is
also what the legacy history file and browser-made backups contain.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, MutableMapping

from .errors import RecordFormatError

__all__ = [
    "QuestionType",
    "QuizQuestion",
    "QuizData",
    "QuizSession",
]

_QUESTION_ID_RE = re.compile(r"-?[0-9]+")


class QuestionType(str, Enum):
    """Supported question formats."""

    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    FILL_IN_BLANK = "FILL_IN_BLANK"

    @classmethod
    def from_value(cls, value: Any) -> "QuestionType":
        normalized = str(value or "").strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        expected = ", ".join(member.value for member in cls)
        raise RecordFormatError(
            f"Unknown question type '{value}'. Expected one of: {expected}."
        )


@dataclass(frozen=True)
class QuizQuestion:
    """A single generated question. ``options`` is only set for choices."""

    id: int
    type: QuestionType
    question_text: str
    correct_answer: str
    explanation: str = ""
    options: tuple[str, ...] | None = None

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "questionText": self.question_text,
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
        }
        if self.options is not None:
            payload["options"] = list(self.options)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuizQuestion":
        if not isinstance(payload, Mapping):
            raise RecordFormatError("Question entries must be objects.")
        raw_options = payload.get("options")
        if raw_options is None:
            options = None
        elif isinstance(raw_options, (list, tuple)):
            options = tuple(str(option) for option in raw_options)
        else:
            raise RecordFormatError("Question 'options' must be a list.")
        return cls(
            id=_coerce_question_id(payload.get("id")),
            type=QuestionType.from_value(payload.get("type")),
            question_text=_text(payload.get("questionText")),
            correct_answer=_text(payload.get("correctAnswer")),
            explanation=_text(payload.get("explanation")),
            options=options,
        )


@dataclass(frozen=True)
class QuizData:
    """A generated quiz: title, description and ordered questions."""

    title: str
    description: str
    questions: tuple[QuizQuestion, ...] = ()

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for question in self.questions:
            if question.id in seen:
                raise RecordFormatError(
                    f"Duplicate question id {question.id} in quiz "
                    f"'{self.title}'."
                )
            seen.add(question.id)

    @property
    def question_ids(self) -> frozenset[int]:
        return frozenset(question.id for question in self.questions)

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "questions": [question.to_dict() for question in self.questions],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuizData":
        if not isinstance(payload, Mapping):
            raise RecordFormatError("'quizData' must be an object.")
        questions = payload.get("questions", [])
        if not isinstance(questions, (list, tuple)):
            raise RecordFormatError("'questions' must be a list.")
        return cls(
            title=_text(payload.get("title")),
            description=_text(payload.get("description")),
            questions=tuple(QuizQuestion.from_dict(item) for item in questions),
        )


@dataclass(frozen=True, eq=False)
class QuizSession:
    """One attempt at a quiz: answers, unsure flags and completion state."""

    id: str
    timestamp: int
    quiz_data: QuizData
    user_answers: Mapping[int, str] = field(default_factory=dict)
    unsure_question_ids: tuple[int, ...] = ()
    is_completed: bool = False
    score: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "user_answers", MappingProxyType(dict(self.user_answers))
        )
        object.__setattr__(
            self,
            "unsure_question_ids",
            _unique_ids(self.unsure_question_ids),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QuizSession):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def answer_for(self, question_id: int) -> str:
        """Return the recorded answer or ``""`` when unanswered."""

        return self.user_answers.get(question_id, "")

    def is_unsure(self, question_id: int) -> bool:
        return question_id in self.unsure_question_ids

    @property
    def answered_count(self) -> int:
        return len(self.user_answers)

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "quizData": self.quiz_data.to_dict(),
            "userAnswers": {
                str(question_id): answer
                for question_id, answer in self.user_answers.items()
            },
            "unsureQuestionIds": list(self.unsure_question_ids),
            "isCompleted": self.is_completed,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuizSession":
        if not isinstance(payload, Mapping):
            raise RecordFormatError("Session records must be objects.")
        session_id = payload.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise RecordFormatError("Session 'id' must be a non-empty string.")
        if "quizData" not in payload:
            raise RecordFormatError(f"Session {session_id} has no 'quizData'.")

        answers = payload.get("userAnswers") or {}
        if not isinstance(answers, Mapping):
            raise RecordFormatError("'userAnswers' must be an object.")
        unsure = payload.get("unsureQuestionIds") or []
        if not isinstance(unsure, (list, tuple)):
            raise RecordFormatError("'unsureQuestionIds' must be a list.")

        return cls(
            id=session_id,
            timestamp=_coerce_int(payload.get("timestamp", 0), "timestamp"),
            quiz_data=QuizData.from_dict(payload["quizData"]),
            user_answers={
                _coerce_question_id(key): _text(value)
                for key, value in answers.items()
            },
            unsure_question_ids=tuple(
                _coerce_question_id(item) for item in unsure
            ),
            is_completed=_coerce_bool(
                payload.get("isCompleted", False), "isCompleted"
            ),
            score=_coerce_int(payload.get("score", 0), "score"),
        )


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _coerce_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise RecordFormatError(f"'{name}' must be a number.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise RecordFormatError(f"'{name}' must be an integer, got {value!r}.")


def _coerce_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise RecordFormatError(f"'{name}' must be true or false.")
    return value


def _coerce_question_id(value: Any) -> int:
    if isinstance(value, str):
        stripped = value.strip()
        if _QUESTION_ID_RE.fullmatch(stripped):
            return int(stripped)
        raise RecordFormatError(f"Invalid question id {value!r}.")
    return _coerce_int(value, "question id")


def _unique_ids(values: Iterable[int]) -> tuple[int, ...]:
    seen: dict[int, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return tuple(seen)
