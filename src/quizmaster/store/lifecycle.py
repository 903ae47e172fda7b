"""Session lifecycle: the in-memory working set and its write-through edits.

Every mutating call builds a new :class:`QuizSession`, writes it to the
repository and only then swaps it into the working set. A failed write
therefore raises before the working set changes, and the previous record
stays authoritative in both places.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Mapping, Protocol

from .aggregation import MistakeItem, mistakes
from .backup import BackupEngine
from .errors import SessionNotFound, UnknownQuestion
from .grading import score_percent
from .migration import LegacyMigration
from .models import QuizData, QuizSession
from .repository import SessionRepository

__all__ = [
    "QuizGeneratorFn",
    "ResumeState",
    "SessionController",
    "SessionView",
]

logger = logging.getLogger(__name__)


class QuizGeneratorFn(Protocol):
    def __call__(self, text: str, image: bytes | None = None) -> QuizData: ...


class SessionView(str, Enum):
    """Where an opened session resumes."""

    QUIZ = "quiz"
    RESULTS = "results"


@dataclass(frozen=True)
class ResumeState:
    session: QuizSession
    view: SessionView


def _now_millis() -> int:
    return int(time.time() * 1000)


def _new_session_id() -> str:
    return str(uuid.uuid4())


class SessionController:
    """Owns the working set of sessions and is the only writer of them.

    The working set is rebuilt from the repository on the first read, and
    again after bulk operations (import). ``active_session_id`` tracks the
    session currently opened by the caller and is cleared when that session
    is deleted.
    """

    def __init__(
        self,
        repository: SessionRepository,
        *,
        migration: LegacyMigration | None = None,
        backup: BackupEngine | None = None,
        clock: Callable[[], int] = _now_millis,
        id_factory: Callable[[], str] = _new_session_id,
    ) -> None:
        self._repository = repository
        self._migration = migration
        self._backup = backup or BackupEngine(repository)
        self._clock = clock
        self._id_factory = id_factory
        self._sessions: dict[str, QuizSession] = {}
        self._loaded = False
        self.active_session_id: str | None = None

    # -- reads -------------------------------------------------------------

    def load(self) -> list[QuizSession]:
        """Migrate legacy history if present, then rebuild from storage."""

        if self._migration is not None:
            self._migration.migrate()
        self._replace_working_set(self._repository.get_all())
        return self.list_sessions()

    def list_sessions(self) -> list[QuizSession]:
        """All sessions, most recently created first."""

        if not self._loaded:
            return self.load()
        return sorted(
            self._sessions.values(),
            key=lambda session: session.timestamp,
            reverse=True,
        )

    def get(self, session_id: str) -> QuizSession:
        if not self._loaded:
            self.load()
        try:
            return self._sessions[session_id]
        except KeyError as exc:
            raise SessionNotFound(f"Unknown session '{session_id}'.") from exc

    def open(self, session_id: str) -> ResumeState:
        """Make ``session_id`` active and report which view it resumes in."""

        session = self.get(session_id)
        self.active_session_id = session.id
        if session.is_completed:
            view = SessionView.RESULTS
        else:
            view = SessionView.QUIZ
        return ResumeState(session=session, view=view)

    def close(self) -> None:
        self.active_session_id = None

    def mistakes(self) -> list[MistakeItem]:
        return mistakes(self.list_sessions())

    # -- lifecycle ---------------------------------------------------------

    def create(self, quiz_data: QuizData) -> QuizSession:
        """Start an unanswered session for ``quiz_data`` and persist it."""

        if not self._loaded:
            self.load()
        session = QuizSession(
            id=self._id_factory(),
            timestamp=self._clock(),
            quiz_data=quiz_data,
        )
        logger.info(
            "Created session",
            extra={
                "session_id": session.id,
                "questions": len(quiz_data.questions),
            },
        )
        return self._write(session)

    def generate_session(
        self,
        generate: QuizGeneratorFn,
        text: str,
        image: bytes | None = None,
        *,
        shuffle: bool = False,
        rng: random.Random | None = None,
    ) -> QuizSession:
        """Generate quiz data and create a session from it.

        Generation errors propagate unchanged and nothing is stored.
        """

        quiz = generate(text, image)
        if shuffle:
            questions = list(quiz.questions)
            (rng or random.Random()).shuffle(questions)
            quiz = replace(quiz, questions=tuple(questions))
        return self.create(quiz)

    def record_answer(
        self, session_id: str, question_id: int, value: str
    ) -> QuizSession:
        session = self.get(session_id)
        _require_questions(session, [question_id])
        answers = dict(session.user_answers)
        answers[question_id] = value
        return self._write(replace(session, user_answers=answers))

    def toggle_unsure(self, session_id: str, question_id: int) -> QuizSession:
        session = self.get(session_id)
        _require_questions(session, [question_id])
        if session.is_unsure(question_id):
            flagged = tuple(
                qid for qid in session.unsure_question_ids if qid != question_id
            )
        else:
            flagged = session.unsure_question_ids + (question_id,)
        return self._write(replace(session, unsure_question_ids=flagged))

    def save_progress(
        self,
        session_id: str,
        answers: Mapping[int, str],
        unsure_ids: Iterable[int],
    ) -> QuizSession:
        """Persist a full answers/flags snapshot without completing."""

        session = self.get(session_id)
        flagged = tuple(unsure_ids)
        _require_questions(session, [*answers, *flagged])
        updated = replace(
            session, user_answers=dict(answers), unsure_question_ids=flagged
        )
        return self._write(updated)

    def complete(
        self,
        session_id: str,
        final_answers: Mapping[int, str] | None = None,
        final_unsure_ids: Iterable[int] | None = None,
    ) -> QuizSession:
        """Score the session from the given (or recorded) answers.

        Completing an already completed session recomputes the score.
        """

        session = self.get(session_id)
        answers = dict(
            session.user_answers if final_answers is None else final_answers
        )
        flagged = tuple(
            session.unsure_question_ids
            if final_unsure_ids is None
            else final_unsure_ids
        )
        _require_questions(session, [*answers, *flagged])
        score = score_percent(session.quiz_data, answers)
        completed = replace(
            session,
            user_answers=answers,
            unsure_question_ids=flagged,
            is_completed=True,
            score=score,
        )
        logger.info(
            "Completed session",
            extra={"session_id": session.id, "score": score},
        )
        return self._write(completed)

    def delete(self, session_id: str) -> None:
        """Remove a session from storage and from the working set."""

        if not self._loaded:
            self.load()
        self._repository.delete(session_id)
        self._sessions.pop(session_id, None)
        if self.active_session_id == session_id:
            self.active_session_id = None
        logger.info("Deleted session", extra={"session_id": session_id})

    # -- bulk --------------------------------------------------------------

    def export_snapshot(self) -> bytes:
        return self._backup.export_snapshot()

    def import_snapshot(self, data: bytes | str) -> list[QuizSession]:
        """Merge a backup into storage and rebuild the working set."""

        self._replace_working_set(self._backup.import_snapshot(data))
        return self.list_sessions()

    # -- internals ---------------------------------------------------------

    def _write(self, session: QuizSession) -> QuizSession:
        self._repository.put(session)
        self._sessions[session.id] = session
        return session

    def _replace_working_set(self, sessions: Iterable[QuizSession]) -> None:
        self._sessions = {session.id: session for session in sessions}
        self._loaded = True
        if self.active_session_id not in self._sessions:
            self.active_session_id = None


def _require_questions(
    session: QuizSession, question_ids: Iterable[int]
) -> None:
    known = session.quiz_data.question_ids
    for question_id in question_ids:
        if question_id not in known:
            raise UnknownQuestion(
                f"Question {question_id!r} is not part of session "
                f"'{session.id}'."
            )
