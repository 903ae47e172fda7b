"""Local persistent session store and the views derived from it."""

from __future__ import annotations

from .aggregation import (
    MistakeItem,
    QuestionResult,
    ResultFilter,
    ResultSummary,
    mistake_review_quiz,
    mistakes,
    question_results,
    result_summary,
)
from .backup import (
    BackupEngine,
    RecordDecision,
    backup_filename,
    validate_record,
)
from .errors import (
    GenerationFailed,
    MalformedBackup,
    QuizStoreError,
    RecordFormatError,
    SessionNotFound,
    StorageUnavailable,
    UnknownQuestion,
    WriteFailed,
)
from .grading import is_correct, score_percent
from .lifecycle import ResumeState, SessionController, SessionView
from .migration import LegacyMigration
from .models import QuestionType, QuizData, QuizQuestion, QuizSession
from .repository import SCHEMA_VERSION, SessionRepository

__all__ = [
    "BackupEngine",
    "GenerationFailed",
    "LegacyMigration",
    "MalformedBackup",
    "MistakeItem",
    "QuestionResult",
    "QuestionType",
    "QuizData",
    "QuizQuestion",
    "QuizSession",
    "QuizStoreError",
    "RecordDecision",
    "RecordFormatError",
    "ResultFilter",
    "ResultSummary",
    "ResumeState",
    "SCHEMA_VERSION",
    "SessionController",
    "SessionNotFound",
    "SessionRepository",
    "SessionView",
    "StorageUnavailable",
    "UnknownQuestion",
    "WriteFailed",
    "backup_filename",
    "is_correct",
    "mistake_review_quiz",
    "mistakes",
    "question_results",
    "result_summary",
    "score_percent",
    "validate_record",
]
