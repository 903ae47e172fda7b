"""Error taxonomy for the session store and its collaborators."""

from __future__ import annotations

__all__ = [
    "QuizStoreError",
    "StorageUnavailable",
    "WriteFailed",
    "MalformedBackup",
    "RecordFormatError",
    "SessionNotFound",
    "UnknownQuestion",
    "GenerationFailed",
]


class QuizStoreError(RuntimeError):
    """Base class for failures raised by the session store."""


class StorageUnavailable(QuizStoreError):
    """The store cannot be opened; every operation fails until reopened."""


class WriteFailed(QuizStoreError):
    """A single put or delete did not complete. Other records are intact."""


class MalformedBackup(QuizStoreError):
    """An import payload is not a JSON sequence. Nothing was written."""


class RecordFormatError(QuizStoreError, ValueError):
    """A payload cannot be converted into a quiz session."""


class SessionNotFound(QuizStoreError, KeyError):
    """No session with the requested id exists in the working set."""

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class UnknownQuestion(QuizStoreError, KeyError):
    """A question id does not belong to the session's quiz."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class GenerationFailed(RuntimeError):
    """The external quiz generator could not produce quiz data."""
