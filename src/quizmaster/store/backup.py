"""Portable snapshots of the session store: export and merge-import."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from .errors import MalformedBackup, RecordFormatError
from .models import QuizSession
from .repository import SessionRepository

__all__ = [
    "BackupEngine",
    "RecordDecision",
    "backup_filename",
    "validate_record",
]

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "quiz_master_backup_"


@dataclass(frozen=True)
class RecordDecision:
    """Outcome of validating one element of an imported snapshot."""

    index: int
    accepted: bool
    session: QuizSession | None = None
    reason: str | None = None


def validate_record(index: int, payload: Any) -> RecordDecision:
    """Accept an element carrying a non-empty ``id`` and a ``quizData``.

    Elements that pass the presence check but still cannot be read as a
    session are rejected as well, with the conversion error as the reason.
    """

    if not isinstance(payload, dict):
        return RecordDecision(index, False, reason="not an object")
    session_id = payload.get("id")
    if not session_id:
        return RecordDecision(index, False, reason="missing 'id'")
    if payload.get("quizData") is None:
        return RecordDecision(index, False, reason="missing 'quizData'")
    try:
        session = QuizSession.from_dict(payload)
    except RecordFormatError as exc:
        return RecordDecision(index, False, reason=str(exc))
    return RecordDecision(index, True, session=session)


def backup_filename(today: date | None = None) -> str:
    stamp = (today or date.today()).isoformat()
    return f"{BACKUP_PREFIX}{stamp}.json"


class BackupEngine:
    """Serialize the whole repository and merge snapshots back into it."""

    def __init__(self, repository: SessionRepository) -> None:
        self._repository = repository

    def export_snapshot(self) -> bytes:
        """Return every stored session as a JSON array, newest first."""

        sessions = sorted(
            self._repository.get_all(),
            key=lambda session: session.timestamp,
            reverse=True,
        )
        document = json.dumps(
            [session.to_dict() for session in sessions],
            indent=2,
            ensure_ascii=False,
        )
        return document.encode("utf-8")

    def write_backup(
        self, directory: Path, *, today: date | None = None
    ) -> Path:
        """Export into ``directory`` under the dated backup filename."""

        directory.mkdir(parents=True, exist_ok=True)
        target = directory / backup_filename(today)
        target.write_bytes(self.export_snapshot())
        logger.info("Wrote backup", extra={"path": str(target)})
        return target

    def import_snapshot(self, data: bytes | str) -> list[QuizSession]:
        """Merge ``data`` into the repository by id and return all sessions.

        A payload that is not a JSON array raises :class:`MalformedBackup`
        before anything is written. Invalid elements are skipped; valid ones
        replace any stored session with the same id.
        """

        try:
            parsed = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedBackup(f"Backup is not valid JSON: {exc}") from exc
        if not isinstance(parsed, list):
            raise MalformedBackup(
                "Backup must contain a list of sessions, found {0}.".format(
                    type(parsed).__name__
                )
            )

        decisions = [
            validate_record(index, item) for index, item in enumerate(parsed)
        ]
        imported = 0
        for decision in decisions:
            if not decision.accepted or decision.session is None:
                logger.warning(
                    "Skipped backup record",
                    extra={"index": decision.index, "reason": decision.reason},
                )
                continue
            self._repository.put(decision.session)
            imported += 1

        logger.info(
            "Imported backup",
            extra={"imported": imported, "skipped": len(parsed) - imported},
        )
        return self._repository.get_all()
