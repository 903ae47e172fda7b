"""One-time transfer of the flat legacy history file into the repository."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .errors import QuizStoreError, RecordFormatError
from .models import QuizSession
from .repository import SessionRepository

__all__ = ["LegacyMigration"]

logger = logging.getLogger(__name__)


class LegacyMigration:
    """Move sessions from ``legacy_path`` (a JSON array) into ``repository``.

    The legacy file is removed only after every session has been written, so
    a failed run leaves it in place for the next attempt. Re-running after a
    success is a no-op because the file is gone; re-running after a partial
    failure rewrites the same ids, which ``put`` treats as overwrites.
    """

    def __init__(
        self, repository: SessionRepository, legacy_path: Path
    ) -> None:
        self._repository = repository
        self._legacy_path = Path(legacy_path)

    @property
    def legacy_path(self) -> Path:
        return self._legacy_path

    def migrate(self) -> int:
        """Run the migration and return the number of sessions moved.

        Never raises for a missing, malformed or failing migration; problems
        are logged and reported as ``0``.
        """

        sessions = self._read_legacy()
        if not sessions:
            return 0

        try:
            for session in sessions:
                self._repository.put(session)
        except QuizStoreError as exc:
            logger.error(
                "Legacy migration failed; keeping legacy history for retry",
                extra={"path": str(self._legacy_path), "error": str(exc)},
            )
            return 0

        try:
            self._legacy_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(
                "Migrated legacy history but could not remove it",
                extra={"path": str(self._legacy_path), "error": str(exc)},
            )
        logger.info(
            "Migrated legacy history",
            extra={"path": str(self._legacy_path), "count": len(sessions)},
        )
        return len(sessions)

    def _read_legacy(self) -> list[QuizSession]:
        if not self._legacy_path.is_file():
            return []
        try:
            raw = json.loads(self._legacy_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error(
                "Legacy history is unreadable",
                extra={"path": str(self._legacy_path), "error": str(exc)},
            )
            return []
        if not isinstance(raw, list) or not raw:
            return []
        try:
            return [QuizSession.from_dict(item) for item in raw]
        except RecordFormatError as exc:
            logger.error(
                "Legacy history contains an invalid session",
                extra={"path": str(self._legacy_path), "error": str(exc)},
            )
            return []
