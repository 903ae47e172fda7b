"""Durable keyed storage for quiz sessions.

The repository is a small embedded database rooted at a directory::

    <root>/schema.json          database name, schema version, object stores
    <root>/sessions/<key>.json  one document per session, keyed by ``id``

Each record is written to a temporary file in the same directory, flushed to
disk and renamed over its target, so readers only ever see a complete old or
complete new record. Writes are last-write-wins on the whole record.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Mapping, MutableMapping

from .errors import RecordFormatError, StorageUnavailable, WriteFailed
from .models import QuizSession

__all__ = [
    "DB_NAME",
    "SCHEMA_VERSION",
    "STORE_NAME",
    "SessionRepository",
]

logger = logging.getLogger(__name__)

DB_NAME = "QuizMasterDB"
STORE_NAME = "sessions"
SCHEMA_VERSION = 1

_SCHEMA_FILENAME = "schema.json"
_RECORD_SUFFIX = ".json"

Schema = MutableMapping[str, Any]


def _create_sessions_store(root: Path, schema: Schema) -> None:
    stores = schema.setdefault("stores", {})
    if STORE_NAME in stores:
        return
    (root / STORE_NAME).mkdir(parents=True, exist_ok=True)
    stores[STORE_NAME] = {"keyPath": "id", "directory": STORE_NAME}


# Upgrade steps keyed by the version they produce. Steps only ever add.
_UPGRADES: Mapping[int, Callable[[Path, Schema], None]] = {
    1: _create_sessions_store,
}


class SessionRepository:
    """Session records keyed by ``id`` with an explicit open/upgrade step.

    The store is opened lazily by the first operation. A failed open is
    remembered: every later call raises :class:`StorageUnavailable` until a
    new repository instance is created.
    """

    def __init__(self, root: Path, *, version: int = SCHEMA_VERSION) -> None:
        if version not in _UPGRADES:
            raise ValueError(f"Unsupported schema version {version}.")
        self._root = Path(root)
        self._version = version
        self._opened = False
        self._open_error: Exception | None = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def records_dir(self) -> Path:
        return self._root / STORE_NAME

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self) -> "SessionRepository":
        """Create or upgrade the store. Safe to call more than once."""

        if self._opened:
            return self
        if self._open_error is not None:
            raise StorageUnavailable(
                f"Session store at {self._root} is unavailable."
            ) from self._open_error
        try:
            self._open_or_upgrade()
        except StorageUnavailable as exc:
            self._open_error = exc
            raise
        except (OSError, ValueError) as exc:
            self._open_error = exc
            raise StorageUnavailable(
                f"Failed to open session store at {self._root}: {exc}"
            ) from exc
        self._opened = True
        logger.debug(
            "Opened session store",
            extra={"root": str(self._root), "version": self._version},
        )
        return self

    def put(self, session: QuizSession) -> None:
        """Insert or fully replace the record for ``session.id``."""

        self.open()
        target = self._record_path(session.id)
        try:
            _atomic_write_json(target, session.to_dict())
        except OSError as exc:
            logger.error(
                "Failed to write session",
                extra={"session_id": session.id, "error": str(exc)},
            )
            raise WriteFailed(
                f"Failed to write session {session.id}: {exc}"
            ) from exc

    def get_all(self) -> list[QuizSession]:
        """Return every stored session in no particular order."""

        self.open()
        try:
            paths = sorted(self.records_dir.glob(f"*{_RECORD_SUFFIX}"))
        except OSError as exc:
            raise StorageUnavailable(
                f"Failed to list sessions in {self.records_dir}: {exc}"
            ) from exc

        sessions: list[QuizSession] = []
        for path in paths:
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
                sessions.append(QuizSession.from_dict(payload))
            except (OSError, json.JSONDecodeError, RecordFormatError) as exc:
                logger.warning(
                    "Skipping unreadable session record",
                    extra={"path": str(path), "error": str(exc)},
                )
        return sessions

    def delete(self, session_id: str) -> None:
        """Remove the record for ``session_id``; missing ids are ignored."""

        self.open()
        target = self._record_path(session_id)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.error(
                "Failed to delete session",
                extra={"session_id": session_id, "error": str(exc)},
            )
            raise WriteFailed(
                f"Failed to delete session {session_id}: {exc}"
            ) from exc

    def _record_path(self, session_id: str) -> Path:
        digest = hashlib.sha1(session_id.encode("utf-8")).hexdigest()
        return self.records_dir / f"{digest}{_RECORD_SUFFIX}"

    def _open_or_upgrade(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        schema = self._read_schema()
        current = schema.get("version", 0)
        if not isinstance(current, int) or isinstance(current, bool):
            raise ValueError(f"Invalid schema version {current!r}.")
        if current > self._version:
            raise StorageUnavailable(
                "Session store at {0} has schema version {1}, newer than the "
                "supported version {2}.".format(
                    self._root, current, self._version
                )
            )
        if current < self._version:
            for step in range(current + 1, self._version + 1):
                _UPGRADES[step](self._root, schema)
                logger.info(
                    "Upgraded session store schema",
                    extra={"root": str(self._root), "version": step},
                )
            schema["version"] = self._version
            _atomic_write_json(self._root / _SCHEMA_FILENAME, schema)
        if not self.records_dir.is_dir():
            raise ValueError(
                f"Missing object store directory {self.records_dir}."
            )

    def _read_schema(self) -> Schema:
        path = self._root / _SCHEMA_FILENAME
        if not path.exists():
            return {"name": DB_NAME, "version": 0, "stores": {}}
        schema = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(schema, dict):
            raise ValueError(f"Schema file {path} is not an object.")
        return schema


def _atomic_write_json(path: Path, payload: Mapping[str, Any]) -> None:
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
        prefix=".",
        suffix=".tmp",
    )
    try:
        try:
            json.dump(payload, handle, indent=2, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        finally:
            handle.close()
        os.replace(handle.name, path)
    except OSError:
        Path(handle.name).unlink(missing_ok=True)
        raise
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
