from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from quizmaster.store import repository as repository_module
from quizmaster.store.errors import StorageUnavailable, WriteFailed
from quizmaster.store.repository import (
    DB_NAME,
    SCHEMA_VERSION,
    SessionRepository,
)

from fixtures import make_session


def _ids(repository: SessionRepository) -> set[str]:
    return {session.id for session in repository.get_all()}


def test_open_creates_schema_and_store(store_dir: Path) -> None:
    repository = SessionRepository(store_dir).open()

    schema = json.loads((store_dir / "schema.json").read_text())
    assert schema["name"] == DB_NAME
    assert schema["version"] == SCHEMA_VERSION
    assert schema["stores"]["sessions"]["keyPath"] == "id"
    assert repository.records_dir.is_dir()
    assert repository.is_open


def test_open_is_idempotent(repository: SessionRepository) -> None:
    repository.open()
    repository.put(make_session("a"))

    SessionRepository(repository.root).open()

    assert _ids(SessionRepository(repository.root)) == {"a"}


def test_first_operation_opens_lazily(repository: SessionRepository) -> None:
    assert not repository.is_open

    assert repository.get_all() == []
    assert repository.is_open


def test_put_then_get_all_round_trips(repository: SessionRepository) -> None:
    first = make_session("a", answers={1: "Paris"})
    second = make_session("b", timestamp=5)

    repository.put(first)
    repository.put(second)

    stored = {session.id: session for session in repository.get_all()}
    assert stored == {"a": first, "b": second}


def test_put_replaces_whole_record(repository: SessionRepository) -> None:
    repository.put(make_session("a", answers={1: "Paris"}, unsure=[1]))
    replacement = make_session("a", answers={}, completed=True, score=0)

    repository.put(replacement)

    assert repository.get_all() == [replacement]


def test_delete_removes_only_that_record(
    repository: SessionRepository,
) -> None:
    repository.put(make_session("a"))
    repository.put(make_session("b"))

    repository.delete("a")

    assert _ids(repository) == {"b"}


def test_delete_missing_id_is_a_no_op(repository: SessionRepository) -> None:
    repository.put(make_session("a"))

    repository.delete("missing")

    assert _ids(repository) == {"a"}


def test_ids_with_path_characters_stay_inside_store(
    repository: SessionRepository,
) -> None:
    repository.put(make_session("../../escape"))

    files = list(repository.records_dir.iterdir())
    assert len(files) == 1
    assert files[0].parent == repository.records_dir
    assert _ids(repository) == {"../../escape"}


def test_unreadable_record_is_skipped(
    repository: SessionRepository, caplog: pytest.LogCaptureFixture
) -> None:
    repository.put(make_session("a"))
    (repository.records_dir / "broken.json").write_text("{not json")

    with caplog.at_level("WARNING"):
        sessions = repository.get_all()

    assert [session.id for session in sessions] == ["a"]
    assert "Skipping unreadable session record" in caplog.text


def test_failed_write_leaves_other_records_intact(
    repository: SessionRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = make_session("a", answers={1: "Paris"})
    repository.put(original)

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(repository_module.os, "replace", broken_replace)

    with pytest.raises(WriteFailed, match="disk full"):
        repository.put(make_session("a", answers={1: "Rome"}))
    with pytest.raises(WriteFailed):
        repository.put(make_session("b"))

    monkeypatch.setattr(repository_module.os, "replace", os.replace)
    assert repository.get_all() == [original]
    assert list(repository.records_dir.glob(".*.tmp")) == []


def test_failed_delete_raises_write_failed(
    repository: SessionRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    repository.put(make_session("a"))

    def broken_unlink(self, missing_ok=False):
        raise PermissionError("read-only")

    monkeypatch.setattr(Path, "unlink", broken_unlink)

    with pytest.raises(WriteFailed, match="read-only"):
        repository.delete("a")


def test_newer_schema_version_is_unavailable(store_dir: Path) -> None:
    store_dir.mkdir()
    (store_dir / "schema.json").write_text(
        json.dumps({"name": DB_NAME, "version": SCHEMA_VERSION + 1})
    )
    repository = SessionRepository(store_dir)

    with pytest.raises(StorageUnavailable, match="newer than the supported"):
        repository.get_all()
    # The failure is remembered; later calls fail fast.
    with pytest.raises(StorageUnavailable):
        repository.put(make_session("a"))
    assert not (store_dir / "sessions").exists()


def test_unusable_root_is_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "store"
    blocker.write_text("not a directory")
    repository = SessionRepository(blocker)

    with pytest.raises(StorageUnavailable):
        repository.open()
    with pytest.raises(StorageUnavailable):
        repository.delete("a")


def test_corrupt_schema_is_unavailable(store_dir: Path) -> None:
    store_dir.mkdir()
    (store_dir / "schema.json").write_text("[]")

    with pytest.raises(StorageUnavailable):
        SessionRepository(store_dir).open()


def test_unsupported_target_version_is_rejected(store_dir: Path) -> None:
    with pytest.raises(ValueError):
        SessionRepository(store_dir, version=SCHEMA_VERSION + 5)
