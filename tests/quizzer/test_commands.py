from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from quizmaster.quizzer import _main
from quizmaster.store.errors import GenerationFailed
from quizmaster.store.repository import SessionRepository

from fixtures import (
    fill_in_question,
    make_quiz,
    make_session,
    mc_question,
    session_payload,
)


def _console() -> Console:
    return Console(record=True, width=120, file=io.StringIO())


def _seed(workspace: Path, *sessions) -> SessionRepository:
    repository = SessionRepository(workspace / "store")
    for session in sessions:
        repository.put(session)
    return repository


def _stored(workspace: Path) -> dict:
    repository = SessionRepository(workspace / "store")
    return {session.id: session for session in repository.get_all()}


def _capitals():
    return make_quiz(
        mc_question(1, "Paris", text="Capital of France?"),
        fill_in_question(2, "Rome", text="Capital of Italy is ____."),
        title="Capitals",
    )


def test_init_creates_workspace_and_config(tmp_path, capsys):
    code = _main.run_init(["--workspace", str(tmp_path), "--with-config"])

    out = capsys.readouterr().out
    assert code == 0
    assert f"Workspace ready at {tmp_path}" in out
    assert (tmp_path / "store").is_dir()
    assert (tmp_path / "config" / "quizmaster.toml").is_file()


def test_config_init_refuses_to_overwrite(tmp_path, capsys):
    target = tmp_path / "qm.toml"

    assert _main.run_config(["init", "--path", str(target)]) == 0
    assert _main.run_config(["init", "--path", str(target)]) == 1
    assert "already exists" in capsys.readouterr().err
    assert _main.run_config(["init", "--path", str(target), "--force"]) == 0


def test_generate_creates_session(tmp_path):
    console = _console()
    seen = []

    def generator(text, image=None):
        seen.append(text)
        return _capitals()

    code = _main.run_generate(
        ["--workspace", str(tmp_path), "--text", "European capitals"],
        console=console,
        generator=generator,
    )

    assert code == 0
    assert seen == ["European capitals"]
    (session,) = _stored(tmp_path).values()
    assert session.quiz_data.title == "Capitals"
    assert "Created quiz Capitals with 2 question(s)" in console.export_text()
    assert (tmp_path / "logs" / "quizmaster.log").exists()


def test_generate_reads_source_file_and_takes_quiz(tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("capitals of europe", encoding="utf-8")
    seen = []

    def generator(text, image=None):
        seen.append(text)
        return _capitals()

    code = _main.run_generate(
        ["--workspace", str(tmp_path), str(notes), "--take", "--no-shuffle"],
        console=_console(),
        generator=generator,
        input_provider=iter(["a", "rome", "submit"]).__next__,
    )

    assert code == 0
    assert seen == ["capitals of europe"]
    (session,) = _stored(tmp_path).values()
    assert session.is_completed
    assert session.score == 100


def test_generate_failure_reports_friendly_message(tmp_path, capsys):
    def generator(text, image=None):
        raise GenerationFailed("quota exceeded")

    code = _main.run_generate(
        ["--workspace", str(tmp_path), "--text", "notes"],
        console=_console(),
        generator=generator,
    )

    err = capsys.readouterr().err
    assert code == 1
    assert _main.GENERATION_ERROR_MESSAGE in err
    assert "quota exceeded" in err
    assert _stored(tmp_path) == {}


def test_generate_missing_source_file(tmp_path, capsys):
    code = _main.run_generate(
        ["--workspace", str(tmp_path), str(tmp_path / "missing.txt")],
        console=_console(),
        generator=lambda text, image=None: _capitals(),
    )

    assert code == 2
    assert "Failed to read input" in capsys.readouterr().err


def test_list_shows_sessions_and_migrates_legacy(tmp_path):
    legacy = tmp_path / "quiz_master_history_v2.json"
    legacy.write_text(
        json.dumps([session_payload("legacy-1", quiz=_capitals())]),
        encoding="utf-8",
    )
    console = _console()

    code = _main.run_list(["--workspace", str(tmp_path)], console=console)

    assert code == 0
    assert "Capitals" in console.export_text()
    assert not legacy.exists()
    assert set(_stored(tmp_path)) == {"legacy-1"}


def test_take_resumes_by_prefix(tmp_path):
    _seed(
        tmp_path,
        make_session("abc123", quiz=_capitals(), answers={1: "Paris"}),
    )

    code = _main.run_take(
        ["--workspace", str(tmp_path), "abc"],
        console=_console(),
        input_provider=iter(["Rome", "s"]).__next__,
    )

    assert code == 0
    session = _stored(tmp_path)["abc123"]
    assert session.user_answers == {1: "Paris", 2: "Rome"}
    assert session.score == 100


def test_take_completed_session_shows_results(tmp_path):
    _seed(
        tmp_path,
        make_session(
            "done-1",
            quiz=_capitals(),
            answers={1: "Paris"},
            completed=True,
            score=50,
        ),
    )
    console = _console()

    def no_input():
        raise AssertionError("completed quizzes are not re-taken")

    code = _main.run_take(
        ["--workspace", str(tmp_path), "done-1"],
        console=console,
        input_provider=no_input,
    )

    assert code == 0
    assert "Score: 1 / 2 (50%)" in console.export_text()


def test_unknown_and_ambiguous_sessions_fail(tmp_path, capsys):
    _seed(tmp_path, make_session("abc-1"), make_session("abc-2"))

    assert _main.run_results(["--workspace", str(tmp_path), "zzz"]) == 1
    assert "No session matches 'zzz'" in capsys.readouterr().err

    assert _main.run_results(["--workspace", str(tmp_path), "abc"]) == 1
    assert "matches 2 sessions" in capsys.readouterr().err


def test_results_filter(tmp_path):
    _seed(
        tmp_path,
        make_session(
            "r-1", quiz=_capitals(), answers={1: "Paris", 2: "Milan"}
        ),
    )
    console = _console()

    code = _main.run_results(
        ["--workspace", str(tmp_path), "r-1", "--filter", "incorrect"],
        console=console,
    )

    output = console.export_text()
    assert code == 0
    assert "Capital of Italy is ____." in output
    assert "Capital of France?" not in output


def test_delete_removes_session(tmp_path):
    _seed(tmp_path, make_session("keep-1"), make_session("drop-1"))
    console = _console()

    code = _main.run_delete(
        ["--workspace", str(tmp_path), "drop"], console=console
    )

    assert code == 0
    assert set(_stored(tmp_path)) == {"keep-1"}
    assert "Deleted quiz drop-1" in console.export_text()


def test_export_then_import_into_another_workspace(tmp_path):
    source = tmp_path / "source"
    target = tmp_path / "target"
    _seed(source, make_session("a", answers={1: "Paris"}), make_session("b"))
    _seed(target, make_session("c"))
    backup = tmp_path / "backup.json"

    assert _main.run_export(
        ["--workspace", str(source), "--output", str(backup)],
        console=_console(),
    ) == 0
    console = _console()
    assert _main.run_import(
        ["--workspace", str(target), str(backup)], console=console
    ) == 0

    assert set(_stored(target)) == {"a", "b", "c"}
    assert _stored(target)["a"] == _stored(source)["a"]
    assert "3 quiz(zes) in history" in console.export_text()


def test_export_defaults_to_dated_file_in_backup_dir(tmp_path):
    _seed(tmp_path, make_session("a"))

    code = _main.run_export(["--workspace", str(tmp_path)], console=_console())

    assert code == 0
    (written,) = (tmp_path / "backups").glob("quiz_master_backup_*.json")
    assert [item["id"] for item in json.loads(written.read_text())] == ["a"]


def test_export_to_stdout(tmp_path, capsys):
    _seed(tmp_path, make_session("a"))

    code = _main.run_export(["--workspace", str(tmp_path), "--output", "-"])

    assert code == 0
    assert [item["id"] for item in json.loads(capsys.readouterr().out)] == [
        "a"
    ]


def test_import_malformed_backup_changes_nothing(tmp_path, capsys):
    _seed(tmp_path, make_session("a"))
    backup = tmp_path / "broken.json"
    backup.write_text("{not json", encoding="utf-8")

    code = _main.run_import(
        ["--workspace", str(tmp_path), str(backup)], console=_console()
    )

    assert code == 1
    assert "Backup is not valid JSON" in capsys.readouterr().err
    assert set(_stored(tmp_path)) == {"a"}


def test_import_missing_file(tmp_path, capsys):
    code = _main.run_import(
        ["--workspace", str(tmp_path), str(tmp_path / "none.json")],
        console=_console(),
    )

    assert code == 2
    assert "Failed to read backup" in capsys.readouterr().err


def test_mistakes_table_and_review_json(tmp_path, capsys):
    _seed(
        tmp_path,
        make_session(
            "m-1",
            quiz=_capitals(),
            answers={1: "Paris", 2: "Milan"},
            unsure=[1],
            completed=True,
            score=50,
        ),
    )
    console = _console()

    assert _main.run_mistakes(
        ["--workspace", str(tmp_path)], console=console
    ) == 0
    assert "Capital of Italy is ____." in console.export_text()

    assert _main.run_mistakes(["--workspace", str(tmp_path), "--json"]) == 0
    review = json.loads(capsys.readouterr().out)
    assert review["title"] == "Mistake Book Review"
    assert [q["id"] for q in review["questions"]] == [0, 1]


def test_invalid_config_returns_usage_error(tmp_path, capsys):
    config = tmp_path / "config" / "quizmaster.toml"
    config.parent.mkdir(parents=True)
    config.write_text("[generation]\nunknown = 1\n", encoding="utf-8")

    code = _main.run_list(["--workspace", str(tmp_path)], console=_console())

    assert code == 2
    assert "Configuration error" in capsys.readouterr().err


def test_unavailable_store_returns_runtime_error(tmp_path, capsys):
    store = tmp_path / "store"
    store.mkdir()
    (store / "schema.json").write_text(
        json.dumps({"name": "QuizMasterDB", "version": 99}), encoding="utf-8"
    )

    code = _main.run_list(["--workspace", str(tmp_path)], console=_console())

    assert code == 1
    assert "newer than the supported" in capsys.readouterr().err


@pytest.mark.parametrize("flag", ["--shuffle", "--no-shuffle"])
def test_shuffle_flags_are_accepted(tmp_path, flag):
    code = _main.run_generate(
        ["--workspace", str(tmp_path), "--text", "notes", flag],
        console=_console(),
        generator=lambda text, image=None: _capitals(),
    )

    assert code == 0
    (session,) = _stored(tmp_path).values()
    assert {q.id for q in session.quiz_data.questions} == {1, 2}
