from __future__ import annotations

import itertools
import sys
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from quizmaster.core.logging import release_logger  # noqa: E402
from quizmaster.store.lifecycle import SessionController  # noqa: E402
from quizmaster.store.migration import LegacyMigration  # noqa: E402
from quizmaster.store.repository import SessionRepository  # noqa: E402

from fixtures import OpenAIStubClient  # noqa: E402


@pytest.fixture(autouse=True)
def _release_cli_logger() -> Iterator[None]:
    yield
    release_logger("quizmaster")


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def repository(store_dir: Path) -> SessionRepository:
    return SessionRepository(store_dir)


@pytest.fixture
def legacy_path(tmp_path: Path) -> Path:
    return tmp_path / "quiz_master_history_v2.json"


@pytest.fixture
def controller(
    repository: SessionRepository, legacy_path: Path
) -> SessionController:
    """Controller with a deterministic clock (1s steps) and sequential ids."""

    ticks = itertools.count(1_000, 1_000)
    ids = (f"session-{n}" for n in itertools.count(1))
    return SessionController(
        repository,
        migration=LegacyMigration(repository, legacy_path),
        clock=lambda: next(ticks),
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def openai_client() -> OpenAIStubClient:
    return OpenAIStubClient()
