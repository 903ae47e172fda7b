"""Configuration loader for quizmaster commands."""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping, Optional

from quizmaster.core import config as core_config
from quizmaster.core import workspace as workspace_mod

CONFIG_FILENAME = "quizmaster.toml"

_DEFAULTS: Mapping[str, Any] = {
    "generation": {
        "model": "gpt-4o-mini",
        "temperature": 0.2,
        "max_tokens": 4000,
        "shuffle": False,
    },
    "backup": {"directory": ""},
    "logging": {"level": "INFO"},
}


class QuizmasterConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class GenerationSettings:
    model: str
    temperature: float
    max_tokens: int
    shuffle: bool


@dataclass(frozen=True)
class QuizmasterConfig:
    """Fully resolved settings for one command invocation."""

    generation: GenerationSettings
    backup_dir: Path
    log_level: str


@dataclass(frozen=True)
class LoadResult:
    config: QuizmasterConfig
    layout: workspace_mod.WorkspaceLayout
    config_path: Optional[Path]


def load_config(
    *,
    config_path: Optional[Path] = None,
    workspace_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> LoadResult:
    """Resolve the workspace and read ``quizmaster.toml`` over defaults.

    A missing default config file is fine; an explicitly requested one that
    does not exist is an error.
    """

    env_map = os.environ if env is None else env
    try:
        layout = workspace_mod.ensure_workspace(
            env=env_map, path=workspace_path
        )
    except workspace_mod.WorkspaceError as exc:
        raise QuizmasterConfigError(str(exc)) from exc

    requested = config_path or layout.path_for("config") / CONFIG_FILENAME
    loaded_path: Optional[Path] = None
    parsed: Mapping[str, Any] = {}
    if requested.exists():
        loaded_path = requested
        try:
            parsed = core_config.load_toml(requested)
        except core_config.TomlConfigError as exc:
            raise QuizmasterConfigError(str(exc)) from exc
    elif config_path is not None:
        raise QuizmasterConfigError(f"Config file not found: {requested}")

    try:
        table = core_config.merged_with_defaults(_DEFAULTS, parsed)
    except core_config.TomlConfigError as exc:
        raise QuizmasterConfigError(str(exc)) from exc

    return LoadResult(
        config=_build_config(table, layout),
        layout=layout,
        config_path=loaded_path,
    )


def default_config_path(layout: workspace_mod.WorkspaceLayout) -> Path:
    return layout.path_for("config") / CONFIG_FILENAME


def read_template() -> str:
    resource = resources.files("quizmaster.quizzer").joinpath("template.toml")
    return resource.read_text(encoding="utf-8")


def write_template(path: Path, *, overwrite: bool = False) -> Path:
    try:
        return core_config.write_toml_template(
            path, template=read_template(), overwrite=overwrite
        )
    except core_config.TomlConfigError as exc:
        raise QuizmasterConfigError(str(exc)) from exc


def _build_config(
    table: Mapping[str, Any], layout: workspace_mod.WorkspaceLayout
) -> QuizmasterConfig:
    generation = table["generation"]
    model = generation["model"]
    if not isinstance(model, str) or not model.strip():
        raise QuizmasterConfigError(
            "generation.model must be a non-empty string."
        )
    temperature = generation["temperature"]
    if isinstance(temperature, bool) or not isinstance(
        temperature, (int, float)
    ):
        raise QuizmasterConfigError("generation.temperature must be a number.")
    if not 0 <= temperature <= 2:
        raise QuizmasterConfigError(
            "generation.temperature must be within 0-2."
        )
    max_tokens = generation["max_tokens"]
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
        raise QuizmasterConfigError(
            "generation.max_tokens must be an integer."
        )
    if max_tokens <= 0:
        raise QuizmasterConfigError("generation.max_tokens must be positive.")
    shuffle = generation["shuffle"]
    if not isinstance(shuffle, bool):
        raise QuizmasterConfigError(
            "generation.shuffle must be true or false."
        )

    directory = table["backup"]["directory"]
    if not isinstance(directory, str):
        raise QuizmasterConfigError("backup.directory must be a string.")
    backup_dir = (
        Path(directory).expanduser()
        if directory.strip()
        else layout.path_for("backups")
    )

    level = table["logging"]["level"]
    if not isinstance(level, str) or not level.strip():
        raise QuizmasterConfigError("logging.level must be a string.")

    return QuizmasterConfig(
        generation=GenerationSettings(
            model=model.strip(),
            temperature=float(temperature),
            max_tokens=max_tokens,
            shuffle=shuffle,
        ),
        backup_dir=backup_dir,
        log_level=level.strip().upper(),
    )
