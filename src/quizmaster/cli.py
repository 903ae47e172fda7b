"""Unified CLI entry point for quizmaster."""

from __future__ import annotations

import inspect
import sys
from dataclasses import dataclass
from importlib import import_module, metadata
from typing import Callable, Iterable, Mapping, Optional, Sequence


CommandHandler = Callable[[Sequence[str]], int]

_COMMANDS_MODULE = "quizmaster.quizzer._main"


@dataclass(frozen=True)
class CommandSpec:
    """Represents a quizmaster subcommand."""

    name: str
    summary: str
    func_name: str
    is_interactive: bool = False

    def run(self, argv: Sequence[str]) -> int:
        return _run_module_command(
            _COMMANDS_MODULE,
            self.func_name,
            f"quizmaster {self.name}",
            argv,
        )


_COMMAND_SPECS: Sequence[CommandSpec] = (
    CommandSpec("init", "Create the quizmaster data directory.", "run_init"),
    CommandSpec("config", "Manage the quizmaster.toml file.", "run_config"),
    CommandSpec(
        "generate",
        "Generate a quiz from text or an image with OpenAI.",
        "run_generate",
    ),
    CommandSpec("list", "List stored quizzes, newest first.", "run_list"),
    CommandSpec(
        "take",
        "Answer or resume a quiz in the terminal.",
        "run_take",
        is_interactive=True,
    ),
    CommandSpec("results", "Show per-question results.", "run_results"),
    CommandSpec("delete", "Permanently delete a quiz.", "run_delete"),
    CommandSpec("export", "Write a JSON backup of all quizzes.", "run_export"),
    CommandSpec("import", "Merge a JSON backup into the store.", "run_import"),
    CommandSpec(
        "mistakes",
        "Review incorrect and unsure answers across quizzes.",
        "run_mistakes",
    ),
)

COMMANDS: Mapping[str, CommandSpec] = {
    spec.name: spec for spec in _COMMAND_SPECS
}


def _sorted_specs() -> Iterable[CommandSpec]:
    return _COMMAND_SPECS


def format_command_table() -> str:
    """Return a formatted command table for help output."""

    width = max(len(spec.name) for spec in _sorted_specs())
    lines = ["Available commands:"]
    for spec in _sorted_specs():
        suffix = " (interactive)" if spec.is_interactive else ""
        lines.append(f"  {spec.name.ljust(width)}  {spec.summary}{suffix}")
    return "\n".join(lines)


def format_usage() -> str:
    parts = [
        "Usage: quizmaster <command> [args...]",
        "Run `quizmaster help <name>` for details on a command.",
        "",
        format_command_table(),
    ]
    return "\n".join(parts)


def _print(
    text: str, *, stream: Optional[Callable[[str], object]] = None
) -> None:
    target = stream if stream is not None else sys.stdout.write
    if text:
        target(text + "\n")


def _handle_version() -> int:
    try:
        version = metadata.version("quizmaster")
    except metadata.PackageNotFoundError:
        version = "unknown"
    _print(version)
    return 0


def _handle_help(argv: Sequence[str]) -> int:
    if not argv:
        _print(format_usage())
        return 0

    spec = COMMANDS.get(argv[0])
    if not spec:
        _print(f"Unknown command '{argv[0]}'.", stream=sys.stderr.write)
        _print(format_command_table(), stream=sys.stderr.write)
        return 2

    _print(f"{spec.name}: {spec.summary}")
    _print(f"Run `quizmaster {spec.name} --help` for options.")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(argv if argv is not None else sys.argv[1:])

    if not args:
        _print(format_usage())
        return 2

    head, *tail = args

    if head in ("-h", "--help"):
        _print(format_usage())
        return 0
    if head in ("-V", "--version", "version"):
        return _handle_version()
    if head == "help":
        return _handle_help(tail)

    spec = COMMANDS.get(head)
    if spec:
        return spec.run(tail)

    _print(f"Unknown command '{head}'.", stream=sys.stderr.write)
    _print(format_command_table(), stream=sys.stderr.write)
    return 2


def _run_module_command(
    module_name: str,
    func_name: str,
    prog_name: str,
    argv: Sequence[str],
) -> int:
    module = import_module(module_name)
    target = getattr(module, func_name)
    return _invoke_main(target, prog_name, argv)


def _invoke_main(
    func: Callable[..., object], prog_name: str, argv: Sequence[str]
) -> int:
    args = list(argv)
    old_argv = sys.argv
    sys.argv = [prog_name, *args]
    try:
        result = func(args) if _accepts_argv(func) else func()
    except SystemExit as exc:
        return _normalize_system_exit(exc)
    finally:
        sys.argv = old_argv
    return result if isinstance(result, int) else 0


def _accepts_argv(func: Callable[..., object]) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    return any(
        param.kind
        in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        )
        for param in signature.parameters.values()
    )


def _normalize_system_exit(exc: SystemExit) -> int:
    code = exc.code
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    _print(str(code), stream=sys.stderr.write)
    return 1


if __name__ == "__main__":  # pragma: no cover - manual invocation guard
    raise SystemExit(main())
