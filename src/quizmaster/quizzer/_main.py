"""Subcommand implementations behind the ``quizmaster`` entry point.

Each ``run_*`` function takes the argument list for its subcommand and
returns a process exit code: 0 on success, 1 on runtime failures (storage,
generation, bad backup) and 2 on usage or configuration errors.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from quizmaster.core.logging import configure_logger
from quizmaster.core.workspace import WorkspaceError, ensure_workspace
from quizmaster.store import (
    BackupEngine,
    GenerationFailed,
    LegacyMigration,
    QuizSession,
    QuizStoreError,
    ResultFilter,
    SessionController,
    SessionNotFound,
    SessionRepository,
    SessionView,
    mistake_review_quiz,
)

from .config import (
    LoadResult,
    QuizmasterConfigError,
    default_config_path,
    load_config,
    write_template,
)
from .generator import QuizGenerator
from .session import InputProvider, run_quiz_session
from .view import render_mistakes, render_results, render_session_table

GENERATION_ERROR_MESSAGE = (
    "We encountered an issue processing your content. Please try again or "
    "check your internet connection."
)


@dataclass
class CommandContext:
    """Everything a subcommand needs once config and storage are resolved."""

    load_result: LoadResult
    controller: SessionController
    backup: BackupEngine
    logger: logging.Logger
    log_path: Path


def _common_parser() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--workspace",
        type=Path,
        help=(
            "Override the data directory (defaults to QUIZMASTER_DATA_HOME "
            "or ~/.quizmaster-data)."
        ),
    )
    parent.add_argument(
        "--config",
        type=Path,
        help="Path to a quizmaster.toml (defaults to the workspace config).",
    )
    parent.add_argument(
        "--verbose",
        action="store_true",
        help="Mirror debug logging to stderr.",
    )
    return parent


def _parser(prog: str, description: str) -> argparse.ArgumentParser:
    return argparse.ArgumentParser(
        prog=prog, description=description, parents=[_common_parser()]
    )


def _open_context(args: argparse.Namespace) -> CommandContext:
    load_result = load_config(
        config_path=args.config, workspace_path=args.workspace
    )
    layout = load_result.layout
    logger, log_path = configure_logger(
        "quizmaster",
        log_dir=layout.path_for("logs"),
        level=load_result.config.log_level,
        verbose=args.verbose,
    )
    repository = SessionRepository(layout.path_for("store"))
    backup = BackupEngine(repository)
    controller = SessionController(
        repository,
        migration=LegacyMigration(repository, layout.legacy_history_path),
        backup=backup,
    )
    return CommandContext(load_result, controller, backup, logger, log_path)


def _execute(
    args: argparse.Namespace,
    action: Callable[[CommandContext], int],
) -> int:
    try:
        context = _open_context(args)
    except QuizmasterConfigError as exc:
        sys.stderr.write(f"Configuration error: {exc}\n")
        return 2
    try:
        return action(context)
    except GenerationFailed as exc:
        context.logger.error("Generation failed", extra={"error": str(exc)})
        sys.stderr.write(f"{GENERATION_ERROR_MESSAGE}\n({exc})\n")
        return 1
    except QuizStoreError as exc:
        context.logger.error("Command failed", extra={"error": str(exc)})
        sys.stderr.write(f"Error: {exc}\n")
        return 1


def _resolve_session(
    controller: SessionController, token: str
) -> QuizSession:
    """Find a session by full id or unique id prefix."""

    sessions = controller.list_sessions()
    for session in sessions:
        if session.id == token:
            return session
    matches = [s for s in sessions if s.id.startswith(token)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise SessionNotFound(f"No session matches '{token}'.")
    raise SessionNotFound(
        f"'{token}' matches {len(matches)} sessions; use more characters."
    )


def run_init(argv: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="quizmaster init",
        description="Create the quizmaster data directory and its layout.",
    )
    parser.add_argument("--workspace", type=Path, help="Data directory path.")
    parser.add_argument(
        "--with-config",
        action="store_true",
        help="Also write the default quizmaster.toml if missing.",
    )
    args = parser.parse_args(list(argv))

    try:
        layout = ensure_workspace(path=args.workspace)
    except WorkspaceError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1

    status = "created" if layout.created.get("home") else "exists"
    lines = [f"Workspace ready at {layout.home} ({status})"]
    width = max(len(name) for name in layout.directories)
    for name, directory in layout.items():
        state = "created" if layout.created.get(name) else "exists"
        lines.append(f"  {name.ljust(width)}  {directory} ({state})")
    target = default_config_path(layout)
    if args.with_config and not target.exists():
        write_template(target)
        lines.append(f"Wrote config template to {target}")
    sys.stdout.write("\n".join(lines) + "\n")
    return 0


def run_config(argv: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="quizmaster config",
        description="Manage the quizmaster.toml configuration file.",
    )
    sub = parser.add_subparsers(dest="action", required=True)
    init_parser = sub.add_parser("init", help="Write the default template.")
    init_parser.add_argument("--path", type=Path, help="Destination file.")
    init_parser.add_argument("--workspace", type=Path, help="Data directory.")
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite an existing file."
    )
    args = parser.parse_args(list(argv))

    try:
        if args.path is not None:
            target = args.path.expanduser()
        else:
            target = default_config_path(ensure_workspace(path=args.workspace))
        written = write_template(target, overwrite=args.force)
    except (WorkspaceError, QuizmasterConfigError) as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1
    sys.stdout.write(f"Wrote quizmaster config to {written}\n")
    return 0


def run_generate(
    argv: Sequence[str],
    *,
    console: Optional[Console] = None,
    generator: Optional[Callable[..., object]] = None,
    input_provider: Optional[InputProvider] = None,
) -> int:
    parser = _parser(
        "quizmaster generate",
        "Generate a quiz from text (file or stdin) and/or an image.",
    )
    parser.add_argument(
        "source",
        nargs="?",
        default="-",
        help="Text file to quiz on; '-' reads stdin (default).",
    )
    parser.add_argument("--text", help="Inline text instead of a file.")
    parser.add_argument("--image", type=Path, help="Image of notes or a quiz.")
    parser.add_argument("--model", help="Override the configured model.")
    parser.add_argument(
        "--shuffle",
        dest="shuffle",
        action="store_true",
        default=None,
        help="Shuffle question order.",
    )
    parser.add_argument("--no-shuffle", dest="shuffle", action="store_false")
    parser.add_argument(
        "--take", action="store_true", help="Start answering right away."
    )
    args = parser.parse_args(list(argv))
    out = console or Console()

    try:
        text = _read_source_text(args)
        image = args.image.read_bytes() if args.image else None
    except OSError as exc:
        sys.stderr.write(f"Failed to read input: {exc}\n")
        return 2

    def action(context: CommandContext) -> int:
        settings = context.load_result.config.generation
        generate = generator or QuizGenerator(
            model=args.model or settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        shuffle = settings.shuffle if args.shuffle is None else args.shuffle
        session = context.controller.generate_session(
            generate, text, image, shuffle=shuffle
        )
        out.print(
            f"Created quiz [bold]{escape(session.quiz_data.title)}[/] "
            f"with {len(session.quiz_data.questions)} question(s): "
            f"[cyan]{session.id}[/]"
        )
        if args.take:
            run_quiz_session(
                context.controller,
                session.id,
                out,
                input_provider or out.input,
            )
        return 0

    return _execute(args, action)


def run_list(
    argv: Sequence[str], *, console: Optional[Console] = None
) -> int:
    parser = _parser("quizmaster list", "List stored quizzes, newest first.")
    args = parser.parse_args(list(argv))
    out = console or Console()

    def action(context: CommandContext) -> int:
        render_session_table(out, context.controller.list_sessions())
        return 0

    return _execute(args, action)


def run_take(
    argv: Sequence[str],
    *,
    console: Optional[Console] = None,
    input_provider: Optional[InputProvider] = None,
) -> int:
    parser = _parser(
        "quizmaster take",
        "Answer a quiz, resuming saved progress; completed quizzes show "
        "their results.",
    )
    parser.add_argument("session", help="Session id or unique id prefix.")
    parser.add_argument(
        "--no-explain",
        dest="explain",
        action="store_false",
        help="Hide explanations in the results.",
    )
    args = parser.parse_args(list(argv))
    out = console or Console()

    def action(context: CommandContext) -> int:
        controller = context.controller
        session = _resolve_session(controller, args.session)
        resume = controller.open(session.id)
        if resume.view is SessionView.RESULTS:
            render_results(out, resume.session, show_explanations=args.explain)
            return 0
        run_quiz_session(
            controller,
            session.id,
            out,
            input_provider or out.input,
            show_explanations=args.explain,
        )
        return 0

    return _execute(args, action)


def run_results(
    argv: Sequence[str], *, console: Optional[Console] = None
) -> int:
    parser = _parser("quizmaster results", "Show per-question results.")
    parser.add_argument("session", help="Session id or unique id prefix.")
    parser.add_argument(
        "--filter",
        choices=[item.value for item in ResultFilter],
        default=ResultFilter.ALL.value,
        help="Limit rows to incorrect or unsure answers.",
    )
    parser.add_argument("--no-explain", dest="explain", action="store_false")
    args = parser.parse_args(list(argv))
    out = console or Console()

    def action(context: CommandContext) -> int:
        session = _resolve_session(context.controller, args.session)
        render_results(
            out,
            session,
            result_filter=args.filter,
            show_explanations=args.explain,
        )
        return 0

    return _execute(args, action)


def run_delete(
    argv: Sequence[str], *, console: Optional[Console] = None
) -> int:
    parser = _parser("quizmaster delete", "Permanently delete a quiz.")
    parser.add_argument("session", help="Session id or unique id prefix.")
    args = parser.parse_args(list(argv))
    out = console or Console()

    def action(context: CommandContext) -> int:
        session = _resolve_session(context.controller, args.session)
        context.controller.delete(session.id)
        out.print(f"Deleted quiz [cyan]{session.id}[/]")
        return 0

    return _execute(args, action)


def run_export(
    argv: Sequence[str], *, console: Optional[Console] = None
) -> int:
    parser = _parser(
        "quizmaster export", "Write a JSON backup of all quizzes."
    )
    parser.add_argument(
        "--output",
        help="Destination file, or '-' for stdout (defaults to a dated file "
        "in the backup directory).",
    )
    args = parser.parse_args(list(argv))
    out = console or Console()

    def action(context: CommandContext) -> int:
        if args.output == "-":
            sys.stdout.write(context.backup.export_snapshot().decode("utf-8"))
            sys.stdout.write("\n")
            return 0
        if args.output:
            target = Path(args.output).expanduser()
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(context.backup.export_snapshot())
        else:
            target = context.backup.write_backup(
                context.load_result.config.backup_dir
            )
        out.print(f"Backup written to {target}")
        return 0

    return _execute(args, action)


def run_import(
    argv: Sequence[str], *, console: Optional[Console] = None
) -> int:
    parser = _parser(
        "quizmaster import",
        "Merge a JSON backup into the store; matching ids are replaced.",
    )
    parser.add_argument("backup", type=Path, help="Backup file to restore.")
    args = parser.parse_args(list(argv))
    out = console or Console()

    try:
        payload = args.backup.read_bytes()
    except OSError as exc:
        sys.stderr.write(f"Failed to read backup: {exc}\n")
        return 2

    def action(context: CommandContext) -> int:
        sessions = context.controller.import_snapshot(payload)
        out.print(f"Restore complete. {len(sessions)} quiz(zes) in history.")
        return 0

    return _execute(args, action)


def run_mistakes(
    argv: Sequence[str], *, console: Optional[Console] = None
) -> int:
    parser = _parser(
        "quizmaster mistakes",
        "List every incorrect or unsure answer across all quizzes.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the mistakes as a review quiz JSON document.",
    )
    args = parser.parse_args(list(argv))
    out = console or Console()

    def action(context: CommandContext) -> int:
        items = context.controller.mistakes()
        if args.json:
            review = mistake_review_quiz(items)
            sys.stdout.write(json.dumps(review.to_dict(), indent=2) + "\n")
        else:
            render_mistakes(out, items)
        return 0

    return _execute(args, action)


def _read_source_text(args: argparse.Namespace) -> str:
    if args.text is not None:
        return args.text
    if args.source == "-":
        if args.image is not None and sys.stdin.isatty():
            return ""
        return sys.stdin.read()
    return Path(args.source).expanduser().read_text(encoding="utf-8")
