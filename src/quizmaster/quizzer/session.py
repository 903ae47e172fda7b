"""Rich-powered answering loop for a stored quiz session.

The loop renders one question at a time, parses console commands and hands
every change to :class:`~quizmaster.store.lifecycle.SessionController`,
which writes it through to storage before the next prompt. Quitting keeps
the partial answers; the session can be resumed later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..store.errors import QuizStoreError
from ..store.lifecycle import SessionController
from ..store.models import QuestionType, QuizQuestion, QuizSession
from .view import render_results

InputProvider = Callable[[], str]
ExitAction = Literal["submitted", "quit", "empty"]


@dataclass(frozen=True)
class SessionCommand:
    """Normalized user command parsed from console input."""

    type: Literal["next", "prev", "unsure", "submit", "quit", "answer"]
    value: str | None = None


@dataclass(frozen=True)
class QuizRunResult:
    """Return value from :func:`run_quiz_session`."""

    session: QuizSession
    exit_action: ExitAction


def parse_session_command(
    raw: str | None, question: QuizQuestion
) -> SessionCommand | None:
    """Parse console input for ``question``.

    Multiple-choice options are picked by letter (``a``) or number (``1``).
    For fill-in-blank questions any other text is the answer; prefix it with
    ``=`` to answer with a word that is also a command (``=next``).
    """

    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    if text.startswith("="):
        value = text[1:].strip()
        if question.type is QuestionType.MULTIPLE_CHOICE:
            return _choice_command(value, question)
        return SessionCommand("answer", value)

    lowered = text.lower()
    if lowered in {"n", "next"}:
        return SessionCommand("next")
    if lowered in {"p", "prev", "previous"}:
        return SessionCommand("prev")
    if lowered in {"u", "unsure", "flag"}:
        return SessionCommand("unsure")
    if lowered in {"s", "submit"}:
        return SessionCommand("submit")
    if lowered in {"q", "quit", "exit"}:
        return SessionCommand("quit")
    if question.type is QuestionType.MULTIPLE_CHOICE:
        return _choice_command(text, question)
    return SessionCommand("answer", text)


def run_quiz_session(
    controller: SessionController,
    session_id: str,
    console: Console,
    input_provider: InputProvider,
    *,
    show_explanations: bool = True,
) -> QuizRunResult:
    """Answer ``session_id`` interactively until submit or quit."""

    session = controller.open(session_id).session
    questions = session.quiz_data.questions
    if not questions:
        console.print("[yellow]This quiz has no questions.[/]")
        return QuizRunResult(session, "empty")

    index = _first_unanswered(session)
    while True:
        question = questions[index]
        _render_question(console, session, index)
        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            return _save_and_quit(controller, session, console)

        command = parse_session_command(raw, question)
        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        if command.type == "next":
            index = min(index + 1, len(questions) - 1)
        elif command.type == "prev":
            index = max(index - 1, 0)
        elif command.type == "quit":
            return _save_and_quit(controller, session, console)
        elif command.type == "submit":
            try:
                session = controller.complete(session.id)
            except QuizStoreError as exc:
                message = escape(str(exc))
                console.print(f"[red]Could not submit: {message}[/]")
                continue
            render_results(
                console, session, show_explanations=show_explanations
            )
            return QuizRunResult(session, "submitted")
        else:
            session = _apply_edit(
                controller, session, question, command, console
            )
            if command.type == "answer" and index + 1 < len(questions):
                index += 1


def _save_and_quit(
    controller: SessionController, session: QuizSession, console: Console
) -> QuizRunResult:
    try:
        session = controller.save_progress(
            session.id, session.user_answers, session.unsure_question_ids
        )
    except QuizStoreError as exc:
        console.print(f"[red]Could not save progress: {escape(str(exc))}[/]")
        return QuizRunResult(session, "quit")
    console.print("\n[bold yellow]Progress saved. Resume any time.[/]")
    return QuizRunResult(session, "quit")


def _apply_edit(
    controller: SessionController,
    session: QuizSession,
    question: QuizQuestion,
    command: SessionCommand,
    console: Console,
) -> QuizSession:
    try:
        if command.type == "unsure":
            updated = controller.toggle_unsure(session.id, question.id)
            state = "flagged" if updated.is_unsure(question.id) else "cleared"
            console.print(f"Unsure flag {state}.")
            return updated
        updated = controller.record_answer(
            session.id, question.id, command.value or ""
        )
        value = escape(command.value or "")
        console.print(f"Answer saved: [bold]{value}[/]")
        return updated
    except QuizStoreError as exc:
        console.print(f"[red]Could not save: {escape(str(exc))}[/]")
        return session


def _choice_command(
    text: str, question: QuizQuestion
) -> SessionCommand | None:
    options = question.options or ()
    token = text.strip()
    if token.isdigit():
        position = int(token) - 1
    elif len(token) == 1 and token.isalpha():
        position = ord(token.upper()) - ord("A")
    else:
        matches = [o for o in options if o.strip().lower() == token.lower()]
        return SessionCommand("answer", matches[0]) if matches else None
    if 0 <= position < len(options):
        return SessionCommand("answer", options[position])
    return None


def _first_unanswered(session: QuizSession) -> int:
    for position, question in enumerate(session.quiz_data.questions):
        if question.id not in session.user_answers:
            return position
    return 0


def _render_question(
    console: Console, session: QuizSession, index: int
) -> None:
    questions = session.quiz_data.questions
    question = questions[index]
    header = Text.assemble(
        (f"Question {index + 1}", "bold cyan"),
        (f" / {len(questions)}", "dim"),
    )
    console.print()
    console.rule(header)
    flag = " [yellow](unsure)[/]" if session.is_unsure(question.id) else ""
    console.print(Text(question.question_text, style="bold"), end="")
    console.print(flag)

    current = session.user_answers.get(question.id)
    if question.type is QuestionType.MULTIPLE_CHOICE:
        table = Table(show_header=False, box=box.SIMPLE, expand=True)
        table.add_column("Key", justify="center", style="cyan")
        table.add_column("Choice")
        for position, option in enumerate(question.options or ()):
            chosen = option == current
            row = Text(("• " if chosen else "  ") + option)
            if chosen:
                row.stylize("bold green")
            table.add_row(chr(ord("A") + position), row)
        console.print(table)
        hint = "letter/number to choose"
    else:
        answer = current if current is not None else "(blank)"
        console.print(Text(f"Your answer: {answer}", style="green"))
        hint = "type your answer"

    console.print(
        Text(
            f"Answered {session.answered_count}/{len(questions)} | "
            f"Commands: {hint}, n (next), p (prev), u (unsure), submit, quit",
            style="dim",
        )
    )
