"""Rich renderers for session lists, quiz results and the mistake book."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..store.aggregation import (
    MistakeItem,
    ResultFilter,
    question_results,
    result_summary,
)
from ..store.models import QuizSession


def format_timestamp(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def render_session_table(
    console: Console, sessions: Sequence[QuizSession]
) -> None:
    if not sessions:
        console.print(
            "[dim]No quizzes yet. Run `quizmaster generate` to start.[/]"
        )
        return
    table = Table(title="Quiz history", box=box.SIMPLE, expand=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Created")
    table.add_column("Title", overflow="fold")
    table.add_column("Progress", justify="right")
    table.add_column("Status")
    for session in sessions:
        total = len(session.quiz_data.questions)
        if session.is_completed:
            status = Text(f"Completed {session.score}%", style="green")
        else:
            status = Text("In progress", style="yellow")
        table.add_row(
            session.id[:8],
            format_timestamp(session.timestamp),
            session.quiz_data.title or "(untitled)",
            f"{session.answered_count}/{total}",
            status,
        )
    console.print(table)


def render_results(
    console: Console,
    session: QuizSession,
    *,
    result_filter: ResultFilter | str = ResultFilter.ALL,
    show_explanations: bool = True,
) -> None:
    summary = result_summary(session)
    console.print()
    title = session.quiz_data.title or "Results"
    console.rule(Text(title, style="bold magenta"))
    console.print(
        f"Score: [bold]{summary.correct}[/] / {summary.total} "
        f"([bold]{summary.percentage}%[/])"
    )

    rows = question_results(session, result_filter)
    if not rows:
        console.print("[dim]No questions found for this filter.[/]")
        return

    table = Table(box=box.SIMPLE, expand=True)
    table.add_column("#", justify="right")
    table.add_column("Question", overflow="fold")
    table.add_column("Your answer")
    table.add_column("Correct answer")
    table.add_column("Result", justify="center")
    for position, row in enumerate(rows, start=1):
        outcome = "✅" if row.is_correct else "❌"
        if row.is_unsure:
            outcome += " ?"
        table.add_row(
            str(position),
            row.question.question_text,
            row.user_answer or "—",
            row.question.correct_answer,
            outcome,
        )
    console.print(table)

    if not show_explanations:
        return
    for row in rows:
        if not row.question.explanation:
            continue
        console.print(
            Panel(
                row.question.explanation,
                title=f"Explanation: question {row.question.id}",
                border_style="green" if row.is_correct else "red",
            )
        )


def render_mistakes(console: Console, items: Sequence[MistakeItem]) -> None:
    if not items:
        console.print("[green]No mistakes or unsure answers. Nice work![/]")
        return
    table = Table(title="Mistake book", box=box.SIMPLE, expand=True)
    table.add_column("Quiz", overflow="fold")
    table.add_column("Question", overflow="fold")
    table.add_column("Your answer")
    table.add_column("Correct answer")
    table.add_column("Why listed")
    for item in items:
        reasons = []
        if not item.is_correct:
            reasons.append("incorrect")
        if item.is_unsure:
            reasons.append("unsure")
        table.add_row(
            item.quiz_title,
            item.question_text,
            item.user_answer or "—",
            item.correct_answer,
            ", ".join(reasons),
        )
    console.print(table)
