from .generator import QuizGenerator, build_messages, parse_quiz_payload
from .session import (
    QuizRunResult,
    SessionCommand,
    parse_session_command,
    run_quiz_session,
)
from .view import render_mistakes, render_results, render_session_table

__all__ = [
    "QuizGenerator",
    "build_messages",
    "parse_quiz_payload",
    "QuizRunResult",
    "SessionCommand",
    "parse_session_command",
    "run_quiz_session",
    "render_mistakes",
    "render_results",
    "render_session_table",
]
