"""Shared testing helpers for the quizmaster test suite."""

from .openai import OpenAIStubClient  # noqa: F401
from .quizzes import (  # noqa: F401
    fill_in_question,
    make_quiz,
    make_session,
    mc_question,
    session_payload,
)

__all__ = [
    "OpenAIStubClient",
    "fill_in_question",
    "make_quiz",
    "make_session",
    "mc_question",
    "session_payload",
]
