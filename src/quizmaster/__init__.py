"""Generate quizzes from notes, take them, and keep every attempt locally."""

__version__ = "0.1.0"
