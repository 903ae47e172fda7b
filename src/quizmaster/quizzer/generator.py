"""Turn free text or an image into quiz data with an OpenAI chat model."""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAIError

from ..core.ai import load_client
from ..store.errors import GenerationFailed, RecordFormatError
from ..store.models import QuestionType, QuizData, QuizQuestion

__all__ = ["QuizGenerator", "build_messages", "parse_quiz_payload"]

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an intelligent quiz organizer and generator."

_INSTRUCTIONS = """\
The user has provided input (text and/or an image).

1. Analyze the input.
   - An image may be a photo of a quiz, notes or a diagram. Extract the
     questions or content from it.
   - Text may be notes or questions.
2. Decide the mode.
   A) Raw questions: extract them exactly and fix typos. Use MULTIPLE_CHOICE
      when options exist and FILL_IN_BLANK otherwise. Solve each question to
      get 'correctAnswer' and write an educational 'explanation'.
   B) Study material: generate 5-10 challenging questions about it.

Return one JSON object:
{"title": str, "description": str, "questions": [{"id": int,
"type": "MULTIPLE_CHOICE" | "FILL_IN_BLANK", "questionText": str,
"options": [str], "correctAnswer": str, "explanation": str}]}
'options' has 4 items for MULTIPLE_CHOICE and is [] for FILL_IN_BLANK. For
MULTIPLE_CHOICE, 'correctAnswer' is the text of the correct option.
"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def build_messages(
    text: str, image: Optional[bytes] = None
) -> List[Dict[str, Any]]:
    prompt = f'{_INSTRUCTIONS}\nInput text context: "{text}"'
    if image is None:
        user_content: Any = prompt
    else:
        user_content = [
            {"type": "image_url", "image_url": {"url": _data_url(image)}},
            {"type": "text", "text": prompt},
        ]
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]


def parse_quiz_payload(content: str) -> QuizData:
    """Parse a model reply into :class:`QuizData` or raise GenerationFailed.

    Replies wrapped in Markdown code fences are accepted. Question ids are
    renumbered from 1 when the model omits or repeats them.
    """

    cleaned = (content or "").strip()
    if not cleaned:
        raise GenerationFailed("Failed to generate quiz data.")
    fenced = _FENCE_RE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationFailed(
            "AI generated invalid data format. Please try again."
        ) from exc
    if not isinstance(payload, dict):
        raise GenerationFailed("AI reply must be a JSON object.")

    raw_questions = payload.get("questions")
    if not isinstance(raw_questions, list) or not raw_questions:
        raise GenerationFailed("AI reply contains no questions.")

    try:
        questions = [_question_from(item) for item in raw_questions]
    except RecordFormatError as exc:
        raise GenerationFailed(
            f"AI reply has an invalid question: {exc}"
        ) from exc

    ids = [question.id for question in questions]
    if len(set(ids)) != len(ids):
        questions = [
            QuizQuestion(
                id=index,
                type=question.type,
                question_text=question.question_text,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
                options=question.options,
            )
            for index, question in enumerate(questions, start=1)
        ]

    return QuizData(
        title=str(payload.get("title") or "Untitled quiz").strip(),
        description=str(payload.get("description") or "").strip(),
        questions=tuple(questions),
    )


class QuizGenerator:
    """Callable ``generate(text, image=None) -> QuizData`` backed by OpenAI.

    The client is created lazily with :func:`quizmaster.core.ai.load_client`
    unless one is injected. There is no retry: every failure surfaces as
    :class:`GenerationFailed`.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 4000,
        client_factory: Callable[[], Any] = load_client,
    ) -> None:
        self._client = client
        self._client_factory = client_factory
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def __call__(self, text: str, image: Optional[bytes] = None) -> QuizData:
        return self.generate(text, image)

    def generate(self, text: str, image: Optional[bytes] = None) -> QuizData:
        if not text.strip() and image is None:
            raise GenerationFailed("Provide some text or an image to quiz on.")
        client = self._ensure_client()
        logger.info(
            "Requesting quiz generation",
            extra={
                "model": self.model,
                "text_chars": len(text),
                "has_image": image is not None,
            },
        )
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=build_messages(text, image),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content
        except (OpenAIError, AttributeError, IndexError) as exc:
            logger.error(
                "Quiz generation request failed", extra={"error": str(exc)}
            )
            raise GenerationFailed(
                f"Quiz generation request failed: {exc}"
            ) from exc
        return parse_quiz_payload(content or "")

    def _ensure_client(self) -> Any:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except RuntimeError as exc:
                raise GenerationFailed(str(exc)) from exc
        return self._client


def _question_from(item: Any) -> QuizQuestion:
    if not isinstance(item, dict):
        raise RecordFormatError("question entries must be objects")
    text = str(item.get("questionText") or "").strip()
    if not text:
        raise RecordFormatError("'questionText' is required")
    qtype = QuestionType.from_value(item.get("type"))
    options: Optional[tuple[str, ...]] = None
    if qtype is QuestionType.MULTIPLE_CHOICE:
        raw = item.get("options")
        if not isinstance(raw, list) or not raw:
            raise RecordFormatError("multiple choice questions need options")
        options = tuple(str(option).strip() for option in raw)
    raw_id = item.get("id")
    if isinstance(raw_id, bool) or not isinstance(raw_id, int):
        raw_id = 0
    return QuizQuestion(
        id=raw_id,
        type=qtype,
        question_text=text,
        correct_answer=str(item.get("correctAnswer") or "").strip(),
        explanation=str(item.get("explanation") or "").strip(),
        options=options,
    )


def _data_url(image: bytes) -> str:
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{_image_mime(image)};base64,{encoded}"


def _image_mime(image: bytes) -> str:
    if image.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
