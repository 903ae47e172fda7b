from __future__ import annotations

import pytest

from quizmaster.store.errors import RecordFormatError
from quizmaster.store.models import (
    QuestionType,
    QuizData,
    QuizQuestion,
    QuizSession,
)

from fixtures import fill_in_question, make_quiz, make_session, mc_question


def test_session_round_trips_through_dict() -> None:
    session = make_session(
        quiz=make_quiz(mc_question(1), fill_in_question(2, "blue")),
        answers={1: "Paris", 2: "Blue"},
        unsure=[2],
        completed=True,
        score=100,
    )

    restored = QuizSession.from_dict(session.to_dict())

    assert restored == session
    assert restored.user_answers == {1: "Paris", 2: "Blue"}
    assert restored.unsure_question_ids == (2,)


def test_serialized_form_uses_portable_field_names() -> None:
    payload = make_session(answers={1: "Rome"}).to_dict()

    assert set(payload) == {
        "id",
        "timestamp",
        "quizData",
        "userAnswers",
        "unsureQuestionIds",
        "isCompleted",
        "score",
    }
    assert payload["userAnswers"] == {"1": "Rome"}
    question = payload["quizData"]["questions"][0]
    assert question["questionText"] == "Question 1?"
    assert question["type"] == "MULTIPLE_CHOICE"


def test_fill_in_blank_question_omits_options() -> None:
    payload = fill_in_question(3, "seven").to_dict()

    assert "options" not in payload
    assert QuizQuestion.from_dict(payload).options is None


def test_from_dict_accepts_browser_style_record() -> None:
    payload = {
        "id": "b7c1",
        "timestamp": 1715000000000.0,
        "quizData": {
            "title": "Colors",
            "description": "",
            "questions": [
                {
                    "id": 1,
                    "type": "FILL_IN_BLANK",
                    "questionText": "Sky is ____",
                    "options": [],
                    "correctAnswer": "blue",
                    "explanation": "Rayleigh scattering.",
                }
            ],
        },
        "userAnswers": {"1": " Blue "},
        "unsureQuestionIds": [1, 1],
        "isCompleted": False,
        "score": 0,
    }

    session = QuizSession.from_dict(payload)

    assert session.timestamp == 1715000000000
    assert session.answer_for(1) == " Blue "
    assert session.unsure_question_ids == (1,)
    assert session.quiz_data.questions[0].type is QuestionType.FILL_IN_BLANK


@pytest.mark.parametrize(
    "payload",
    [
        {"timestamp": 1, "quizData": {}},
        {"id": "", "timestamp": 1, "quizData": {}},
        {"id": "x", "timestamp": 1},
        {"id": "x", "timestamp": "soon", "quizData": {}},
        {"id": "x", "timestamp": 1, "quizData": {}, "userAnswers": ["a"]},
        {"id": "x", "timestamp": 1, "quizData": {}, "unsureQuestionIds": 3},
        {"id": "x", "timestamp": 1, "quizData": {}, "userAnswers": {"a": ""}},
    ],
)
def test_from_dict_rejects_invalid_records(payload) -> None:
    with pytest.raises(RecordFormatError):
        QuizSession.from_dict(payload)


def test_unknown_question_type_is_rejected() -> None:
    with pytest.raises(RecordFormatError, match="Unknown question type"):
        QuestionType.from_value("ESSAY")


def test_question_type_parsing_is_case_insensitive() -> None:
    assert QuestionType.from_value(" multiple_choice ") is (
        QuestionType.MULTIPLE_CHOICE
    )


def test_quiz_rejects_duplicate_question_ids() -> None:
    with pytest.raises(RecordFormatError, match="Duplicate question id 1"):
        QuizData("Dup", "", (mc_question(1), fill_in_question(1, "x")))


def test_session_is_immutable_snapshot() -> None:
    answers = {1: "Paris"}
    session = make_session(answers=answers)
    answers[1] = "Rome"

    assert session.answer_for(1) == "Paris"
    assert session.answer_for(99) == ""
    with pytest.raises(TypeError):
        session.user_answers[1] = "Berlin"  # type: ignore[index]


def test_session_equality_compares_content() -> None:
    assert make_session(answers={1: "a"}) == make_session(answers={1: "a"})
    assert make_session(answers={1: "a"}) != make_session(answers={1: "b"})


@pytest.mark.parametrize("key", ["--1", "²", "1e3", "+-2", ""])
def test_malformed_question_id_keys_are_format_errors(key) -> None:
    payload = make_session().to_dict()
    payload["userAnswers"] = {key: "x"}

    with pytest.raises(RecordFormatError, match="Invalid question id"):
        QuizSession.from_dict(payload)


def test_negative_and_padded_question_id_keys_parse() -> None:
    payload = make_session().to_dict()
    payload["userAnswers"] = {" 1 ": "Paris", "-2": "x"}

    session = QuizSession.from_dict(payload)

    assert session.user_answers == {1: "Paris", -2: "x"}


@pytest.mark.parametrize("flag", ["false", "true", 0, 1, None])
def test_completion_flag_must_be_boolean(flag) -> None:
    payload = make_session().to_dict()
    payload["isCompleted"] = flag

    with pytest.raises(RecordFormatError, match="isCompleted"):
        QuizSession.from_dict(payload)


def test_missing_completion_flag_defaults_to_false() -> None:
    payload = make_session(completed=True).to_dict()
    del payload["isCompleted"]

    assert QuizSession.from_dict(payload).is_completed is False
