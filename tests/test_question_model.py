from __future__ import annotations

import pytest
from pydantic import ValidationError

from mock_test_engine.errors import InvalidConfigurationError
from mock_test_engine.models.question_model import Question, QuestionSet
from mock_test_engine.sample_questions import SAMPLE_QUESTION_SET


def test_question_needs_two_options():
    with pytest.raises(ValidationError):
        Question(id="q", text="?", options=["only"], correct_index=0)


def test_correct_index_must_point_at_an_option():
    with pytest.raises(ValidationError):
        Question(id="q", text="?", options=["O", "X"], correct_index=2)


def test_question_set_must_not_be_empty():
    with pytest.raises(ValidationError):
        QuestionSet(id="empty", questions=[])


def test_question_is_immutable():
    question = SAMPLE_QUESTION_SET[0]
    with pytest.raises(ValidationError):
        question.correct_index = 0


def test_sample_set_metadata():
    assert len(SAMPLE_QUESTION_SET) == 5
    assert SAMPLE_QUESTION_SET.topics() == ["단위계", "차원 분석", "유효숫자", "오차"]
    assert SAMPLE_QUESTION_SET.difficulties() == ["easy", "medium", "hard"]
    assert SAMPLE_QUESTION_SET.pyq_stats() == {"total": 2, "percentage": 40, "years": [2019, 2021]}


def test_pyq_only_keeps_previous_year_questions():
    pyq = SAMPLE_QUESTION_SET.pyq_only()

    assert [q.id for q in pyq.questions] == ["q1", "q3"]
    assert pyq.id == "sample-units-measurements-pyq"
    assert pyq.pyq_stats()["percentage"] == 100


def test_pyq_only_without_pyq_questions():
    plain = QuestionSet(id="plain", questions=[Question(id="q", text="?", options=["O", "X"], correct_index=0)])
    with pytest.raises(InvalidConfigurationError):
        plain.pyq_only()
