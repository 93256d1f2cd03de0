"""Tests for answer validation."""

import pytest

from training.core.models import AnswerType, Exercise
from training.core.validator import validate_answer


def make_exercise(correct_answer: str, answer_type: AnswerType) -> Exercise:
    return Exercise(
        exercise_id="ex001",
        question="?",
        correct_answer=correct_answer,
        answer_type=answer_type,
    )


class TestNumericAnswers:
    """Numeric answers compare within a 0.001 tolerance."""

    def test_within_tolerance_is_correct(self):
        assert validate_answer(make_exercise("12", AnswerType.NUMERIC), "12.0009") is True

    def test_outside_tolerance_is_incorrect(self):
        assert validate_answer(make_exercise("12", AnswerType.NUMERIC), "12.01") is False

    def test_exact_float_rendering(self):
        assert validate_answer(make_exercise("12", AnswerType.NUMERIC), "12.0") is True

    def test_number_input(self):
        assert validate_answer(make_exercise("0.5", AnswerType.NUMERIC), 0.5) is True
        assert validate_answer(make_exercise("7", AnswerType.NUMERIC), 7) is True

    def test_surrounding_whitespace_is_ignored(self):
        assert validate_answer(make_exercise("42", AnswerType.NUMERIC), "  42 ") is True

    @pytest.mark.parametrize("answer", ["abc", "", "   ", None, "nan", "inf", True])
    def test_unparseable_answer_fails_closed(self, answer):
        assert validate_answer(make_exercise("12", AnswerType.NUMERIC), answer) is False

    def test_unparseable_expected_fails_closed(self):
        assert validate_answer(make_exercise("twelve", AnswerType.NUMERIC), "12") is False


class TestTextAnswers:
    def test_case_and_whitespace_insensitive(self):
        exercise = make_exercise("Soroban", AnswerType.TEXT)
        assert validate_answer(exercise, "  soroban ") is True
        assert validate_answer(exercise, "SOROBAN") is True

    def test_different_text_is_incorrect(self):
        assert validate_answer(make_exercise("Soroban", AnswerType.TEXT), "abacus") is False

    def test_none_is_incorrect(self):
        assert validate_answer(make_exercise("x", AnswerType.TEXT), None) is False


class TestExactAnswers:
    def test_multiple_choice_requires_exact_option(self):
        exercise = make_exercise("B", AnswerType.MULTIPLE_CHOICE)
        assert validate_answer(exercise, "B") is True
        assert validate_answer(exercise, "b") is False
        assert validate_answer(exercise, " B") is False

    def test_exact_compares_raw_values(self):
        exercise = make_exercise("15", AnswerType.EXACT)
        assert validate_answer(exercise, "15") is True
        assert validate_answer(exercise, 15) is True
        assert validate_answer(exercise, "15.0") is False

    def test_exact_none_is_incorrect(self):
        assert validate_answer(make_exercise("15", AnswerType.EXACT), None) is False
