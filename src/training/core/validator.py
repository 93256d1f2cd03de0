"""Answer validation.

Deterministic correctness check per answer type. No side effects and
never raises: unparseable numeric input is simply incorrect.
"""

from __future__ import annotations

import math
from typing import Any

from training.core.models import AnswerType, Exercise

NUMERIC_TOLERANCE = 1e-3


def _parse_number(value: Any) -> float | None:
    """Parse a numeric answer, or None if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip().casefold()


def validate_answer(exercise: Exercise, answer: Any) -> bool:
    """Decide whether a submitted answer is correct.

    Args:
        exercise: Exercise holding the expected answer and answer type
        answer: Raw submitted answer (str, int or float)

    Returns:
        True if the answer matches under the exercise's answer-type policy
    """
    expected = exercise.correct_answer

    if exercise.answer_type == AnswerType.NUMERIC:
        submitted_num = _parse_number(answer)
        expected_num = _parse_number(expected)
        if submitted_num is None or expected_num is None:
            return False
        return abs(submitted_num - expected_num) < NUMERIC_TOLERANCE

    if exercise.answer_type == AnswerType.TEXT:
        submitted_text = _normalize_text(answer)
        expected_text = _normalize_text(expected)
        if submitted_text is None or expected_text is None:
            return False
        return submitted_text == expected_text

    # multiple_choice and exact: the option/value must match as given
    if answer is None:
        return False
    return str(answer) == str(expected)
