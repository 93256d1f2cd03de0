"""File-backed exercise generator.

Serves pre-authored exercise banks stored as JSON:

    data/exercises/<curriculum>/<level>.json

    {
      "settings": {"duration_minutes": 20, "allow_hints": true},
      "metadata": {"difficulty": "easy"},
      "exercises": [{"question": "7 + 5", "correct_answer": "12",
                     "answer_type": "numeric", "exercise_type": "addition"}]
    }

A bare JSON list of exercises is accepted too. The batch is sampled at
random and sized by age group unless the caller asks for a count.
"""

from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path
from typing import Any

import structlog

from training.config.app_config import LifecycleConfig
from training.core.errors import InvalidConfigError, NotFoundError
from training.core.ports import GeneratedBatch

logger = structlog.get_logger(__name__)

GENERATOR_VERSION = "file_bank_v1"

# Exercise types below this accuracy get priority in adaptive batches
WEAK_TYPE_ACCURACY = 70.0
WEAK_TYPE_MIN_ATTEMPTS = 3


def bank_path(exercises_dir: Path, curriculum: str, level: str) -> Path:
    return exercises_dir / curriculum / f"{level}.json"


def load_bank(path: Path) -> dict[str, Any]:
    """Read and normalize an exercise bank file.

    Raises:
        InvalidConfigError: If the file is not a valid bank
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidConfigError(f"Exercise bank {path} is not valid JSON: {e}") from e

    if isinstance(data, list):
        data = {"exercises": data}
    if not isinstance(data, dict) or not isinstance(data.get("exercises"), list):
        raise InvalidConfigError(f"Exercise bank {path} has no exercise list")

    for i, exercise in enumerate(data["exercises"]):
        if "question" not in exercise or "correct_answer" not in exercise:
            raise InvalidConfigError(
                f"Exercise {i} in {path} needs 'question' and 'correct_answer'"
            )
    return data


def weak_exercise_types(profile: dict[str, Any] | None) -> set[str]:
    """Exercise types the adaptive profile marks as weak."""
    if not profile:
        return set()
    weak = set()
    for exercise_type, stats in profile.get("exercise_types", {}).items():
        attempts = stats.get("attempts", 0)
        if attempts < WEAK_TYPE_MIN_ATTEMPTS:
            continue
        if stats.get("correct", 0) / attempts * 100 < WEAK_TYPE_ACCURACY:
            weak.add(exercise_type)
    return weak


def sample_exercises(
    exercises: list[dict[str, Any]],
    count: int,
    rng: random.Random,
    focus_types: set[str] | None = None,
) -> list[dict[str, Any]]:
    """Pick up to `count` exercises.

    When focus types are given, up to half the batch is drawn from them
    first; the rest is sampled from the remaining pool.
    """
    count = min(count, len(exercises))
    if not focus_types:
        return rng.sample(exercises, count)

    focused = [e for e in exercises if e.get("exercise_type") in focus_types]
    others = [e for e in exercises if e.get("exercise_type") not in focus_types]
    picked = rng.sample(focused, min(len(focused), count // 2))
    rest = rng.sample(others, min(len(others), count - len(picked)))
    if len(picked) + len(rest) < count:
        leftover = [e for e in focused if e not in picked]
        rest += rng.sample(leftover, count - len(picked) - len(rest))
    batch = picked + rest
    rng.shuffle(batch)
    return batch


class FileExerciseGenerator:
    """ExerciseGenerator backed by JSON exercise banks on disk."""

    def __init__(
        self,
        exercises_dir: Path,
        lifecycle: LifecycleConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.exercises_dir = Path(exercises_dir)
        self.lifecycle = lifecycle or LifecycleConfig()
        self._rng = rng or random.Random()

    async def generate(
        self,
        curriculum: str,
        level: str,
        age_group: str,
        session_type: str,
        adaptive_hint: dict[str, Any] | None,
        custom_settings: dict[str, Any],
    ) -> GeneratedBatch:
        path = bank_path(self.exercises_dir, curriculum, level)
        if not path.exists():
            raise NotFoundError("exercise bank", f"{curriculum}/{level}")

        bank = await asyncio.to_thread(load_bank, path)
        count = int(custom_settings.get("exercise_count") or self.lifecycle.batch_size_for(age_group))
        if count <= 0:
            raise InvalidConfigError(f"exercise_count must be positive, got {count}")

        focus = weak_exercise_types(adaptive_hint)
        exercises = sample_exercises(bank["exercises"], count, self._rng, focus)

        time_limits = [e["time_limit"] for e in exercises if e.get("time_limit")]
        metadata = {
            "generator_version": GENERATOR_VERSION,
            "source": str(path),
            "difficulty": bank.get("metadata", {}).get("difficulty", level),
            "estimated_duration": sum(time_limits) if time_limits else None,
            "focus_types": sorted(focus),
            "session_type": session_type,
        }

        logger.info(
            "exercises_generated",
            curriculum=curriculum,
            level=level,
            age_group=age_group,
            requested=count,
            generated=len(exercises),
            focus_types=sorted(focus),
        )
        return GeneratedBatch(
            exercises=[dict(e) for e in exercises],
            settings=dict(bank.get("settings", {})),
            metadata=metadata,
        )
