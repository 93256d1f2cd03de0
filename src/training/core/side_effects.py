"""Best-effort side effects run after a state transition commits.

Operation handlers collect persistence, notification and adaptive-profile
calls while holding the session lock, then flush them after releasing it.
A failing effect is logged and skipped; the in-memory transition stays.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


async def run_isolated(
    name: str,
    action: Callable[[], Awaitable[Any]],
    default: Any = None,
    **context: Any,
) -> Any:
    """Run one best-effort step whose result the caller needs.

    Returns `default` (after logging) if the step raises.
    """
    try:
        return await action()
    except Exception as e:
        logger.warning(
            "side_effect_failed",
            effect=name,
            error=str(e),
            error_type=type(e).__name__,
            **context,
        )
        return default


@dataclass
class SideEffect:
    name: str
    action: Callable[[], Awaitable[Any]]
    context: dict[str, Any] = field(default_factory=dict)


class SideEffectQueue:
    """Ordered list of pending side effects for one operation."""

    def __init__(self):
        self._effects: list[SideEffect] = []

    def __len__(self) -> int:
        return len(self._effects)

    @property
    def names(self) -> list[str]:
        return [effect.name for effect in self._effects]

    def add(self, name: str, action: Callable[[], Awaitable[Any]], **context: Any) -> None:
        self._effects.append(SideEffect(name=name, action=action, context=context))

    async def flush(self) -> list[str]:
        """Run every queued effect in order.

        Returns:
            Names of the effects that failed
        """
        failed = []
        effects, self._effects = self._effects, []
        for effect in effects:
            try:
                await effect.action()
            except Exception as e:
                failed.append(effect.name)
                logger.warning(
                    "side_effect_failed",
                    effect=effect.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    **effect.context,
                )
        return failed
