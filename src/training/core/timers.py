"""Cancellable per-session timers.

Each live session owns an auto-save interval and a one-shot timeout,
both asyncio tasks. Callbacks are expected to check session status
themselves, so a timer that fires after completion does nothing.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


async def _auto_save_loop(session_id: str, interval: float, callback: TimerCallback) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await callback()
        except Exception as e:
            logger.warning("auto_save_failed", session_id=session_id, error=str(e))


async def _fire_after(session_id: str, delay: float, callback: TimerCallback) -> None:
    await asyncio.sleep(delay)
    logger.debug("session_timeout_fired", session_id=session_id)
    await callback()


class SessionTimers:
    """Auto-save and timeout timers for one session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._auto_save: asyncio.Task | None = None
        self._timeout: asyncio.Task | None = None

    @property
    def armed(self) -> bool:
        return any(t is not None and not t.done() for t in (self._auto_save, self._timeout))

    def arm(
        self,
        auto_save_interval: float | None,
        on_auto_save: TimerCallback,
        timeout_seconds: float,
        on_timeout: TimerCallback,
    ) -> None:
        """Start both timers, replacing any that are running.

        Must be called from inside a running event loop.
        """
        self.cancel()
        if auto_save_interval and auto_save_interval > 0:
            self._auto_save = asyncio.create_task(
                _auto_save_loop(self.session_id, auto_save_interval, on_auto_save)
            )
        self._timeout = asyncio.create_task(
            _fire_after(self.session_id, max(timeout_seconds, 0.0), on_timeout)
        )

    def cancel(self) -> None:
        """Cancel both timers.

        The task currently running (a timer completing its own session)
        is left alone so it can finish.
        """
        current = _current_task()
        for task in (self._auto_save, self._timeout):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._auto_save = None
        self._timeout = None
