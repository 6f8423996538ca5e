"""
Server-side move clock for the player holding the turn.

Each armed clock is a single asyncio task that sleeps for the configured
duration and then runs its callback. Re-arming cancels the previous task, so a
clock never has more than one pending expiry.
"""

from __future__ import annotations

import asyncio
import contextvars
import time
from typing import TYPE_CHECKING

import structlog

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

DEFAULT_MOVE_TIMEOUT_SECONDS = 30.0


class MoveTimer:
    """Cancellable delayed action for one player's move."""

    def __init__(self) -> None:
        self._active_task: asyncio.Task[None] | None = None
        self._deadline: float | None = None

    @property
    def is_active(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    @property
    def remaining_seconds(self) -> float | None:
        """Seconds left before expiry, or None when no clock is running."""
        if not self.is_active or self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def start(self, seconds: float, on_timeout: Callable[[], Awaitable[None]]) -> None:
        """Arm the clock, cancelling any expiry still pending."""
        self.cancel()
        self._deadline = time.monotonic() + seconds
        # fresh context: the arming connection's log bindings must not leak into the expiry
        self._active_task = asyncio.create_task(self._run_timer(seconds, on_timeout), context=contextvars.Context())

    def cancel(self) -> None:
        """Cancel the pending expiry.

        Never cancels the calling task: a timeout callback running inside the
        timer task may clear its own clock without aborting itself.
        """
        task = self._active_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._active_task = None
        self._deadline = None

    async def _run_timer(self, seconds: float, on_timeout: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(seconds)
            await on_timeout()
        except asyncio.CancelledError:
            pass
        except Exception:
            # nothing awaits this task
            logger.exception("move timer callback failed")
