"""Cancellable one-shot timer for coalescing rapid form edits."""

import asyncio
from collections.abc import Awaitable, Callable

from src.timetable.logging import get_logger

logger = get_logger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class Debouncer:
    """Runs the most recently scheduled callback once the input has been quiet.

    Only a call that has not fired yet can be cancelled. A fired call runs to
    completion; the caller discards its result if the input moved on.
    """

    def __init__(self, delay: float, name: str = "debouncer") -> None:
        self.delay = delay
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._callback: AsyncCallback | None = None
        self.last_task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, callback: AsyncCallback, delay: float | None = None) -> None:
        """Replace any pending call with callback, fired after delay seconds."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._callback = callback
        self._handle = loop.call_later(
            self.delay if delay is None else delay, self._fire
        )

    def cancel(self) -> bool:
        """Drop the pending call. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._callback = None
        logger.debug("debounce_cancelled", name=self.name)
        return True

    def fire_now(self) -> asyncio.Task | None:
        """Run the pending call immediately and return its task."""
        if self._handle is None:
            return None
        self._handle.cancel()
        self._fire()
        return self.last_task

    async def wait(self) -> None:
        """Wait for the last fired call to finish."""
        if self.last_task is not None:
            await self.last_task

    def _fire(self) -> None:
        callback = self._callback
        self._handle = None
        self._callback = None
        if callback is None:
            return
        logger.debug("debounce_fired", name=self.name)
        self.last_task = asyncio.ensure_future(callback())
