"""Background timers for periodic discovery work.

``IntervalTimer`` runs a callback on a fixed interval as an asyncio task
until stopped. ``RefreshScheduler`` uses one to re-issue the mDNS query
and SSDP search so devices keep announcing themselves.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class IntervalTimer:
    """Calls *callback* every *interval* seconds.

    The first call happens one interval after ``start()``. A callback
    failure is logged and does not stop the timer.

    Parameters
    ----------
    name:
        Label used in log messages.
    interval:
        Seconds between calls. Values <= 0 disable the timer.
    callback:
        Synchronous callable invoked on the event loop.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Any],
    ) -> None:
        self._name = name
        self._interval = interval
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self._shutdown = asyncio.Event()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    @property
    def is_running(self) -> bool:
        """Whether the timer task is currently running."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer as a background asyncio task."""
        if not self.enabled:
            logger.info("%s timer disabled (interval=%s)", self._name, self._interval)
            return
        if self.is_running:
            return
        self._shutdown.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("%s timer started (interval=%.1fs)", self._name, self._interval)

    async def stop(self) -> None:
        """Stop the timer and wait for its task to finish."""
        self._shutdown.set()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=10)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass
            self._task = None
            logger.info("%s timer stopped", self._name)

    async def _run_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
                return
            except asyncio.TimeoutError:
                pass

            try:
                self._callback()
            except Exception:
                logger.exception("%s timer callback failed", self._name)


class RefreshScheduler:
    """Periodically re-triggers discovery queries.

    Parameters
    ----------
    interval:
        Seconds between refreshes. 0 disables the scheduler.
    trigger:
        Re-issues the mDNS query and SSDP search. Never touches state.
    """

    def __init__(self, interval: float, trigger: Callable[[], None]) -> None:
        self._timer = IntervalTimer("Refresh", interval, trigger)

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    def start(self) -> None:
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()
