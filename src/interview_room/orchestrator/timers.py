"""
Call duration tracking and per-turn silence timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

SILENCE_TIMEOUT = "silence_timeout"


class DurationTracker:
    """
    Measures how long the call has been running.

    Two measurements are kept: monotonic start/stop timestamps, and a counter
    that ticks once per ``tick_s`` while running. The timestamps win when a
    start was recorded; otherwise the counter is the fallback.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic, tick_s: float = 1.0) -> None:
        self._clock = clock
        self._tick_s = tick_s
        self._started_at: float | None = None
        self._stopped_at: float | None = None
        self._count = 0
        self._frozen = False
        self._task: asyncio.Task[None] | None = None

    @property
    def count(self) -> int:
        """Seconds counted by the ticker."""
        return self._count

    @property
    def is_running(self) -> bool:
        return self._started_at is not None and not self._frozen

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def start(self) -> None:
        """Start measuring. Calling it again while running is a no-op."""
        if self._started_at is not None or self._frozen:
            return
        self._started_at = self._clock()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: timestamps still work, the counter just stays at zero.
            return
        self._task = loop.create_task(self._tick())

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_s)
            self._count += 1

    def stop(self) -> float:
        """Freeze the tracker and return the final duration."""
        if not self._frozen:
            self._frozen = True
            if self._started_at is not None:
                self._stopped_at = self._clock()
            if self._task is not None:
                self._task.cancel()
                self._task = None
        return self.duration()

    def elapsed(self) -> float | None:
        """Timestamp-measured seconds, or None if no start was recorded."""
        if self._started_at is None:
            return None
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return max(0.0, end - self._started_at)

    def duration(self) -> float:
        """Best available duration in seconds (millisecond precision)."""
        elapsed = self.elapsed()
        if elapsed is None:
            return float(self._count)
        return round(elapsed, 3)


class SilenceTimeout:
    """Bounds how long a single listening phase may last."""

    def __init__(self, timeout_s: float = 30.0) -> None:
        self.timeout_s = timeout_s

    async def wait(self, **signals: asyncio.Event) -> str:
        """
        Wait until one of ``signals`` is set or the timeout elapses.

        Args:
            **signals: Named events that end the listening phase early
                (e.g. ``manual=...``, ``vad=...``).

        Returns:
            The name of the first signal that fired, or ``"silence_timeout"``.
        """
        for name, event in signals.items():
            if event.is_set():
                return name

        waiters = {asyncio.ensure_future(event.wait()): name for name, event in signals.items()}
        try:
            if not waiters:
                await asyncio.sleep(self.timeout_s)
                return SILENCE_TIMEOUT
            done, _ = await asyncio.wait(
                waiters.keys(),
                timeout=self.timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        for task, name in waiters.items():
            if task in done:
                return name
        logger.info(f"[FSM] silence timeout after {self.timeout_s:.1f}s")
        return SILENCE_TIMEOUT
