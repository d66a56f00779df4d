"""Sliding-window restart budget.

A supervised process that re-requests an image on every resume would
otherwise restart forever.
"""
from __future__ import annotations

from collections import deque

from .errors import TooManyRestarts


class RestartRateLimiter:
    """Allow at most ``max_restarts`` admissions per ``window_seconds``."""

    def __init__(self, max_restarts: int = 5, window_seconds: float = 300.0) -> None:
        if max_restarts < 1:
            raise ValueError("max_restarts must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._max = max_restarts
        self._window = window_seconds
        self._stamps: deque[float] = deque()

    @property
    def max_restarts(self) -> int:
        return self._max

    @property
    def window_seconds(self) -> float:
        return self._window

    @property
    def count(self) -> int:
        """Restarts currently inside the window."""
        return len(self._stamps)

    def admit(self, now: float) -> None:
        """Record a restart at ``now``; raise TooManyRestarts if over budget.

        A rejected attempt is still recorded (evicting the oldest entry),
        so the limiter recovers once the window ages out.
        """
        while self._stamps and now - self._stamps[0] >= self._window:
            self._stamps.popleft()
        self._stamps.append(now)
        if len(self._stamps) > self._max:
            self._stamps.popleft()
            raise TooManyRestarts(self._max, self._window)
