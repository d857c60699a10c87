"""
Exam countdown.

tick() is a pure step function; the session machine owns the clock and
decides what to do with the result (persist, auto-submit). PersistThrottle
tracks how much time has passed since the countdown was last written.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TickResult:
    remaining_ms: int
    expired: bool


def tick(remaining_ms: int, elapsed_ms: int) -> TickResult:
    """Advance the countdown by elapsed_ms; never goes below zero."""
    if elapsed_ms < 0:
        raise ValueError("elapsed_ms must be non-negative")
    remaining = max(0, remaining_ms - elapsed_ms)
    return TickResult(remaining_ms=remaining, expired=remaining == 0)


class PersistThrottle:
    """Signals when accumulated elapsed time reaches the persist interval."""

    def __init__(self, interval_ms: int = 30_000):
        self.interval_ms = interval_ms
        self._since_persist = 0

    def advance(self, elapsed_ms: int) -> bool:
        self._since_persist += elapsed_ms
        return self._since_persist >= self.interval_ms

    def reset(self) -> None:
        self._since_persist = 0


def format_remaining(remaining_ms: int) -> str:
    """H:MM:SS (or MM:SS under an hour) for display."""
    total_seconds = max(0, remaining_ms) // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"
