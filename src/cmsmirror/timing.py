"""Elapsed-time helpers for run summaries."""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass(frozen=True)
class Elapsed:
    ms: float
    formatted: str


def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{round(ms)}ms"
    if ms < 60000:
        return f"{ms / 1000:.2f}s"
    minutes = int(ms // 60000)
    seconds = round((ms % 60000) / 1000)
    return f"{minutes}m {seconds}s"


class Timer:
    def __init__(self) -> None:
        self._started: float | None = None

    def start(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def peek(self) -> Elapsed:
        if self._started is None:
            raise RuntimeError("Timer was not started")
        elapsed = (time.perf_counter() - self._started) * 1000.0
        return Elapsed(ms=elapsed, formatted=format_duration(elapsed))

    def end(self) -> Elapsed:
        elapsed = self.peek()
        self._started = None
        return elapsed
