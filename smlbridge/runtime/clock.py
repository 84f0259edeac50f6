from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ns(self) -> int:
        ...

    def now_ms(self) -> int:
        ...


class RealClock:
    """Wall clock (CLOCK_REALTIME); record timestamps and rotation suffixes use it."""

    def now_ns(self) -> int:
        return time.time_ns()

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class FakeClock:
    def __init__(self, start_ns: int = 0) -> None:
        self._now = int(start_ns)

    def now_ns(self) -> int:
        return self._now

    def now_ms(self) -> int:
        return self._now // 1_000_000

    def advance_ms(self, ms: int) -> None:
        self._now += max(0, int(ms)) * 1_000_000

    def set_ns(self, ns: int) -> None:
        self._now = int(ns)


def split_ns(ns: int) -> tuple[int, int]:
    return divmod(int(ns), 1_000_000_000)
