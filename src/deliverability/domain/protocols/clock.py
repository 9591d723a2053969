"""Time source used by every time-dependent decision in the core."""
from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        """Current time as epoch milliseconds."""
        ...


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)
