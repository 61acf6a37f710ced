"""
subsettle/core/time.py

Time sources for the ledger.

Ledger arithmetic runs on integer Unix seconds read from a Clock.
Journal entries carry a wire timestamp from journal_timestamp().

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)
"""

import time
from datetime import datetime, timezone


class SystemClock:
    """Wall-clock time in whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Deterministic clock for tests and scenario runs.

    Starts at `start` and only moves when advance() or jump_to() is called.
    """

    def __init__(self, start: int = 0) -> None:
        self.start = start
        self._now = start

    def now(self) -> int:
        return self._now

    def __repr__(self) -> str:
        return f"ManualClock(start={self.start}, now={self._now})"

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards by {seconds}s")
        self._now = self.now() + seconds
        return self._now

    def jump_to(self, ts: int) -> None:
        if ts < self.now():
            raise ValueError(f"cannot jump backwards to {ts}")
        self._now = ts


def unsettled_epochs(now: int, last_settlement_time: int, epoch_length: int) -> int:
    """Whole epochs elapsed since the last settlement. Never negative."""
    if now <= last_settlement_time:
        return 0
    return (now - last_settlement_time) // epoch_length


def journal_timestamp() -> str:
    """
    Return current UTC time in journal wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
