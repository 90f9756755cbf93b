"""
Time gate for speaking sessions and the exam window.

A gate is either counting down, open, or ended. The decision is a pure
function of the server clock and the window; nothing is persisted.
"""
import time
from collections import namedtuple

COUNTDOWN = "countdown"
OPEN = "open"
ENDED = "ended"

GateResult = namedtuple("GateResult", ["status", "remaining_ms"])


def now_ms():
    """Current epoch time in milliseconds (server clock)."""
    return int(time.time() * 1000)


def window_end(start_utc_ms, duration_seconds):
    return int(start_utc_ms) + int(duration_seconds) * 1000


def evaluate(now, start_utc_ms, duration_seconds) -> GateResult:
    """Classify `now` against the half-open window [start, start + duration).

    Boundary instants resolve to the later state: now == start is open,
    now == end is ended. remaining_ms is the time to the next transition
    and is 0 once the window has ended.
    """
    start = int(start_utc_ms)
    end = window_end(start, duration_seconds)
    if now < start:
        return GateResult(COUNTDOWN, start - now)
    if now < end:
        return GateResult(OPEN, end - now)
    return GateResult(ENDED, 0)
