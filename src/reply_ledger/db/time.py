"""Time utilities for database models."""

import time


def now_ms() -> int:
    """Return the current time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000


def next_timestamp(previous: int | None) -> int:
    """Return a timestamp strictly greater than ``previous``.

    Two mutations of the same row within one millisecond must still produce
    increasing ``updated_at`` values.
    """
    current = now_ms()
    if previous is None:
        return current
    return max(current, previous + 1)
