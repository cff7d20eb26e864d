"""Epoch-millisecond time, the one internal time representation."""

import time

MS_PER_HOUR = 60 * 60 * 1000


def now_ms() -> int:
    return time.time_ns() // 1_000_000
