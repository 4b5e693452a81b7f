"""
Millisecond wall clock used for cache and rate-limit timestamps.
"""

import time
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Current epoch time in milliseconds."""
    return time.time() * 1000
