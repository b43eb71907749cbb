"""Monotonic clock helpers."""

import time
from typing import Callable


Clock = Callable[[], float]
Sleeper = Callable[[float], None]


def sleep_for(
    delay: float,
    clock: Clock = time.monotonic,
    sleeper: Sleeper = time.sleep,
) -> None:
    """Sleep until `delay` seconds have passed on the monotonic clock.

    A sleep that returns early (interrupted by a signal) is resumed for the
    remaining time.
    """
    deadline = clock() + delay
    remaining = delay
    while remaining > 0:
        sleeper(remaining)
        remaining = deadline - clock()
