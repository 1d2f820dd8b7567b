"""Reconnect backoff schedule shared by all monitors."""
import math

from . import config

MAX_BACKOFF_SECONDS = config.MAX_BACKOFF_SECONDS


def backoff_delay(attempt, max_delay=MAX_BACKOFF_SECONDS):
    """Return the delay in seconds before retry number ``attempt``.

    ``delay(n) = min(e^n, max_delay)``; ``attempt`` counts the failures that
    preceded this one, so the first retry waits ``e^0`` = 1 second.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    # math.exp overflows long before attempt counts stop growing
    if attempt >= math.log(max_delay):
        return float(max_delay)
    return min(math.exp(attempt), float(max_delay))
