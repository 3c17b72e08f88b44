"""
Reconnect Backoff: exponential delay with randomized jitter for push
resubscription.
"""

import random


def calculate_backoff(
    attempt: int, base: float = 1.0, max_delay: float = 30.0, jitter: float = 0.5
) -> float:
    """
    Calculate exponential backoff with jitter.

    Args:
        attempt: Reconnect attempt number (0-indexed)
        base: Base delay in seconds
        max_delay: Maximum delay cap in seconds
        jitter: Jitter range in seconds (±jitter)

    Returns:
        Delay in seconds, never negative
    """
    capped = min(base * (2**attempt), max_delay)
    return max(0.0, capped + random.uniform(-jitter, jitter))


class ReconnectBackoff:
    """
    Tracks consecutive push failures for one channel.

    ``failures`` counts attempts since the last successful subscribe and
    drives both the delay and the "live updates unavailable" warning.
    """

    def __init__(self, base: float = 1.0, max_delay: float = 30.0, jitter: float = 0.5):
        self.base = base
        self.max_delay = max_delay
        self.jitter = min(jitter, base)
        self.failures = 0

    def next(self) -> float:
        """Record a failure and return the delay before the next attempt"""
        delay = calculate_backoff(self.failures, self.base, self.max_delay, self.jitter)
        self.failures += 1
        return delay

    def reset(self):
        self.failures = 0
