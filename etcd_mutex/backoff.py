# backoff.py

import random

DEFAULT_LOW = 0.0
DEFAULT_HIGH = 0.010


class Backoff:
    """
    Uniformly random wait between low and high seconds after a failed attempt.

    There is no growth between attempts; every interval is drawn from the same
    range. Each instance has its own random source so that competing
    clients desynchronize, and tests can pass a seeded one.
    """

    def __init__(self, low: float = DEFAULT_LOW, high: float = DEFAULT_HIGH, rng: random.Random = None):
        if low < 0 or high < low:
            raise ValueError(f"Invalid backoff range [{low}, {high})")
        self.low = low
        self.high = high
        self.rng = rng or random.Random()

    def next_interval(self) -> float:
        if self.high == self.low:
            return self.low
        return self.rng.uniform(self.low, self.high)
