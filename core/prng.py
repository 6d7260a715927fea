"""
Lineboil — Seeded Scalar Generator
Linear congruential stream of floats in [0, 1). Integer-only recurrence,
so the same seed yields the same sequence on every platform.
"""

MULTIPLIER = 9301
INCREMENT = 49297
MODULUS = 233280


class SeededRandom:
    """Repeatable scalar stream.

    state = (state * 9301 + 49297) mod 233280
    value = state / 233280
    """

    def __init__(self, seed: int):
        self._state = int(seed) % MODULUS

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> float:
        self._state = (self._state * MULTIPLIER + INCREMENT) % MODULUS
        return self._state / MODULUS

    def take(self, n: int) -> list[float]:
        """Draw the next n values."""
        return [self.next() for _ in range(n)]

    def __iter__(self):
        return self

    def __next__(self) -> float:
        return self.next()


def seeded_values(seed: int, n: int) -> list[float]:
    """First n values of the stream seeded with `seed`."""
    return SeededRandom(seed).take(n)
