"""Bounded exponential back-off with jitter for watch and relist retries."""

from __future__ import annotations

import random


class Backoff:
    """Delay schedule ``0, base, 2*base, 4*base, ... <= maximum``.

    The first retry after a reset is immediate. Each non-zero delay is
    stretched by a random factor in ``[1, 1 + jitter]`` and then capped at
    *maximum*. A *base* of zero disables back-off entirely.
    """

    def __init__(
        self,
        base: float = 0.5,
        maximum: float = 30.0,
        jitter: float = 0.2,
        rng: random.Random | None = None,
    ) -> None:
        if base < 0 or maximum < 0 or jitter < 0:
            raise ValueError("back-off parameters must be non-negative")
        self._base = base
        self._maximum = maximum
        self._jitter = jitter
        self._rng = rng or random.Random()
        self._attempt = 0

    @property
    def attempts(self) -> int:
        """Retries handed out since the last reset."""
        return self._attempt

    def next_delay(self) -> float:
        attempt = self._attempt
        self._attempt += 1
        if attempt == 0 or self._base == 0:
            return 0.0
        delay = self._base * 2 ** (attempt - 1)
        delay *= 1 + self._rng.uniform(0, self._jitter)
        return min(self._maximum, delay)

    def reset(self) -> None:
        self._attempt = 0
