"""Exponential retry backoff with deterministic jitter."""

import random


class BackoffPolicy:
    """Maps a retry attempt count to a delay in milliseconds.

    The jitter for a given attempt is drawn from a generator seeded with
    ``(seed, attempts)``, so the same attempt always yields the same delay
    while different instances (different seeds) still spread out.
    """

    def __init__(
        self,
        base_ms: int = 1000,
        max_ms: int = 3_600_000,
        jitter: float = 0.2,
        seed: int | str = 0,
    ):
        if base_ms <= 0:
            raise ValueError("base_ms must be positive")
        if max_ms < base_ms:
            raise ValueError("max_ms must be >= base_ms")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

        self._base_ms = base_ms
        self._max_ms = max_ms
        self._jitter = jitter
        self._seed = seed

    @classmethod
    def from_config(cls, config, seed: int | str = 0) -> "BackoffPolicy":
        return cls(
            base_ms=config.backoff_base_ms,
            max_ms=config.backoff_max_ms,
            jitter=config.backoff_jitter,
            seed=seed,
        )

    def with_seed(self, seed: int | str) -> "BackoffPolicy":
        return BackoffPolicy(self._base_ms, self._max_ms, self._jitter, seed)

    def _jitter_fraction(self, attempts: int) -> float:
        if self._jitter == 0:
            return 0.0
        return random.Random(f"{self._seed}:{attempts}").random()

    def delay_ms(self, attempts: int) -> int:
        """Delay before the next try after ``attempts`` failures."""
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        # Past this exponent the raw delay is above any sane cap.
        exponent = min(attempts - 1, 62)
        raw = self._base_ms * (2**exponent)
        if raw >= self._max_ms:
            return self._max_ms

        # jitter < 1 keeps raw * (1 + jitter) below the next doubling.
        jittered = raw * (1 + self._jitter * self._jitter_fraction(attempts))
        return min(self._max_ms, int(jittered))

    def __call__(self, attempts: int) -> int:
        return self.delay_ms(attempts)
