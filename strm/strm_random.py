"""
Seedable Lehmer (MINSTD) generator.

A command carries one RNG; every random node forks a child seed from it at
prepare time, so re-evaluating a node (e.g. through `$`) repeats its values
while separate nodes stay independent.
"""
import random as _random

MOD_INNER = 0x7FFFFFFF
MOD_OUTER = 1 << 24
MULTIPLIER = 48271


class RNG:
    def __init__(self, seed: int):
        # zero is a fixed point of the recurrence
        self.state = seed % MOD_INNER or 1

    @staticmethod
    def seed() -> int:
        """A fresh seed from system entropy."""
        return _random.SystemRandom().randrange(1, MOD_INNER)

    def advance(self) -> int:
        self.state = self.state * MULTIPLIER % MOD_INNER
        return self.state

    def get(self, ceil: int = MOD_OUTER) -> int:
        """A uniform integer in [0, ceil), ceil at most MOD_OUTER."""
        # states run over [1, MOD_INNER); drop the uneven tail
        span = MOD_INNER - 1
        limit = span - span % ceil
        while True:
            value = self.advance() - 1
            if value < limit:
                return value % ceil

    def fork(self) -> int:
        """Derive the seed of an independent child generator."""
        return self.advance()

    def random(self, min: int, max: int) -> int:
        """A random integer in [min, max]."""
        diff = max - min
        if diff < 0:
            raise ValueError('max < min')
        if diff < MOD_OUTER:
            return min + self.get(diff + 1)
        # draw 24-bit digits, top digit bounded, and reject overshoots
        order = 0
        last = diff
        c = diff
        while c > 0:
            order += 1
            last = c
            c >>= 24
        while True:
            value = self.get(last + 1)
            for _ in range(1, order):
                value = (value << 24) + self.get(MOD_OUTER)
            if value <= diff:
                return min + value
