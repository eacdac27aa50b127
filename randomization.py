from typing import Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")

DEFAULT_MISSING_RATE = 0.05


class Randomizer:
    """Single seedable source of randomness threaded through every generator.

    Wraps a ``numpy.random.Generator``; nothing in the package touches the
    global numpy state.
    """

    def __init__(self, seed: Optional[int] = None, generator: Optional[np.random.Generator] = None):
        self.seed = seed
        self._rng = generator if generator is not None else np.random.default_rng(seed)

    def random(self) -> float:
        return float(self._rng.random())

    def uniform_int(self, low: int, high: int) -> int:
        """Whole number in [low, high], both ends inclusive."""
        return int(self._rng.integers(low, high, endpoint=True))

    def uniform(self, low: float, high: float) -> float:
        """Real number in [low, high)."""
        return float(self._rng.uniform(low, high))

    def pick_index(self, table: Sequence[T]) -> int:
        if not table:
            raise ValueError("cannot pick from an empty table")
        return int(self._rng.integers(0, len(table)))

    def pick(self, table: Sequence[T]) -> T:
        return table[self.pick_index(table)]

    def pick_pair(self, codes: Sequence[T], labels: Sequence[str]) -> Tuple[T, str]:
        """Pick one row from two parallel tables (e.g. code and name)."""
        i = self.pick_index(codes)
        return codes[i], labels[i]

    def is_missing(self, probability: float = DEFAULT_MISSING_RATE) -> bool:
        return self.random() < probability

    def pick_or_missing(self, table: Sequence[T], probability: float = DEFAULT_MISSING_RATE) -> Optional[T]:
        if self.is_missing(probability):
            return None
        return self.pick(table)
