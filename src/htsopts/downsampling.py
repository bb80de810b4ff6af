"""Deterministic read downsampling.

Generator: numpy's PCG64 bit generator seeded through ``SeedSequence`` with the
64-bit two's-complement image of ``random_seed``. Each sampling call draws one
double from ``Generator.random()`` (uniform on [0, 1)) and keeps the read when
the draw is below the fraction. For a fixed seed and a fixed number of calls
the keep/drop sequence is reproducible across runs and machines; other
generator algorithms will give different sequences.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, TypeVar

import numpy as np

from .models import SamReaderOptions, check_downsample_fraction

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UINT64_MASK = (1 << 64) - 1


def make_generator(seed: int) -> np.random.Generator:
    """Build the PCG64 generator used for downsampling from an int64 seed."""
    entropy = int(seed) & _UINT64_MASK
    return np.random.Generator(np.random.PCG64(np.random.SeedSequence(entropy)))


class ReadSampler:
    """Keeps each read independently with probability ``fraction``.

    One sampler holds the generator state of one reader session; never share an
    instance between sessions that should be reproducible on their own.
    A fraction of 0.0 disables downsampling: every read is kept and no random
    numbers are drawn.
    """

    def __init__(self, fraction: float, seed: int = 0) -> None:
        self.fraction = check_downsample_fraction(fraction)
        self.seed = int(seed)
        self._rng = make_generator(self.seed) if self.enabled else None
        if self.enabled:
            logger.debug("Downsampling reads: fraction=%g seed=%d", self.fraction, self.seed)
        self.calls = 0
        self.kept = 0

    @classmethod
    def for_options(cls, options: SamReaderOptions) -> "ReadSampler":
        """Fresh sampler for one reader session."""
        return cls(options.downsample_fraction, options.random_seed)

    @property
    def enabled(self) -> bool:
        return self.fraction != 0.0

    def keep(self) -> bool:
        """Decide the next read; call exactly once per candidate read, in file order."""
        self.calls += 1
        if self._rng is None:
            self.kept += 1
            return True
        keep = bool(self._rng.random() < self.fraction)
        if keep:
            self.kept += 1
        return keep

    def sample(self, items: Iterable[T]) -> Iterator[T]:
        for item in items:
            if self.keep():
                yield item

    def __repr__(self) -> str:
        return f"ReadSampler(fraction={self.fraction}, seed={self.seed})"
