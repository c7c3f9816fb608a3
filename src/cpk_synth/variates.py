"""Box-Muller normal deviates drawn from a shared uniform source."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np


class NormalVariateGenerator:
    def __init__(self, rng: Optional[np.random.Generator] = None, *, seed: Optional[int] = None) -> None:
        if rng is not None and seed is not None:
            raise ValueError("Pass either rng or seed, not both.")
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def uniform(self) -> float:
        """Uniform draw with zero outcomes redrawn, so ``log`` stays finite."""
        value = 0.0
        while value == 0.0:
            value = float(self.rng.random())
        return value

    def uniform_between(self, low: float, high: float) -> float:
        return low + float(self.rng.random()) * (high - low)

    def sample(self, mean: float = 0.0, sigma: float = 1.0) -> float:
        u = self.uniform()
        v = self.uniform()
        return mean + sigma * math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
