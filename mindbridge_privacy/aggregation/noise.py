"""Laplace mechanism via inverse-CDF sampling (numpy)."""

from __future__ import annotations

import math
import threading
from typing import Optional

import numpy as np

from .config import LAPLACE_SENSITIVITY


class LaplaceSampler:
    """
    Draws Laplace(0, sensitivity/epsilon) noise.

    X = -b * sign(u) * ln(1 - 2|u|), u ~ Uniform(-0.5, 0.5). numpy's uniform
    is half-open, so the excluded endpoint u = -0.5 (which would give an
    infinite draw) is rejected and resampled.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def uniform(self) -> float:
        with self._lock:
            while True:
                u = float(self._rng.uniform(-0.5, 0.5))
                if u != -0.5:
                    return u

    def sample(self, epsilon: float, sensitivity: float = LAPLACE_SENSITIVITY) -> float:
        if not (epsilon > 0 and math.isfinite(epsilon)):
            raise ValueError("epsilon must be a positive finite number")
        scale = sensitivity / epsilon
        return laplace_inverse_cdf(self.uniform(), scale)


def laplace_inverse_cdf(u: float, scale: float) -> float:
    """Map u in (-0.5, 0.5) to a Laplace(0, scale) variate."""
    if not -0.5 < u < 0.5:
        raise ValueError("u must lie in (-0.5, 0.5)")
    return -scale * math.copysign(1.0, u) * math.log(1.0 - 2.0 * abs(u))
