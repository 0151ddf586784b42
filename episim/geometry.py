"""2D vector helpers.

Vectors are length-2 float arrays or (n, 2) stacks. Zero vectors stay
zero under normalisation instead of producing NaN.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

TWO_PI = 2.0 * np.pi


def magnitude(v: np.ndarray) -> float:
    return float(np.hypot(v[0], v[1]))


def normalize(v: np.ndarray) -> np.ndarray:
    """Unit vector in the direction of v, or the zero vector."""
    m = magnitude(v)
    if m == 0.0:
        return np.zeros(2)
    return np.asarray(v, dtype=np.float64) / m


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return float(np.hypot(x2 - x1, y2 - y1))


def random_unit_vectors(n: int, rng: np.random.Generator) -> np.ndarray:
    """(n, 2) unit vectors at uniformly random angles."""
    angles = rng.uniform(0.0, TWO_PI, size=n)
    return np.column_stack((np.cos(angles), np.sin(angles)))


def uniform_in_box(
    n: int,
    low: Tuple[float, float],
    high: Tuple[float, float],
    rng: np.random.Generator,
) -> np.ndarray:
    """(n, 2) points uniform in the axis-aligned box [low, high]."""
    xs = rng.uniform(low[0], high[0], size=n)
    ys = rng.uniform(low[1], high[1], size=n)
    return np.column_stack((xs, ys))


def circles_in_contact(
    dx: float, dy: float, dvx: float, dvy: float, radius_sum: float,
) -> bool:
    """True if two circles overlap and are not separating.

    dx, dy is the relative position and dvx, dvy the relative velocity
    (other minus self). Closing means their dot product is <= 0.
    """
    if dx * dx + dy * dy > radius_sum * radius_sum:
        return False
    return dx * dvx + dy * dvy <= 0.0
