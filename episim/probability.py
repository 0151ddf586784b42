"""Probability sampling and parameter validation helpers.

All sampling is total: every call returns a boolean or an index and has
no failure mode. Validation helpers raise ConfigurationError at the
point of the bad call and never clamp.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from episim.errors import ConfigurationError

MIN_PROB = 0.0
MAX_PROB = 1.0


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def check_interval(name: str, lowest: float, highest: float, value: float) -> float:
    """Require lowest <= value <= highest. Returns value unchanged."""
    if not (lowest <= value <= highest):
        raise ConfigurationError(
            f"{name} must be between {lowest} and {highest}, got {value}"
        )
    return value


def check_probability(name: str, value: float) -> float:
    """Require a probability in [0, 1]; both endpoints are valid."""
    return check_interval(name, MIN_PROB, MAX_PROB, value)


def check_non_negative(name: str, value: float) -> float:
    # Written as a negated comparison so NaN is rejected too
    if not value >= 0:
        raise ConfigurationError(f"{name} must be non-negative, got {value}")
    return value


def check_positive(name: str, value: float) -> float:
    if not value > 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def check_count(name: str, value: float) -> int:
    """Require a non-negative whole number. Returns it as an int."""
    check_non_negative(name, value)
    if not float(value).is_integer():
        raise ConfigurationError(f"{name} must be a whole number, got {value}")
    return int(value)


def normalize_proportions(name: str, proportions: Sequence[float]) -> np.ndarray:
    """Normalize non-negative weights so they sum to 1.

    Inputs need not sum to 1, but none may be negative and they may not
    all be zero.
    """
    weights = np.asarray(proportions, dtype=np.float64)
    if not np.all(weights >= 0):
        raise ConfigurationError(
            f"{name} must all be non-negative, got {list(proportions)}"
        )
    total = weights.sum()
    if not total > 0:
        raise ConfigurationError(f"{name} must not all be zero")
    return weights / total


# ═══════════════════════════════════════════════════════════════════════
# SAMPLING
# ═══════════════════════════════════════════════════════════════════════

def bernoulli(p: float, rng: np.random.Generator) -> bool:
    """One Bernoulli(p) trial.

    rng.random() is in [0, 1), so p=0 never succeeds and p=1 always does.
    """
    return bool(rng.random() < p)


def sample_categories(
    weights: np.ndarray,
    n: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw n category indices with the given normalized weights."""
    return rng.choice(len(weights), size=n, p=weights)
