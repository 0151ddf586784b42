"""Tests for episim.probability and episim.geometry helpers."""

import numpy as np
import pytest

from episim.errors import ConfigurationError
from episim.geometry import (
    circles_in_contact,
    normalize,
    random_unit_vectors,
    uniform_in_box,
)
from episim.probability import (
    bernoulli,
    check_count,
    check_interval,
    check_non_negative,
    check_positive,
    check_probability,
    normalize_proportions,
    sample_categories,
)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

class TestValidation:
    def test_interval_inclusive(self):
        assert check_interval("x", 1, 5, 1) == 1
        assert check_interval("x", 1, 5, 5) == 5
        with pytest.raises(ConfigurationError, match="x must be between"):
            check_interval("x", 1, 5, 6)

    def test_probability_endpoints(self):
        assert check_probability("p", 0.0) == 0.0
        assert check_probability("p", 1.0) == 1.0
        for bad in (-0.1, 1.1):
            with pytest.raises(ConfigurationError):
                check_probability("p", bad)

    def test_non_negative(self):
        assert check_non_negative("d", 0.0) == 0.0
        with pytest.raises(ConfigurationError):
            check_non_negative("d", -1e-9)

    def test_nan_rejected_everywhere(self):
        nan = float("nan")
        for check in (check_non_negative, check_positive, check_probability,
                      check_count):
            with pytest.raises(ConfigurationError):
                check("v", nan)
        with pytest.raises(ConfigurationError):
            normalize_proportions("mix", [1.0, nan, 1.0])

    def test_positive_excludes_zero(self):
        assert check_positive("s", 1e-9) == 1e-9
        with pytest.raises(ConfigurationError, match="s must be positive"):
            check_positive("s", 0.0)

    def test_count_requires_whole_number(self):
        assert check_count("n", 3) == 3
        assert check_count("n", 4.0) == 4
        assert isinstance(check_count("n", 4.0), int)
        for bad in (2.5, -1, float("inf")):
            with pytest.raises(ConfigurationError):
                check_count("n", bad)

    def test_normalize_proportions(self):
        np.testing.assert_allclose(normalize_proportions("mix", [2, 1, 1]),
                                   [0.5, 0.25, 0.25])

    def test_normalize_rejects_zero_and_negative(self):
        with pytest.raises(ConfigurationError):
            normalize_proportions("mix", [0, 0, 0])
        with pytest.raises(ConfigurationError):
            normalize_proportions("mix", [1, -1, 1])


# ═══════════════════════════════════════════════════════════════════════
# SAMPLING
# ═══════════════════════════════════════════════════════════════════════

class TestSampling:
    def test_bernoulli_certain_outcomes(self):
        rng = np.random.default_rng(0)
        assert all(bernoulli(1.0, rng) for _ in range(500))
        assert not any(bernoulli(0.0, rng) for _ in range(500))

    def test_bernoulli_rate(self):
        rng = np.random.default_rng(1)
        hits = sum(bernoulli(0.3, rng) for _ in range(20_000))
        assert 0.28 < hits / 20_000 < 0.32

    def test_sample_categories_respects_zero_weight(self):
        rng = np.random.default_rng(2)
        draws = sample_categories(np.array([0.5, 0.0, 0.5]), 1000, rng)
        assert not np.any(draws == 1)
        assert set(np.unique(draws)) == {0, 2}


# ═══════════════════════════════════════════════════════════════════════
# GEOMETRY
# ═══════════════════════════════════════════════════════════════════════

class TestGeometry:
    def test_normalize_zero_stays_zero(self):
        np.testing.assert_array_equal(normalize(np.zeros(2)), [0.0, 0.0])

    def test_normalize_unit(self):
        np.testing.assert_allclose(normalize(np.array([3.0, 4.0])), [0.6, 0.8])

    def test_random_unit_vectors(self):
        v = random_unit_vectors(100, np.random.default_rng(3))
        np.testing.assert_allclose(np.hypot(v[:, 0], v[:, 1]), 1.0)

    def test_uniform_in_box_bounds(self):
        pts = uniform_in_box(500, (5, 5), (495, 95), np.random.default_rng(4))
        assert pts.shape == (500, 2)
        assert pts[:, 0].min() >= 5 and pts[:, 0].max() <= 495
        assert pts[:, 1].min() >= 5 and pts[:, 1].max() <= 95

    def test_contact_requires_overlap(self):
        assert not circles_in_contact(10.1, 0.0, -1.0, 0.0, 10.0)
        assert circles_in_contact(10.0, 0.0, -1.0, 0.0, 10.0)

    def test_separating_pair_not_in_contact(self):
        # Other is to the right and moving further right
        assert not circles_in_contact(5.0, 0.0, 1.0, 0.0, 10.0)

    def test_stationary_overlap_counts(self):
        assert circles_in_contact(5.0, 0.0, 0.0, 0.0, 10.0)
