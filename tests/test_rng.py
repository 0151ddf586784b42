"""Tests for episim.rng — seeded RNG hierarchy and checkpointing."""

import numpy as np
import pytest

from episim.rng import (
    STREAM_NAMES,
    create_rng_hierarchy,
    restore_rng_state,
    rng_state_snapshot,
)


class TestCreateRngHierarchy:
    def test_returns_every_stream(self):
        rngs = create_rng_hierarchy(42)
        assert set(rngs) == set(STREAM_NAMES)

    def test_generators_are_independent(self):
        rngs = create_rng_hierarchy(42)
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals)

    def test_reproducibility(self):
        rngs1 = create_rng_hierarchy(42)
        rngs2 = create_rng_hierarchy(42)
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(100),
                                          rngs2[name].random(100))

    def test_different_seeds_differ(self):
        a = create_rng_hierarchy(42)['transmission'].random(10)
        b = create_rng_hierarchy(43)['transmission'].random(10)
        assert not np.array_equal(a, b)

    def test_draws_on_one_stream_do_not_shift_another(self):
        rngs1 = create_rng_hierarchy(7)
        rngs2 = create_rng_hierarchy(7)
        rngs1['testing'].random(1000)
        np.testing.assert_array_equal(rngs1['lifecycle'].random(20),
                                      rngs2['lifecycle'].random(20))


class TestRngCheckpoint:
    def test_restore_replays_sequence(self):
        rngs = create_rng_hierarchy(42)
        rngs['behavior'].random(5)
        saved = rng_state_snapshot(rngs)
        expected = rngs['behavior'].random(10)
        restore_rng_state(rngs, saved)
        np.testing.assert_array_equal(rngs['behavior'].random(10), expected)

    def test_unknown_stream_raises(self):
        rngs = create_rng_hierarchy(42)
        saved = rng_state_snapshot(rngs)
        saved['bogus'] = saved['behavior']
        with pytest.raises(KeyError, match="bogus"):
            restore_rng_state(rngs, saved)
