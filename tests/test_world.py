"""Tests for episim.world — construction, testing cadence and quarantine."""

import numpy as np
import pytest

from episim.config import (
    PopulationSection,
    SimulationConfig,
    WorldSection,
    validate_config,
)
from episim.errors import CapacityError, ConfigurationError, InvariantError
from episim.rng import create_rng_hierarchy
from episim.types import AGENT_RADIUS, AreaCode, BehaviorType, HealthState
from episim.world import create_world, due_for_testing


def _make(total=20, infected=5, seed=1, population=None, **world_kw):
    world_kw.setdefault('detection_rate', 1.0)
    cfg = SimulationConfig(
        population=population or PopulationSection(total=total, infected=infected),
        world=WorldSection(**world_kw),
    )
    validate_config(cfg)
    rngs = create_rng_hierarchy(seed)
    return create_world(cfg, rngs), rngs


# ═══════════════════════════════════════════════════════════════════════
# CONSTRUCTION
# ═══════════════════════════════════════════════════════════════════════

class TestCreateWorld:
    def test_everyone_starts_in_city(self):
        world, _ = _make()
        assert len(world.city) == 20
        assert len(world.quarantine) == 0
        assert np.all(world.agents['area'] == AreaCode.CITY)
        assert np.all(world.agents['alive'])
        world.check_invariants()

    def test_first_ids_infected(self):
        world, _ = _make(total=20, infected=5)
        health = world.agents['health']
        assert np.all(health[:5] == HealthState.INFECTED)
        assert np.all(health[5:] == HealthState.HEALTHY)
        assert np.all(world.agents['strain'][:5] == 1)
        assert len(world.registry) == 1

    def test_positions_inside_city(self):
        world, _ = _make(total=200, city_width=300.0, city_height=200.0)
        x, y = world.agents['x'], world.agents['y']
        assert x.min() >= AGENT_RADIUS and x.max() <= 300.0 - AGENT_RADIUS
        assert y.min() >= AGENT_RADIUS and y.max() <= 200.0 - AGENT_RADIUS

    def test_behavior_mix_sampled(self):
        pop = PopulationSection(total=300, infected=1, passive=0.0,
                                stationary=1.0, avoidant_tracing=1.0)
        world, _ = _make(population=pop)
        behaviors = world.agents['behavior']
        assert not np.any(behaviors == BehaviorType.PASSIVE)
        stationary = behaviors == BehaviorType.STATIONARY
        assert 0 < stationary.sum() < 300
        assert np.all(world.agents['vx'][stationary] == 0.0)
        assert np.all(world.agents['vy'][stationary] == 0.0)
        speed = np.hypot(world.agents['vx'][~stationary], world.agents['vy'][~stationary])
        np.testing.assert_allclose(speed, 60.0)

    def test_same_seed_same_world(self):
        a, _ = _make(seed=9)
        b, _ = _make(seed=9)
        for name in a.agents.dtype.names:
            np.testing.assert_array_equal(a.agents[name], b.agents[name])


# ═══════════════════════════════════════════════════════════════════════
# RUNTIME PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

class TestSetters:
    def test_detection_rate_validated(self):
        world, _ = _make()
        world.detection_rate = 0.0
        world.detection_rate = 1.0
        with pytest.raises(ConfigurationError):
            world.detection_rate = 1.01
        assert world.detection_rate == 1.0

    def test_testing_frequency_validated(self):
        world, _ = _make()
        world.testing_frequency = 0.0
        with pytest.raises(ConfigurationError):
            world.testing_frequency = -1.0
        with pytest.raises(ConfigurationError):
            world.testing_frequency = float("nan")
        assert world.testing_frequency == 0.0

    def test_quarantine_capacity_validated(self):
        world, _ = _make()
        with pytest.raises(ConfigurationError):
            world.quarantine_capacity = -1
        for bad in (2.5, float("nan")):
            with pytest.raises(ConfigurationError):
                world.quarantine_capacity = bad
        world.quarantine_capacity = 3.0
        assert world.quarantine_capacity == 3
        assert isinstance(world.quarantine_capacity, int)

    def test_nan_detection_rate_rejected(self):
        world, _ = _make()
        with pytest.raises(ConfigurationError):
            world.detection_rate = float("nan")
        assert world.detection_rate == 1.0

    def test_quarantine_limit_is_smaller_of_policy_and_geometry(self):
        world, _ = _make(quarantine_width=50.0, quarantine_height=50.0,
                         quarantine_capacity=10)
        assert world.quarantine_limit == 10
        world.quarantine_capacity = 1000
        assert world.quarantine_limit == 25


# ═══════════════════════════════════════════════════════════════════════
# TESTING CADENCE
# ═══════════════════════════════════════════════════════════════════════

class TestTestingCadence:
    @pytest.mark.parametrize("old, new, freq, expected", [
        (0.0, 9.99, 10.0, False),
        (0.0, 10.0, 10.0, True),
        (10.0, 15.0, 10.0, False),   # old boundary already handled
        (9.0, 35.0, 10.0, True),     # spans three multiples
        (0.0, 0.1, 0.0, True),       # frequency 0: every tick
        (1.0, 1.0, 0.0, False),      # no time passed
        (0.0, 0.5, 1.0, False),      # t = 0 is not a boundary
    ])
    def test_due_for_testing(self, old, new, freq, expected):
        assert due_for_testing(old, new, freq) is expected

    def test_long_tick_fires_once(self):
        world, _ = _make(testing_frequency=1.0)
        assert world.advance_clock(3.5) is True
        assert world.elapsed == 3.5
        assert world.tick == 1

    def test_fires_every_frequency(self):
        world, _ = _make(testing_frequency=1.0)
        fired = [world.advance_clock(0.25) for _ in range(12)]
        assert sum(fired) == 3
        assert [i for i, f in enumerate(fired) if f] == [3, 7, 11]


# ═══════════════════════════════════════════════════════════════════════
# TEST PASS & QUARANTINE
# ═══════════════════════════════════════════════════════════════════════

class TestRunTesting:
    def test_all_detected_moved_to_quarantine(self):
        world, rngs = _make(total=20, infected=5)
        report = world.run_testing(rngs['testing'])
        assert report.detected == [0, 1, 2, 3, 4]
        assert report.tested == 5
        assert world.quarantine.members == [0, 1, 2, 3, 4]
        assert len(world.city) == 15
        assert np.all(world.agents['area'][:5] == AreaCode.QUARANTINE)
        assert not report.stopped_at_capacity
        world.check_invariants()

    def test_zero_detection_rate_moves_nobody(self):
        world, rngs = _make(detection_rate=0.0)
        report = world.run_testing(rngs['testing'])
        assert report.tested == 5
        assert report.detected == []
        assert len(world.quarantine) == 0

    def test_scan_stops_when_quarantine_full(self):
        world, rngs = _make(total=20, infected=5, quarantine_capacity=2)
        report = world.run_testing(rngs['testing'])
        assert world.quarantine.members == [0, 1]
        assert report.stopped_at_capacity
        assert report.tested == 2
        world.check_invariants()

    def test_skipped_agents_caught_on_a_later_pass(self):
        world, rngs = _make(total=20, infected=5, quarantine_capacity=2)
        world.run_testing(rngs['testing'])

        # Quarantine still full of infected: nothing released, nothing added
        report = world.run_testing(rngs['testing'])
        assert report.released == []
        assert world.quarantine.members == [0, 1]

        world.agents['health'][[0, 1]] = HealthState.RECOVERED
        world.agents['strain'][[0, 1]] = 0
        report = world.run_testing(rngs['testing'])
        assert report.released == [0, 1]
        assert world.quarantine.members == [2, 3]
        world.check_invariants()

    def test_release_before_testing(self):
        world, rngs = _make(total=20, infected=1, quarantine_capacity=1)
        world.run_testing(rngs['testing'])
        assert world.quarantine.members == [0]
        world.agents['health'][0] = HealthState.HEALTHY
        world.agents['strain'][0] = 0
        report = world.run_testing(rngs['testing'])
        assert report.released == [0]
        assert 0 in world.city
        assert world.agents['area'][0] == AreaCode.CITY

    def test_zero_quarantine_capacity_never_quarantines(self):
        world, rngs = _make(quarantine_capacity=0)
        report = world.run_testing(rngs['testing'])
        assert report.detected == []
        assert report.tested == 0


# ═══════════════════════════════════════════════════════════════════════
# TRANSFERS, DEATH & INVARIANTS
# ═══════════════════════════════════════════════════════════════════════

class TestTransfer:
    def test_transfer_keeps_velocity_and_randomizes_position(self):
        world, rngs = _make(quarantine_width=40.0, quarantine_height=40.0)
        v = (world.agents['vx'][7], world.agents['vy'][7])
        world.transfer(7, AreaCode.QUARANTINE, rngs['placement'])
        assert 7 in world.quarantine and 7 not in world.city
        assert (world.agents['vx'][7], world.agents['vy'][7]) == v
        assert AGENT_RADIUS <= world.agents['x'][7] <= 40.0 - AGENT_RADIUS
        world.check_invariants()

    def test_transfer_into_full_area_leaves_agent_in_place(self):
        world, rngs = _make(quarantine_width=20.0, quarantine_height=10.0)
        world.transfer(0, AreaCode.QUARANTINE, rngs['placement'])
        world.transfer(1, AreaCode.QUARANTINE, rngs['placement'])
        x = world.agents['x'][2]
        with pytest.raises(CapacityError):
            world.transfer(2, AreaCode.QUARANTINE, rngs['placement'])
        assert 2 in world.city
        assert world.agents['area'][2] == AreaCode.CITY
        assert world.agents['x'][2] == x
        world.check_invariants()

    def test_kill_marks_row_and_removes_member(self):
        world, _ = _make()
        world.kill(3)
        row = world.agents[3]
        assert not row['alive']
        assert row['health'] == HealthState.DECEASED
        assert row['area'] == AreaCode.NONE
        assert row['strain'] == 0
        assert 3 not in world.city
        assert world.live_count() == 19
        world.check_invariants()

    def test_invariant_check_catches_double_membership(self):
        world, _ = _make()
        world.quarantine.add(4)
        with pytest.raises(InvariantError):
            world.check_invariants()

    def test_invariant_check_catches_health_mismatch(self):
        world, _ = _make()
        world.agents['strain'][10] = 1
        with pytest.raises(InvariantError, match="health/pathogen"):
            world.check_invariants()

    def test_snapshots_cover_both_areas(self):
        world, rngs = _make()
        world.run_testing(rngs['testing'])
        snaps = world.snapshots()
        assert set(snaps) == {'city', 'quarantine'}
        assert snaps['quarantine'].n_members == 5
        assert snaps['city'].n_members == 15
