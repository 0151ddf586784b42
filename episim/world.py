"""World: the agent arena, its two areas, and the testing policy.

The World owns every agent row and exactly two Areas (city and
quarantine). Every live agent is a member of exactly one of them.

Testing cadence: a test pass runs at most once per advance() call,
whenever the half-open interval (old_time, new_time] contains a
multiple of testing_frequency. A long tick spanning several multiples
still fires a single pass. testing_frequency = 0 tests on every tick.
The start time t = 0 is not itself a boundary: with frequency f the
first pass runs on the tick that reaches t = f.

A test pass, in order:
  1. Quarantine release: every quarantined agent not INFECTED returns
     to the city (no test needed).
  2. City testing: scan city members in id order; each INFECTED agent
     is detected with P = detection_rate and queued for quarantine.
     The scan stops as soon as quarantine would be full; agents not
     reached are simply missed this pass.
Moves are collected during the scan and applied after it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from episim.area import Area
from episim.behavior import initial_velocities
from episim.config import SimulationConfig
from episim.errors import InvariantError
from episim.pathogen import Strain, StrainRegistry, infect
from episim.probability import (
    bernoulli,
    check_count,
    check_non_negative,
    check_probability,
    normalize_proportions,
    sample_categories,
)
from episim.spatial import SpatialIndex
from episim.types import (
    NO_STRAIN,
    AreaCode,
    AreaSnapshot,
    BehaviorType,
    HealthState,
    allocate_agents,
)

logger = logging.getLogger(__name__)


@dataclass
class TestingReport:
    """What one test pass did."""
    time: float
    released: List[int] = field(default_factory=list)
    tested: int = 0
    detected: List[int] = field(default_factory=list)
    stopped_at_capacity: bool = False


def due_for_testing(old_time: float, new_time: float, frequency: float) -> bool:
    """True if (old_time, new_time] contains a multiple of frequency."""
    if new_time <= old_time:
        return False
    if frequency == 0:
        return True
    next_boundary = (math.floor(old_time / frequency) + 1) * frequency
    return next_boundary <= new_time


class World:
    """Agent arena plus city and quarantine areas."""

    def __init__(
        self,
        agents: np.ndarray,
        city: Area,
        quarantine: Area,
        registry: StrainRegistry,
        detection_rate: float,
        testing_frequency: float,
        quarantine_capacity: int,
        cell_size: float,
    ):
        self.agents = agents
        self.city = city
        self.quarantine = quarantine
        self.registry = registry
        self.detection_rate = detection_rate
        self.testing_frequency = testing_frequency
        self.quarantine_capacity = quarantine_capacity
        self.elapsed = 0.0
        self.tick = 0
        self.initial_population = int(len(agents))
        self.indices: Dict[AreaCode, SpatialIndex] = {
            AreaCode.CITY: SpatialIndex(cell_size, city.radius),
            AreaCode.QUARANTINE: SpatialIndex(cell_size, quarantine.radius),
        }

    # ── Validated runtime parameters ─────────────────────────────────

    @property
    def detection_rate(self) -> float:
        return self._detection_rate

    @detection_rate.setter
    def detection_rate(self, value: float) -> None:
        self._detection_rate = check_probability("detection_rate", value)

    @property
    def testing_frequency(self) -> float:
        return self._testing_frequency

    @testing_frequency.setter
    def testing_frequency(self, value: float) -> None:
        self._testing_frequency = check_non_negative("testing_frequency", value)

    @property
    def quarantine_capacity(self) -> int:
        return self._quarantine_capacity

    @quarantine_capacity.setter
    def quarantine_capacity(self, value: int) -> None:
        self._quarantine_capacity = check_count("quarantine_capacity", value)

    @property
    def quarantine_limit(self) -> int:
        """Effective quarantine limit: policy capacity or geometry."""
        return min(self.quarantine_capacity, self.quarantine.capacity)

    # ── Areas & membership ───────────────────────────────────────────

    def area(self, code: AreaCode) -> Area:
        if code == AreaCode.CITY:
            return self.city
        if code == AreaCode.QUARANTINE:
            return self.quarantine
        raise KeyError(f"No area for code {code!r}")

    @property
    def areas(self) -> Dict[AreaCode, Area]:
        return {AreaCode.CITY: self.city, AreaCode.QUARANTINE: self.quarantine}

    def place(self, agent_id: int, code: AreaCode,
              rng: np.random.Generator) -> None:
        """Add an agent to an area at a random position inside it."""
        area = self.area(code)
        area.add(agent_id)
        x, y = area.random_positions(1, rng)[0]
        self.agents['x'][agent_id] = x
        self.agents['y'][agent_id] = y
        self.agents['area'][agent_id] = code

    def transfer(self, agent_id: int, dest: AreaCode,
                 rng: np.random.Generator) -> None:
        """Move an agent between areas, keeping its velocity.

        The destination add happens first, so a CapacityError leaves the
        agent where it was.
        """
        source = AreaCode(int(self.agents['area'][agent_id]))
        if source == dest:
            return
        self.place(agent_id, dest, rng)
        self.area(source).remove(agent_id)

    def kill(self, agent_id: int) -> None:
        """Remove a dead host from its area and mark its row."""
        code = AreaCode(int(self.agents['area'][agent_id]))
        self.area(code).remove(agent_id)
        row = self.agents
        row['alive'][agent_id] = False
        row['health'][agent_id] = HealthState.DECEASED
        row['strain'][agent_id] = NO_STRAIN
        row['lifetime'][agent_id] = 0.0
        row['antigen'][agent_id] = NO_STRAIN
        row['immunity_remaining'][agent_id] = 0.0
        row['vx'][agent_id] = 0.0
        row['vy'][agent_id] = 0.0
        row['area'][agent_id] = AreaCode.NONE

    def live_count(self) -> int:
        return len(self.city) + len(self.quarantine)

    # ── Per-tick spatial stages ──────────────────────────────────────

    def rebuild_indices(self) -> None:
        for code, area in self.areas.items():
            self.indices[code].rebuild(self.agents, area.members)

    def resolve_wall_collisions(self) -> int:
        return (self.city.resolve_wall_collisions(self.agents)
                + self.quarantine.resolve_wall_collisions(self.agents))

    # ── Testing policy ───────────────────────────────────────────────

    def advance_clock(self, dt: float) -> bool:
        """Accumulate simulated time. Returns True if a test pass is due."""
        old = self.elapsed
        self.elapsed = old + dt
        self.tick += 1
        return due_for_testing(old, self.elapsed, self.testing_frequency)

    def release_quarantine(self, rng: np.random.Generator) -> List[int]:
        """Return every non-infected quarantined agent to the city."""
        released = [i for i in self.quarantine
                    if self.agents['health'][i] != HealthState.INFECTED]
        for i in released:
            self.transfer(i, AreaCode.CITY, rng)
        return released

    def test_city(self, rng: np.random.Generator, report: TestingReport) -> None:
        """Detect infected city members and move them to quarantine."""
        limit = self.quarantine_limit
        queued: List[int] = []
        for i in self.city:
            if len(self.quarantine) + len(queued) >= limit:
                report.stopped_at_capacity = True
                break
            if self.agents['health'][i] != HealthState.INFECTED:
                continue
            report.tested += 1
            if bernoulli(self.detection_rate, rng):
                queued.append(i)

        for i in queued:
            self.transfer(i, AreaCode.QUARANTINE, rng)
        report.detected = queued

    def run_testing(self, rng: np.random.Generator) -> TestingReport:
        """One full test pass: release, then test the city."""
        report = TestingReport(time=self.elapsed)
        report.released = self.release_quarantine(rng)
        self.test_city(rng, report)
        logger.debug(
            "test pass t=%.2f: released=%d tested=%d detected=%d%s",
            self.elapsed, len(report.released), report.tested,
            len(report.detected),
            " (quarantine full)" if report.stopped_at_capacity else "",
        )
        return report

    # ── Read-only views & checks ─────────────────────────────────────

    def snapshots(self) -> Dict[str, AreaSnapshot]:
        return {
            'city': self.city.snapshot(self.agents, self.tick),
            'quarantine': self.quarantine.snapshot(self.agents, self.tick),
        }

    def check_invariants(self) -> None:
        """Verify membership, capacity and pathogen consistency.

        Raises:
            InvariantError: On the first violation found.
        """
        agents = self.agents
        for code, area in self.areas.items():
            if len(area) > area.capacity:
                raise InvariantError(
                    f"{area.name} over capacity: {len(area)} > {area.capacity}")
            for i in area:
                if not agents['alive'][i] or agents['area'][i] != code:
                    raise InvariantError(
                        f"agent {i} listed in {area.name} but row says "
                        f"alive={bool(agents['alive'][i])}, "
                        f"area={int(agents['area'][i])}")

        members = set(self.city.members) | set(self.quarantine.members)
        overlap = set(self.city.members) & set(self.quarantine.members)
        alive = set(np.flatnonzero(agents['alive']).tolist())
        if overlap or members != alive:
            raise InvariantError(
                f"membership mismatch: in both areas {sorted(overlap)}, "
                f"unowned {sorted(alive - members)}")

        infected = agents['health'] == HealthState.INFECTED
        has_pathogen = agents['strain'] != NO_STRAIN
        bad = np.flatnonzero(agents['alive'] & (infected != has_pathogen))
        if bad.size:
            raise InvariantError(
                f"health/pathogen mismatch for agents {bad.tolist()}")


# ═══════════════════════════════════════════════════════════════════════
# CONSTRUCTION
# ═══════════════════════════════════════════════════════════════════════

def create_world(
    config: SimulationConfig,
    rngs: Dict[str, np.random.Generator],
) -> World:
    """Build and populate a world from a validated config.

    Every agent starts in the city at a random position, with a behavior
    drawn from the normalized behavior mix and that behavior's initial
    velocity. Agents 0 .. infected−1 start infected with the configured
    strain.

    Args:
        config: Validated SimulationConfig.
        rngs: RNG hierarchy from create_rng_hierarchy().
    """
    w = config.world
    pop = config.population
    mv = config.movement

    city = Area("city", w.city_width, w.city_height)
    quarantine = Area("quarantine", w.quarantine_width, w.quarantine_height)

    registry = StrainRegistry()
    strain_id = registry.register(Strain.from_section(config.pathogen))

    agents = allocate_agents(pop.total)
    world = World(
        agents=agents,
        city=city,
        quarantine=quarantine,
        registry=registry,
        detection_rate=w.detection_rate,
        testing_frequency=w.testing_frequency,
        quarantine_capacity=w.quarantine_capacity,
        cell_size=mv.cell_size,
    )

    weights = normalize_proportions("population behavior proportions",
                                    pop.behavior_weights)
    behaviors = sample_categories(weights, pop.total, rngs['behavior'])
    velocities = initial_velocities(behaviors, mv.speed, rngs['behavior'])
    positions = city.random_positions(pop.total, rngs['placement'])

    for i in range(pop.total):
        city.add(i)
    agents['x'] = positions[:, 0]
    agents['y'] = positions[:, 1]
    agents['vx'] = velocities[:, 0]
    agents['vy'] = velocities[:, 1]
    agents['behavior'] = behaviors
    agents['area'] = AreaCode.CITY
    agents['alive'] = True
    agents['health'] = HealthState.HEALTHY

    for i in range(pop.infected):
        infect(agents, i, strain_id)

    logger.info(
        "created world: %d agents (%d infected), behavior mix %s",
        pop.total, pop.infected,
        {b.name.lower(): round(float(p), 3)
         for b, p in zip(BehaviorType, weights)},
    )
    return world
