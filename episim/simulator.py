"""Tick-driven simulation loop.

Each advance() runs one tick of the pipeline:

    1. Rebuild the spatial index of both areas (freezes kinematics)
    2. Resolve wall collisions
    3. Adjust velocities by behavior, then move
    4. Transmission (per area, contacts from the frozen index)
    5. Pathogen lifecycle (deaths remove hosts from their areas)
    6. Immune decay
    7. Testing & quarantine, if the cadence says a pass is due
    8. Statistics update, termination check
    9. Listeners notified

A tick either commits whole or not at all: state is checkpointed before
the pipeline, and any exception restores the checkpoint before it is
re-raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

import numpy as np

from episim.behavior import adjust_velocities, move
from episim.config import SimulationConfig, default_config, validate_config
from episim.immunity import decay
from episim.pathogen import lifecycle_step, transmission_step
from episim.perf import TickProfiler
from episim.probability import check_non_negative, check_positive
from episim.rng import create_rng_hierarchy, restore_rng_state, rng_state_snapshot
from episim.snapshots import SnapshotRecorder
from episim.statistics import Statistics
from episim.types import AreaSnapshot, SimulationState, live_ids
from episim.world import TestingReport, World, create_world

logger = logging.getLogger(__name__)

Listener = Callable[['Simulator'], None]


@dataclass
class _Checkpoint:
    agents: np.ndarray
    city: Set[int]
    quarantine: Set[int]
    elapsed: float
    tick: int
    stats_len: int
    rng_states: Dict[str, dict]


class Simulator:
    """Owns a World and drives it one tick at a time."""

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config if config is not None else default_config()
        validate_config(self.config)
        self._time_scale = self.config.simulation.time_scale
        self._listeners: List[Listener] = []
        self.profiler = TickProfiler(enabled=self.config.output.profile)
        self.recorder = SnapshotRecorder(
            enabled=self.config.output.record_snapshots,
            interval=self.config.output.snapshot_interval,
        )
        self.last_testing: Optional[TestingReport] = None
        self._build()

    def _build(self) -> None:
        self.rngs = create_rng_hierarchy(self.config.simulation.seed)
        self.world: World = create_world(self.config, self.rngs)
        self.statistics = Statistics(self.world.initial_population)
        self.statistics.update(self.world.agents, self.world.elapsed)
        self._state = SimulationState.RUNNING
        self._check_termination()
        self.recorder.capture(self.world.tick, self.world.snapshots())

    # ── Public surface ───────────────────────────────────────────────

    @property
    def state(self) -> SimulationState:
        return self._state

    def is_ended(self) -> bool:
        return self._state != SimulationState.RUNNING

    @property
    def time_scale(self) -> float:
        return self._time_scale

    @time_scale.setter
    def time_scale(self, value: float) -> None:
        self._time_scale = check_positive("time_scale", value)

    @property
    def elapsed(self) -> float:
        return self.world.elapsed

    @property
    def tick(self) -> int:
        return self.world.tick

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(simulator) after every committed tick and reset.

        Returns:
            A function that removes the listener again.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def snapshots(self) -> Dict[str, AreaSnapshot]:
        return self.world.snapshots()

    def reset(self) -> None:
        """Rebuild the world from the config with the original seed."""
        self.profiler.reset()
        self.recorder.clear()
        self.last_testing = None
        self._build()
        logger.info("simulation reset (seed=%d)", self.config.simulation.seed)
        self._notify()

    def advance(self, elapsed_wall_seconds: float) -> SimulationState:
        """Run one tick covering elapsed_wall_seconds × time_scale.

        No-op once the simulation has ended.

        Raises:
            ConfigurationError: If elapsed_wall_seconds is negative or NaN.
            CapacityError: If an area overflowed; the tick is rolled back.
        """
        check_non_negative("elapsed_wall_seconds", elapsed_wall_seconds)
        if self.is_ended():
            return self._state

        dt = elapsed_wall_seconds * self._time_scale
        checkpoint = self._checkpoint()
        try:
            self._tick(dt)
        except Exception:
            self._restore(checkpoint)
            logger.exception("tick %d failed; state rolled back",
                             checkpoint.tick + 1)
            raise
        self.profiler.end_tick()
        self.recorder.capture(self.world.tick, self.world.snapshots())
        self._notify()
        return self._state

    def run(self, dt: Optional[float] = None,
            max_ticks: Optional[int] = None) -> Statistics:
        """Advance until the simulation ends or max_ticks ticks have run.

        Args:
            dt: Wall seconds per tick (default: simulation.tick_seconds).
            max_ticks: Tick cut-off (default: simulation.max_ticks).
        """
        sim = self.config.simulation
        dt = sim.tick_seconds if dt is None else dt
        max_ticks = sim.max_ticks if max_ticks is None else max_ticks
        ran = 0
        while not self.is_ended() and ran < max_ticks:
            self.advance(dt)
            ran += 1
        if not self.is_ended():
            logger.info("stopped after %d ticks at t=%.2f, still running",
                        ran, self.world.elapsed)
        return self.statistics

    # ── Pipeline ─────────────────────────────────────────────────────

    def _tick(self, dt: float) -> None:
        world = self.world
        agents = world.agents
        mv = self.config.movement
        prof = self.profiler

        test_due = world.advance_clock(dt)

        with prof.stage("index"):
            world.rebuild_indices()

        with prof.stage("walls"):
            world.resolve_wall_collisions()

        with prof.stage("movement"):
            avoidance_radius = mv.avoidance_multiple * world.city.radius
            for code, area in world.areas.items():
                members = area.members
                adjust_velocities(agents, members, world.indices[code],
                                  mv.speed, avoidance_radius)
                move(agents, members, dt)

        with prof.stage("transmission"):
            for code, area in world.areas.items():
                transmission_step(agents, area.members, world.indices[code],
                                  world.registry, self.rngs['transmission'])

        with prof.stage("lifecycle"):
            lifecycle_step(agents, live_ids(agents), world.registry, dt,
                           self.rngs['lifecycle'], on_fatal=world.kill)

        with prof.stage("immunity"):
            decay(agents, dt)

        if test_due:
            with prof.stage("testing"):
                self.last_testing = world.run_testing(self.rngs['testing'])

        with prof.stage("statistics"):
            self.statistics.update(agents, world.elapsed)
            self._check_termination()

    def _check_termination(self) -> None:
        stats = self.statistics
        if stats.deceased == stats.initial_population:
            self._state = SimulationState.EXTINCT
        elif stats.infected == 0:
            self._state = SimulationState.ERADICATED
        else:
            return
        logger.info("simulation ended %s at t=%.2f after %d ticks: %s",
                    self._state.name, self.world.elapsed, self.world.tick, stats)

    # ── Checkpoint / rollback ────────────────────────────────────────

    def _checkpoint(self) -> _Checkpoint:
        w = self.world
        return _Checkpoint(
            agents=w.agents.copy(),
            city=set(w.city.members),
            quarantine=set(w.quarantine.members),
            elapsed=w.elapsed,
            tick=w.tick,
            stats_len=len(self.statistics),
            rng_states=rng_state_snapshot(self.rngs),
        )

    def _restore(self, cp: _Checkpoint) -> None:
        w = self.world
        w.agents[:] = cp.agents
        for area, members in ((w.city, cp.city), (w.quarantine, cp.quarantine)):
            area.clear()
            for i in sorted(members):
                area.add(i)
        w.elapsed = cp.elapsed
        w.tick = cp.tick
        self.statistics.truncate(cp.stats_len)
        restore_rng_state(self.rngs, cp.rng_states)
        self.recorder.discard_after(cp.tick)
        self._state = SimulationState.RUNNING

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


def create_simulator(config: Optional[SimulationConfig] = None) -> Simulator:
    return Simulator(config)
