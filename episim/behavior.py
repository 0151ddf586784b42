"""Behavior-driven agent movement.

Each agent carries an immutable BehaviorType tag. Behavior is a pure
function table keyed by that tag; no per-behavior state exists beyond
the agent's own velocity.

  PASSIVE           random heading at creation, constant velocity
  STATIONARY        zero velocity, never moves
  AVOIDANT_TRACING  random heading, steers away from nearby contacts:
                    healthy tracers avoid only infected tracers,
                    infected tracers avoid everyone

Avoidance steering for agent i:
    v = Σ_j unit(p_i − p_j) / |p_i − p_j|   over candidates with
                                             |p_i − p_j| <= k × radius
    if |v| > 0:  velocity_i = speed × v / |v|
    else:        velocity_i unchanged

Movement: position += velocity × dt. Wall handling lives in Area.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Tuple

import numpy as np

from episim.geometry import random_unit_vectors
from episim.spatial import SpatialIndex
from episim.types import AGENT_RADIUS, BehaviorType, HealthState

# Canonical avoidance radius in multiples of the agent radius
AVOIDANCE_MULTIPLE = 3.0

Velocity = Tuple[float, float]


# ═══════════════════════════════════════════════════════════════════════
# INITIAL VELOCITY
# ═══════════════════════════════════════════════════════════════════════

def initial_velocities(
    behaviors: np.ndarray,
    speed: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Initial (n, 2) velocities for newly created agents.

    Moving behaviors get a uniformly random heading at the fixed speed;
    STATIONARY agents get the zero vector.
    """
    n = len(behaviors)
    vel = random_unit_vectors(n, rng) * speed
    vel[np.asarray(behaviors) == BehaviorType.STATIONARY] = 0.0
    return vel


# ═══════════════════════════════════════════════════════════════════════
# PER-TICK ADJUSTMENT (dispatch table)
# ═══════════════════════════════════════════════════════════════════════

def _keep_velocity(
    agent_id: int,
    agents: np.ndarray,
    index: SpatialIndex,
    speed: float,
    avoidance_radius: float,
) -> Velocity:
    return float(agents['vx'][agent_id]), float(agents['vy'][agent_id])


def _avoidance_candidates(
    agent_id: int,
    agents: np.ndarray,
    index: SpatialIndex,
) -> Iterable[int]:
    nearby = sorted(index.neighbors(agent_id))
    if agents['health'][agent_id] == HealthState.INFECTED:
        return nearby
    return [
        j for j in nearby
        if agents['behavior'][j] == BehaviorType.AVOIDANT_TRACING
        and agents['health'][j] == HealthState.INFECTED
    ]


def _avoid_contacts(
    agent_id: int,
    agents: np.ndarray,
    index: SpatialIndex,
    speed: float,
    avoidance_radius: float,
) -> Velocity:
    x, y = index.position(agent_id)
    ax = ay = 0.0
    for j in _avoidance_candidates(agent_id, agents, index):
        ox, oy = index.position(j)
        dx, dy = x - ox, y - oy
        dist = float(np.hypot(dx, dy))
        # Coincident centres have no direction to flee in
        if dist == 0.0 or dist > avoidance_radius:
            continue
        ax += (dx / dist) / dist
        ay += (dy / dist) / dist

    norm = float(np.hypot(ax, ay))
    if norm > 0.0:
        return speed * ax / norm, speed * ay / norm
    return _keep_velocity(agent_id, agents, index, speed, avoidance_radius)


ADJUSTERS: Dict[BehaviorType, Callable[..., Velocity]] = {
    BehaviorType.PASSIVE: _keep_velocity,
    BehaviorType.STATIONARY: _keep_velocity,
    BehaviorType.AVOIDANT_TRACING: _avoid_contacts,
}


def adjust(
    agent_id: int,
    agents: np.ndarray,
    index: SpatialIndex,
    speed: float,
    avoidance_radius: float = AVOIDANCE_MULTIPLE * AGENT_RADIUS,
) -> Velocity:
    """New velocity for one agent given its neighbors in the index."""
    behavior = BehaviorType(int(agents['behavior'][agent_id]))
    return ADJUSTERS[behavior](agent_id, agents, index, speed, avoidance_radius)


def adjust_velocities(
    agents: np.ndarray,
    ids: Iterable[int],
    index: SpatialIndex,
    speed: float,
    avoidance_radius: float = AVOIDANCE_MULTIPLE * AGENT_RADIUS,
) -> None:
    """Adjust every listed agent's velocity (in-place).

    All new velocities are computed before any is written, so each
    agent reacts to the same frozen state regardless of iteration order.
    """
    ids = np.asarray(list(ids), dtype=np.int64)
    if ids.size == 0:
        return
    new_vel = np.array(
        [adjust(int(i), agents, index, speed, avoidance_radius) for i in ids],
        dtype=np.float64,
    )
    agents['vx'][ids] = new_vel[:, 0]
    agents['vy'][ids] = new_vel[:, 1]


# ═══════════════════════════════════════════════════════════════════════
# MOVEMENT
# ═══════════════════════════════════════════════════════════════════════

def move(agents: np.ndarray, ids: Iterable[int], dt: float) -> None:
    """Advance listed agents by velocity × dt (in-place)."""
    ids = np.asarray(list(ids), dtype=np.int64)
    if ids.size == 0:
        return
    agents['x'][ids] += agents['vx'][ids] * dt
    agents['y'][ids] += agents['vy'][ids] * dt
