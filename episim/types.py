"""Core data types for episim.

This module is the SINGLE SOURCE OF TRUTH for:
  - AGENT_DTYPE: NumPy structured array dtype for the agent arena
  - HealthState, BehaviorType, AreaCode, SimulationState enumerations
  - Geometric constants shared by every agent (radius, diameter)
  - Read-only data transfer objects handed to presentation layers

Agents live in a single arena indexed by a stable integer id (the row
index). Areas own id sets, never rows, so moving an agent between areas
never copies it.
"""

from dataclasses import dataclass
from enum import IntEnum

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class HealthState(IntEnum):
    """Health compartments.

    HEALTHY   → INFECTED   (transmission on contact)
    INFECTED  → RECOVERED  (pathogen cleared at end of lifespan)
    INFECTED  → DECEASED   (pathogen fatal at end of lifespan)
    RECOVERED → HEALTHY    (immune memory lapses)
    """
    HEALTHY   = 0
    INFECTED  = 1
    RECOVERED = 2
    DECEASED  = 3   # Terminal marker for dead rows; never held by a live agent


class BehaviorType(IntEnum):
    """Movement policy tag. Immutable after agent creation."""
    PASSIVE          = 0   # Constant velocity, ignores others
    STATIONARY       = 1   # Never moves (social distancing)
    AVOIDANT_TRACING = 2   # Steers away from known-sick tracing contacts


class AreaCode(IntEnum):
    """Which area of the world owns an agent."""
    NONE       = -1   # Dead, owned by no area
    CITY       = 0
    QUARANTINE = 1


class SimulationState(IntEnum):
    """Simulator lifecycle. ERADICATED and EXTINCT are terminal."""
    RUNNING    = 0
    ERADICATED = 1   # No infected agents remain
    EXTINCT    = 2   # Every agent of the initial population has died


# ═══════════════════════════════════════════════════════════════════════
# GEOMETRY CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

AGENT_RADIUS = 5.0                    # Shared by every agent (world units)
AGENT_DIAMETER = 2.0 * AGENT_RADIUS

NO_STRAIN = 0    # strain / antigen value meaning "none"


# ═══════════════════════════════════════════════════════════════════════
# AGENT_DTYPE — Canonical structured array for the agent arena
# ═══════════════════════════════════════════════════════════════════════

AGENT_DTYPE = np.dtype([
    # --- Kinematics (movement + area writes) ---
    ('x',                  np.float64),  # centre x within owning area
    ('y',                  np.float64),  # centre y within owning area
    ('vx',                 np.float64),  # velocity x (units / simulated s)
    ('vy',                 np.float64),  # velocity y

    # --- Health (pathogen writes) ---
    ('health',             np.int8),     # HealthState enum
    ('strain',             np.int32),    # StrainRegistry id, NO_STRAIN if none
    ('lifetime',           np.float64),  # seconds the current pathogen has lived

    # --- Immune memory (immunity writes) ---
    ('antigen',            np.int32),    # remembered strain id, NO_STRAIN if none
    ('immunity_remaining', np.float64),  # seconds of immunity left

    # --- Administrative ---
    ('behavior',           np.int8),     # BehaviorType enum, immutable
    ('area',               np.int8),     # AreaCode enum
    ('alive',              np.bool_),
])


def allocate_agents(n: int) -> np.ndarray:
    """Allocate a zeroed agent arena of n rows.

    Rows start HEALTHY, PASSIVE, in the CITY and not alive; callers
    populate them before use.
    """
    return np.zeros(n, dtype=AGENT_DTYPE)


def live_ids(agents: np.ndarray) -> np.ndarray:
    """Ids of all live agents, ascending."""
    return np.flatnonzero(agents['alive'])


# ═══════════════════════════════════════════════════════════════════════
# READ-ONLY DATA TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AreaSnapshot:
    """Whole-tick-consistent view of one area for drawing.

    All arrays are copies flagged read-only, parallel by index.
    """
    name: str
    tick: int
    width: float
    height: float
    ids: np.ndarray        # int64
    x: np.ndarray          # float64
    y: np.ndarray          # float64
    health: np.ndarray     # int8, HealthState
    behavior: np.ndarray   # int8, BehaviorType
    radius: float = AGENT_RADIUS

    @property
    def n_members(self) -> int:
        return int(self.ids.size)
