"""Pathogen strains, contact transmission and per-host lifecycle.

A Strain is an immutable parameter tuple. Its identity IS that tuple:
two strains with identical parameters are the same strain for immune
matching. StrainRegistry hands out one positive integer id per distinct
tuple; hosts reference the id, and immune memory stores it as antigen.

Per-host state (elapsed lifetime) lives on the host's arena row and
starts at 0 on every new infection.

Lifecycle per host:
    INCUBATING    lifetime < lifespan
    HOST_DECEASED lifetime >= lifespan and Bernoulli(fatality_rate)
    CLEARED       lifetime >= lifespan otherwise; immune learn attempted,
                  host → RECOVERED

Transmission, each tick, for each infected agent i (ascending id) and
each neighbor j (ascending id):
    j HEALTHY, no pathogen, antigen != strain,
    |p_j − p_i| <= 2r  and  (p_j − p_i)·(v_j − v_i) <= 0
    → Bernoulli(transmission_risk) → j infected with lifetime 0
Eligibility is re-checked at assignment, so j cannot be infected twice
in one tick; agents infected this tick do not transmit until the next.
"""

from __future__ import annotations

import logging
from dataclasses import astuple, dataclass
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from episim.config import PathogenSection
from episim.geometry import circles_in_contact
from episim.immunity import is_immune_to, learn
from episim.probability import bernoulli, check_non_negative, check_probability
from episim.spatial import SpatialIndex, contact_radius_sum
from episim.types import NO_STRAIN, HealthState

logger = logging.getLogger(__name__)


class PathogenOutcome(IntEnum):
    INCUBATING    = 0
    HOST_DECEASED = 1
    CLEARED       = 2


# ═══════════════════════════════════════════════════════════════════════
# STRAINS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Strain:
    """Immutable pathogen parameters.

    Raises:
        ConfigurationError: If a probability is outside [0, 1] or a
            duration is negative.
    """
    lifespan: float
    transmission_risk: float
    fatality_rate: float
    immunity_rate: float
    immunity_duration: float

    def __post_init__(self):
        check_non_negative("lifespan", self.lifespan)
        check_probability("transmission_risk", self.transmission_risk)
        check_probability("fatality_rate", self.fatality_rate)
        check_probability("immunity_rate", self.immunity_rate)
        check_non_negative("immunity_duration", self.immunity_duration)

    @property
    def identity(self) -> Tuple[float, ...]:
        return astuple(self)

    @classmethod
    def from_section(cls, cfg: PathogenSection) -> "Strain":
        return cls(
            lifespan=float(cfg.lifespan),
            transmission_risk=float(cfg.transmission_risk),
            fatality_rate=float(cfg.fatality_rate),
            immunity_rate=float(cfg.immunity_rate),
            immunity_duration=float(cfg.immunity_duration),
        )


class StrainRegistry:
    """Maps strain identity tuples to stable positive integer ids."""

    def __init__(self):
        self._ids: Dict[Tuple[float, ...], int] = {}
        self._strains: List[Strain] = []

    def register(self, strain: Strain) -> int:
        """Id for the strain, allocating one on first sight."""
        key = strain.identity
        if key not in self._ids:
            self._strains.append(strain)
            self._ids[key] = len(self._strains)   # ids start at 1
        return self._ids[key]

    def get(self, strain_id: int) -> Strain:
        if strain_id == NO_STRAIN or not (1 <= strain_id <= len(self._strains)):
            raise KeyError(f"Unknown strain id {strain_id}")
        return self._strains[strain_id - 1]

    def id_of(self, strain: Strain) -> Optional[int]:
        return self._ids.get(strain.identity)

    def __len__(self) -> int:
        return len(self._strains)

    def __contains__(self, strain: Strain) -> bool:
        return strain.identity in self._ids


# ═══════════════════════════════════════════════════════════════════════
# INFECTION
# ═══════════════════════════════════════════════════════════════════════

def infect(agents: np.ndarray, agent_id: int, strain_id: int) -> None:
    """Give the agent a fresh copy of the strain."""
    agents['strain'][agent_id] = strain_id
    agents['lifetime'][agent_id] = 0.0
    agents['health'][agent_id] = HealthState.INFECTED


def clear_pathogen(agents: np.ndarray, agent_id: int) -> None:
    agents['strain'][agent_id] = NO_STRAIN
    agents['lifetime'][agent_id] = 0.0


def is_susceptible(agents: np.ndarray, agent_id: int, strain_id: int) -> bool:
    return bool(
        agents['alive'][agent_id]
        and agents['health'][agent_id] == HealthState.HEALTHY
        and agents['strain'][agent_id] == NO_STRAIN
        and not is_immune_to(agents, agent_id, strain_id)
    )


def in_contact(index: SpatialIndex, i: int, j: int) -> bool:
    """Bounding circles overlap and the pair is not separating."""
    xi, yi = index.position(i)
    xj, yj = index.position(j)
    vxi, vyi = index.velocity(i)
    vxj, vyj = index.velocity(j)
    return circles_in_contact(
        xj - xi, yj - yi, vxj - vxi, vyj - vyi,
        contact_radius_sum(index.radius),
    )


def transmission_step(
    agents: np.ndarray,
    ids: Iterable[int],
    index: SpatialIndex,
    registry: StrainRegistry,
    rng: np.random.Generator,
) -> List[Tuple[int, int]]:
    """One transmission pass over the agents of one area (in-place).

    Args:
        agents: Agent arena.
        ids: Members of the area that `index` was rebuilt from.
        index: Spatial index for the area, rebuilt this tick.
        registry: Strain registry resolving host strain ids.
        rng: Transmission RNG stream.

    Returns:
        (infector, infected) id pairs, in the order they happened.
    """
    ids = sorted(int(i) for i in ids)
    infectors = [i for i in ids if agents['health'][i] == HealthState.INFECTED]

    events: List[Tuple[int, int]] = []
    for i in infectors:
        strain_id = int(agents['strain'][i])
        strain = registry.get(strain_id)
        for j in sorted(index.neighbors(i)):
            if not is_susceptible(agents, j, strain_id):
                continue
            if not in_contact(index, i, j):
                continue
            if bernoulli(strain.transmission_risk, rng):
                infect(agents, j, strain_id)
                events.append((i, j))
    return events


# ═══════════════════════════════════════════════════════════════════════
# LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════

def lifecycle_step(
    agents: np.ndarray,
    ids: Iterable[int],
    registry: StrainRegistry,
    dt: float,
    rng: np.random.Generator,
    on_fatal: Callable[[int], None],
) -> Dict[int, PathogenOutcome]:
    """Age every listed host's pathogen by dt and resolve expiries (in-place).

    Args:
        agents: Agent arena.
        ids: Candidate host ids (non-infected ids are skipped).
        registry: Strain registry.
        dt: Elapsed simulated seconds.
        rng: Lifecycle RNG stream.
        on_fatal: Called with the host id when the pathogen kills it,
            after the pathogen is discarded. Must remove the host from
            its area and mark the row dead.

    Returns:
        Outcome for every host whose pathogen expired this tick.
    """
    hosts = sorted(int(i) for i in ids
                   if agents['health'][i] == HealthState.INFECTED)
    outcomes: Dict[int, PathogenOutcome] = {}

    for i in hosts:
        agents['lifetime'][i] += dt
        strain_id = int(agents['strain'][i])
        strain = registry.get(strain_id)
        if agents['lifetime'][i] < strain.lifespan:
            continue

        clear_pathogen(agents, i)
        if bernoulli(strain.fatality_rate, rng):
            on_fatal(i)
            outcomes[i] = PathogenOutcome.HOST_DECEASED
            logger.debug("agent %d died of strain %d", i, strain_id)
        else:
            learn(agents, i, strain_id, strain.immunity_rate,
                  strain.immunity_duration, rng)
            agents['health'][i] = HealthState.RECOVERED
            outcomes[i] = PathogenOutcome.CLEARED
            logger.debug("agent %d cleared strain %d", i, strain_id)

    return outcomes
