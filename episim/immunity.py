"""Immune memory.

Each agent row carries one antigen (a strain id, NO_STRAIN if none) and
the seconds of immunity remaining. Memory changes only through:
  - learn(): on recovery, Bernoulli(immunity_rate) stores the strain
  - decay(): every tick, remaining time drops by dt, clamped at zero;
    at zero the antigen is forgotten

A RECOVERED agent with no antigen in memory is susceptible again and
returns to HEALTHY during decay. This covers both lapsed immunity and
hosts that cleared a pathogen without learning it.
"""

from __future__ import annotations

import numpy as np

from episim.probability import bernoulli
from episim.types import NO_STRAIN, HealthState


def is_immune_to(agents: np.ndarray, agent_id: int, strain_id: int) -> bool:
    """True if the agent's memory matches the given strain."""
    antigen = int(agents['antigen'][agent_id])
    return antigen != NO_STRAIN and antigen == strain_id


def learn(
    agents: np.ndarray,
    agent_id: int,
    strain_id: int,
    immunity_rate: float,
    immunity_duration: float,
    rng: np.random.Generator,
) -> bool:
    """Attempt to remember a strain the host survived.

    Returns:
        True if immunity was gained.
    """
    if not bernoulli(immunity_rate, rng):
        return False
    agents['antigen'][agent_id] = strain_id
    agents['immunity_remaining'][agent_id] = immunity_duration
    return True


def decay(agents: np.ndarray, dt: float) -> np.ndarray:
    """Run down immunity for all live agents (in-place).

    Returns:
        Ids of agents returned to HEALTHY this tick.
    """
    alive = agents['alive']
    remembering = alive & (agents['antigen'] != NO_STRAIN)
    if remembering.any():
        remaining = agents['immunity_remaining'][remembering] - dt
        agents['immunity_remaining'][remembering] = np.maximum(remaining, 0.0)

        lapsed = remembering & (agents['immunity_remaining'] <= 0.0)
        agents['antigen'][lapsed] = NO_STRAIN
        agents['immunity_remaining'][lapsed] = 0.0

    susceptible_again = (
        alive
        & (agents['health'] == HealthState.RECOVERED)
        & (agents['antigen'] == NO_STRAIN)
    )
    agents['health'][susceptible_again] = HealthState.HEALTHY
    return np.flatnonzero(susceptible_again)
