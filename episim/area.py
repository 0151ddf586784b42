"""Bounded rectangular areas holding a sub-population.

An Area owns a set of agent ids (never rows). Membership changes go
through add()/remove(), which enforce the capacity invariant:

    len(members) <= capacity = floor(width × height / diameter²)

Breaking it means the world was configured with more agents than the
area can geometrically hold, so add() raises CapacityError instead of
proceeding.

Wall collisions are perfectly elastic. Each axis is resolved on its
own, so a corner hit reflects both velocity components in one tick:

    x − r <= 0     and vx < 0  →  x = r,      vx = −vx
    x + r >= width and vx > 0  →  x = w − r,  vx = −vx
    (same for y against bottom / top)
"""

from __future__ import annotations

from typing import Iterator, List, Set

import numpy as np

from episim.config import area_capacity, check_area_side
from episim.errors import CapacityError
from episim.geometry import uniform_in_box
from episim.types import AGENT_RADIUS, AreaSnapshot


class Area:
    """One bounded region of the world (city or quarantine)."""

    def __init__(self, name: str, width: float, height: float,
                 radius: float = AGENT_RADIUS):
        check_area_side(f"{name} width", width)
        check_area_side(f"{name} height", height)
        self.name = name
        self.width = float(width)
        self.height = float(height)
        self.radius = radius
        self.capacity = area_capacity(width, height)
        self._members: Set[int] = set()

    def __repr__(self) -> str:
        return (f"Area({self.name!r}, {self.width:g}x{self.height:g}, "
                f"{len(self)}/{self.capacity})")

    # ── Membership ───────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, agent_id: int) -> bool:
        return agent_id in self._members

    def __iter__(self) -> Iterator[int]:
        """Members in ascending id order."""
        return iter(sorted(self._members))

    @property
    def members(self) -> List[int]:
        return sorted(self._members)

    @property
    def free_capacity(self) -> int:
        return self.capacity - len(self._members)

    def add(self, agent_id: int) -> None:
        """Add an agent.

        Raises:
            CapacityError: If the area would exceed capacity. Membership
                is left unchanged.
        """
        self._members.add(int(agent_id))
        if len(self._members) > self.capacity:
            self._members.discard(int(agent_id))
            raise CapacityError(
                f"{self.name} population count is above maximum capacity "
                f"({self.capacity}): {len(self._members) + 1}"
            )

    def remove(self, agent_id: int) -> None:
        """Remove an agent. Raises KeyError if it is not a member."""
        self._members.remove(int(agent_id))

    def clear(self) -> None:
        self._members.clear()

    # ── Geometry ─────────────────────────────────────────────────────

    def random_positions(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """(n, 2) centres placing agents fully inside the area."""
        r = self.radius
        return uniform_in_box(n, (r, r), (self.width - r, self.height - r), rng)

    def resolve_wall_collisions(self, agents: np.ndarray) -> int:
        """Reflect members off the four walls (in-place).

        Returns:
            Number of wall reflections applied (a corner hit counts two).
        """
        ids = np.fromiter(self._members, dtype=np.int64, count=len(self._members))
        if ids.size == 0:
            return 0
        r = self.radius
        n_hits = 0

        for pos_key, vel_key, upper in (('x', 'vx', self.width),
                                        ('y', 'vy', self.height)):
            pos = agents[pos_key][ids]
            vel = agents[vel_key][ids]

            low_hit = (pos - r <= 0.0) & (vel < 0.0)
            high_hit = (pos + r >= upper) & (vel > 0.0)

            pos = np.where(low_hit, r, pos)
            pos = np.where(high_hit, upper - r, pos)
            vel = np.where(low_hit | high_hit, -vel, vel)

            agents[pos_key][ids] = pos
            agents[vel_key][ids] = vel
            n_hits += int(low_hit.sum() + high_hit.sum())

        return n_hits

    # ── Read-only view ───────────────────────────────────────────────

    def snapshot(self, agents: np.ndarray, tick: int = 0) -> AreaSnapshot:
        """Copy of every member's drawable state."""
        ids = np.array(self.members, dtype=np.int64)
        arrays = {
            'ids': ids,
            'x': agents['x'][ids].copy(),
            'y': agents['y'][ids].copy(),
            'health': agents['health'][ids].copy(),
            'behavior': agents['behavior'][ids].copy(),
        }
        for arr in arrays.values():
            arr.setflags(write=False)
        return AreaSnapshot(
            name=self.name,
            tick=tick,
            width=self.width,
            height=self.height,
            radius=self.radius,
            **arrays,
        )
