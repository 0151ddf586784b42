"""Uniform-grid spatial index for neighbor queries.

Divides an area into square cells and records, for every cell, the ids
of agents whose bounding square [x-r, x+r] × [y-r, y+r] touches it. An
agent near a cell edge is inserted into every cell it overlaps (at most
four when cell_size >= diameter), so no contact is missed at cell
boundaries.

The index is rebuilt once per tick, before any neighbor query, and
freezes a copy of every indexed agent's position and velocity. All
neighbor-dependent decisions in that tick (avoidance steering, contact
tests) read the frozen copy, so movement applied later in the tick
cannot change what other agents observed.
"""

from __future__ import annotations

from collections import defaultdict
from typing import DefaultDict, Dict, Iterable, List, Set, Tuple

import numpy as np

from episim.errors import ConfigurationError
from episim.types import AGENT_RADIUS

Cell = Tuple[int, int]

DEFAULT_CELL_SIZE = 25.0


class SpatialIndex:
    """Grid mapping cell → agent ids for one area.

    Holds ids only; the agent arena stays owned by the World.
    """

    def __init__(self, cell_size: float = DEFAULT_CELL_SIZE,
                 radius: float = AGENT_RADIUS):
        """Initialize an empty index.

        Args:
            cell_size: Grid cell side. Larger than the agent diameter
                bounds each agent to four cells; much larger cells make
                buckets (and neighbor sets) bigger.
            radius: Agent radius used for the bounding square.
        """
        if cell_size < 2.0 * radius:
            raise ConfigurationError(
                f"cell_size ({cell_size}) must be >= agent diameter "
                f"({2.0 * radius})"
            )
        self.cell_size = cell_size
        self.radius = radius
        self._cells: DefaultDict[Cell, Set[int]] = defaultdict(set)
        self._agent_cells: Dict[int, List[Cell]] = {}
        self._pos: Dict[int, Tuple[float, float]] = {}
        self._vel: Dict[int, Tuple[float, float]] = {}

    def __len__(self) -> int:
        return len(self._agent_cells)

    def __contains__(self, agent_id: int) -> bool:
        return agent_id in self._agent_cells

    def _cell_span(self, x: float, y: float) -> List[Cell]:
        r = self.radius
        cs = self.cell_size
        x0, x1 = int(np.floor((x - r) / cs)), int(np.floor((x + r) / cs))
        y0, y1 = int(np.floor((y - r) / cs)), int(np.floor((y + r) / cs))
        return [(cx, cy) for cx in range(x0, x1 + 1) for cy in range(y0, y1 + 1)]

    def rebuild(self, agents: np.ndarray, ids: Iterable[int]) -> None:
        """Clear and re-insert the given agents from their current state.

        Args:
            agents: Agent arena (AGENT_DTYPE).
            ids: Ids to index, typically one area's members.
        """
        self._cells.clear()
        self._agent_cells.clear()
        self._pos.clear()
        self._vel.clear()

        for agent_id in ids:
            i = int(agent_id)
            row = agents[i]
            x, y = float(row['x']), float(row['y'])
            cells = self._cell_span(x, y)
            for cell in cells:
                self._cells[cell].add(i)
            self._agent_cells[i] = cells
            self._pos[i] = (x, y)
            self._vel[i] = (float(row['vx']), float(row['vy']))

    def neighbors(self, agent_id: int) -> Set[int]:
        """Ids sharing at least one cell with agent_id, excluding itself.

        Returns an empty set for an id that was not indexed.
        """
        result: Set[int] = set()
        for cell in self._agent_cells.get(agent_id, ()):
            result |= self._cells[cell]
        result.discard(agent_id)
        return result

    def cells_of(self, agent_id: int) -> List[Cell]:
        return list(self._agent_cells.get(agent_id, ()))

    def position(self, agent_id: int) -> Tuple[float, float]:
        """Position frozen at the last rebuild."""
        return self._pos[agent_id]

    def velocity(self, agent_id: int) -> Tuple[float, float]:
        """Velocity frozen at the last rebuild."""
        return self._vel[agent_id]

    def mean_bucket_size(self) -> float:
        if not self._cells:
            return 0.0
        return float(np.mean([len(b) for b in self._cells.values()]))


def contact_radius_sum(radius: float = AGENT_RADIUS) -> float:
    """Centre distance at which two agents' bounding circles touch."""
    return 2.0 * radius
