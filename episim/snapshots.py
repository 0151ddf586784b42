"""Optional per-tick recording of area snapshots.

Captures the drawable state (ids, x, y, health, behavior) of both areas
every N ticks, so a run can be replayed or plotted offline without
re-simulating.

Usage:
    recorder = SnapshotRecorder(enabled=True, interval=10)

    # After each committed tick:
    recorder.capture(world.tick, world.snapshots())

    # After the run:
    recorder.save("run.npz")
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from episim.errors import ConfigurationError
from episim.types import AreaSnapshot

AREA_NAMES = ('city', 'quarantine')

_FIELDS = ('ids', 'x', 'y', 'health', 'behavior')


class SnapshotRecorder:
    """Stores AreaSnapshots keyed by (tick, area name).

    When enabled=False, capture() is a no-op.
    """

    def __init__(self, enabled: bool = False, interval: int = 1):
        if interval < 1:
            raise ConfigurationError(
                f"snapshot interval must be >= 1, got {interval}")
        self.enabled = enabled
        self.interval = interval
        self.snapshots: Dict[Tuple[int, str], AreaSnapshot] = {}

    def __len__(self) -> int:
        return len(self.snapshots)

    def should_capture(self, tick: int) -> bool:
        return self.enabled and tick % self.interval == 0

    def capture(self, tick: int, areas: Mapping[str, AreaSnapshot]) -> None:
        if not self.should_capture(tick):
            return
        for name, snap in areas.items():
            self.snapshots[(tick, name)] = snap

    def discard_after(self, tick: int) -> None:
        """Drop snapshots newer than tick (used on rollback)."""
        for key in [k for k in self.snapshots if k[0] > tick]:
            del self.snapshots[key]

    def clear(self) -> None:
        self.snapshots.clear()

    def get_ticks(self) -> List[int]:
        return sorted({t for t, _ in self.snapshots})

    def get_snapshot(self, tick: int, area: str) -> Optional[AreaSnapshot]:
        return self.snapshots.get((tick, area))

    def save(self, path: str) -> None:
        """Save every snapshot to a compressed .npz file.

        Arrays are named t{tick}_{area}_{field}; metadata arrays
        meta_ticks, meta_areas (index into AREA_NAMES), meta_width,
        meta_height and meta_radius run parallel to one another.
        """
        if not self.snapshots:
            return

        arrays = {}
        ticks, areas, widths, heights, radii = [], [], [], [], []
        for (tick, name), snap in sorted(self.snapshots.items()):
            prefix = f"t{tick}_{name}"
            for fld in _FIELDS:
                arrays[f"{prefix}_{fld}"] = getattr(snap, fld)
            ticks.append(tick)
            areas.append(AREA_NAMES.index(name))
            widths.append(snap.width)
            heights.append(snap.height)
            radii.append(snap.radius)

        arrays['meta_ticks'] = np.array(ticks, dtype=np.int64)
        arrays['meta_areas'] = np.array(areas, dtype=np.int8)
        arrays['meta_width'] = np.array(widths, dtype=np.float64)
        arrays['meta_height'] = np.array(heights, dtype=np.float64)
        arrays['meta_radius'] = np.array(radii, dtype=np.float64)

        Path(path).parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(path, **arrays)

    @classmethod
    def load(cls, path: str) -> 'SnapshotRecorder':
        """Load snapshots saved by save(). The result does not capture."""
        recorder = cls(enabled=False)
        with np.load(path) as data:
            for k in range(len(data['meta_ticks'])):
                tick = int(data['meta_ticks'][k])
                name = AREA_NAMES[int(data['meta_areas'][k])]
                prefix = f"t{tick}_{name}"
                recorder.snapshots[(tick, name)] = AreaSnapshot(
                    name=name,
                    tick=tick,
                    width=float(data['meta_width'][k]),
                    height=float(data['meta_height'][k]),
                    radius=float(data['meta_radius'][k]),
                    **{fld: data[f"{prefix}_{fld}"] for fld in _FIELDS},
                )
        return recorder
