"""Population counters and their time series.

Counts are recomputed from the arena after every committed tick:
    healthy + infected + recovered = live agents
    deceased = initial population − live agents
Statistics is never consulted for simulation decisions beyond the
termination check, which reads it after the tick commits.
"""

from __future__ import annotations

from typing import Dict, List

import numpy as np
import pandas as pd

from episim.types import HealthState

SERIES_KEYS = ('time', 'healthy', 'infected', 'recovered', 'deceased')


class Statistics:
    """Latest counts plus one row per recorded tick."""

    def __init__(self, initial_population: int):
        self.initial_population = int(initial_population)
        self.revision = 0
        self.healthy = 0
        self.infected = 0
        self.recovered = 0
        self.deceased = 0
        self._series: Dict[str, List[float]] = {k: [] for k in SERIES_KEYS}

    def __len__(self) -> int:
        return len(self._series['time'])

    def __str__(self) -> str:
        return (f"healthy={self.healthy} infected={self.infected} "
                f"recovered={self.recovered} deceased={self.deceased}")

    @property
    def live(self) -> int:
        return self.healthy + self.infected + self.recovered

    def counts(self) -> Dict[str, int]:
        return {
            'healthy': self.healthy,
            'infected': self.infected,
            'recovered': self.recovered,
            'deceased': self.deceased,
        }

    def update(self, agents: np.ndarray, time: float) -> None:
        """Recount from the arena and append a row stamped with time."""
        health = agents['health'][agents['alive']]
        self.healthy = int(np.count_nonzero(health == HealthState.HEALTHY))
        self.infected = int(np.count_nonzero(health == HealthState.INFECTED))
        self.recovered = int(np.count_nonzero(health == HealthState.RECOVERED))
        self.deceased = self.initial_population - int(health.size)

        row = self.counts()
        row['time'] = float(time)
        for key in SERIES_KEYS:
            self._series[key].append(row[key])
        self.revision += 1

    def truncate(self, length: int) -> None:
        """Drop rows past length and restore the counters to the last kept row."""
        for values in self._series.values():
            del values[length:]
        if length:
            self.healthy = int(self._series['healthy'][-1])
            self.infected = int(self._series['infected'][-1])
            self.recovered = int(self._series['recovered'][-1])
            self.deceased = int(self._series['deceased'][-1])
        else:
            self.healthy = self.infected = self.recovered = self.deceased = 0
        self.revision += 1

    def reset(self, initial_population: int) -> None:
        self.initial_population = int(initial_population)
        self.truncate(0)

    @property
    def series(self) -> Dict[str, np.ndarray]:
        """Read-only array copies of every series."""
        out = {}
        for key in SERIES_KEYS:
            dtype = np.float64 if key == 'time' else np.int64
            arr = np.array(self._series[key], dtype=dtype)
            arr.setflags(write=False)
            out[key] = arr
        return out

    def to_frame(self) -> pd.DataFrame:
        """Series as a DataFrame, one row per recorded tick."""
        return pd.DataFrame(self.series, columns=list(SERIES_KEYS))
