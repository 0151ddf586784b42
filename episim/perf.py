"""Per-stage tick timing.

Wraps each stage of the simulator pipeline in a named timer. Disabled
profilers cost one attribute check per stage.

Usage:
    from episim.perf import TickProfiler

    profiler = TickProfiler(enabled=True)
    with profiler.stage("transmission"):
        transmission_step(...)
    profiler.end_tick()

    print(profiler.report())
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict


@dataclass
class StageTiming:
    """Accumulated wall time for one pipeline stage."""
    total: float = 0.0
    calls: int = 0
    worst: float = 0.0

    @property
    def mean(self) -> float:
        return self.total / self.calls if self.calls else 0.0

    def add(self, elapsed: float) -> None:
        self.total += elapsed
        self.calls += 1
        self.worst = max(self.worst, elapsed)


class TickProfiler:
    """Wall-clock timer keyed by pipeline stage name."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self.ticks = 0
        self._stages: Dict[str, StageTiming] = defaultdict(StageTiming)

    @contextmanager
    def stage(self, name: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stages[name].add(time.perf_counter() - t0)

    def end_tick(self) -> None:
        if self.enabled:
            self.ticks += 1

    @property
    def stages(self) -> Dict[str, StageTiming]:
        return dict(self._stages)

    def summary(self) -> dict:
        """Per-stage totals as plain numbers, slowest first."""
        total = sum(s.total for s in self._stages.values())
        out = {}
        for name, s in sorted(self._stages.items(), key=lambda kv: -kv[1].total):
            out[name] = {
                'total_s': round(s.total, 4),
                'calls': s.calls,
                'mean_ms': round(s.mean * 1000, 3),
                'worst_ms': round(s.worst * 1000, 3),
                'pct': round(100.0 * s.total / total, 1) if total > 0 else 0.0,
            }
        out['_ticks'] = self.ticks
        out['_total_s'] = round(total, 4)
        return out

    def report(self, title: str = "Tick stage timing") -> str:
        total = sum(s.total for s in self._stages.values())
        rule = '=' * 64
        lines = [
            rule,
            f" {title} ({self.ticks} ticks)",
            rule,
            f"{'Stage':<20} {'Total (s)':>10} {'Calls':>8} {'Mean (ms)':>10} "
            f"{'Worst':>8} {'%':>5}",
        ]
        for name, s in sorted(self._stages.items(), key=lambda kv: -kv[1].total):
            pct = 100.0 * s.total / total if total > 0 else 0.0
            lines.append(
                f"{name:<20} {s.total:>10.4f} {s.calls:>8} {s.mean * 1000:>10.3f} "
                f"{s.worst * 1000:>8.2f} {pct:>4.1f}%"
            )
        lines.append(f"{'TOTAL':<20} {total:>10.4f}")
        lines.append(rule)
        return '\n'.join(lines)

    def reset(self) -> None:
        self._stages.clear()
        self.ticks = 0
