"""Tests for episim.perf and episim.snapshots instrumentation."""

import numpy as np
import pytest

from episim.area import Area
from episim.errors import ConfigurationError
from episim.perf import TickProfiler
from episim.snapshots import SnapshotRecorder
from episim.types import allocate_agents


class TestTickProfiler:
    def test_disabled_records_nothing(self):
        prof = TickProfiler(enabled=False)
        with prof.stage("walls"):
            pass
        prof.end_tick()
        assert prof.stages == {}
        assert prof.ticks == 0

    def test_enabled_accumulates(self):
        prof = TickProfiler(enabled=True)
        for _ in range(3):
            with prof.stage("walls"):
                pass
            prof.end_tick()
        walls = prof.stages['walls']
        assert walls.calls == 3
        assert walls.total >= 0.0
        assert walls.worst >= walls.mean
        assert prof.summary()['_ticks'] == 3

    def test_stage_timed_even_when_it_raises(self):
        prof = TickProfiler(enabled=True)
        with pytest.raises(RuntimeError):
            with prof.stage("testing"):
                raise RuntimeError("x")
        assert prof.stages['testing'].calls == 1

    def test_reset(self):
        prof = TickProfiler(enabled=True)
        with prof.stage("a"):
            pass
        prof.reset()
        assert prof.stages == {}


class TestSnapshotRecorder:
    def _snaps(self, tick):
        agents = allocate_agents(2)
        agents['x'] = [1.0, 2.0]
        agents['alive'] = True
        city = Area("city", 100, 100)
        city.add(0)
        city.add(1)
        quarantine = Area("quarantine", 50, 50)
        return {'city': city.snapshot(agents, tick),
                'quarantine': quarantine.snapshot(agents, tick)}

    def test_interval_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            SnapshotRecorder(enabled=True, interval=0)

    def test_disabled_captures_nothing(self):
        rec = SnapshotRecorder(enabled=False)
        rec.capture(0, self._snaps(0))
        assert len(rec) == 0

    def test_capture_every_n(self):
        rec = SnapshotRecorder(enabled=True, interval=3)
        for t in range(7):
            rec.capture(t, self._snaps(t))
        assert rec.get_ticks() == [0, 3, 6]
        assert len(rec) == 6

    def test_discard_after(self):
        rec = SnapshotRecorder(enabled=True)
        for t in range(4):
            rec.capture(t, self._snaps(t))
        rec.discard_after(1)
        assert rec.get_ticks() == [0, 1]

    def test_save_empty_writes_nothing(self, tmp_path):
        path = tmp_path / "none.npz"
        SnapshotRecorder(enabled=True).save(str(path))
        assert not path.exists()

    def test_save_and_load(self, tmp_path):
        rec = SnapshotRecorder(enabled=True)
        rec.capture(5, self._snaps(5))
        path = tmp_path / "out" / "snaps.npz"
        rec.save(str(path))
        loaded = SnapshotRecorder.load(str(path))
        city = loaded.get_snapshot(5, 'city')
        np.testing.assert_array_equal(city.x, [1.0, 2.0])
        assert city.height == 100.0
        assert loaded.get_snapshot(5, 'quarantine').n_members == 0
