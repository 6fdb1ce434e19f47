"""Tests for the history ring buffer."""

import pytest

from labdash.config import MonitorConfig
from labdash.history import advance, append, empty_history
from labdash.models import CpuInfo, GpuSummary, RamInfo, Snapshot


class TestAppend:
    """Tests for append()."""

    def test_sequential_appends_keep_last_samples(self):
        """Test appending 1..6 at capacity 5 yields [2, 3, 4, 5, 6]."""
        buffer = None
        for sample in [1, 2, 3, 4, 5, 6]:
            buffer = append(buffer, sample, 5)

        assert buffer == (2.0, 3.0, 4.0, 5.0, 6.0)

    def test_first_use_starts_from_zeros(self):
        """Test the first append fills older slots with the zero sentinel."""
        assert append(None, 50, 3) == (0.0, 0.0, 50.0)

    @pytest.mark.parametrize("capacity", [1, 2, 7, 20])
    def test_length_always_capacity(self, capacity):
        """Test the result always has exactly capacity samples ending in sample."""
        buffer = None
        for sample in range(capacity * 2 + 1):
            buffer = append(buffer, sample, capacity)
            assert len(buffer) == capacity
            assert buffer[-1] == sample

    def test_returns_new_sequence(self):
        """Test the input buffer is left untouched."""
        original = (1.0, 2.0, 3.0)

        result = append(original, 4, 3)

        assert original == (1.0, 2.0, 3.0)
        assert result == (2.0, 3.0, 4.0)

    def test_shrinking_capacity_drops_oldest(self):
        """Test a longer buffer is trimmed from the old end."""
        assert append((1.0, 2.0, 3.0, 4.0), 5, 2) == (4.0, 5.0)

    def test_growing_capacity_pads_old_end(self):
        """Test a shorter buffer is zero-padded before the existing samples."""
        assert append((7.0, 8.0), 9, 5) == (0.0, 0.0, 7.0, 8.0, 9.0)

    def test_invalid_capacity(self):
        """Test capacity below 1 is rejected."""
        with pytest.raises(ValueError):
            append(None, 1, 0)


class TestAdvance:
    """Tests for advance() and empty_history()."""

    def test_empty_history_uses_independent_capacities(self):
        history = empty_history(MonitorConfig(history_cpu=3, history_gpu=4, history_ram=5))

        assert history.cpu_load == (0.0,) * 3
        assert history.gpu_load == (0.0,) * 4
        assert history.ram_load == (0.0,) * 5

    def test_advance_appends_each_metric(self):
        monitor = MonitorConfig(history_cpu=3, history_gpu=2, history_ram=4)
        snapshot = Snapshot(
            cpu=CpuInfo(load=40),
            gpu=GpuSummary(avg_util=75),
            ram=RamInfo(used=64.0, total=256.0),
        )

        history = advance(empty_history(monitor), snapshot, monitor)

        assert history.cpu_load == (0.0, 0.0, 40.0)
        assert history.gpu_load == (0.0, 75.0)
        assert history.ram_load == (0.0, 0.0, 0.0, 25.0)

    def test_advance_ram_without_total(self):
        monitor = MonitorConfig(history_ram=2)
        snapshot = Snapshot(ram=RamInfo(used=8.0, total=0.0))

        history = advance(empty_history(monitor), snapshot, monitor)

        assert history.ram_load == (0.0, 0.0)
