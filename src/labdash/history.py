"""Fixed-length trailing history of sampled metrics."""

from collections import deque
from collections.abc import Sequence

from labdash.config import MonitorConfig
from labdash.models import History, Snapshot


def append(buffer: Sequence[float] | None, sample: float, capacity: int) -> tuple[float, ...]:
    """
    Return a new buffer of exactly ``capacity`` samples ending with ``sample``.

    A missing buffer starts as ``capacity`` zeros, so slots that have not been
    filled yet read as 0. A buffer of a different length (after a config
    reload) is re-fitted: extra old samples are dropped, missing ones are
    zero-padded at the old end.
    """
    if capacity < 1:
        raise ValueError(f"capacity must be >= 1, got {capacity}")
    previous = list(buffer) if buffer is not None else []
    if len(previous) < capacity:
        previous = [0.0] * (capacity - len(previous)) + previous
    window: deque[float] = deque(previous, maxlen=capacity)
    window.append(float(sample))
    return tuple(window)


def _zeros(capacity: int) -> tuple[float, ...]:
    return (0.0,) * capacity


def empty_history(monitor: MonitorConfig) -> History:
    """History with every slot at the zero sentinel."""
    return History(
        cpu_load=_zeros(monitor.history_cpu),
        gpu_load=_zeros(monitor.history_gpu),
        ram_load=_zeros(monitor.history_ram),
    )


def advance(history: History, snapshot: Snapshot, monitor: MonitorConfig) -> History:
    """Append one sample per tracked metric from a successful poll."""
    return History(
        cpu_load=append(history.cpu_load, snapshot.cpu.load, monitor.history_cpu),
        gpu_load=append(history.gpu_load, snapshot.gpu.avg_util, monitor.history_gpu),
        ram_load=append(history.ram_load, snapshot.ram.percent, monitor.history_ram),
    )
