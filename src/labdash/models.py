"""Data models for labdash."""

import math
from dataclasses import dataclass, field
from enum import Enum

PLACEHOLDER = "--"


class Liveness(Enum):
    """Reachability of the metrics endpoint, from the most recent poll."""

    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(slots=True, frozen=True)
class SystemInfo:
    """Host identification and load."""

    hostname: str = PLACEHOLDER
    os: str = PLACEHOLDER
    kernel: str = PLACEHOLDER
    uptime: str = PLACEHOLDER  # Preformatted by the server, e.g. '14d 02h 15m'
    load_avg: float = 0.0


@dataclass(slots=True, frozen=True)
class CpuInfo:
    load: int = 0  # Percent, 0 - 100 expected
    model: str = PLACEHOLDER
    cores: int = 0
    threads: int = 0


@dataclass(slots=True, frozen=True)
class RamInfo:
    used: float = 0.0  # Same unit as total (GB on the stock server)
    total: float = 0.0
    type: str = PLACEHOLDER

    @property
    def percent(self) -> int:
        """Usage as a whole percentage, 0 when total is unknown."""
        if self.total <= 0:
            return 0
        ratio = self.used / self.total * 100
        return int(ratio) if math.isfinite(ratio) else 0


@dataclass(slots=True, frozen=True)
class GpuSummary:
    """Aggregate over all GPUs of the host."""

    name: str = PLACEHOLDER
    cuda: str = PLACEHOLDER
    mem_total: int = 0  # MB
    mem_used: int = 0  # MB
    avg_util: int = 0
    avg_mem_util: int = 0
    power_total: int = 0  # Watts
    avg_temp: int = 0
    max_temp: int = 0


@dataclass(slots=True, frozen=True)
class GpuDevice:
    """A single GPU as reported in the per-device list."""

    id: int = 0
    name: str = PLACEHOLDER
    util: int = 0
    mem_util: int = 0
    mem_used: int = 0
    mem_total: int = 0
    power: int = 0
    fan: int = 0
    temp: int = 0


@dataclass(slots=True, frozen=True)
class Partition:
    path: str = PLACEHOLDER
    label: str = PLACEHOLDER
    used: float = 0.0
    total: float = 0.0


@dataclass(slots=True, frozen=True)
class DiskUser:
    name: str = PLACEHOLDER
    used: float = 0.0


@dataclass(slots=True, frozen=True)
class DiskInfo:
    total: float = 0.0
    used: float = 0.0
    partitions: tuple[Partition, ...] = ()
    users: tuple[DiskUser, ...] = ()


@dataclass(slots=True, frozen=True)
class History:
    """Trailing samples per metric, oldest first."""

    cpu_load: tuple[float, ...] = ()
    gpu_load: tuple[float, ...] = ()
    ram_load: tuple[float, ...] = ()


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable, fully populated telemetry record for one poll cycle."""

    system: SystemInfo = field(default_factory=SystemInfo)
    cpu: CpuInfo = field(default_factory=CpuInfo)
    ram: RamInfo = field(default_factory=RamInfo)
    gpu: GpuSummary = field(default_factory=GpuSummary)
    gpus: tuple[GpuDevice, ...] = ()
    disk: DiskInfo = field(default_factory=DiskInfo)
    history: History = field(default_factory=History)
    updated: str = PLACEHOLDER
