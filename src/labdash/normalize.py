"""Conversion of raw ``/api/stats`` documents into Snapshots.

``normalize`` is total: any JSON value (or ``None`` after a failed poll)
yields a fully populated Snapshot. Sections are validated independently, so
one malformed section never discards its well-formed neighbours.
"""

from typing import Any

from labdash.config import Config
from labdash.fields import as_mapping, integer, number, records, section, text
from labdash.history import empty_history
from labdash.models import (
    PLACEHOLDER,
    CpuInfo,
    DiskInfo,
    DiskUser,
    GpuDevice,
    GpuSummary,
    History,
    Partition,
    RamInfo,
    Snapshot,
    SystemInfo,
)


def _system(data: dict[str, Any]) -> SystemInfo:
    return SystemInfo(
        hostname=text(data, "hostname", PLACEHOLDER),
        os=text(data, "os", PLACEHOLDER),
        kernel=text(data, "kernel", PLACEHOLDER),
        uptime=text(data, "uptime", PLACEHOLDER),
        load_avg=number(data, "loadAvg"),
    )


def _cpu(data: dict[str, Any]) -> CpuInfo:
    return CpuInfo(
        load=integer(data, "load"),
        model=text(data, "model", PLACEHOLDER),
        cores=integer(data, "cores"),
        threads=integer(data, "threads"),
    )


def _ram(data: dict[str, Any]) -> RamInfo:
    return RamInfo(
        used=number(data, "used"),
        total=number(data, "total"),
        type=text(data, "type", PLACEHOLDER),
    )


def _gpu(data: dict[str, Any]) -> GpuSummary:
    return GpuSummary(
        name=text(data, "name", PLACEHOLDER),
        cuda=text(data, "cuda", PLACEHOLDER),
        mem_total=integer(data, "memTotal"),
        mem_used=integer(data, "memUsed"),
        avg_util=integer(data, "avgUtil"),
        avg_mem_util=integer(data, "avgMemUtil"),
        power_total=integer(data, "powerTotal"),
        avg_temp=integer(data, "avgTemp"),
        max_temp=integer(data, "maxTemp"),
    )


def _gpu_device(data: dict[str, Any]) -> GpuDevice:
    return GpuDevice(
        id=integer(data, "id"),
        name=text(data, "name", PLACEHOLDER),
        util=integer(data, "util"),
        mem_util=integer(data, "memUtil"),
        mem_used=integer(data, "memUsed"),
        mem_total=integer(data, "memTotal"),
        power=integer(data, "power"),
        fan=integer(data, "fan"),
        temp=integer(data, "temp"),
    )


def _partition(data: dict[str, Any]) -> Partition:
    return Partition(
        path=text(data, "path", PLACEHOLDER),
        label=text(data, "label", PLACEHOLDER),
        used=number(data, "used"),
        total=number(data, "total"),
    )


def _disk_user(data: dict[str, Any]) -> DiskUser:
    return DiskUser(name=text(data, "name", PLACEHOLDER), used=number(data, "used"))


def _disk(data: dict[str, Any]) -> DiskInfo:
    return DiskInfo(
        total=number(data, "total"),
        used=number(data, "used"),
        partitions=tuple(_partition(item) for item in records(data, "partitions")),
        users=tuple(_disk_user(item) for item in records(data, "users")),
    )


def default_snapshot(config: Config, history: History | None = None) -> Snapshot:
    """The all-defaults Snapshot, carrying ``history`` over unchanged."""
    if history is None:
        history = empty_history(config.monitor)
    return Snapshot(history=history)


def normalize(raw: Any, config: Config, history: History | None = None) -> Snapshot:
    """
    Build a complete Snapshot from a raw metrics document.

    Args:
        raw: Decoded JSON from the endpoint, or None when the poll failed.
        config: Supplies history capacities when no history exists yet.
        history: History from the previous cycle. It is never read from
            ``raw``; the caller appends new samples after a successful poll.

    Returns:
        A Snapshot in which every missing, null or wrong-typed field holds
        its default.
    """
    if history is None:
        history = empty_history(config.monitor)

    data = as_mapping(raw)
    if data is None:
        return default_snapshot(config, history)

    return Snapshot(
        system=_system(section(data, "system")),
        cpu=_cpu(section(data, "cpu")),
        ram=_ram(section(data, "ram")),
        gpu=_gpu(section(data, "gpu")),
        gpus=tuple(_gpu_device(item) for item in records(data, "gpus")),
        disk=_disk(section(data, "disk")),
        history=history,
        updated=text(data, "updated", PLACEHOLDER),
    )
