"""Shared fixtures for labdash tests."""

import threading

import pytest

from labdash.config import Config, MonitorConfig
from labdash.errors import TransportError


class ScriptedClient:
    """Fake metrics client replaying a fixed script of documents and errors."""

    def __init__(self, script=(), default=None, delay: float = 0.0) -> None:
        self._script = list(script)
        self._default = default
        self._delay = delay
        self._lock = threading.Lock()
        self.calls = 0
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0

    def fetch(self):
        with self._lock:
            self.calls += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            item = self._script.pop(0) if self._script else self._default
        try:
            if self._delay:
                threading.Event().wait(self._delay)
            if item is None:
                raise TransportError("connection refused")
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def scripted_client():
    """Factory for ScriptedClient instances."""
    return ScriptedClient


@pytest.fixture
def fast_config():
    """Config polling every 50ms with short histories."""
    return Config(
        monitor=MonitorConfig(interval=0.05, history_cpu=5, history_gpu=5, history_ram=5)
    )


@pytest.fixture
def stats_document():
    """A complete, well-formed /api/stats document."""
    return {
        "system": {
            "hostname": "hipp0-node",
            "os": "Ubuntu 22.04 LTS",
            "kernel": "5.15.0-91-generic",
            "uptime": "14d 02h 15m",
            "loadAvg": 3.25,
        },
        "cpu": {"load": 42, "model": "AMD EPYC 7742", "cores": 64, "threads": 128},
        "ram": {"used": 128.0, "total": 512.0, "type": "DDR4 ECC"},
        "gpu": {
            "name": "NVIDIA L20",
            "cuda": "12.4",
            "memTotal": 49152,
            "memUsed": 12288,
            "avgUtil": 60,
            "avgMemUtil": 25,
            "powerTotal": 410,
            "avgTemp": 55,
            "maxTemp": 61,
        },
        "gpus": [
            {
                "id": 0,
                "name": "NVIDIA L20",
                "util": 70,
                "memUtil": 30,
                "memUsed": 8192,
                "memTotal": 24576,
                "power": 220,
                "fan": 35,
                "temp": 61,
            },
            {
                "id": 1,
                "name": "NVIDIA L20",
                "util": 50,
                "memUtil": 20,
                "memUsed": 4096,
                "memTotal": 24576,
                "power": 190,
                "fan": 30,
                "temp": 49,
            },
        ],
        "disk": {
            "total": 12000.0,
            "used": 4500.0,
            "partitions": [
                {"path": "/", "label": "System Root", "used": 50.0, "total": 500.0},
                {"path": "/home", "label": "User Home", "used": 1200.0, "total": 4000.0},
            ],
            "users": [{"name": "wuwei", "used": 450.0}, {"name": "guest", "used": 50.0}],
        },
        "history": {"cpuLoad": [99, 99], "gpuLoad": [99], "ramLoad": [99]},
        "updated": "15:04:05",
    }
