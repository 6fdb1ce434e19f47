"""Verification Test: Chaos Monkey - flaky endpoint resilience.

The endpoint randomly refuses connections, answers with error statuses,
returns garbage or half-filled documents. The scheduler must never crash,
every published snapshot must be complete, and liveness must always match
the outcome of the latest poll.
"""

import random
import threading
import time

from labdash.config import Config, MonitorConfig
from labdash.errors import MalformedBodyError, ProtocolError, TransportError
from labdash.models import Liveness, Snapshot
from labdash.monitor import PollScheduler


def random_document(rng: random.Random) -> dict:
    """A document with random sections missing or mangled."""
    junk = [None, "n/a", 17, [], {"unexpected": True}]
    doc = {
        "system": {"hostname": "gpu01", "loadAvg": rng.random() * 8},
        "cpu": {"load": rng.randint(0, 100), "cores": 32},
        "ram": {"used": rng.random() * 256, "total": 256},
        "gpu": {"avgUtil": rng.randint(0, 100)},
        "gpus": [{"id": i, "util": rng.randint(0, 100)} for i in range(rng.randint(0, 8))],
        "disk": {"partitions": [{"path": "/", "used": 1, "total": 2}], "users": []},
    }
    for key in list(doc):
        roll = rng.random()
        if roll < 0.15:
            del doc[key]
        elif roll < 0.3:
            doc[key] = rng.choice(junk)
    return doc


class ChaosClient:
    """Client whose outcome is random; records what each fetch did."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self.outcomes: list[bool] = []

    def fetch(self):
        with self._lock:
            roll = self._rng.random()
            if roll < 0.2:
                self.outcomes.append(False)
                raise TransportError("connection reset by peer")
            if roll < 0.3:
                self.outcomes.append(False)
                raise ProtocolError(self._rng.choice([404, 500, 502, 503]))
            if roll < 0.4:
                self.outcomes.append(False)
                raise MalformedBodyError("<html>Bad Gateway</html>")
            if roll < 0.45:
                self.outcomes.append(False)
                raise RuntimeError("unexpected failure in transport")
            self.outcomes.append(True)
            return random_document(self._rng)

    def close(self) -> None:
        pass


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_scheduler_survives_flaky_endpoint(self):
        """
        Test the scheduler keeps polling through random failures.

        Every published state must hold a complete snapshot whose history
        lengths match the configured capacities.
        """
        config = Config(
            monitor=MonitorConfig(interval=0.01, history_cpu=7, history_gpu=5, history_ram=3)
        )
        client = ChaosClient(seed=1234)
        scheduler = PollScheduler(config, client=client)

        scheduler.start()
        try:
            start_time = time.time()
            seen_cycles = set()
            while time.time() - start_time < 3.0:
                state = scheduler.store.read()
                seen_cycles.add(state.cycle)
                assert isinstance(state.snapshot, Snapshot)
                assert isinstance(state.snapshot.gpus, tuple)
                assert len(state.snapshot.history.cpu_load) == 7
                assert len(state.snapshot.history.gpu_load) == 5
                assert len(state.snapshot.history.ram_load) == 3
                time.sleep(0.005)

            assert scheduler.is_running, "Scheduler should still be running after chaos"
            assert len(seen_cycles) >= 20
        finally:
            scheduler.stop()

    def test_liveness_tracks_last_outcome(self):
        """Test liveness after each synchronous cycle equals that cycle's outcome."""
        config = Config(monitor=MonitorConfig(interval=1, history_cpu=4))
        client = ChaosClient(seed=42)
        scheduler = PollScheduler(config, client=client)

        for _ in range(500):
            state = scheduler.run_once()
            expected = Liveness.ONLINE if client.outcomes[-1] else Liveness.OFFLINE
            assert state.liveness is expected

    def test_history_only_grows_on_success(self):
        """Test failed cycles leave history untouched."""
        config = Config(monitor=MonitorConfig(interval=1, history_cpu=6))
        client = ChaosClient(seed=7)
        scheduler = PollScheduler(config, client=client)
        previous = scheduler.store.peek().snapshot.history

        for _ in range(300):
            state = scheduler.run_once()
            history = state.snapshot.history
            if client.outcomes[-1]:
                assert history.cpu_load[:-1] == previous.cpu_load[1:]
                assert history.cpu_load[-1] == state.snapshot.cpu.load
            else:
                assert history == previous
                assert state.snapshot == Snapshot(history=previous)
            previous = history

    def test_rapid_start_stop(self):
        """Test repeated start/stop cycles under chaos leave no running thread."""
        config = Config(monitor=MonitorConfig(interval=0.01))
        scheduler = PollScheduler(config, client=ChaosClient(seed=99))

        for _ in range(20):
            scheduler.start()
            time.sleep(0.02)
            scheduler.stop()

        assert not scheduler.is_running
