"""Tests for the shared state store."""

import dataclasses
import threading
import time

import pytest

from labdash.models import CpuInfo, Liveness, Snapshot
from labdash.state import DashboardState, StateStore


def make_state(cycle: int) -> DashboardState:
    # Even cycles online, odd cycles offline; cpu.load mirrors the cycle
    liveness = Liveness.ONLINE if cycle % 2 == 0 else Liveness.OFFLINE
    return DashboardState(snapshot=Snapshot(cpu=CpuInfo(load=cycle)), liveness=liveness, cycle=cycle)


def test_read_returns_published_state():
    store = StateStore(make_state(0))
    new_state = make_state(1)

    store.publish(new_state)

    assert store.read() is new_state


def test_read_records_access_time():
    store = StateStore(make_state(0))
    before = store.last_read
    time.sleep(0.01)

    store.read()

    assert store.last_read > before


def test_peek_does_not_record_access():
    store = StateStore(make_state(0))
    before = store.last_read
    time.sleep(0.01)

    store.peek()

    assert store.last_read == before


def test_read_callback_invoked():
    store = StateStore(make_state(0))
    calls = []
    store.set_read_callback(lambda: calls.append(1))

    store.read()
    store.read()
    store.set_read_callback(None)
    store.read()

    assert len(calls) == 2


def test_state_is_immutable():
    state = make_state(0)

    with pytest.raises(dataclasses.FrozenInstanceError):
        state.cycle = 5  # type: ignore[misc]


def test_readers_never_see_torn_state():
    """Test concurrent readers always see a snapshot/liveness pair from one cycle."""
    store = StateStore(make_state(0))
    stop = threading.Event()
    errors: list[str] = []

    def reader() -> None:
        while not stop.is_set():
            state = store.read()
            expected = Liveness.ONLINE if state.cycle % 2 == 0 else Liveness.OFFLINE
            if state.snapshot.cpu.load != state.cycle or state.liveness is not expected:
                errors.append(f"torn state at cycle {state.cycle}")

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    try:
        for cycle in range(1, 5000):
            store.publish(make_state(cycle))
    finally:
        stop.set()
        for thread in readers:
            thread.join(timeout=2.0)

    assert errors == []
    assert store.peek().cycle == 4999
