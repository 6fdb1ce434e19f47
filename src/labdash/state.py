"""Shared, consistently readable dashboard state."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from labdash.models import Liveness, Snapshot


@dataclass(slots=True, frozen=True)
class DashboardState:
    """The pair consumers read: latest snapshot plus endpoint liveness."""

    snapshot: Snapshot
    liveness: Liveness
    cycle: int = 0  # Number of completed poll cycles


class StateStore:
    """
    Holder for the current DashboardState.

    The scheduler is the only writer and replaces the whole state in one
    step; readers always get a complete pair, never a mix of two cycles.
    Reads are timestamped so the scheduler can tell when nobody is watching.
    """

    def __init__(self, initial: DashboardState) -> None:
        self._lock = threading.Lock()
        self._state = initial
        self._last_read = time.monotonic()
        self._on_read: Callable[[], None] | None = None

    def read(self) -> DashboardState:
        """Return the current state and record the access."""
        with self._lock:
            state = self._state
            self._last_read = time.monotonic()
            callback = self._on_read
        if callback is not None:
            callback()
        return state

    def peek(self) -> DashboardState:
        """Return the current state without counting as consumer activity."""
        with self._lock:
            return self._state

    def publish(self, state: DashboardState) -> None:
        with self._lock:
            self._state = state

    @property
    def last_read(self) -> float:
        """Monotonic time of the most recent read()."""
        with self._lock:
            return self._last_read

    def set_read_callback(self, callback: Callable[[], None] | None) -> None:
        with self._lock:
            self._on_read = callback
