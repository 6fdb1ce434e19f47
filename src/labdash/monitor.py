"""Polling engine for labdash."""

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Protocol

from labdash.client import MetricsClient
from labdash.config import Config
from labdash.errors import FetchError
from labdash.history import advance
from labdash.liveness import LivenessTracker
from labdash.models import History, Liveness
from labdash.normalize import default_snapshot, normalize
from labdash.state import DashboardState, StateStore

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    def fetch(self) -> Any: ...

    def close(self) -> None: ...


def initial_state(config: Config) -> DashboardState:
    """State exposed before the first poll completes."""
    return DashboardState(snapshot=default_snapshot(config), liveness=Liveness.OFFLINE)


class PollScheduler:
    """
    Fixed-rate poller for a LabDash metrics endpoint.

    Runs in a daemon thread and publishes each cycle's (snapshot, liveness)
    pair to a StateStore. The first cycle fires immediately; later cycles are
    spaced ``interval`` seconds apart, trigger to trigger, regardless of how
    long each fetch takes. Cycles never overlap: a trigger that comes due
    while a fetch is outstanding is collapsed into one cycle that starts as
    soon as the slow one finishes.
    """

    def __init__(
        self,
        config: Config,
        store: StateStore | None = None,
        client: Fetcher | None = None,
    ) -> None:
        """
        Initialize the PollScheduler.

        Args:
            config: Dashboard config; ``config.monitor`` drives polling.
            store: Where results are published. Created if not given.
            client: Anything with ``fetch()`` and ``close()``. Defaults to a
                MetricsClient for ``config.monitor.endpoint``.
        """
        self._config = config
        self._owns_client = client is None
        self._client: Fetcher = client or self._build_client(config)
        self._client_closed = False
        self._store = store or StateStore(initial_state(config))
        self._tracker = LivenessTracker()
        current = self._store.peek()
        self._history: History = current.snapshot.history
        self._cycle = current.cycle
        self._idle = False

        self._stop_event = threading.Event()
        self._wakeup = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._store.set_read_callback(self._on_consumer_read)

    @staticmethod
    def _build_client(config: Config) -> MetricsClient:
        return MetricsClient(config.monitor.endpoint, timeout=config.monitor.timeout)

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def config(self) -> Config:
        return self._config

    @property
    def interval(self) -> float:
        """The active polling period."""
        return self._config.monitor.interval

    @property
    def is_idle(self) -> bool:
        return self._idle

    @property
    def is_running(self) -> bool:
        """Check if the polling thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def apply_config(self, config: Config) -> None:
        """Swap in a reloaded config. Takes effect from the next cycle."""
        endpoint_changed = config.monitor.endpoint != self._config.monitor.endpoint
        timeout_changed = config.monitor.timeout != self._config.monitor.timeout
        with self._cycle_lock:
            self._config = config
            if self._owns_client and (endpoint_changed or timeout_changed):
                self._client.close()
                self._client = self._build_client(config)
        logger.info(
            "config applied (interval=%ss, endpoint=%s)",
            config.monitor.interval,
            config.monitor.endpoint,
            extra={"event": "config_applied"},
        )

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_running:
            return

        if self._client_closed and self._owns_client:
            self._client = self._build_client(self._config)
            self._client_closed = False
        # Each run owns its events; a thread left over from a timed-out stop()
        # still sees its own stop event and exits without publishing.
        self._stop_event = threading.Event()
        self._wakeup = threading.Event()
        self._thread = threading.Thread(
            target=self._poll_loop,
            args=(self._stop_event, self._wakeup),
            daemon=True,
            name="PollScheduler",
        )
        self._thread.start()
        logger.info(
            "polling %s every %ss",
            self._config.monitor.endpoint,
            self.interval,
            extra={"event": "scheduler_started"},
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop polling. Safe to call any number of times.

        A fetch still in flight is not interrupted; its result is discarded.

        Args:
            timeout: How long to wait for the thread to stop (seconds).
        """
        already_stopped = self._stop_event.is_set()
        self._stop_event.set()
        self._wakeup.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        if self._owns_client and not self._client_closed:
            self._client.close()
            self._client_closed = True
        if not already_stopped:
            logger.info("polling stopped", extra={"event": "scheduler_stopped"})

    def run_once(self) -> DashboardState:
        """Run one poll cycle synchronously and return the published state."""
        with self._cycle_lock:
            return self._run_cycle(self._stop_event)

    def _poll_loop(self, stop_event: threading.Event, wakeup: threading.Event) -> None:
        """Main polling loop running in the background thread."""
        next_trigger = time.monotonic()
        while not stop_event.is_set():
            try:
                with self._cycle_lock:
                    self._run_cycle(stop_event)
            except Exception:
                # A cycle must never take the loop down
                logger.exception("unexpected error in poll cycle")
            if stop_event.is_set():
                break

            period = self._current_period()
            next_trigger += period
            now = time.monotonic()
            if next_trigger < now:
                skipped = int((now - next_trigger) // period)
                if skipped:
                    logger.debug("poll overran its period, skipped %d trigger(s)", skipped)
                next_trigger = now

            # Wait until the next trigger, a stop request, or a consumer waking us from idle
            if wakeup.wait(timeout=next_trigger - now):
                wakeup.clear()
                next_trigger = time.monotonic()

    def _run_cycle(self, stop_event: threading.Event) -> DashboardState:
        config = self._config
        raw: Any = None
        try:
            raw = self._client.fetch()
        except FetchError as exc:
            self._log_failure(exc)
        except Exception as exc:
            logger.exception("unexpected error fetching metrics")
            self._log_failure(exc)

        if stop_event.is_set():
            logger.debug("discarding poll result that completed after stop")
            return self._store.peek()

        if raw is not None:
            snapshot = normalize(raw, config, self._history)
            self._history = advance(self._history, snapshot, config.monitor)
            snapshot = replace(snapshot, history=self._history)
            changed = self._tracker.record_success()
            logger.debug("poll ok, cpu load %d", snapshot.cpu.load, extra={"event": "poll_ok"})
        else:
            snapshot = normalize(None, config, self._history)
            changed = self._tracker.record_failure()

        if changed:
            logger.info(
                "metrics endpoint is %s",
                self._tracker.state.value,
                extra={"event": "liveness_changed"},
            )
        self._cycle += 1
        state = DashboardState(snapshot=snapshot, liveness=self._tracker.state, cycle=self._cycle)
        self._store.publish(state)
        return state

    def _log_failure(self, exc: Exception) -> None:
        # Log the first failure of a streak loudly, the rest quietly
        level = logging.WARNING if self._tracker.consecutive_failures == 0 else logging.DEBUG
        logger.log(
            level,
            "poll of %s failed: %s",
            self._config.monitor.endpoint,
            exc,
            extra={"event": "poll_failed"},
        )

    def _current_period(self) -> float:
        """Active or idle period, logging idle transitions."""
        monitor = self._config.monitor
        idle = (
            monitor.idle_timeout > 0
            and time.monotonic() - self._store.last_read > monitor.idle_timeout
        )
        if idle != self._idle:
            self._idle = idle
            if idle:
                logger.info(
                    "no readers for %ds, polling every %ss",
                    monitor.idle_timeout,
                    monitor.idle_interval,
                    extra={"event": "idle_entered"},
                )
            else:
                logger.info(
                    "reader detected, polling every %ss",
                    monitor.interval,
                    extra={"event": "idle_exited"},
                )
        return monitor.idle_interval if idle else monitor.interval

    def _on_consumer_read(self) -> None:
        if self._idle:
            self._wakeup.set()
