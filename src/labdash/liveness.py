"""Online/offline tracking of the metrics endpoint."""

from labdash.models import Liveness


class LivenessTracker:
    """
    Two-state machine driven by poll outcomes.

    Starts OFFLINE because nothing has been received yet. The state only ever
    reflects the most recent poll; the failure streak is kept for logging.
    """

    def __init__(self) -> None:
        self._state = Liveness.OFFLINE
        self._consecutive_failures = 0

    @property
    def state(self) -> Liveness:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state is Liveness.ONLINE

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def record_success(self) -> bool:
        """Mark the last poll as successful. Returns True if the state changed."""
        self._consecutive_failures = 0
        return self._transition(Liveness.ONLINE)

    def record_failure(self) -> bool:
        """Mark the last poll as failed. Returns True if the state changed."""
        self._consecutive_failures += 1
        return self._transition(Liveness.OFFLINE)

    def _transition(self, new_state: Liveness) -> bool:
        changed = new_state is not self._state
        self._state = new_state
        return changed
