"""
Metrics Publisher

Holds the latest ``RoundMetrics`` snapshot and fans it out to listeners.

Readers never take a lock: the latest snapshot is an immutable object that
is swapped by a single reference assignment, so a reader sees either the
previous or the next round, never a mix.

Listeners are called synchronously, in no guaranteed order, once per
completed round. A listener that raises is logged and skipped; the other
listeners and the round itself are unaffected.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundMetrics:
    """
    Snapshot of coordinator metrics after a round.

    Accuracies are fractions in [0, 1].
    """

    round: int
    local_accuracy: float
    global_accuracy: float
    participating_nodes: int
    privacy_budget_remaining: float
    training_time_seconds: float
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


MetricsListener = Callable[[RoundMetrics], None]


class MetricsPublisher:
    """Read-only metrics view with a subscription list."""

    def __init__(self, initial: RoundMetrics):
        self._latest = initial
        self._listeners: dict[int, MetricsListener] = {}
        self._next_token = 0
        self._lock = threading.Lock()

    def current_metrics(self) -> RoundMetrics:
        """Latest published snapshot."""
        return self._latest

    def subscribe(self, callback: MetricsListener) -> Callable[[], bool]:
        """
        Register a listener for completed rounds.

        Returns:
            Unsubscribe handle; returns True if the listener was removed
        """
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = callback

        def unsubscribe() -> bool:
            with self._lock:
                return self._listeners.pop(token, None) is not None

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def replace(self, metrics: RoundMetrics) -> None:
        """Swap the snapshot without notifying listeners (no round completed)."""
        self._latest = metrics

    def publish(self, metrics: RoundMetrics) -> None:
        """Swap in a new snapshot and notify every listener."""
        self._latest = metrics

        with self._lock:
            listeners = list(self._listeners.values())

        for callback in listeners:
            try:
                callback(metrics)
            except Exception as e:
                logger.warning(f"Metrics listener error: {e}")
