"""
Local Training Capability

The coordinator asks a ``LocalTrainer`` for each participant's update.
``SimulatedTrainer`` stands in for real on-device training with a random
walk: accuracy drifts slightly upward and the update vector is small
uniform noise. A real trainer only needs to implement ``train``.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from edufed.federated.registry import Node, clamp_accuracy

logger = logging.getLogger(__name__)


@dataclass
class LocalUpdate:
    """Result of one node's local training step."""

    node_id: str
    delta: np.ndarray
    data_weight: int
    local_accuracy: float
    metrics: dict[str, float] = field(default_factory=dict)


class LocalTrainer(ABC):
    """Capability that produces a local model update for a node."""

    @abstractmethod
    def train(self, node: Node, global_weights: np.ndarray, round_number: int) -> LocalUpdate:
        """
        Run one local training step.

        Args:
            node: Snapshot of the participating node
            global_weights: Read-only global parameter vector
            round_number: Round the update is for

        Returns:
            Local update to be aggregated
        """
        pass


class SimulatedTrainer(LocalTrainer):
    """
    Random-walk stand-in for local training.

    accuracy' = min(0.98, accuracy + U(-0.005, 0.02))
    delta[i]  ~ U(-update_scale, update_scale)
    """

    def __init__(
        self,
        rng: np.random.Generator | None = None,
        accuracy_drift: tuple[float, float] = (-0.005, 0.02),
        update_scale: float = 0.05,
        delay_seconds: float = 0.0,
    ):
        """
        Initialize simulated trainer.

        Args:
            rng: Random generator (shared draws are serialized internally)
            accuracy_drift: Range of the per-round accuracy change
            update_scale: Half-width of the uniform update distribution
            delay_seconds: Artificial latency per local step
        """
        self._rng = rng or np.random.default_rng()
        self.accuracy_drift = accuracy_drift
        self.update_scale = update_scale
        self.delay_seconds = delay_seconds
        self._lock = threading.Lock()

    def train(self, node: Node, global_weights: np.ndarray, round_number: int) -> LocalUpdate:
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)

        low, high = self.accuracy_drift
        with self._lock:
            drift = float(self._rng.uniform(low, high))
            delta = self._rng.uniform(
                -self.update_scale, self.update_scale, size=np.shape(global_weights)
            )

        accuracy = clamp_accuracy(node.local_accuracy + drift)
        logger.debug(
            f"Simulated training for {node.node_id} (round {round_number}): "
            f"{node.local_accuracy:.4f} -> {accuracy:.4f}"
        )

        return LocalUpdate(
            node_id=node.node_id,
            delta=delta,
            data_weight=node.data_weight,
            local_accuracy=accuracy,
            metrics={"accuracy_drift": drift},
        )
