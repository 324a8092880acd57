"""Shared pytest fixtures for edufed tests."""

import sys
import tempfile
import threading
from pathlib import Path

import numpy as np
import pytest

# Add src directory to path for imports without installation
_src_path = str(Path(__file__).parent.parent / "src")
if _src_path not in sys.path:
    sys.path.insert(0, _src_path)

from edufed.config import CoordinatorConfig, PersistenceConfig, PrivacyConfig  # noqa: E402
from edufed.federated import (  # noqa: E402
    FederatedCoordinator,
    LocalTrainer,
    LocalUpdate,
    Node,
)


class FixedTrainer(LocalTrainer):
    """Deterministic trainer: fixed accuracy gain and per-node constant update."""

    def __init__(self, deltas=None, accuracy_gain=0.01, delay_seconds=0.0, failing=()):
        self.deltas = deltas or {}
        self.accuracy_gain = accuracy_gain
        self.delay_seconds = delay_seconds
        self.failing = set(failing)
        self.calls = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    def train(self, node, global_weights, round_number):
        with self._lock:
            self.calls.append((node.node_id, round_number))
        self.started.set()
        if self.delay_seconds:
            threading.Event().wait(self.delay_seconds)
        if node.node_id in self.failing:
            raise RuntimeError(f"device {node.node_id} went offline")
        value = self.deltas.get(node.node_id, 0.0)
        return LocalUpdate(
            node_id=node.node_id,
            delta=np.full(np.shape(global_weights), value, dtype=np.float64),
            data_weight=node.data_weight,
            local_accuracy=node.local_accuracy + self.accuracy_gain,
        )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def quiet_privacy():
    """Privacy settings whose noise is negligible."""
    return PrivacyConfig(epsilon_per_round=1.0e6, sensitivity=1.0e-9, total_budget=1.0e9)


@pytest.fixture
def full_participation_config(quiet_privacy):
    """Every eligible node participates, noise is negligible."""
    return CoordinatorConfig(
        seed=7,
        model_dimension=8,
        participation_min=1.0,
        participation_max=1.0,
        round_interval_seconds=0.05,
        privacy=quiet_privacy,
        persistence=PersistenceConfig(backend="none"),
    )


@pytest.fixture
def small_config():
    """Seeded configuration with a small model and fast schedule."""
    return CoordinatorConfig(
        seed=42,
        model_dimension=16,
        round_interval_seconds=0.05,
        privacy=PrivacyConfig(epsilon_per_round=1.0, total_budget=10.0),
    )


@pytest.fixture
def coordinator(small_config):
    """Seeded coordinator with five registered nodes."""
    coord = FederatedCoordinator(config=small_config)
    for index in range(1, 6):
        coord.register_node(f"student-{index}")
    yield coord
    coord.stop_simulation()


@pytest.fixture
def three_node_coordinator(full_participation_config):
    """Coordinator holding nodes a, b, c with data weights 100/100/200 and accuracy 0.80."""
    trainer = FixedTrainer(deltas={"a": 1.0, "b": 2.0, "c": 4.0})
    coord = FederatedCoordinator(config=full_participation_config, trainer=trainer)
    for node_id, weight in (("a", 100), ("b", 100), ("c", 200)):
        coord.registry.restore(Node(node_id=node_id, local_accuracy=0.80, data_weight=weight))
    yield coord
    coord.stop_simulation()
