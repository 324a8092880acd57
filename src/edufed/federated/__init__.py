"""
Federated Learning Coordinator for E-Learning Platforms

Coordinates privacy-preserving training rounds across student devices
("nodes") without collecting their raw learning data.

Components:
    - NodeRegistry: Tracks participants and their status
    - PrivacyAccountant: Gaussian noise and privacy budget ledger
    - FedAvgAggregator: Data-weighted averaging of node updates
    - FederatedCoordinator: Runs rounds, on demand or on a schedule
    - MetricsPublisher: Latest round metrics and listener fan-out

Usage:
    from edufed.federated import FederatedCoordinator

    coordinator = FederatedCoordinator()
    coordinator.register_node("student-1")
    metrics = coordinator.run_training_round("student-2")
    coordinator.start_simulation()

Privacy note:
    Budget accounting is linear (epsilon_per_round * rounds). Treat it as a
    placeholder, not a validated differential privacy guarantee.
"""

from edufed.federated.aggregator import (
    AggregationResult,
    FedAvgAggregator,
    ModelAggregator,
    NodeReport,
    federated_average,
)
from edufed.federated.coordinator import (
    FederatedCoordinator,
    GlobalModel,
    build_store,
    create_coordinator,
)
from edufed.federated.exceptions import (
    FederatedError,
    InvalidArgument,
    NotFound,
    PersistenceUnavailable,
    RoundFailed,
)
from edufed.federated.metrics import MetricsPublisher, RoundMetrics
from edufed.federated.persistence import InMemoryStore, JsonFileStore, NodeStore
from edufed.federated.privacy import PrivacyAccountant, PrivacyLedger
from edufed.federated.registry import Node, NodeRegistry, NodeStatus
from edufed.federated.trainer import LocalTrainer, LocalUpdate, SimulatedTrainer

__all__ = [
    "AggregationResult",
    "FedAvgAggregator",
    "FederatedCoordinator",
    "FederatedError",
    "GlobalModel",
    "InMemoryStore",
    "InvalidArgument",
    "JsonFileStore",
    "LocalTrainer",
    "LocalUpdate",
    "MetricsPublisher",
    "ModelAggregator",
    "Node",
    "NodeRegistry",
    "NodeReport",
    "NodeStatus",
    "NodeStore",
    "NotFound",
    "PersistenceUnavailable",
    "PrivacyAccountant",
    "PrivacyLedger",
    "RoundFailed",
    "RoundMetrics",
    "SimulatedTrainer",
    "build_store",
    "create_coordinator",
    "federated_average",
]
