"""
Node Registry

Tracks every learning participant ("node") known to the coordinator:
its status, local accuracy estimate, data-size weight and last update time.

Nodes are created on first participation request and never removed; a node
that leaves is only marked ``inactive``.

Status transitions per round:
    idle/active -> training   (selected for a round)
    training    -> active     (local update aggregated, or round rolled back)
    training    -> training   (failed to report; eligible again next round)
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import numpy as np

from edufed.federated.exceptions import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

# No node is ever modeled as a perfect learner
MAX_LOCAL_ACCURACY = 0.98

INITIAL_ACCURACY_RANGE = (0.70, 0.90)
INITIAL_DATA_WEIGHT_RANGE = (50, 200)


# =============================================================================
# Data Models
# =============================================================================


class NodeStatus(str, Enum):
    """Lifecycle status of a node."""

    IDLE = "idle"
    ACTIVE = "active"
    TRAINING = "training"
    INACTIVE = "inactive"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_accuracy(value: float) -> float:
    """Clamp an accuracy estimate into [0, MAX_LOCAL_ACCURACY]."""
    return float(min(MAX_LOCAL_ACCURACY, max(0.0, value)))


@dataclass
class Node:
    """One learning participant."""

    node_id: str
    status: NodeStatus = NodeStatus.IDLE
    local_accuracy: float = 0.8
    data_weight: int = 100
    last_update: datetime = field(default_factory=_utcnow)
    rounds_participated: int = 0
    last_training_step: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "local_accuracy": self.local_accuracy,
            "data_weight": self.data_weight,
            "last_update": self.last_update.isoformat(),
            "rounds_participated": self.rounds_participated,
            "last_training_step": self.last_training_step,
        }


# =============================================================================
# Registry
# =============================================================================


class NodeRegistry:
    """
    In-memory registry of federated participants.

    Every mutating method holds the registry lock for the whole call, so a
    bulk transition is applied to all ids or to none. Readers receive copies.

    Example:
        registry = NodeRegistry(rng=np.random.default_rng(7))
        registry.upsert("student-1")
        participants = registry.select_participants(0.5)
        registry.mark_training(participants)
    """

    def __init__(self, rng: np.random.Generator | None = None):
        """
        Initialize registry.

        Args:
            rng: Random generator for default node attributes and selection
        """
        self._rng = rng or np.random.default_rng()
        self._nodes: dict[str, Node] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def upsert(self, node_id: str, data_weight: int | None = None) -> Node:
        """
        Register a node if absent.

        Args:
            node_id: Stable node identifier
            data_weight: Local sample count proxy (drawn from [50, 200] if None)

        Returns:
            Copy of the new or existing node (an existing node is unchanged)
        """
        if not node_id:
            raise InvalidArgument("node_id must be a non-empty string")
        if data_weight is not None and data_weight <= 0:
            raise InvalidArgument(
                f"data_weight must be positive, got {data_weight}",
                {"node_id": node_id, "data_weight": data_weight},
            )

        with self._lock:
            existing = self._nodes.get(node_id)
            if existing is not None:
                return replace(existing)

            low, high = INITIAL_ACCURACY_RANGE
            weight_low, weight_high = INITIAL_DATA_WEIGHT_RANGE
            node = Node(
                node_id=node_id,
                local_accuracy=clamp_accuracy(self._rng.uniform(low, high)),
                data_weight=(
                    int(data_weight)
                    if data_weight is not None
                    else int(self._rng.integers(weight_low, weight_high, endpoint=True))
                ),
            )
            self._nodes[node_id] = node

        logger.debug(
            f"Registered node {node_id}: accuracy={node.local_accuracy:.4f}, "
            f"data_weight={node.data_weight}"
        )
        return replace(node)

    def restore(self, node: Node) -> None:
        """Insert a previously persisted node, replacing any in-memory entry."""
        if node.data_weight <= 0:
            raise InvalidArgument(f"data_weight must be positive, got {node.data_weight}")
        restored = replace(node, local_accuracy=clamp_accuracy(node.local_accuracy))
        if restored.status == NodeStatus.TRAINING:
            # A round cannot survive a restart
            restored.status = NodeStatus.ACTIVE
        with self._lock:
            self._nodes[node.node_id] = restored

    def get(self, node_id: str) -> Node:
        """Get a copy of a node or raise NotFound."""
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                raise NotFound(f"Unknown node: {node_id}", {"node_id": node_id})
            return replace(node)

    def select_participants(
        self,
        rate: float,
        required: Iterable[str] = (),
    ) -> set[str]:
        """
        Select nodes for a round by independent Bernoulli draws.

        Args:
            rate: Inclusion probability per node, in (0, 1]
            required: Node ids that must be included (must be registered)

        Returns:
            Selected node ids; never empty while an eligible node exists
        """
        if not 0.0 < rate <= 1.0:
            raise InvalidArgument(f"participation rate must be in (0, 1], got {rate}")

        with self._lock:
            required_ids = set(required)
            self._require_known(required_ids)

            eligible = sorted(
                node_id
                for node_id, node in self._nodes.items()
                if node.status != NodeStatus.INACTIVE
            )
            if not eligible and not required_ids:
                return set()

            draws = self._rng.random(len(eligible))
            selected = {node_id for node_id, draw in zip(eligible, draws) if draw < rate}
            selected |= required_ids

            if not selected:
                forced = eligible[int(self._rng.integers(len(eligible)))]
                logger.debug(f"No node drawn at rate {rate:.2f}, forcing {forced}")
                selected.add(forced)

        return selected

    def mark_training(self, node_ids: Iterable[str]) -> None:
        """Move nodes into training status."""
        self._transition(node_ids, NodeStatus.TRAINING)

    def mark_active(self, node_ids: Iterable[str]) -> None:
        """Move nodes into active status."""
        self._transition(node_ids, NodeStatus.ACTIVE)

    def deactivate(self, node_id: str) -> Node:
        """Mark a node inactive; it will no longer be selected."""
        self._transition([node_id], NodeStatus.INACTIVE)
        logger.info(f"Node deactivated: {node_id}")
        return self.get(node_id)

    def reactivate(self, node_id: str) -> Node:
        """Return an inactive node to the eligible pool."""
        self._transition([node_id], NodeStatus.ACTIVE)
        logger.info(f"Node reactivated: {node_id}")
        return self.get(node_id)

    def record_update(self, node_id: str, local_accuracy: float, round_number: int) -> Node:
        """Apply an aggregated local update to a node's state."""
        with self._lock:
            self._require_known([node_id])
            node = self._nodes[node_id]
            node.local_accuracy = clamp_accuracy(local_accuracy)
            node.rounds_participated += 1
            node.last_training_step = round_number
            node.last_update = _utcnow()
            return replace(node)

    def snapshot(self) -> list[Node]:
        """Read-only copy of all nodes."""
        with self._lock:
            return [replace(node) for node in self._nodes.values()]

    def count_by_status(self) -> dict[str, int]:
        """Count nodes in each status."""
        counts = {status.value: 0 for status in NodeStatus}
        with self._lock:
            for node in self._nodes.values():
                counts[node.status.value] += 1
        return counts

    def _transition(self, node_ids: Iterable[str], status: NodeStatus) -> None:
        ids = list(node_ids)
        with self._lock:
            self._require_known(ids)
            now = _utcnow()
            for node_id in ids:
                node = self._nodes[node_id]
                node.status = status
                node.last_update = now

    def _require_known(self, node_ids: Iterable[str]) -> None:
        missing = sorted(set(node_ids) - self._nodes.keys())
        if missing:
            raise NotFound(f"Unknown node(s): {', '.join(missing)}", {"node_ids": missing})
