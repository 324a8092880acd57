"""
Model Aggregation for Federated Learning

Combines per-node model updates into the global parameter vector.

Algorithm (FedAvg over update vectors):
    w_global[i] += sum_k (n_k / sum(n)) * u_k[i]

Where:
    n_k = data weight (local sample count proxy) of node k
    u_k = per-coordinate update reported by node k

Aggregation is deterministic: all randomness belongs to local training.

References:
    - McMahan et al., "Communication-Efficient Learning" (2017) - FedAvg
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np

from edufed.federated.exceptions import InvalidArgument

logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class NodeReport:
    """Update contributed by one node for one round."""

    node_id: str
    weights: np.ndarray
    data_weight: int


@dataclass
class AggregationResult:
    """Result of model aggregation."""

    global_weights: np.ndarray
    num_nodes: int
    total_data_weight: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (excluding weights)."""
        return {
            "num_nodes": self.num_nodes,
            "total_data_weight": self.total_data_weight,
        }


# =============================================================================
# Aggregators
# =============================================================================


class ModelAggregator(ABC):
    """Base class for aggregation strategies."""

    @abstractmethod
    def aggregate(
        self, global_weights: np.ndarray, reports: list[NodeReport]
    ) -> AggregationResult:
        """
        Aggregate node reports into a new global vector.

        Args:
            global_weights: Current global parameter vector
            reports: Node updates for this round

        Returns:
            Aggregation result with the new global vector
        """
        pass

    def _validate_shapes(self, global_weights: np.ndarray, reports: list[NodeReport]) -> None:
        """Validate that every update matches the global vector."""
        for report in reports:
            shape = np.shape(report.weights)
            if shape != global_weights.shape:
                raise InvalidArgument(
                    f"Node {report.node_id} update shape mismatch: "
                    f"{shape} vs {global_weights.shape}",
                    {"node_id": report.node_id},
                )
            if report.data_weight <= 0:
                raise InvalidArgument(
                    f"Node {report.node_id} has non-positive data weight {report.data_weight}",
                    {"node_id": report.node_id},
                )


class FedAvgAggregator(ModelAggregator):
    """
    Federated Averaging (FedAvg) aggregation.

    Each node's update is scaled by its share of the total data weight, so
    the normalized weights sum to 1, and the combined increment is added to
    the current global vector.
    """

    def aggregate(
        self, global_weights: np.ndarray, reports: list[NodeReport]
    ) -> AggregationResult:
        base = np.asarray(global_weights, dtype=np.float64)

        if not reports:
            logger.debug("FedAvg called with no reports; global model unchanged")
            return AggregationResult(global_weights=base.copy(), num_nodes=0, total_data_weight=0)

        self._validate_shapes(base, reports)

        total_data_weight = sum(int(r.data_weight) for r in reports)

        # Sorted so float summation order does not depend on arrival order
        increment = np.zeros_like(base)
        for report in sorted(reports, key=lambda r: r.node_id):
            weight_factor = report.data_weight / total_data_weight
            increment += weight_factor * np.asarray(report.weights, dtype=np.float64)

        logger.debug(
            f"FedAvg: {len(reports)} nodes, {total_data_weight} total data weight"
        )

        return AggregationResult(
            global_weights=base + increment,
            num_nodes=len(reports),
            total_data_weight=total_data_weight,
        )

    def federated_average(
        self, global_weights: np.ndarray, reports: list[NodeReport]
    ) -> np.ndarray:
        """Convenience wrapper returning only the new global vector."""
        return self.aggregate(global_weights, reports).global_weights


def federated_average(global_weights: np.ndarray, reports: list[NodeReport]) -> np.ndarray:
    """
    Weighted average of node updates added to the global vector.

    Args:
        global_weights: Current global parameter vector
        reports: Node updates with data weights

    Returns:
        New global vector (input is not modified)
    """
    return FedAvgAggregator().federated_average(global_weights, reports)
