"""
Persistence collaborators for the coordinator.

The coordinator records node state keyed by node id and round results keyed
by round number. Calls are best-effort: stores raise
``PersistenceUnavailable`` and the coordinator logs and carries on with its
in-memory state.

Node record layout:
    {
        "status": "active",
        "training_metrics": {
            "local_accuracy": 0.83,
            "data_contribution": 120,
            "last_training_step": 4
        },
        "last_update_at": "2025-01-01T00:00:00+00:00"
    }
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from edufed.federated.exceptions import PersistenceUnavailable
from edufed.federated.registry import Node, NodeStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Record Conversion
# =============================================================================


def node_to_record(node: Node) -> dict[str, Any]:
    """Convert a node to its persisted record."""
    return {
        "status": node.status.value,
        "training_metrics": {
            "local_accuracy": node.local_accuracy,
            "data_contribution": node.data_weight,
            "last_training_step": node.last_training_step,
            "rounds_participated": node.rounds_participated,
        },
        "last_update_at": node.last_update.isoformat(),
    }


def node_from_record(node_id: str, record: dict[str, Any]) -> Node:
    """Rebuild a node from a persisted record."""
    metrics = record.get("training_metrics") or {}
    last_update = record.get("last_update_at")
    return Node(
        node_id=node_id,
        status=NodeStatus(record.get("status", NodeStatus.ACTIVE.value)),
        local_accuracy=float(metrics.get("local_accuracy", 0.8)),
        data_weight=int(metrics.get("data_contribution", 100)),
        last_update=(
            datetime.fromisoformat(last_update) if last_update else datetime.now(timezone.utc)
        ),
        rounds_participated=int(metrics.get("rounds_participated", 0)),
        last_training_step=int(metrics.get("last_training_step", 0)),
    )


# =============================================================================
# Store Interface
# =============================================================================


class NodeStore(ABC):
    """Key-value store for node state and round results."""

    @abstractmethod
    def save_node(self, node_id: str, record: dict[str, Any]) -> None:
        """Record the latest state of a node."""
        pass

    def save_nodes(self, records: dict[str, dict[str, Any]]) -> None:
        """Record several nodes at once."""
        for node_id, record in records.items():
            self.save_node(node_id, record)

    @abstractmethod
    def save_round(self, round_number: int, record: dict[str, Any]) -> None:
        """Record aggregate results of a completed round."""
        pass

    @abstractmethod
    def load_nodes(self, limit: int | None = None) -> dict[str, dict[str, Any]]:
        """Load previously recorded nodes keyed by node id."""
        pass


class InMemoryStore(NodeStore):
    """Store that keeps records in process memory."""

    def __init__(self) -> None:
        self.nodes: dict[str, dict[str, Any]] = {}
        self.rounds: dict[int, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_node(self, node_id: str, record: dict[str, Any]) -> None:
        with self._lock:
            self.nodes[node_id] = dict(record)

    def save_nodes(self, records: dict[str, dict[str, Any]]) -> None:
        with self._lock:
            self.nodes.update({node_id: dict(record) for node_id, record in records.items()})

    def save_round(self, round_number: int, record: dict[str, Any]) -> None:
        with self._lock:
            self.rounds[round_number] = dict(record)

    def load_nodes(self, limit: int | None = None) -> dict[str, dict[str, Any]]:
        with self._lock:
            items = list(self.nodes.items())
        if limit is not None:
            items = items[:limit]
        return dict(items)


class JsonFileStore(NodeStore):
    """
    Store backed by JSON files in a directory.

    Layout:
        <root>/nodes.json                 node_id -> record
        <root>/rounds/round_000001.json   one file per round
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._lock = threading.Lock()

    @property
    def nodes_path(self) -> Path:
        return self.root / "nodes.json"

    @property
    def rounds_dir(self) -> Path:
        return self.root / "rounds"

    def save_node(self, node_id: str, record: dict[str, Any]) -> None:
        with self._lock:
            nodes = self._read_nodes()
            nodes[node_id] = record
            self._write_json(self.nodes_path, nodes)

    def save_nodes(self, records: dict[str, dict[str, Any]]) -> None:
        if not records:
            return
        with self._lock:
            nodes = self._read_nodes()
            nodes.update(records)
            self._write_json(self.nodes_path, nodes)

    def save_round(self, round_number: int, record: dict[str, Any]) -> None:
        with self._lock:
            self._write_json(self.rounds_dir / f"round_{round_number:06d}.json", record)

    def load_nodes(self, limit: int | None = None) -> dict[str, dict[str, Any]]:
        with self._lock:
            items = list(self._read_nodes().items())
        if limit is not None:
            items = items[:limit]
        return dict(items)

    def load_round(self, round_number: int) -> dict[str, Any]:
        """Load the record of a completed round."""
        path = self.rounds_dir / f"round_{round_number:06d}.json"
        try:
            with open(path, encoding="utf-8") as f:
                data: dict[str, Any] = json.load(f)
            return data
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceUnavailable(
                f"Failed to read round {round_number}: {e}", {"path": str(path)}
            ) from e

    def _read_nodes(self) -> dict[str, dict[str, Any]]:
        if not self.nodes_path.exists():
            return {}
        try:
            with open(self.nodes_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceUnavailable(
                f"Failed to read node store: {e}", {"path": str(self.nodes_path)}
            ) from e

        if not isinstance(data, dict):
            raise PersistenceUnavailable(
                f"Node store must contain an object, got {type(data).__name__}",
                {"path": str(self.nodes_path)},
            )
        return data

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceUnavailable(
                f"Failed to write {path}: {e}", {"path": str(path)}
            ) from e

        logger.debug(f"Wrote {path}")
