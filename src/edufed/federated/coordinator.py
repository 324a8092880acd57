"""
Federated Training Coordinator

Orchestrates training rounds across the registered learning nodes and
keeps the global model, the privacy ledger and the published metrics.

Round algorithm:
    1. Draw a participation rate from [participation_min, participation_max]
    2. Select participants (Bernoulli per node, never empty)
    3. Mark participants as training
    4. Collect a local update per participant (failures are excluded)
    5. FedAvg the updates into the global vector, increment the round
    6. Privatize the new vector, charge one round of privacy budget
    7. Mark reporting participants active
    8. global_accuracy = mean(participant accuracy) + global_accuracy_offset
    9. Persist (best effort) and publish metrics to listeners

Steps 4-6 are computed against a snapshot and committed together, so a
failure leaves the global model, the ledger and node accuracies untouched.

Usage:
    coordinator = FederatedCoordinator(CoordinatorConfig(seed=7))
    coordinator.register_node("student-1")
    metrics = coordinator.run_training_round("student-2")
    coordinator.start_simulation()
"""

import json
import logging
import threading
import time
from collections import deque
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import numpy as np

from edufed.config.schema import CoordinatorConfig, PersistenceBackend
from edufed.federated.aggregator import FedAvgAggregator, ModelAggregator, NodeReport
from edufed.federated.exceptions import RoundFailed
from edufed.federated.metrics import MetricsListener, MetricsPublisher, RoundMetrics
from edufed.federated.persistence import (
    InMemoryStore,
    JsonFileStore,
    NodeStore,
    node_from_record,
    node_to_record,
)
from edufed.federated.privacy import PrivacyAccountant
from edufed.federated.registry import Node, NodeRegistry, NodeStatus
from edufed.federated.trainer import LocalTrainer, LocalUpdate, SimulatedTrainer

logger = logging.getLogger(__name__)

MAX_HISTORY = 1000
MAX_AUDIT_ENTRIES = 10_000
INITIAL_WEIGHT_SCALE = 0.1


# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class GlobalModel:
    """Immutable snapshot of the global model."""

    weights: np.ndarray
    round: int = 0
    version: int = 1

    def to_dict(self, include_weights: bool = False) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "round": self.round,
            "version": self.version,
            "dimension": int(self.weights.shape[0]),
        }
        if include_weights:
            data["weights"] = self.weights.tolist()
        return data


def _readonly(weights: np.ndarray) -> np.ndarray:
    array = np.array(weights, dtype=np.float64, copy=True)
    array.setflags(write=False)
    return array


# =============================================================================
# Coordinator
# =============================================================================


class FederatedCoordinator:
    """
    Round coordinator for federated training.

    Only one round runs at a time per instance; scheduled and on-demand
    rounds queue on the same lock. Metrics and model reads never block on
    a round in progress.

    Example:
        coordinator = FederatedCoordinator(config)
        unsubscribe = coordinator.subscribe(lambda m: print(m.global_accuracy))
        coordinator.start_simulation()
        ...
        coordinator.stop_simulation()
    """

    def __init__(
        self,
        config: CoordinatorConfig | None = None,
        trainer: LocalTrainer | None = None,
        store: NodeStore | None = None,
        aggregator: ModelAggregator | None = None,
    ):
        """
        Initialize coordinator.

        Args:
            config: Coordinator configuration (defaults if None)
            trainer: Local training capability (SimulatedTrainer if None)
            store: Persistence collaborator (no persistence if None)
            aggregator: Aggregation strategy (FedAvg if None)
        """
        self.config = config or CoordinatorConfig()

        seeds = np.random.SeedSequence(self.config.seed).spawn(4)
        self._rng = np.random.default_rng(seeds[0])

        self.registry = NodeRegistry(rng=np.random.default_rng(seeds[1]))
        self.accountant = PrivacyAccountant(
            epsilon_per_round=self.config.privacy.epsilon_per_round,
            rng=np.random.default_rng(seeds[2]),
        )
        self.trainer = trainer or SimulatedTrainer(rng=np.random.default_rng(seeds[3]))
        self.aggregator = aggregator or FedAvgAggregator()
        self.store = store

        self._model = GlobalModel(
            weights=_readonly(self._rng.random(self.config.model_dimension) * INITIAL_WEIGHT_SCALE)
        )

        self._round_lock = threading.Lock()
        self._snapshot_lock = threading.Lock()
        self._failure_lock = threading.Lock()
        self._scheduler_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._scheduler_thread: threading.Thread | None = None

        self._round_history: deque[RoundMetrics] = deque(maxlen=MAX_HISTORY)
        self._audit_log: deque[dict[str, Any]] = deque(maxlen=MAX_AUDIT_ENTRIES)
        self._persistence_failures = 0
        self._budget_exhausted_logged = False

        self._restore_nodes()
        self.publisher = MetricsPublisher(self._initial_metrics())

        logger.info(
            f"Initialized FederatedCoordinator: dimension={self.config.model_dimension}, "
            f"epsilon_per_round={self.config.privacy.epsilon_per_round}, "
            f"nodes={len(self.registry)}"
        )

    # =========================================================================
    # Node Management
    # =========================================================================

    def register_node(self, node_id: str, data_weight: int | None = None) -> Node:
        """Register a node if absent and return it."""
        is_new = node_id not in self.registry
        node = self.registry.upsert(node_id, data_weight)

        if is_new:
            self._log_audit(
                "node_registered",
                {"node_id": node_id, "data_weight": node.data_weight},
            )
            self._persist_nodes([node_id])
            self._refresh_pre_round_metrics()

        return node

    def get_node(self, node_id: str) -> Node:
        """Get a node snapshot (raises NotFound)."""
        return self.registry.get(node_id)

    def get_nodes(self) -> list[Node]:
        """Get snapshots of all nodes."""
        return self.registry.snapshot()

    def deactivate_node(self, node_id: str) -> Node:
        """Mark a node inactive."""
        node = self.registry.deactivate(node_id)
        self._log_audit("node_deactivated", {"node_id": node_id})
        self._persist_nodes([node_id])
        self._refresh_pre_round_metrics()
        return node

    def reactivate_node(self, node_id: str) -> Node:
        """Return an inactive node to the eligible pool."""
        node = self.registry.reactivate(node_id)
        self._log_audit("node_reactivated", {"node_id": node_id})
        self._persist_nodes([node_id])
        self._refresh_pre_round_metrics()
        return node

    # =========================================================================
    # Training Rounds
    # =========================================================================

    def run_training_round(self, node_id: str | None = None) -> RoundMetrics:
        """
        Run one round on demand.

        Args:
            node_id: Node guaranteed to participate (registered if absent)

        Returns:
            Metrics of the round, or the last known metrics if nothing ran
        """
        required: tuple[str, ...] = ()
        if node_id is not None:
            self.register_node(node_id)
            required = (node_id,)
        return self.run_round(required=required)

    def run_round(self, required: Iterable[str] = ()) -> RoundMetrics:
        """
        Run one round, waiting for any round already in progress.

        Raises:
            RoundFailed: If local collection, aggregation or privatization fails
        """
        with self._round_lock:
            return self._execute_round(tuple(required))

    def _execute_round(self, required: tuple[str, ...]) -> RoundMetrics:
        started = time.monotonic()
        model = self._model
        round_number = model.round + 1

        rate = float(
            self._rng.uniform(self.config.participation_min, self.config.participation_max)
        )
        participants = self.registry.select_participants(rate, required=required)

        if not participants:
            logger.info("No eligible nodes; round skipped")
            self._log_audit("round_skipped", {"round": round_number, "reason": "no_participants"})
            return self.publisher.current_metrics()

        self.registry.mark_training(participants)
        self._persist_nodes(participants)
        logger.info(
            f"Started round {round_number}: {len(participants)} participants "
            f"(rate={rate:.2f})"
        )

        try:
            updates = self._collect_updates(participants, model, round_number)
            if updates:
                reports = [
                    NodeReport(node_id=u.node_id, weights=u.delta, data_weight=u.data_weight)
                    for u in updates
                ]
                result = self.aggregator.aggregate(model.weights, reports)
                privatized = self.accountant.privatize(
                    result.global_weights,
                    epsilon=self.config.privacy.epsilon_per_round,
                    sensitivity=self.config.privacy.sensitivity,
                )
        except Exception as e:
            self.registry.mark_active(participants)
            self._persist_nodes(participants)
            logger.error(f"Round {round_number} failed: {e}")
            self._log_audit("round_failed", {"round": round_number, "error": str(e)})
            raise RoundFailed(
                f"Round {round_number} failed: {e}",
                round_number,
                {"participants": sorted(participants)},
            ) from e

        if not updates:
            # Non-reporters stay in training and are eligible next round
            logger.warning(f"Round {round_number}: no participant reported; round skipped")
            self._log_audit("round_skipped", {"round": round_number, "reason": "no_reports"})
            return self.publisher.current_metrics()

        return self._commit_round(updates, privatized, model, round_number, started)

    def _collect_updates(
        self,
        participants: set[str],
        model: GlobalModel,
        round_number: int,
    ) -> list[LocalUpdate]:
        """Gather local updates; failing or late nodes are excluded."""
        nodes = [self.registry.get(node_id) for node_id in sorted(participants)]
        timeout = self.config.local_timeout_seconds

        if timeout is None:
            updates = []
            for node in nodes:
                try:
                    updates.append(self.trainer.train(node, model.weights, round_number))
                except Exception as e:
                    logger.warning(f"Local update failed for {node.node_id}, excluded: {e}")
            return updates

        executor = ThreadPoolExecutor(
            max_workers=min(32, len(nodes)),
            thread_name_prefix="edufed-local",
        )
        try:
            futures: dict[Future[LocalUpdate], str] = {
                executor.submit(self.trainer.train, node, model.weights, round_number): node.node_id
                for node in nodes
            }
            done, not_done = wait(futures, timeout=timeout)

            for future in not_done:
                logger.warning(
                    f"Node {futures[future]} did not report within {timeout}s, excluded"
                )

            updates = []
            for future in sorted(done, key=lambda f: futures[f]):
                try:
                    updates.append(future.result())
                except Exception as e:
                    logger.warning(f"Local update failed for {futures[future]}, excluded: {e}")
            return updates
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _commit_round(
        self,
        updates: list[LocalUpdate],
        privatized: np.ndarray,
        model: GlobalModel,
        round_number: int,
        started: float,
    ) -> RoundMetrics:
        """Apply a fully computed round to the coordinator state."""
        reporters = [u.node_id for u in updates]

        accuracies = [
            self.registry.record_update(u.node_id, u.local_accuracy, round_number).local_accuracy
            for u in updates
        ]
        with self._snapshot_lock:
            self._model = GlobalModel(
                weights=_readonly(privatized),
                round=round_number,
                version=model.version + 1,
            )
        self.accountant.spend(self.config.privacy.epsilon_per_round)
        self.registry.mark_active(reporters)

        local_accuracy = float(np.mean(accuracies))
        global_accuracy = min(1.0, local_accuracy + self.config.global_accuracy_offset)
        total_budget = self.config.privacy.total_budget

        metrics = RoundMetrics(
            round=round_number,
            local_accuracy=local_accuracy,
            global_accuracy=global_accuracy,
            participating_nodes=len(updates),
            privacy_budget_remaining=self.accountant.remaining_budget(total_budget),
            training_time_seconds=time.monotonic() - started,
        )

        self._persist_nodes(reporters)
        self._persist_round(metrics, reporters)
        self._round_history.append(metrics)

        self._log_audit(
            "round_completed",
            {
                "round": round_number,
                "nodes": len(updates),
                "global_accuracy": round(global_accuracy, 4),
                "cumulative_epsilon": self.accountant.cumulative_epsilon,
            },
        )
        logger.info(
            f"Round {round_number} completed: {len(updates)} nodes, "
            f"global_accuracy={global_accuracy:.4f}, "
            f"budget_remaining={metrics.privacy_budget_remaining:.2f}"
        )

        if self.accountant.is_exhausted(total_budget) and not self._budget_exhausted_logged:
            self._budget_exhausted_logged = True
            logger.warning(
                f"Privacy budget exhausted: cumulative epsilon "
                f"{self.accountant.cumulative_epsilon} >= {total_budget}"
            )

        self.publisher.publish(metrics)
        return metrics

    # =========================================================================
    # Periodic Scheduler
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """Whether the periodic scheduler is active."""
        thread = self._scheduler_thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start_simulation(self) -> bool:
        """
        Start scheduling rounds every ``round_interval_seconds``.

        Returns:
            True if started, False if already running
        """
        with self._scheduler_lock:
            if self.is_running:
                return False

            self._stop_event = threading.Event()
            self._scheduler_thread = threading.Thread(
                target=self._simulation_loop,
                args=(self._stop_event,),
                name="edufed-scheduler",
                daemon=True,
            )
            self._scheduler_thread.start()

        self._log_audit(
            "simulation_started",
            {"interval_seconds": self.config.round_interval_seconds},
        )
        return True

    def stop_simulation(self, wait: bool = True, timeout: float | None = None) -> bool:
        """
        Stop scheduling new rounds; a round in progress still completes.

        Args:
            wait: Block until the scheduler thread (and its round) finishes
            timeout: Maximum time to wait

        Returns:
            True if stopped, False if it was not running
        """
        with self._scheduler_lock:
            thread = self._scheduler_thread
            if thread is None or self._stop_event.is_set():
                return False
            self._stop_event.set()
            self._scheduler_thread = None

        if wait and thread is not threading.current_thread():
            thread.join(timeout)

        self._log_audit("simulation_stopped", {"round": self._model.round})
        return True

    def _simulation_loop(self, stop_event: threading.Event) -> None:
        """Scheduler thread body."""
        logger.info(
            f"Simulation started: one round every {self.config.round_interval_seconds}s"
        )
        while not stop_event.wait(self.config.round_interval_seconds):
            try:
                self.run_round()
            except RoundFailed as e:
                logger.warning(f"Scheduled round failed, retrying next tick: {e}")
            except Exception:
                logger.exception("Unexpected error in scheduled round")
        logger.info("Simulation stopped")

    # =========================================================================
    # Metrics
    # =========================================================================

    def get_current_metrics(self) -> RoundMetrics:
        """Latest published metrics snapshot."""
        return self.publisher.current_metrics()

    def subscribe(self, callback: MetricsListener) -> Any:
        """Register a listener called once per completed round."""
        return self.publisher.subscribe(callback)

    def get_global_model(self) -> GlobalModel:
        """Current global model snapshot."""
        return self._model

    def get_round_history(self, limit: int = 100) -> list[RoundMetrics]:
        """Most recent completed rounds, oldest first."""
        history = list(self._round_history)
        return history[-limit:] if limit > 0 else []

    def get_audit_log(self, limit: int = 100) -> list[dict[str, Any]]:
        """Get recent audit log entries."""
        entries = list(self._audit_log)
        return entries[-limit:] if limit > 0 else []

    def get_status(self) -> dict[str, Any]:
        """Get comprehensive coordinator status."""
        model = self._model
        total_budget = self.config.privacy.total_budget
        return {
            "simulation_running": self.is_running,
            "current_round": model.round,
            "model_version": model.version,
            "model_dimension": self.config.model_dimension,
            "nodes": {
                "total": len(self.registry),
                **self.registry.count_by_status(),
            },
            "privacy": self.accountant.get_metrics(total_budget),
            "persistence": {
                "enabled": self.store is not None,
                "failures": self._persistence_failures,
            },
            "listeners": self.publisher.listener_count,
        }

    def _initial_metrics(self) -> RoundMetrics:
        eligible = [n for n in self.registry.snapshot() if n.status != NodeStatus.INACTIVE]
        local_accuracy = float(np.mean([n.local_accuracy for n in eligible])) if eligible else 0.0
        return RoundMetrics(
            round=self._model.round,
            local_accuracy=local_accuracy,
            global_accuracy=(
                min(1.0, local_accuracy + self.config.global_accuracy_offset) if eligible else 0.0
            ),
            participating_nodes=0,
            privacy_budget_remaining=self.accountant.remaining_budget(
                self.config.privacy.total_budget
            ),
            training_time_seconds=0.0,
        )

    def _refresh_pre_round_metrics(self) -> None:
        """Rebuild the published snapshot while no round has completed yet."""
        with self._snapshot_lock:
            if self._model.round == 0:
                self.publisher.replace(self._initial_metrics())

    # =========================================================================
    # Persistence and Audit
    # =========================================================================

    def _restore_nodes(self) -> None:
        """Reload nodes recorded by a previous process."""
        if self.store is None:
            return

        try:
            records = self.store.load_nodes(limit=self.config.persistence.restore_limit)
        except Exception as e:
            self._record_persistence_failure()
            logger.warning(f"Could not restore nodes, starting empty: {e}")
            return

        restored = 0
        for node_id, record in records.items():
            try:
                self.registry.restore(node_from_record(node_id, record))
                restored += 1
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable node record {node_id}: {e}")

        if restored:
            logger.info(f"Restored {restored} nodes from store")

    def _persist_nodes(self, node_ids: Iterable[str]) -> None:
        if self.store is None:
            return
        records = {
            node_id: node_to_record(self.registry.get(node_id)) for node_id in sorted(node_ids)
        }
        try:
            self.store.save_nodes(records)
        except Exception as e:
            self._record_persistence_failure()
            logger.warning(f"Persistence unavailable for {len(records)} nodes, continuing: {e}")

    def _persist_round(self, metrics: RoundMetrics, reporters: list[str]) -> None:
        if self.store is None:
            return
        record = {
            **metrics.to_dict(),
            "nodes": sorted(reporters),
            "cumulative_epsilon": self.accountant.cumulative_epsilon,
            "model_version": self._model.version,
        }
        try:
            self.store.save_round(metrics.round, record)
        except Exception as e:
            self._record_persistence_failure()
            logger.warning(f"Persistence unavailable for round {metrics.round}, continuing: {e}")

    def _record_persistence_failure(self) -> None:
        with self._failure_lock:
            self._persistence_failures += 1

    def _log_audit(self, action: str, details: dict[str, Any]) -> None:
        """Log audit event."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "details": details,
        }
        self._audit_log.append(entry)
        logger.info(f"AUDIT: {action} - {json.dumps(details, default=str)}")


# =============================================================================
# Factory
# =============================================================================


def build_store(config: CoordinatorConfig) -> NodeStore | None:
    """Create the persistence collaborator named by the configuration."""
    backend = config.persistence.backend
    if backend == PersistenceBackend.MEMORY:
        return InMemoryStore()
    if backend == PersistenceBackend.JSON:
        return JsonFileStore(config.persistence.path or ".")
    return None


def create_coordinator(
    config: CoordinatorConfig | None = None,
    trainer: LocalTrainer | None = None,
) -> FederatedCoordinator:
    """
    Create a coordinator with the store named by its configuration.

    Args:
        config: Coordinator configuration (defaults if None)
        trainer: Optional local training capability

    Returns:
        Configured coordinator
    """
    config = config or CoordinatorConfig()
    return FederatedCoordinator(config=config, trainer=trainer, store=build_store(config))
