"""
Prometheus Metrics Exporter for Federated Training.

Provides metrics export capabilities for:
- Round progress (round number, participating nodes, training time)
- Model quality (local and global accuracy, as 0-1 fractions)
- Privacy budget remaining
- Node population by status

Compatible with Prometheus and OpenMetrics text format.

Example:
    >>> exporter = MetricsExporter(federation="classroom")
    >>> exporter.record_round(coordinator.get_current_metrics())
    >>> exporter.set_node_counts(coordinator.registry.count_by_status())
    >>> text = exporter.export()
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from edufed.federated.metrics import RoundMetrics

# name -> (type, help)
METRIC_DEFINITIONS: dict[str, tuple[str, str]] = {
    "fl_round": ("counter", "Number of completed federated rounds"),
    "fl_local_accuracy": ("gauge", "Mean local accuracy of the last round's participants"),
    "fl_global_accuracy": ("gauge", "Estimated global model accuracy"),
    "fl_participating_nodes": ("gauge", "Nodes aggregated in the last round"),
    "fl_privacy_budget_remaining": ("gauge", "Remaining differential privacy budget (epsilon)"),
    "fl_training_time_seconds": ("gauge", "Wall-clock duration of the last round"),
    "fl_nodes": ("gauge", "Registered nodes by status"),
}


@dataclass
class MetricSample:
    """Individual metric sample."""

    name: str
    value: float
    labels: dict[str, str] = field(default_factory=dict)


def round_metrics_to_samples(metrics: RoundMetrics) -> list[MetricSample]:
    """Convert round metrics to Prometheus samples."""
    return [
        MetricSample(name="fl_round", value=float(metrics.round)),
        MetricSample(name="fl_local_accuracy", value=metrics.local_accuracy),
        MetricSample(name="fl_global_accuracy", value=metrics.global_accuracy),
        MetricSample(name="fl_participating_nodes", value=float(metrics.participating_nodes)),
        MetricSample(
            name="fl_privacy_budget_remaining", value=metrics.privacy_budget_remaining
        ),
        MetricSample(name="fl_training_time_seconds", value=metrics.training_time_seconds),
    ]


class MetricsExporter:
    """
    Prometheus metrics exporter for the federated coordinator.

    Holds the most recent round metrics and node counts; ``export`` renders
    them on demand.
    """

    def __init__(
        self,
        federation: str = "default",
        namespace: str = "edufed",
        labels: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize metrics exporter.

        Args:
            federation: Federation name added as a label to every sample
            namespace: Prometheus metric namespace prefix
            labels: Additional labels to add to all metrics
        """
        self.federation = federation
        self.namespace = namespace
        self.base_labels = {"federation": federation, **(labels or {})}

        self._round: RoundMetrics | None = None
        self._node_counts: dict[str, int] = {}

    def record_round(self, metrics: RoundMetrics) -> None:
        """Record the latest round metrics."""
        self._round = metrics

    def set_node_counts(self, counts: dict[str, int]) -> None:
        """Record node counts keyed by status."""
        self._node_counts = dict(counts)

    def collect(self) -> list[MetricSample]:
        """All current samples."""
        samples = round_metrics_to_samples(self._round) if self._round else []
        for status, count in sorted(self._node_counts.items()):
            samples.append(
                MetricSample(name="fl_nodes", value=float(count), labels={"status": status})
            )
        return samples

    def export(self, format: str = "prometheus") -> str:
        """
        Export all metrics in specified format.

        Args:
            format: Export format ("prometheus" or "json")

        Returns:
            Formatted metrics string
        """
        if format == "json":
            return self._export_json()
        return self._export_prometheus()

    def _export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""

        def format_metric(sample: MetricSample) -> str:
            name = f"{self.namespace}_{sample.name}"
            labels = {**self.base_labels, **sample.labels}
            label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
            return f"{name}{{{label_str}}} {sample.value}"

        lines: list[str] = []
        emitted: set[str] = set()
        for sample in self.collect():
            if sample.name not in emitted:
                metric_type, help_text = METRIC_DEFINITIONS[sample.name]
                if lines:
                    lines.append("")
                lines.append(f"# HELP {self.namespace}_{sample.name} {help_text}")
                lines.append(f"# TYPE {self.namespace}_{sample.name} {metric_type}")
                emitted.add(sample.name)
            lines.append(format_metric(sample))

        return "\n".join(lines) + "\n" if lines else ""

    def _export_json(self) -> str:
        """Export metrics in JSON format."""
        data: dict[str, Any] = {
            "federation": self.federation,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "round_metrics": self._round.to_dict() if self._round else None,
            "nodes": dict(self._node_counts),
        }
        return json.dumps(data, indent=2)

    def reset(self) -> None:
        """Reset all metrics."""
        self._round = None
        self._node_counts.clear()
