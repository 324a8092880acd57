"""
Monitoring Module for EduFed.

Provides Prometheus metrics export for federated round progress,
model accuracy, node population and privacy budget.
"""

from edufed.monitoring.prometheus import MetricSample, MetricsExporter

__all__ = [
    "MetricsExporter",
    "MetricSample",
]
