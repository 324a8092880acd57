"""
Tests for the Prometheus metrics exporter.
"""

import json

from edufed.federated import RoundMetrics
from edufed.monitoring import MetricSample, MetricsExporter
from edufed.monitoring.prometheus import round_metrics_to_samples


def sample_metrics():
    return RoundMetrics(
        round=4,
        local_accuracy=0.8,
        global_accuracy=0.82,
        participating_nodes=3,
        privacy_budget_remaining=96.0,
        training_time_seconds=0.25,
    )


class TestMetricsExporter:
    """Test MetricsExporter."""

    def test_empty_export(self):
        assert MetricsExporter().export() == ""

    def test_round_samples(self):
        samples = round_metrics_to_samples(sample_metrics())
        values = {s.name: s.value for s in samples}

        assert values["fl_round"] == 4.0
        assert values["fl_global_accuracy"] == 0.82
        assert values["fl_participating_nodes"] == 3.0

    def test_prometheus_format(self):
        exporter = MetricsExporter(federation="classroom")
        exporter.record_round(sample_metrics())
        exporter.set_node_counts({"active": 3, "inactive": 1})

        text = exporter.export()

        assert "# HELP edufed_fl_round Number of completed federated rounds" in text
        assert "# TYPE edufed_fl_round counter" in text
        assert 'edufed_fl_global_accuracy{federation="classroom"} 0.82' in text
        assert 'edufed_fl_nodes{federation="classroom",status="active"} 3.0' in text
        assert text.count("# TYPE edufed_fl_nodes gauge") == 1

    def test_custom_labels(self):
        exporter = MetricsExporter(namespace="lms", labels={"region": "eu"})
        exporter.record_round(sample_metrics())

        assert 'lms_fl_round{federation="default",region="eu"} 4.0' in exporter.export()

    def test_json_format(self):
        exporter = MetricsExporter(federation="classroom")
        exporter.record_round(sample_metrics())
        exporter.set_node_counts({"active": 2})

        data = json.loads(exporter.export(format="json"))

        assert data["federation"] == "classroom"
        assert data["round_metrics"]["round"] == 4
        assert data["nodes"] == {"active": 2}

    def test_reset(self):
        exporter = MetricsExporter()
        exporter.record_round(sample_metrics())
        exporter.set_node_counts({"idle": 1})

        exporter.reset()

        assert exporter.collect() == []

    def test_collect_node_samples(self):
        exporter = MetricsExporter()
        exporter.set_node_counts({"idle": 2, "active": 1})

        assert exporter.collect() == [
            MetricSample(name="fl_nodes", value=1.0, labels={"status": "active"}),
            MetricSample(name="fl_nodes", value=2.0, labels={"status": "idle"}),
        ]
