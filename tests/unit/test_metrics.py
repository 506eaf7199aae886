"""
Unit tests for the metrics collector.
"""

import pytest
from prometheus_client import CollectorRegistry

from pgque.constants import ClaimResult, WorkOutcome
from pgque.observability.metrics import MetricsCollector


class TestMetricsCollector:
    """Tests for MetricsCollector on a private registry."""

    @pytest.fixture
    def registry(self) -> CollectorRegistry:
        return CollectorRegistry()

    @pytest.fixture
    def metrics(self, registry: CollectorRegistry) -> MetricsCollector:
        return MetricsCollector(registry)

    def test_record_job_enqueued(self, metrics: MetricsCollector, registry: CollectorRegistry):
        metrics.record_job_enqueued("mail")
        metrics.record_job_enqueued("mail")

        assert registry.get_sample_value(
            "pgque_jobs_enqueued_total", {"queue": "mail"}
        ) == 2

    def test_record_claim(self, metrics: MetricsCollector, registry: CollectorRegistry):
        metrics.record_claim("", ClaimResult.FOUND)
        metrics.record_claim("", ClaimResult.EMPTY)
        metrics.record_claim("", ClaimResult.EMPTY)

        assert registry.get_sample_value(
            "pgque_claims_total", {"queue": "", "result": "found"}
        ) == 1
        assert registry.get_sample_value(
            "pgque_claims_total", {"queue": "", "result": "empty"}
        ) == 2

    def test_record_job_worked(self, metrics: MetricsCollector, registry: CollectorRegistry):
        """Test that worked jobs are counted by outcome and timed."""
        metrics.record_job_worked("", "MyJob", WorkOutcome.DONE, 0.2)
        metrics.record_job_worked("", "MyJob", WorkOutcome.ERROR, 1.5)

        labels = {"queue": "", "job_type": "MyJob"}
        assert registry.get_sample_value(
            "pgque_jobs_worked_total", {**labels, "outcome": "done"}
        ) == 1
        assert registry.get_sample_value(
            "pgque_jobs_worked_total", {**labels, "outcome": "error"}
        ) == 1
        assert registry.get_sample_value("pgque_job_duration_seconds_count", labels) == 2
        assert registry.get_sample_value(
            "pgque_job_duration_seconds_sum", labels
        ) == pytest.approx(1.7)

    def test_record_worker_error(self, metrics: MetricsCollector, registry: CollectorRegistry):
        metrics.record_worker_error("reports")

        assert registry.get_sample_value(
            "pgque_worker_errors_total", {"queue": "reports"}
        ) == 1

    def test_update_queue_depth(self, metrics: MetricsCollector, registry: CollectorRegistry):
        """Test that the gauge holds the latest count."""
        metrics.update_queue_depth("", 7)
        metrics.update_queue_depth("", 3)

        assert registry.get_sample_value("pgque_queue_depth", {"queue": ""}) == 3
