"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from pgque.constants import (
    METRIC_CLAIMS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_WORKED,
    METRIC_QUEUE_DEPTH,
    METRIC_WORKER_ERRORS,
    ClaimResult,
    WorkOutcome,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the queue.

    Collects metrics for:
    - Job enqueues
    - Claim attempts and their results
    - Worked jobs by outcome and their duration
    - Worker loop errors
    - Queue depth
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["queue"],
            registry=self._registry,
        )

        self.claims = Counter(
            METRIC_CLAIMS,
            "Total number of claim attempts",
            ["queue", "result"],
            registry=self._registry,
        )

        self.jobs_worked = Counter(
            METRIC_JOBS_WORKED,
            "Total number of claimed jobs resolved by workers",
            ["queue", "job_type", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Work function duration in seconds",
            ["queue", "job_type"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.worker_errors = Counter(
            METRIC_WORKER_ERRORS,
            "Total number of store errors seen by worker loops",
            ["queue"],
            registry=self._registry,
        )

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs in the queue, eligible or scheduled for later",
            ["queue"],
            registry=self._registry,
        )

    def record_job_enqueued(self, queue: str) -> None:
        """Record a job enqueue."""
        self.jobs_enqueued.labels(queue=queue).inc()

    def record_claim(self, queue: str, result: ClaimResult) -> None:
        """Record the result of a claim attempt."""
        self.claims.labels(queue=queue, result=result.value).inc()

    def record_job_worked(
        self,
        queue: str,
        job_type: str,
        outcome: WorkOutcome,
        duration_seconds: float,
    ) -> None:
        """Record a resolved job."""
        self.jobs_worked.labels(
            queue=queue, job_type=job_type, outcome=outcome.value
        ).inc()
        self.job_duration.labels(queue=queue, job_type=job_type).observe(
            duration_seconds
        )

    def record_worker_error(self, queue: str) -> None:
        """Record a store error in a worker loop."""
        self.worker_errors.labels(queue=queue).inc()

    def update_queue_depth(self, queue: str, depth: int) -> None:
        """Update queue depth for a queue."""
        self.queue_depth.labels(queue=queue).set(depth)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics


def serve_metrics(port: int) -> None:
    """
    Expose the default registry over HTTP.

    Args:
        port: Port for the exposition server.
    """
    start_http_server(port)
