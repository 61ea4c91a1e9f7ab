"""
Prometheus metrics for the scheduler client.
"""
from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class ClientMetrics:
    """
    Centralized metrics for scheduler client calls.

    Each instance owns its registry so several clients (and tests) never
    collide on metric names.
    """

    def __init__(self, service_name: str = "eventscheduler", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        self.client_info = Info(
            "eventscheduler_client",
            "Scheduler client information",
            registry=self.registry,
        )
        self.client_info.info({"service": service_name, "version": version})

        # Request Metrics
        self.requests_total = Counter(
            "eventscheduler_requests_total",
            "Total scheduler requests",
            ["service", "operation", "outcome"],
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "eventscheduler_request_duration_seconds",
            "Scheduler request duration in seconds",
            ["service", "operation"],
            registry=self.registry,
        )

        self.errors_total = Counter(
            "eventscheduler_errors_total",
            "Scheduler client errors by kind",
            ["service", "operation", "kind"],
            registry=self.registry,
        )

        # Compensation Metrics
        self.compensations_registered_total = Counter(
            "eventscheduler_compensations_registered_total",
            "Undo callbacks registered with a transaction",
            ["service", "operation"],
            registry=self.registry,
        )

        self.compensations_executed_total = Counter(
            "eventscheduler_compensations_executed_total",
            "Undo callbacks that ran to completion",
            ["service", "operation"],
            registry=self.registry,
        )

        self.compensations_failed_total = Counter(
            "eventscheduler_compensations_failed_total",
            "Undo callbacks that raised",
            ["service", "operation"],
            registry=self.registry,
        )

    def record_request(self, operation: str, outcome: str, duration_seconds: float):
        """Record one completed request."""
        self.requests_total.labels(service=self.service_name, operation=operation, outcome=outcome).inc()
        self.request_duration.labels(service=self.service_name, operation=operation).observe(duration_seconds)

    def record_error(self, operation: str, kind: str):
        """Record a normalized error."""
        self.errors_total.labels(service=self.service_name, operation=operation, kind=kind).inc()

    def record_compensation(self, operation: str, stage: str):
        """Record a compensation lifecycle step: registered, executed or failed."""
        counter = {
            "registered": self.compensations_registered_total,
            "executed": self.compensations_executed_total,
            "failed": self.compensations_failed_total,
        }[stage]
        counter.labels(service=self.service_name, operation=operation).inc()

    def sample(self, name: str, **labels) -> float:
        """Read the current value of a sample, 0.0 when never recorded."""
        labels.setdefault("service", self.service_name)
        value = self.registry.get_sample_value(name, labels)
        return value or 0.0
