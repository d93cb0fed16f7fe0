"""
Shared metrics configuration for the Credit Gateway.
"""

from prometheus_client import (
    Counter, Histogram, Info, CollectorRegistry, REGISTRY, PlatformCollector,
    ProcessCollector, start_http_server
)
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        # Service-specific metrics
        if self.service_name == "introspection":
            self._setup_introspection_metrics()
        elif self.service_name == "reconciler":
            self._setup_reconciler_metrics()

    def _setup_introspection_metrics(self):
        """Set up introspection-specific metrics."""
        self._metrics["webservice_requests_total"] = Counter(
            "webservice_requests_total",
            "Requests allowed through to upstream web services",
            ["service", "owner", "consumer", "upstream_host"],
            registry=self.registry
        )

        self._metrics["authorization_decisions_total"] = Counter(
            "authorization_decisions_total",
            "Authorization decisions by outcome",
            ["decision", "reason"],
            registry=self.registry
        )

        self._metrics["authorization_decision_seconds"] = Histogram(
            "authorization_decision_seconds",
            "Time spent deciding a request",
            registry=self.registry
        )

    def _setup_reconciler_metrics(self):
        """Set up reconciler-specific metrics."""
        self._metrics["settlements_total"] = Counter(
            "settlements_total",
            "Usage records settled by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["credits_debited_total"] = Counter(
            "credits_debited_total",
            "Credits debited from consumer balances",
            registry=self.registry
        )

        self._metrics["dead_lettered_total"] = Counter(
            "dead_lettered_total",
            "Usage records moved to terminal error",
            registry=self.registry
        )

        self._metrics["reconciliation_cycle_seconds"] = Histogram(
            "reconciliation_cycle_seconds",
            "Duration of a reconciliation cycle",
            registry=self.registry
        )

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            metric = self._metrics.get(operation_name)
            if metric is not None:
                (metric.labels(**labels) if labels else metric).observe(duration)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).inc(amount)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Without an explicit registry, each service name gets one shared collector
    on a registry of its own, since prometheus_client refuses to register the
    same metric name twice on one registry.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            service_registry = CollectorRegistry()
            ProcessCollector(registry=service_registry)
            PlatformCollector(registry=service_registry)
            _collectors[service_name] = MetricsCollector(service_name, service_registry)
        return _collectors[service_name]
