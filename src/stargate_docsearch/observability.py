"""
Observability for DocumentSearchClient.

Provides:
- OpenTelemetry distributed tracing
- Prometheus request metrics
"""

import logging
from typing import Any, Optional
from contextlib import asynccontextmanager

from opentelemetry import trace
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)


# ============================================================================
# OpenTelemetry Tracing
# ============================================================================

class Tracer:
    """
    Tracing interface over OpenTelemetry.

    Spans go to whatever tracer provider the application configured; when
    none is configured the OpenTelemetry API hands out non-recording spans.
    A disabled Tracer yields None and records nothing.
    """

    def __init__(self, service_name: str = "stargate-docsearch", enabled: bool = True):
        self.service_name = service_name
        self.enabled = enabled
        self._tracer = trace.get_tracer(service_name) if enabled else None

    @asynccontextmanager
    async def span(self, name: str, attributes: Optional[dict[str, Any]] = None):
        """
        Create a traced span for an operation.

        Args:
            name: Span name (e.g., "docsearch.search")
            attributes: Span attributes (metadata)

        Yields:
            The active span, or None when tracing is disabled
        """
        if not self.enabled or self._tracer is None:
            yield None
            return

        with self._tracer.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
            if attributes:
                for key, value in attributes.items():
                    # OpenTelemetry only accepts primitive attribute values
                    span.set_attribute(key, value if isinstance(value, (str, int, float, bool)) else str(value))

            try:
                yield span
                span.set_status(trace.Status(trace.StatusCode.OK))
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise


# ============================================================================
# Prometheus Metrics
# ============================================================================

class SearchMetrics:
    """
    Prometheus metrics for Document API searches.

    Each instance owns its CollectorRegistry so several clients can live in
    one process without clashing on metric names.

    Tracks:
    - Requests by collection and outcome
    - Documents returned
    - Request latency
    """

    def __init__(self, namespace: str = "stargate_docsearch", enabled: bool = True):
        self.namespace = namespace
        self.enabled = enabled
        self.registry = CollectorRegistry()

        self.requests = Counter(
            "requests_total",
            "Document API search requests",
            ["collection", "outcome"],
            namespace=namespace,
            registry=self.registry,
        )
        self.documents = Counter(
            "documents_returned_total",
            "Documents returned by search requests",
            ["collection"],
            namespace=namespace,
            registry=self.registry,
        )
        self.retries = Counter(
            "retries_total",
            "Search requests retried after a transient failure",
            ["collection"],
            namespace=namespace,
            registry=self.registry,
        )
        self.latency = Histogram(
            "request_latency_seconds",
            "Document API search latency",
            ["collection"],
            namespace=namespace,
            registry=self.registry,
        )

    def record_request(self, collection: str, latency_ms: float, success: bool = True, documents: int = 0):
        """
        Record a completed request.

        Args:
            collection: Collection searched
            latency_ms: Request latency in milliseconds
            success: Whether the request succeeded
            documents: Number of documents in the returned page
        """
        if not self.enabled:
            return
        self.requests.labels(collection=collection, outcome="success" if success else "error").inc()
        self.latency.labels(collection=collection).observe(latency_ms / 1000.0)
        if documents:
            self.documents.labels(collection=collection).inc(documents)

    def record_retry(self, collection: str):
        if self.enabled:
            self.retries.labels(collection=collection).inc()

    def get_value(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Current value of a sample, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(f"{self.namespace}_{name}", labels or {})
        return value or 0.0

    def export_prometheus(self) -> str:
        """
        Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        return generate_latest(self.registry).decode("utf-8")
