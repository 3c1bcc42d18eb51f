"""
Observability module for RiakDocStore.

Provides:
- OpenTelemetry distributed tracing
- Per-operation latency percentiles and error counts
- Prometheus text exposition of those metrics
"""

import time
import logging
import statistics
from typing import Any, Optional
from collections import defaultdict, deque
from contextlib import contextmanager
from enum import Enum

logger = logging.getLogger(__name__)


# ============================================================================
# OpenTelemetry Tracing
# ============================================================================

class TracingProvider(str, Enum):
    """Supported tracing providers."""
    NONE = "none"
    OPENTELEMETRY = "opentelemetry"


class Tracer:
    """
    Tracing interface over OpenTelemetry.

    Degrades to no-op spans when the OpenTelemetry SDK is not installed.
    """

    def __init__(self, service_name: str = "riak-docstore", enabled: bool = True):
        self.service_name = service_name
        self.enabled = enabled
        self._tracer = None
        self._provider_type = TracingProvider.NONE

        if enabled:
            self._initialize_opentelemetry()

    def _initialize_opentelemetry(self):
        """Initialize OpenTelemetry tracing."""
        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME

            # Reuse a provider the application already installed
            current_tracer = trace.get_tracer(__name__)
            if 'ProxyTracer' not in str(current_tracer.__class__):
                self._tracer = current_tracer
                self._provider_type = TracingProvider.OPENTELEMETRY
                logger.info("Using existing OpenTelemetry tracer")
                return

            resource = Resource(attributes={SERVICE_NAME: self.service_name})
            provider = TracerProvider(resource=resource)

            try:
                from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
                from opentelemetry.sdk.trace.export import BatchSpanProcessor
                provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
                logger.info("OpenTelemetry OTLP exporter configured")
            except ImportError:
                logger.info("OTLP exporter not installed; spans are recorded without export")

            trace.set_tracer_provider(provider)
            self._tracer = trace.get_tracer(__name__)
            self._provider_type = TracingProvider.OPENTELEMETRY
            logger.info(f"OpenTelemetry tracing initialized for {self.service_name}")

        except ImportError:
            logger.warning(
                "OpenTelemetry not available. Install with: "
                "pip install opentelemetry-api opentelemetry-sdk"
            )
            self.enabled = False
            self._provider_type = TracingProvider.NONE

    @contextmanager
    def span(self, name: str, attributes: Optional[dict[str, Any]] = None):
        """
        Create a traced span for an operation.

        Args:
            name: Span name (e.g., "riak.persist", "riak.find_by")
            attributes: Span attributes (metadata)

        Yields:
            The active span, or None when tracing is disabled
        """
        if not self.enabled or self._tracer is None:
            yield None
            return

        from opentelemetry import trace

        with self._tracer.start_as_current_span(name) as span:
            if attributes:
                for key, value in attributes.items():
                    span.set_attribute(key, value if isinstance(value, (str, int, float, bool)) else str(value))

            try:
                yield span
                span.set_status(trace.Status(trace.StatusCode.OK))
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise


# ============================================================================
# Metrics
# ============================================================================

class PercentileTracker:
    """
    Track percentile latencies (p50, p95, p99) efficiently.

    Uses a sliding window to avoid unbounded memory growth.
    """

    def __init__(self, window_size: int = 1000, percentiles: list[float] = None):
        self.window_size = window_size
        self.percentiles = percentiles or [0.5, 0.95, 0.99]
        self.samples = deque(maxlen=window_size)

    def record(self, value: float):
        """Record a sample."""
        self.samples.append(value)

    def get_percentiles(self) -> dict[str, float]:
        """
        Calculate percentile values.

        Returns:
            Dictionary with keys like "p50", "p95", "p99"
        """
        if not self.samples:
            return {f"p{int(p*100)}": 0.0 for p in self.percentiles}

        sorted_samples = sorted(self.samples)
        if len(sorted_samples) == 1:
            return {f"p{int(p*100)}": sorted_samples[0] for p in self.percentiles}

        cuts = statistics.quantiles(sorted_samples, n=100, method='inclusive')
        return {f"p{int(p*100)}": cuts[int(p * 100) - 1] for p in self.percentiles}

    def get_stats(self) -> dict[str, Any]:
        """Percentiles plus avg, min, max and count."""
        if not self.samples:
            return {
                "count": 0,
                "avg": 0.0,
                "min": 0.0,
                "max": 0.0,
                **{f"p{int(p*100)}": 0.0 for p in self.percentiles}
            }

        return {
            "count": len(self.samples),
            "avg": statistics.mean(self.samples),
            "min": min(self.samples),
            "max": max(self.samples),
            **self.get_percentiles()
        }


class EnhancedMetrics:
    """
    Per-operation metrics for Riak requests.

    Tracks:
    - Latency percentiles (p50, p95, p99)
    - Request counts and rates
    - Error counts by operation and by error type
    """

    def __init__(self, service_name: str = "riak_docstore", percentiles: list[float] = None):
        self.service_name = service_name
        self.percentiles = percentiles or [0.5, 0.95, 0.99]

        self.latencies: dict[str, PercentileTracker] = defaultdict(
            lambda: PercentileTracker(percentiles=self.percentiles)
        )
        self.operation_counts: dict[str, int] = defaultdict(int)
        self.error_counts: dict[str, int] = defaultdict(int)
        self.error_types: dict[str, int] = defaultdict(int)

        self.start_time = time.time()

    def record_latency(self, operation: str, latency_ms: float):
        """Record operation latency in milliseconds."""
        self.latencies[operation].record(latency_ms)
        self.operation_counts[operation] += 1

    def record_error(self, operation: str):
        self.error_counts[operation] += 1

    def record_query(self, operation: str, latency_ms: float, success: bool = True, error_type: str | None = None):
        """
        Record one Riak request.

        Args:
            operation: Operation type ('fetch', 'update', 'delete', 'search', 'stream_keys')
            latency_ms: Request latency in milliseconds
            success: Whether the request succeeded
            error_type: Type of error if the request failed
        """
        self.record_latency(operation, latency_ms)
        if not success:
            self.record_error(operation)
            if error_type:
                self.error_types[error_type] += 1

        if latency_ms > 100:
            logger.warning(
                f"Slow request detected: {operation} took {latency_ms:.2f}ms",
                extra={"operation": operation, "latency_ms": latency_ms, "success": success}
            )

    def get_latency_stats(self, operation: str) -> dict[str, Any]:
        return self.latencies[operation].get_stats()

    def get_all_stats(self) -> dict[str, Any]:
        """Comprehensive metrics dictionary."""
        elapsed_seconds = time.time() - self.start_time

        total_operations = sum(self.operation_counts.values())
        total_errors = sum(self.error_counts.values())
        error_rate = total_errors / total_operations if total_operations > 0 else 0.0

        return {
            "uptime_seconds": elapsed_seconds,
            "operations": {
                "total": total_operations,
                "rate_per_sec": total_operations / elapsed_seconds if elapsed_seconds > 0 else 0.0,
                "by_type": dict(self.operation_counts),
            },
            "errors": {
                "total": total_errors,
                "rate": error_rate,
                "by_type": dict(self.error_counts),
            },
            "latencies": {
                operation: tracker.get_stats()
                for operation, tracker in self.latencies.items()
            },
        }

    def get_stats(self) -> dict[str, Any]:
        """
        Flat summary.

        Returns:
            Dictionary with total_queries, avg_latency_ms, error_rate, etc.
        """
        total_operations = sum(self.operation_counts.values())
        total_errors = sum(self.error_counts.values())

        all_latencies = []
        for tracker in self.latencies.values():
            all_latencies.extend(tracker.samples)

        if all_latencies:
            avg_latency = sum(all_latencies) / len(all_latencies)
            min_latency = min(all_latencies)
            max_latency = max(all_latencies)
        else:
            avg_latency = min_latency = max_latency = 0.0

        return {
            "total_queries": total_operations,
            "total_errors": total_errors,
            "error_rate": total_errors / total_operations if total_operations > 0 else 0.0,
            "avg_latency_ms": avg_latency,
            "min_latency_ms": min_latency,
            "max_latency_ms": max_latency,
            "operations": dict(self.operation_counts),
            "error_types": dict(self.error_types),
        }

    def reset(self):
        """Reset all metrics counters."""
        self.latencies.clear()
        self.operation_counts.clear()
        self.error_counts.clear()
        self.error_types.clear()
        self.start_time = time.time()

    def export_prometheus(self) -> str:
        """Metrics in Prometheus text exposition format."""
        lines = []
        stats = self.get_all_stats()

        for operation, count in stats["operations"]["by_type"].items():
            lines.append(f'riak_operations_total{{operation="{operation}"}} {count}')

        for operation, count in stats["errors"]["by_type"].items():
            lines.append(f'riak_errors_total{{operation="{operation}"}} {count}')

        for operation, latency_stats in stats["latencies"].items():
            for percentile_name, value in latency_stats.items():
                if percentile_name.startswith('p'):
                    lines.append(
                        f'riak_latency_ms{{'
                        f'operation="{operation}",percentile="{percentile_name}"'
                        f'}} {value}'
                    )

        return '\n'.join(lines)
