"""Metrics collection for the embedding service.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service records HTTP, embedding, preload and download metrics consistently.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
"""

import time
from functools import wraps
from typing import Any, Callable, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'ml_embedding_requests_total',
            'Total embedding generation requests',
            ['model_format', 'status'],
            registry=self.registry
        )

        self.embedding_texts = Counter(
            'ml_embedding_texts_total',
            'Total texts embedded',
            ['model_format'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'ml_embedding_duration_seconds',
            'Embedding generation duration per request',
            ['model_format'],
            registry=self.registry
        )

        self.preload_requests = Counter(
            'ml_preload_requests_total',
            'Model preload attempts partitioned by outcome',
            ['model_format', 'status'],
            registry=self.registry
        )

        self.download_bytes = Counter(
            'ml_download_bytes_total',
            'Bytes written by model and vocabulary downloads',
            registry=self.registry
        )

        self.model_loaded = Gauge(
            'ml_model_loaded',
            'Whether an embedding model is currently active (1) or not (0)',
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_embedding(
        self,
        model_format: str,
        text_count: int,
        duration: float,
        status: str = "success"
    ) -> None:
        """Record embedding generation metrics."""
        self.embedding_requests.labels(model_format=model_format, status=status).inc()
        if status == "success":
            self.embedding_texts.labels(model_format=model_format).inc(text_count)
            self.embedding_duration.labels(model_format=model_format).observe(duration)

    def record_preload(self, model_format: str, status: str) -> None:
        """Record a preload attempt outcome."""
        self.preload_requests.labels(model_format=model_format, status=status).inc()

    def record_download(self, byte_count: int) -> None:
        """Record bytes written by a completed download."""
        self.download_bytes.inc(byte_count)

    def set_model_loaded(self, loaded: bool) -> None:
        """Flip the model-loaded gauge."""
        self.model_loaded.set(1 if loaded else 0)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process‑wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to measure function execution time.

    Example
    >>> @measure_time("load_vocabulary", model_format="onnx")
    ... def load(path):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(
                    f"Operation {operation} completed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    **labels
                )
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    error=str(e),
                    **labels
                )
                raise
        return wrapper
    return decorator
