# ============================================
# FILE: assetmigrator/monitoring/prometheus.py
# ============================================

"""
Prometheus metrics for migration runs.

Quick Start:
    >>> from assetmigrator.monitoring.prometheus import MigrationMetrics, start_metrics_server
    >>>
    >>> start_metrics_server(port=8000)
    >>> metrics = MigrationMetrics()
    >>> engine = MigrationEngine(..., metrics=metrics)

Requirements:
    pip install prometheus-client
"""

import logging
from typing import Any

# Check if prometheus_client is installed
try:
    from prometheus_client import Counter, Gauge, Histogram, start_http_server

    PROMETHEUS_AVAILABLE = True
except ImportError:  # pragma: no cover
    PROMETHEUS_AVAILABLE = False
    Counter: Any = None  # type: ignore[no-redef]
    Gauge: Any = None  # type: ignore[no-redef]
    Histogram: Any = None  # type: ignore[no-redef]
    start_http_server: Any = None  # type: ignore[no-redef]


logger = logging.getLogger(__name__)


class MigrationMetrics:
    """
    Prometheus-compatible metrics collector for the migration engine.

    Exposes the following metrics:
        - <prefix>_assets_total: Counter of processed assets by scope and outcome
        - <prefix>_batches_total: Counter of persisted batches by scope
        - <prefix>_batch_duration_seconds: Histogram of batch durations
        - <prefix>_remaining_assets: Gauge of assets left in the active checkpoint
        - <prefix>_runs_total: Counter of finished runs by scope and phase
    """

    def __init__(self, prefix: str = "assetmigrator", registry: Any = None):
        """
        Initialize Prometheus metrics.

        Args:
            prefix: Metric name prefix
            registry: CollectorRegistry to register with (default registry when None)
        """
        if not PROMETHEUS_AVAILABLE:
            logger.warning(
                "prometheus-client not installed. Metrics will not be collected. "
                "Install with: pip install prometheus-client"
            )
            self._enabled = False
            return

        self._enabled = True
        kwargs = {"registry": registry} if registry is not None else {}

        self._assets_total = Counter(
            f"{prefix}_assets_total",
            "Assets processed by the migration engine",
            ["scope", "outcome"],
            **kwargs,
        )
        self._batches_total = Counter(
            f"{prefix}_batches_total",
            "Batches persisted to the checkpoint",
            ["scope"],
            **kwargs,
        )
        self._batch_duration = Histogram(
            f"{prefix}_batch_duration_seconds",
            "Batch processing duration in seconds",
            ["scope"],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
            **kwargs,
        )
        self._remaining = Gauge(
            f"{prefix}_remaining_assets",
            "Assets not yet processed in the active checkpoint",
            ["scope"],
            **kwargs,
        )
        self._runs_total = Counter(
            f"{prefix}_runs_total",
            "Migration runs by final phase",
            ["scope", "phase"],
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_asset(self, scope: str, outcome: str) -> None:
        if self._enabled:
            self._assets_total.labels(scope=scope, outcome=outcome).inc()

    def record_batch(self, scope: str, duration_seconds: float, remaining: int) -> None:
        if not self._enabled:
            return
        self._batches_total.labels(scope=scope).inc()
        self._batch_duration.labels(scope=scope).observe(duration_seconds)
        self._remaining.labels(scope=scope).set(remaining)

    def record_run(self, scope: str, phase: str) -> None:
        if self._enabled:
            self._runs_total.labels(scope=scope, phase=phase).inc()


def start_metrics_server(port: int = 8000, addr: str = "0.0.0.0") -> bool:
    """
    Start the Prometheus HTTP endpoint.

    Returns:
        False when prometheus-client is not installed
    """
    if not PROMETHEUS_AVAILABLE:
        logger.warning("prometheus-client not installed; metrics server not started")
        return False
    start_http_server(port, addr=addr)
    logger.info(f"Prometheus metrics available at http://{addr}:{port}/metrics")
    return True
