"""
Tests for MigrationMetrics.

Each test registers metrics on its own CollectorRegistry so samples do
not accumulate across tests.
"""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from assetmigrator.monitoring import prometheus as prometheus_module
from assetmigrator.monitoring.prometheus import (
    PROMETHEUS_AVAILABLE,
    MigrationMetrics,
    start_metrics_server,
)

SCOPE = "images->images_do"


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MigrationMetrics(prefix="test_migrator", registry=registry)


class TestMigrationMetrics:
    def test_available(self):
        assert PROMETHEUS_AVAILABLE is True

    def test_enabled(self, metrics):
        assert metrics.enabled

    def test_record_asset(self, metrics, registry):
        metrics.record_asset(SCOPE, "copied")
        metrics.record_asset(SCOPE, "copied")
        metrics.record_asset(SCOPE, "failed")

        labels = {"scope": SCOPE, "outcome": "copied"}
        assert registry.get_sample_value("test_migrator_assets_total", labels) == 2
        labels["outcome"] = "failed"
        assert registry.get_sample_value("test_migrator_assets_total", labels) == 1

    def test_record_batch(self, metrics, registry):
        metrics.record_batch(SCOPE, duration_seconds=0.3, remaining=7)

        labels = {"scope": SCOPE}
        assert registry.get_sample_value("test_migrator_batches_total", labels) == 1
        assert registry.get_sample_value("test_migrator_remaining_assets", labels) == 7
        assert registry.get_sample_value("test_migrator_batch_duration_seconds_count", labels) == 1

    def test_record_run(self, metrics, registry):
        metrics.record_run(SCOPE, "done")
        labels = {"scope": SCOPE, "phase": "done"}
        assert registry.get_sample_value("test_migrator_runs_total", labels) == 1

    def test_disabled_without_prometheus(self):
        with patch.object(prometheus_module, "PROMETHEUS_AVAILABLE", False):
            disabled = MigrationMetrics(prefix="unused")

        assert not disabled.enabled
        disabled.record_asset(SCOPE, "copied")
        disabled.record_batch(SCOPE, 1.0, 0)
        disabled.record_run(SCOPE, "done")


class TestMetricsServer:
    def test_starts_http_server(self):
        with patch.object(prometheus_module, "start_http_server") as start:
            assert start_metrics_server(9123)
        start.assert_called_once_with(9123, addr="0.0.0.0")

    def test_not_started_without_prometheus(self):
        with patch.object(prometheus_module, "PROMETHEUS_AVAILABLE", False):
            assert start_metrics_server(9123) is False


@pytest.mark.asyncio
async def test_engine_reports_metrics(make_engine, registry):
    metrics = MigrationMetrics(prefix="engine_run", registry=registry)

    await make_engine(metrics=metrics).migrate()

    copied = registry.get_sample_value(
        "engine_run_assets_total", {"scope": SCOPE, "outcome": "copied"}
    )
    batches = registry.get_sample_value("engine_run_batches_total", {"scope": SCOPE})
    assert copied == 10
    assert batches == 4
    assert registry.get_sample_value("engine_run_remaining_assets", {"scope": SCOPE}) == 0
    assert registry.get_sample_value("engine_run_runs_total", {"scope": SCOPE, "phase": "done"}) == 1
