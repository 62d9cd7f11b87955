"""
Integration Tests: Prometheus Metrics Collection

Validates metrics recorded by profile updates, locks and learning runs,
and the singleton collector bound to the default registry.
"""

import pytest
from prometheus_client import REGISTRY

from infrastructure.monitoring import MetricsCollector
from services.atomic_profile_service import AtomicProfileUpdateService


@pytest.mark.usefixtures("reset_metrics_collector")
def test_singleton_uses_default_registry():
    """Verify the process-wide collector records into the default registry."""
    metrics_collector = MetricsCollector.get_instance()
    assert MetricsCollector.get_instance() is metrics_collector

    metrics_collector.record_lock_attempt("acquired")
    metrics_collector.record_lock_attempt("timeout")

    assert REGISTRY.get_sample_value("profile_lock_attempts_total", {"outcome": "acquired"}) == 1
    assert REGISTRY.get_sample_value("profile_lock_attempts_total", {"outcome": "timeout"}) == 1


@pytest.mark.usefixtures("reset_metrics_collector")
def test_reset_singleton_unregisters_metrics():
    """Verify a reset collector can be re-created without duplicate registration."""
    MetricsCollector.get_instance().record_version_conflict()
    MetricsCollector.reset_singleton()

    fresh = MetricsCollector.get_instance()

    assert fresh.sample("profile_version_conflicts_total") == 0


def test_profile_update_outcomes(metrics):
    """Verify success and failure outcomes are labelled by error kind."""
    metrics.record_profile_update(success=True, retries=0, duration_seconds=0.01)
    metrics.record_profile_update(
        success=False, retries=3, duration_seconds=0.2, error_kind="concurrency"
    )

    assert metrics.sample("profile_updates_total", {"status": "success", "error_kind": "none"}) == 1
    assert metrics.sample(
        "profile_updates_total", {"status": "failure", "error_kind": "concurrency"}
    ) == 1
    assert metrics.sample("profile_update_retries_count") == 2
    assert metrics.sample("profile_update_retries_sum") == 3


async def test_atomic_updates_feed_metrics(
    profile_store, make_profile, metrics, concurrency_settings
):
    """Verify the update service reports through the collector."""
    await profile_store.create(make_profile("user-1"))
    service = AtomicProfileUpdateService(
        profile_store, metrics=metrics, concurrency_settings=concurrency_settings
    )

    await service.update_field("user-1", "tone.formality", 7)
    await service.update_field("user-1", "tone.formality", 70)

    summary = metrics.get_metrics_summary()
    assert summary["profile_updates_succeeded"] == 1
    assert metrics.sample(
        "profile_updates_total", {"status": "failure", "error_kind": "validation"}
    ) == 1
    assert metrics.sample("profile_update_duration_seconds_count") == 2


def test_export_format(metrics):
    """Verify Prometheus text exposition."""
    metrics.record_learning_run("applied")

    payload = metrics.export_metrics().decode()

    assert 'learning_runs_total{outcome="applied"} 1.0' in payload
    assert metrics.get_content_type().startswith("text/plain")
