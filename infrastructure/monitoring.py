"""
Monitoring Infrastructure: Structured Logging with Structlog

Provides JSON-based structured logging for production observability and
a Prometheus metrics collector for profile update, locking, learning and
cache activity.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


def configure_structlog(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog for JSON-based production logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON rendering (console rendering when log_format is "text")
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for profile engine observability.

    Tracks:
    - Profile update outcomes by error kind and retry counts
    - Optimistic-concurrency conflicts
    - Distributed lock outcomes
    - Learning runs and evolution score computations
    - Cache performance
    """

    _instance: Optional["MetricsCollector"] = None

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collector with Prometheus metrics."""
        self.registry = registry if registry is not None else REGISTRY

        # Profile update metrics
        self.profile_updates_total = Counter(
            "profile_updates_total",
            "Total atomic profile updates",
            labelnames=["status", "error_kind"],
            registry=self.registry,
        )

        self.profile_update_retries = Histogram(
            "profile_update_retries",
            "Optimistic-concurrency retries per update",
            buckets=[0, 1, 2, 3, 5, 10],
            registry=self.registry,
        )

        self.profile_update_duration_seconds = Histogram(
            "profile_update_duration_seconds",
            "Atomic profile update latency",
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry,
        )

        self.version_conflicts_total = Counter(
            "profile_version_conflicts_total",
            "Conditional writes rejected by the version check",
            registry=self.registry,
        )

        # Lock metrics
        self.lock_attempts_total = Counter(
            "profile_lock_attempts_total",
            "Distributed lock acquisition attempts",
            labelnames=["outcome"],
            registry=self.registry,
        )

        # Learning metrics
        self.learning_runs_total = Counter(
            "learning_runs_total",
            "Feedback learning runs",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.evolution_score_computations_total = Counter(
            "evolution_score_computations_total",
            "Evolution score computations (cache misses)",
            registry=self.registry,
        )

        # Cache metrics
        self.cache_hits_total = Counter(
            "cache_hits_total",
            "Total cache hits",
            labelnames=["cache_level", "cache_type"],
            registry=self.registry,
        )

        self.cache_misses_total = Counter(
            "cache_misses_total",
            "Total cache misses",
            labelnames=["cache_type"],
            registry=self.registry,
        )

        log = get_logger(__name__)
        log.info("metrics_collector_initialized", metrics_type="prometheus")

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        """Process-wide collector bound to the default registry."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_profile_update(
        self,
        success: bool,
        retries: int,
        duration_seconds: float,
        error_kind: Optional[str] = None,
    ) -> None:
        """
        Record the outcome of one atomic profile update.

        Args:
            success: Whether the update was committed
            retries: Version conflicts encountered
            duration_seconds: Wall time including lock wait
            error_kind: Failure discriminator when unsuccessful
        """
        self.profile_updates_total.labels(
            status="success" if success else "failure",
            error_kind=error_kind or "none",
        ).inc()
        self.profile_update_retries.observe(retries)
        self.profile_update_duration_seconds.observe(duration_seconds)

    def record_version_conflict(self) -> None:
        self.version_conflicts_total.inc()

    def record_lock_attempt(self, outcome: str) -> None:
        """Record lock outcome ("acquired", "timeout", "error")."""
        self.lock_attempts_total.labels(outcome=outcome).inc()

    def record_learning_run(self, outcome: str) -> None:
        self.learning_runs_total.labels(outcome=outcome).inc()

    def record_score_computation(self) -> None:
        self.evolution_score_computations_total.inc()

    def record_cache_hit(self, cache_level: str, cache_type: str) -> None:
        """Record cache hit."""
        self.cache_hits_total.labels(cache_level=cache_level, cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        """Record cache miss."""
        self.cache_misses_total.labels(cache_type=cache_type).inc()

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of a sample in this collector's registry (0.0 if absent)."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus format.

        Returns:
            Prometheus-formatted metrics payload
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of current metrics for health checks.

        Returns:
            Dictionary with key counters
        """
        return {
            "profile_updates_succeeded": self.sample(
                "profile_updates_total", {"status": "success", "error_kind": "none"}
            ),
            "version_conflicts": self.sample("profile_version_conflicts_total"),
            "locks_acquired": self.sample("profile_lock_attempts_total", {"outcome": "acquired"}),
            "learning_runs_applied": self.sample("learning_runs_total", {"outcome": "applied"}),
        }

    @classmethod
    def reset_singleton(cls) -> None:
        """Reset singleton for testing purposes."""
        instance = cls._instance
        cls._instance = None
        if instance is None or instance.registry is not REGISTRY:
            return
        for metric in (
            instance.profile_updates_total,
            instance.profile_update_retries,
            instance.profile_update_duration_seconds,
            instance.version_conflicts_total,
            instance.lock_attempts_total,
            instance.learning_runs_total,
            instance.evolution_score_computations_total,
            instance.cache_hits_total,
            instance.cache_misses_total,
        ):
            REGISTRY.unregister(metric)


__all__ = ["configure_structlog", "get_logger", "MetricsCollector"]
