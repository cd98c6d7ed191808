"""
Prometheus metrics for the pod janitor.

Counts processed pods by outcome and observes how long each sweep takes.
Metrics live in a registry owned by the recorder instance rather than the
process-wide default registry, so several recorders (tests, multiple
janitors) never collide.

Usage:
    recorder = OutcomeRecorder()
    recorder.record_outcome(Outcome.OK)
    recorder.record_duration(42.0)
    recorder.push("http://pushgateway:9091")
"""

from enum import Enum

from loguru import logger
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    push_to_gateway,
)

PROCESSING_TIME_BUCKETS = (5, 10, 100, 250, 500, 1000)
DEFAULT_JOB = "pod-janitor"


class Outcome(str, Enum):
    """Label values of the cleanup counter."""

    OK = "ok"
    LISTING_ERROR = "proc_error"
    DELETE_ERROR = "delete_error"
    CONFIG_ERROR = "k8s_config_error"


class OutcomeRecorder:
    """Thread-safe outcome counters and sweep duration histogram.

    prometheus_client metrics lock internally, so concurrent sweeps can
    record without losing increments.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry if registry is not None else CollectorRegistry()
        self._processing_time = Histogram(
            "gw_pod_janitor_processing_time_millisecond",
            "Time taken for pod janitor to process",
            buckets=PROCESSING_TIME_BUCKETS,
            registry=self._registry,
        )
        self._cleanup_total = Counter(
            "gw_pod_janitor_cleanup_total",
            "Number of pods cleaned up by pod janitor",
            ["status"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_outcome(self, outcome: Outcome) -> None:
        self._cleanup_total.labels(status=Outcome(outcome).value).inc()

    def record_duration(self, elapsed_ms: float) -> None:
        self._processing_time.observe(elapsed_ms)

    def count(self, outcome: Outcome) -> float:
        """Current value of the counter for ``outcome`` (0 if never recorded)."""
        value = self._registry.get_sample_value(
            "gw_pod_janitor_cleanup_total", {"status": Outcome(outcome).value}
        )
        return value or 0.0

    def duration_count(self) -> float:
        """Number of sweep durations observed so far."""
        value = self._registry.get_sample_value("gw_pod_janitor_processing_time_millisecond_count")
        return value or 0.0

    def snapshot(self) -> bytes:
        """Current metrics in the Prometheus text exposition format."""
        return generate_latest(self._registry)

    def push(self, gateway_url: str, job: str = DEFAULT_JOB) -> bool:
        """Push all metrics to a Pushgateway.

        Failures are logged and reported via the return value, never raised.
        """
        if not gateway_url:
            logger.debug("Metrics: no pushgateway configured, skipping push")
            return False
        try:
            push_to_gateway(gateway_url, job=job, registry=self._registry)
        except Exception as e:
            logger.error("Metrics: failed to push metrics to {}: {}", gateway_url, e)
            return False
        logger.debug("Metrics: pushed to {} (job={})", gateway_url, job)
        return True
