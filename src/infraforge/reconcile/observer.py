"""
Reconciliation observers.

The engine reports pass and step outcomes to an injected observer rather
than to module-level metric singletons. NoopObserver is the default;
OTelObserver records OpenTelemetry metrics.

Metrics:
- infraforge.reconcile.total{kind, outcome}
- infraforge.reconcile.duration{kind} (ms)
- infraforge.step.total{kind, step, outcome}
- infraforge.cleanup.abandoned{kind}
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)

RECONCILE_TOTAL_METRIC = "infraforge.reconcile.total"
RECONCILE_DURATION_METRIC = "infraforge.reconcile.duration"
STEP_TOTAL_METRIC = "infraforge.step.total"
CLEANUP_ABANDONED_METRIC = "infraforge.cleanup.abandoned"


class ReconcileObserver(Protocol):
    def reconcile_started(self, kind: str, claim: str) -> None: ...

    def reconcile_finished(self, kind: str, claim: str, outcome: str, duration_ms: float) -> None: ...

    def step_completed(self, kind: str, step: str, outcome: str) -> None: ...

    def cleanup_abandoned(self, kind: str, claim: str) -> None: ...


class NoopObserver:
    def reconcile_started(self, kind: str, claim: str) -> None:
        pass

    def reconcile_finished(self, kind: str, claim: str, outcome: str, duration_ms: float) -> None:
        pass

    def step_completed(self, kind: str, step: str, outcome: str) -> None:
        pass

    def cleanup_abandoned(self, kind: str, claim: str) -> None:
        pass


class OTelObserver:
    """
    Record reconciliation metrics through OpenTelemetry.

    Creates its own MeterProvider instead of the global one so tests and
    other metric users do not interfere. Without an explicit reader,
    metrics are exported to the console periodically.
    """

    def __init__(
        self,
        service_name: str = "infraforge-operator",
        reader: Optional[MetricReader] = None,
        export_interval_ms: int = 60000,
    ):
        if reader is None:
            reader = PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=export_interval_ms,
            )
        resource = Resource.create({"service.name": service_name})
        self._provider = MeterProvider(resource=resource, metric_readers=[reader])
        self._meter = self._provider.get_meter("infraforge.reconcile")
        self._setup_instruments()

    def _setup_instruments(self) -> None:
        self._reconcile_total = self._meter.create_counter(
            name=RECONCILE_TOTAL_METRIC,
            description="Reconciliation passes by outcome",
            unit="{passes}",
        )
        self._reconcile_duration = self._meter.create_histogram(
            name=RECONCILE_DURATION_METRIC,
            description="Reconciliation pass duration",
            unit="ms",
        )
        self._step_total = self._meter.create_counter(
            name=STEP_TOTAL_METRIC,
            description="Reconciliation steps by outcome",
            unit="{steps}",
        )
        self._cleanup_abandoned = self._meter.create_counter(
            name=CLEANUP_ABANDONED_METRIC,
            description="Deletions whose cleanup was abandoned",
            unit="{claims}",
        )

    def reconcile_started(self, kind: str, claim: str) -> None:
        logger.debug(f"Reconcile started: {kind} {claim}")

    def reconcile_finished(self, kind: str, claim: str, outcome: str, duration_ms: float) -> None:
        attrs = {"kind": kind, "outcome": outcome}
        self._reconcile_total.add(1, attrs)
        self._reconcile_duration.record(duration_ms, {"kind": kind})

    def step_completed(self, kind: str, step: str, outcome: str) -> None:
        self._step_total.add(1, {"kind": kind, "step": step, "outcome": outcome})

    def cleanup_abandoned(self, kind: str, claim: str) -> None:
        self._cleanup_abandoned.add(1, {"kind": kind})

    def shutdown(self) -> None:
        try:
            self._provider.shutdown()
        except Exception as e:
            logger.warning(f"Error during metrics shutdown: {e}")


def build_observer(metrics_enabled: bool, **kwargs: Any) -> ReconcileObserver:
    if metrics_enabled:
        return OTelObserver(**kwargs)
    return NoopObserver()
