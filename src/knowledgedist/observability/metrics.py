"""Prometheus metrics for the distribution engine.

Provides ``DistributionMetrics``, exposing scheduler and settlement
activity for Prometheus scraping.
"""

from __future__ import annotations

from typing import Any, Optional


try:
    from prometheus_client import REGISTRY, Counter, Gauge, Histogram
    from prometheus_client import start_http_server as _start_http_server

    _PROMETHEUS_AVAILABLE = True
except ImportError:
    _PROMETHEUS_AVAILABLE = False


class DistributionMetrics:
    """Prometheus metrics for ticks and settlements.

    Metrics exposed:

    * ``ticks_total`` - scheduler ticks, labelled by ``result``
      (``completed`` or ``reentrant``)
    * ``executions_total`` - per-domain executions, labelled by ``outcome``
    * ``credited_minor_units_total`` - minor units credited to users
    * ``treasury_minor_units_total`` - minor units credited to treasuries
    * ``tick_duration_seconds`` - histogram of tick durations
    * ``pending_domains`` - domains holding a not-yet-due distribution

    Recording methods are no-ops when *prometheus_client* is not installed.

    Args:
        prefix: Metric name prefix. Defaults to ``kdist``.
        registry: Collector registry; defaults to the global registry.
    """

    def __init__(self, prefix: str = "kdist", registry: Optional[Any] = None) -> None:
        if not _PROMETHEUS_AVAILABLE:
            self._enabled = False
            return

        registry = REGISTRY if registry is None else registry
        self.ticks_total = Counter(
            f"{prefix}_ticks_total",
            "Scheduler ticks",
            ["result"],
            registry=registry,
        )
        self.executions_total = Counter(
            f"{prefix}_executions_total",
            "Distribution executions by outcome",
            ["outcome"],
            registry=registry,
        )
        self.credited_minor_units_total = Counter(
            f"{prefix}_credited_minor_units_total",
            "Minor units credited to recipients",
            registry=registry,
        )
        self.treasury_minor_units_total = Counter(
            f"{prefix}_treasury_minor_units_total",
            "Minor units credited to alliance treasuries",
            registry=registry,
        )
        self.tick_duration_seconds = Histogram(
            f"{prefix}_tick_duration_seconds",
            "Scheduler tick duration in seconds",
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=registry,
        )
        self.pending_domains = Gauge(
            f"{prefix}_pending_domains",
            "Domains with a scheduled distribution not yet due",
            registry=registry,
        )
        self._enabled = True

    @property
    def enabled(self) -> bool:
        """Return whether prometheus_client is available."""
        return self._enabled

    def record_tick(self, duration_seconds: float, pending: int, reentrant: bool = False) -> None:
        if not self._enabled:
            return
        if reentrant:
            self.ticks_total.labels(result="reentrant").inc()
            return
        self.ticks_total.labels(result="completed").inc()
        self.tick_duration_seconds.observe(duration_seconds)
        self.pending_domains.set(pending)

    def record_execution(self, outcome: str) -> None:
        """Count one execution; *outcome* is e.g. ``settled``, ``skipped`` or ``failed``."""
        if not self._enabled:
            return
        self.executions_total.labels(outcome=outcome).inc()

    def record_settlement(self, credited_minor: int, treasury_minor: int) -> None:
        if not self._enabled:
            return
        if credited_minor > 0:
            self.credited_minor_units_total.inc(credited_minor)
        if treasury_minor > 0:
            self.treasury_minor_units_total.inc(treasury_minor)

    def start_server(self, port: int = 9090) -> None:
        """Expose metrics over HTTP on *port*.

        Raises:
            RuntimeError: If prometheus_client is not installed.
        """
        if not self._enabled:
            raise RuntimeError(
                "prometheus_client is not installed. "
                "Install it with: pip install prometheus-client"
            )
        _start_http_server(port)
