"""Observability for the distribution engine."""

from .metrics import DistributionMetrics

__all__ = ["DistributionMetrics"]
