"""Operator command line for the distribution engine."""

from .main import app

__all__ = ["app"]
