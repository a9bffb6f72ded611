"""Routers mounted under ``/api/v1``."""

from . import analytics, health, reports

__all__ = ["analytics", "health", "reports"]
