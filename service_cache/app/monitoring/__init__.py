"""
Monitoring package for the query cache service.
"""

from .recorder import MetricsRecorder, Counters

__all__ = ["MetricsRecorder", "Counters"]
