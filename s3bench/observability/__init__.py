"""
Metric registry and remote reporting.
"""

from .registry import MetricRegistry
from .reporter import PushReporter, create_reporter

__all__ = ['MetricRegistry', 'PushReporter', 'create_reporter']
