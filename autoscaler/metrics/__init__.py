"""
Metrics Module
==============
ScalingMetrics samples và MetricsWindow lưu trữ theo component.
"""

from .window import MetricsWindow, ScalingMetrics, utcnow

__all__ = ['MetricsWindow', 'ScalingMetrics', 'utcnow']
