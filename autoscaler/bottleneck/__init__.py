"""
Bottleneck Module
=================
Phát hiện performance bottlenecks (cpu, memory, latency).
"""

from .detector import (
    BottleneckDetector,
    BottleneckType,
    PerformanceBottleneck,
    Severity
)

__all__ = ['BottleneckDetector', 'BottleneckType', 'PerformanceBottleneck', 'Severity']
