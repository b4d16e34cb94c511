"""
Bottleneck Detector Module
==========================
Module phân loại sample metrics mới nhất thành performance bottlenecks.

Ngưỡng cố định (mỗi metric được đánh giá độc lập, một sample có thể
sinh ra nhiều bottlenecks):

    | metric            | high / medium  | critical |
    |-------------------|----------------|----------|
    | cpu (%)           | > 80 (high)    | >= 95    |
    | memory (%)        | > 85 (high)    | > 95     |
    | response_time (ms)| > 2000 (medium)| > 5000   |

Usage:
    >>> detector = BottleneckDetector(window)
    >>> bottlenecks = detector.detect('api')
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ..metrics.window import MetricsWindow, ScalingMetrics, utcnow


class BottleneckType(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    NETWORK = "network"


class Severity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK = {Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}

RECOMMENDATIONS = {
    BottleneckType.CPU: [
        "Scale out to distribute CPU load",
        "Profile hot code paths and optimize CPU-intensive operations",
        "Consider instance types with more CPU cores",
    ],
    BottleneckType.MEMORY: [
        "Scale out to reduce per-instance memory pressure",
        "Check for memory leaks and unbounded caches",
        "Consider instance types with more memory",
    ],
    BottleneckType.NETWORK: [
        "Add caching for frequently requested resources",
        "Review slow downstream calls and database queries",
        "Scale out to reduce request queueing",
    ],
}


@dataclass
class PerformanceBottleneck:
    """
    Một bottleneck phát hiện được.

    Attributes:
        type: BottleneckType
        severity: Severity
        description: Mô tả
        affected_components: Các component bị ảnh hưởng
        recommendations: Gợi ý khắc phục
        detected_at: Thời điểm phát hiện
        resolved: Luôn False khi mới tạo
    """
    type: BottleneckType
    severity: Severity
    description: str
    affected_components: List[str]
    recommendations: List[str]
    detected_at: datetime
    resolved: bool = False
    value: Optional[float] = field(default=None, compare=False)


def classify(sample: ScalingMetrics) -> List[tuple]:
    """
    Phân loại một sample.

    Returns:
        List các tuple (type, severity, description, value)
    """
    found = []

    if sample.cpu >= 95:
        found.append((BottleneckType.CPU, Severity.CRITICAL, f"Critical CPU usage: {sample.cpu:g}%", sample.cpu))
    elif sample.cpu > 80:
        found.append((BottleneckType.CPU, Severity.HIGH, f"High CPU usage: {sample.cpu:g}%", sample.cpu))

    if sample.memory > 95:
        found.append((BottleneckType.MEMORY, Severity.CRITICAL, f"Critical memory usage: {sample.memory:g}%", sample.memory))
    elif sample.memory > 85:
        found.append((BottleneckType.MEMORY, Severity.HIGH, f"High memory usage: {sample.memory:g}%", sample.memory))

    rt = sample.response_time
    if rt > 5000:
        found.append((BottleneckType.NETWORK, Severity.CRITICAL, f"Critical response time: {rt:g}ms", rt))
    elif rt > 2000:
        found.append((BottleneckType.NETWORK, Severity.MEDIUM, f"Slow response time: {rt:g}ms", rt))

    return found


class BottleneckDetector:
    """
    Stateless classifier trên MetricsWindow.

    Bottlenecks được tạo mới mỗi lần query, không được lưu lại.
    """

    def __init__(self, window: MetricsWindow, clock: Callable[[], datetime] = utcnow):
        self.window = window
        self.clock = clock

    def detect(self, component_id: str) -> List[PerformanceBottleneck]:
        """
        Phát hiện bottlenecks từ sample mới nhất của component.

        Args:
            component_id: ID của component

        Returns:
            List PerformanceBottleneck, sắp xếp severity giảm dần.
            Rỗng nếu component chưa có sample.
        """
        sample = self.window.latest(component_id)
        if sample is None:
            return []

        detected_at = self.clock()
        bottlenecks = [
            PerformanceBottleneck(
                type=b_type,
                severity=severity,
                description=description,
                affected_components=[component_id],
                recommendations=list(RECOMMENDATIONS[b_type]),
                detected_at=detected_at,
                value=value
            )
            for b_type, severity, description, value in classify(sample)
        ]

        return sorted(bottlenecks, key=lambda b: SEVERITY_RANK[b.severity], reverse=True)

    def detect_all(self) -> List[PerformanceBottleneck]:
        """Bottlenecks của mọi component đang được track."""
        result = []
        for component_id in self.window.components():
            result.extend(self.detect(component_id))

        return sorted(result, key=lambda b: SEVERITY_RANK[b.severity], reverse=True)
