"""
Cost Optimizer Module
=====================
Module phân tích metrics window để đưa ra cost model và savings recommendations.

Phân tích:
    - Downsize: CPU và memory trung bình thấp -> giảm instances (savings 30%)
    - Schedule: usage pattern dao động mạnh theo giờ -> scheduled scaling (savings 15%)

Usage:
    >>> optimizer = CostOptimizer(window, provisioner, unit_cost_per_instance_hour=0.10)
    >>> optimization = optimizer.recommend('api')
    >>> print(f"Savings: ${optimization.savings:.2f}/h")
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Callable, List, Optional

import numpy as np

from ..metrics.window import MetricsWindow
from .executor import Provisioner, call_provisioner

# 6 samples / bucket = 1 giờ với sampling cadence 10 phút
SAMPLES_PER_BUCKET = 6
MIN_SAMPLES_FOR_PATTERN = 24

DOWNSIZE_CPU_THRESHOLD = 30.0
DOWNSIZE_MEMORY_THRESHOLD = 40.0
DOWNSIZE_SAVINGS_RATIO = 0.3

SCHEDULE_VARIANCE_THRESHOLD = 100.0
SCHEDULE_SAVINGS_RATIO = 0.15


@dataclass
class CostRecommendation:
    """
    Một cost recommendation.

    Attributes:
        type: 'downsize' hoặc 'schedule'
        description: Mô tả
        estimated_savings: Savings ước tính ($/giờ)
        impact: 'low', 'medium' hoặc 'high'
        component_id: Component liên quan
    """
    type: str
    description: str
    estimated_savings: float
    impact: str
    component_id: Optional[str] = None


@dataclass
class CostOptimization:
    """Cost model và recommendations ($/giờ)."""
    current_cost: float
    projected_cost: float
    savings: float
    recommendations: List[CostRecommendation] = field(default_factory=list)


class CostOptimizer:
    """
    Phân tích chi phí trên metrics window.

    Attributes:
        window: MetricsWindow
        provisioner: Provisioner để đọc instance count hiện tại
        instance_reader: Override cách đọc instance count (optional)
        unit_cost_per_instance_hour: Chi phí mỗi instance / giờ (USD)

    Example:
        >>> optimizer = CostOptimizer(window, provisioner)
        >>> opt = optimizer.recommend('web')
        >>> [r.type for r in opt.recommendations]
        ['downsize']
    """

    def __init__(
        self,
        window: MetricsWindow,
        provisioner: Provisioner,
        unit_cost_per_instance_hour: float = 0.10,
        instance_reader: Callable[[str], int] = None
    ):
        self.window = window
        self.provisioner = provisioner
        self.unit_cost_per_instance_hour = unit_cost_per_instance_hour
        # AutoScaler truyền ScalingExecutor.current_instances để dùng chung deadline
        self._read_instances = instance_reader or partial(
            call_provisioner, provisioner.get_current_instances
        )

    def usage_pattern_variance(self, cpu: np.ndarray) -> float:
        """
        Variance của CPU trung bình theo từng bucket.

        Series được chia thành các nhóm SAMPLES_PER_BUCKET samples liên tiếp
        (nhóm cuối có thể thiếu), lấy trung bình mỗi nhóm rồi tính
        population variance của các giá trị trung bình.

        Args:
            cpu: Array CPU usage theo thứ tự append

        Returns:
            Variance (0.0 nếu không có data)
        """
        if len(cpu) == 0:
            return 0.0

        buckets = np.arange(len(cpu)) // SAMPLES_PER_BUCKET
        bucket_means = np.bincount(buckets, weights=cpu) / np.bincount(buckets)
        return float(np.var(bucket_means))

    def recommend(self, component_id: str) -> CostOptimization:
        """
        Phân tích chi phí cho một component.

        Args:
            component_id: ID của component

        Returns:
            CostOptimization

        Raises:
            ProvisioningError: Nếu không đọc được instance count
        """
        current_instances = self._read_instances(component_id)
        current_cost = current_instances * self.unit_cost_per_instance_hour

        recommendations = []
        df = self.window.to_frame(component_id)

        if len(df) > 0:
            avg_cpu = df['cpu'].mean()
            avg_memory = df['memory'].mean()

            # Under-utilized -> downsize
            if avg_cpu < DOWNSIZE_CPU_THRESHOLD and avg_memory < DOWNSIZE_MEMORY_THRESHOLD:
                recommendations.append(CostRecommendation(
                    type='downsize',
                    description=(
                        f"Average CPU {avg_cpu:.1f}% and memory {avg_memory:.1f}% are low; "
                        f"reduce instances of {component_id}"
                    ),
                    estimated_savings=current_cost * DOWNSIZE_SAVINGS_RATIO,
                    impact='low',
                    component_id=component_id
                ))

            # Usage pattern theo giờ -> scheduled scaling
            variance = self.usage_pattern_variance(df['cpu'].to_numpy(dtype=float))
            if variance > SCHEDULE_VARIANCE_THRESHOLD and len(df) >= MIN_SAMPLES_FOR_PATTERN:
                recommendations.append(CostRecommendation(
                    type='schedule',
                    description=(
                        f"CPU usage follows a predictable pattern (variance {variance:.1f}); "
                        f"use scheduled scaling for {component_id}"
                    ),
                    estimated_savings=current_cost * SCHEDULE_SAVINGS_RATIO,
                    impact='medium',
                    component_id=component_id
                ))

        savings = sum(r.estimated_savings for r in recommendations)

        return CostOptimization(
            current_cost=current_cost,
            projected_cost=current_cost - savings,
            savings=savings,
            recommendations=recommendations
        )

    def recommend_all(self) -> CostOptimization:
        """Tổng hợp cost optimization cho mọi component đang được track."""
        current_cost = 0.0
        savings = 0.0
        recommendations = []

        for component_id in self.window.components():
            optimization = self.recommend(component_id)
            current_cost += optimization.current_cost
            savings += optimization.savings
            recommendations.extend(optimization.recommendations)

        return CostOptimization(
            current_cost=current_cost,
            projected_cost=current_cost - savings,
            savings=savings,
            recommendations=recommendations
        )
