"""
Autoscaling Module
==================
Control loop autoscaling với threshold policies và cooldown.

Classes:
- AutoScaler: Control loop + ingestion / query facade
- PolicyEngine, ScalingPolicy: Đánh giá threshold policies
- ScalingExecutor, Provisioner: Thực hiện scaling qua provisioner adapter
- EventLog, ScalingEvent: Lịch sử scaling
- CostOptimizer: Phân tích chi phí

Enums:
- ScaleAction: NONE, SCALE_UP, SCALE_DOWN
"""

from .policy import (
    PolicyEngine,
    ScaleAction,
    ScalingDecision,
    ScalingPolicy
)
from .events import EventLog, EventResult, ScalingEvent
from .notifier import Notifier
from .executor import (
    InMemoryProvisioner,
    Provisioner,
    ScalingExecutor,
    ScalingResult
)
from .cost_analyzer import CostOptimization, CostOptimizer, CostRecommendation
from .scheduler import AutoScaler, PeriodicTask

__all__ = [
    'AutoScaler',
    'PeriodicTask',
    'PolicyEngine',
    'ScaleAction',
    'ScalingDecision',
    'ScalingPolicy',
    'EventLog',
    'EventResult',
    'ScalingEvent',
    'Notifier',
    'InMemoryProvisioner',
    'Provisioner',
    'ScalingExecutor',
    'ScalingResult',
    'CostOptimization',
    'CostOptimizer',
    'CostRecommendation'
]
