"""
Autoscaler Configuration
========================
Cấu hình control loop, metrics window, chi phí và policies.

Usage:
    >>> config = AutoscalerConfig.from_dict({
    ...     'evaluationInterval': 30,
    ...     'metricsWindow': 300,
    ...     'policies': [{'id': 'cpu', 'targetMetric': 'cpu', 'scaleUpThreshold': 70}]
    ... })
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .autoscaling.policy import ScalingPolicy
from .exceptions import ConfigurationError

_CONFIG_ALIASES = {
    'evaluationInterval': 'evaluation_interval',
    'metricsWindow': 'metrics_window',
    'unitCostPerInstanceHour': 'unit_cost_per_instance_hour',
    'maxEventsPerComponent': 'max_events_per_component',
    'provisionerTimeout': 'provisioner_timeout',
}


@dataclass
class AutoscalerConfig:
    """
    Cấu hình autoscaler.

    Attributes:
        evaluation_interval: Số giây giữa hai lần tick
        metrics_window: Số giây metrics được giữ lại mỗi component
        policies: Danh sách ScalingPolicy
        unit_cost_per_instance_hour: Chi phí mỗi instance / giờ (USD)
        max_events_per_component: Số scaling events giữ lại mỗi component
        provisioner_timeout: Deadline (giây) cho provisioner calls, None = không giới hạn
    """
    evaluation_interval: float = 30.0
    metrics_window: float = 300.0
    policies: List[ScalingPolicy] = field(default_factory=list)
    unit_cost_per_instance_hour: float = 0.10
    max_events_per_component: int = 1000
    provisioner_timeout: Optional[float] = None

    def validate(self) -> "AutoscalerConfig":
        """
        Raises:
            ConfigurationError: Nếu config hoặc một policy không hợp lệ
        """
        if self.evaluation_interval <= 0:
            raise ConfigurationError("evaluation_interval must be > 0")
        if self.metrics_window <= 0:
            raise ConfigurationError("metrics_window must be > 0")
        if self.unit_cost_per_instance_hour < 0:
            raise ConfigurationError("unit_cost_per_instance_hour must be >= 0")
        if self.max_events_per_component < 1:
            raise ConfigurationError("max_events_per_component must be >= 1")
        if self.provisioner_timeout is not None and self.provisioner_timeout <= 0:
            raise ConfigurationError("provisioner_timeout must be > 0")

        seen = set()
        for policy in self.policies:
            policy.validate()
            if policy.id in seen:
                raise ConfigurationError(f"Duplicate policy id '{policy.id}'")
            seen.add(policy.id)

        return self

    @classmethod
    def from_dict(cls, data: Dict) -> "AutoscalerConfig":
        """Tạo config từ dict (camelCase hoặc snake_case keys)."""
        kwargs = {}
        for key, value in data.items():
            attr = _CONFIG_ALIASES.get(key, key)
            if attr == 'policies':
                value = [
                    p if isinstance(p, ScalingPolicy) else ScalingPolicy.from_dict(p)
                    for p in value
                ]
            kwargs[attr] = value

        try:
            config = cls(**kwargs)
        except TypeError as e:
            raise ConfigurationError(f"Invalid autoscaler config: {e}") from e

        return config.validate()

    @classmethod
    def from_env(cls, policies: List[ScalingPolicy] = None) -> "AutoscalerConfig":
        """
        Đọc config từ environment variables.

        Variables:
            AUTOSCALER_EVALUATION_INTERVAL, AUTOSCALER_METRICS_WINDOW,
            AUTOSCALER_UNIT_COST, AUTOSCALER_PROVISIONER_TIMEOUT
        """
        timeout = os.environ.get('AUTOSCALER_PROVISIONER_TIMEOUT')
        try:
            config = cls(
                evaluation_interval=float(os.environ.get('AUTOSCALER_EVALUATION_INTERVAL', 30)),
                metrics_window=float(os.environ.get('AUTOSCALER_METRICS_WINDOW', 300)),
                unit_cost_per_instance_hour=float(os.environ.get('AUTOSCALER_UNIT_COST', 0.10)),
                provisioner_timeout=float(timeout) if timeout else None,
                policies=list(policies or [])
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

        return config.validate()
