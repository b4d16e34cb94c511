"""
Autoscaling Policy Module
=========================
Module định nghĩa scaling policies và logic đánh giá threshold.

Decision rules (theo thứ tự):
    1. Policy disabled -> NONE
    2. Còn trong cooldown kể từ event cuối (success hay failure) -> NONE
    3. value > scale_up_threshold -> SCALE_UP (check trước, overlap resolve về scale-up)
    4. value < scale_down_threshold -> SCALE_DOWN
    5. Còn lại -> NONE

Usage:
    >>> policy = ScalingPolicy(id='cpu', target_metric='cpu', scale_up_threshold=80)
    >>> engine = PolicyEngine()
    >>> decision = engine.evaluate(policy, sample, last_event)
"""

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from ..exceptions import ConfigurationError
from ..metrics.window import ScalingMetrics, utcnow


class ScaleAction(str, Enum):
    """Các actions scaling có thể thực hiện."""
    NONE = "none"
    SCALE_UP = "scale-up"      # Thêm instances
    SCALE_DOWN = "scale-down"  # Giảm instances


# camelCase keys của configuration surface cũ
_POLICY_ALIASES = {
    'targetMetric': 'target_metric',
    'scaleUpThreshold': 'scale_up_threshold',
    'scaleDownThreshold': 'scale_down_threshold',
    'scaleUpStep': 'scale_up_step',
    'scaleDownStep': 'scale_down_step',
    'minInstances': 'min_instances',
    'maxInstances': 'max_instances',
    'cooldownPeriod': 'cooldown_period',
}


@dataclass
class ScalingPolicy:
    """
    Cấu hình một scaling policy.

    Attributes:
        id: ID duy nhất, dùng làm key khi upsert
        target_metric: Tên field trong ScalingMetrics (vd 'cpu', 'responseTime')
        scale_up_threshold: Vượt ngưỡng này thì scale-up
        scale_down_threshold: Dưới ngưỡng này thì scale-down
        scale_up_step: Số instances thêm khi scale-up
        scale_down_step: Số instances giảm khi scale-down
        min_instances: Số instances tối thiểu
        max_instances: Số instances tối đa
        cooldown_period: Số giây chờ giữa hai events của cùng (component, policy)
        enabled: Policy có được evaluate không
        name: Tên hiển thị
    """
    id: str
    target_metric: str
    scale_up_threshold: float = 80.0
    scale_down_threshold: float = 30.0
    scale_up_step: int = 1
    scale_down_step: int = 1
    min_instances: int = 1
    max_instances: int = 10
    cooldown_period: float = 300.0
    enabled: bool = True
    name: str = ""

    def validate(self) -> "ScalingPolicy":
        """
        Kiểm tra invariants của policy.

        Returns:
            Chính policy (để chain)

        Raises:
            ConfigurationError: Nếu policy không hợp lệ
        """
        if not self.id:
            raise ConfigurationError("Policy id must not be empty")
        if not self.target_metric:
            raise ConfigurationError(f"Policy '{self.id}': target_metric must not be empty")
        if self.min_instances < 0:
            raise ConfigurationError(
                f"Policy '{self.id}': min_instances must be >= 0 (got {self.min_instances})"
            )
        if self.min_instances > self.max_instances:
            raise ConfigurationError(
                f"Policy '{self.id}': min_instances ({self.min_instances}) > "
                f"max_instances ({self.max_instances})"
            )
        if self.scale_up_step < 1 or self.scale_down_step < 1:
            raise ConfigurationError(f"Policy '{self.id}': scaling steps must be positive integers")
        if self.cooldown_period < 0:
            raise ConfigurationError(f"Policy '{self.id}': cooldown_period must be >= 0")
        return self

    @classmethod
    def from_dict(cls, data: Dict) -> "ScalingPolicy":
        """
        Tạo policy từ dict (chấp nhận cả camelCase và snake_case keys).

        Raises:
            ConfigurationError: Nếu có key lạ hoặc policy không hợp lệ
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            attr = _POLICY_ALIASES.get(key, key)
            if attr not in known:
                raise ConfigurationError(f"Unknown policy field '{key}'")
            kwargs[attr] = value

        try:
            policy = cls(**kwargs)
        except TypeError as e:
            raise ConfigurationError(f"Invalid policy definition: {e}") from e

        return policy.validate()


@dataclass(frozen=True)
class ScalingDecision:
    """Kết quả evaluate một policy."""
    action: ScaleAction
    reason: str = ""
    value: Optional[float] = None

    @property
    def is_action(self) -> bool:
        return self.action != ScaleAction.NONE


class PolicyEngine:
    """
    Đánh giá một policy trên sample mới nhất và trạng thái cooldown.

    Stateless ngoài clock: mọi state (event cuối) được truyền vào.

    Example:
        >>> engine = PolicyEngine(clock=lambda: now)
        >>> engine.evaluate(policy, sample, None).action
        <ScaleAction.SCALE_UP: 'scale-up'>
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def in_cooldown(self, policy: ScalingPolicy, last_event) -> bool:
        """
        Kiểm tra (component, policy) còn trong cooldown không.

        Args:
            policy: ScalingPolicy
            last_event: ScalingEvent cuối cùng của cặp này, hoặc None

        Returns:
            True nếu chưa được scale
        """
        if last_event is None:
            return False

        elapsed = (self.clock() - last_event.timestamp).total_seconds()
        return elapsed < policy.cooldown_period

    def evaluate(
        self,
        policy: ScalingPolicy,
        sample: ScalingMetrics,
        last_event=None
    ) -> ScalingDecision:
        """
        Đánh giá policy.

        Args:
            policy: ScalingPolicy
            sample: Sample mới nhất của component
            last_event: ScalingEvent cuối của (component, policy), hoặc None

        Returns:
            ScalingDecision
        """
        if not policy.enabled:
            return ScalingDecision(ScaleAction.NONE, f"Policy {policy.id} disabled")

        if self.in_cooldown(policy, last_event):
            return ScalingDecision(ScaleAction.NONE, f"Policy {policy.id} in cooldown")

        value = sample.value(policy.target_metric)

        if value > policy.scale_up_threshold:
            reason = f"{policy.target_metric} {value:g} > {policy.scale_up_threshold:g}"
            return ScalingDecision(ScaleAction.SCALE_UP, reason, value)

        if value < policy.scale_down_threshold:
            reason = f"{policy.target_metric} {value:g} < {policy.scale_down_threshold:g}"
            return ScalingDecision(ScaleAction.SCALE_DOWN, reason, value)

        return ScalingDecision(ScaleAction.NONE, "", value)
