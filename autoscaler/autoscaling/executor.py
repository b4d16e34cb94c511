"""
Scaling Executor Module
=======================
Module thực hiện scaling decisions qua provisioner adapter.

Flow của một scaling action:
    1. Đọc instance count hiện tại từ provisioner
    2. target = clamp(current ± step, min_instances, max_instances)
    3. Gọi provisioner để apply target
    4. Ghi ScalingEvent (success hoặc failure) vào EventLog, notify observers

Failure cũng được ghi thành event, nên cooldown bắt đầu từ cả lần thử
thất bại. Các actions của cùng một component luôn chạy tuần tự.

Usage:
    >>> executor = ScalingExecutor(provisioner, event_log, notifier)
    >>> result = executor.execute('api', decision, policy, sample)
"""

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from ..exceptions import ConfigurationError, ProvisioningError
from ..metrics.window import ScalingMetrics, utcnow
from .events import EventLog, EventResult, ScalingEvent
from .notifier import Notifier
from .policy import ScaleAction, ScalingDecision, ScalingPolicy

LOGGER = logging.getLogger(__name__)


class Provisioner(ABC):
    """Adapter tới orchestrator thực sự quản lý instances."""

    @abstractmethod
    def get_current_instances(self, component_id: str) -> int:
        """Số instances đang chạy của component."""

    @abstractmethod
    def scale_component(self, component_id: str, target_instances: int) -> None:
        """
        Đặt số instances của component.

        Raises:
            ProvisioningError: Backend reject hoặc timeout
        """


class InMemoryProvisioner(Provisioner):
    """
    Provisioner lưu instance counts trong memory.

    Dùng cho local runs và tests; components chưa biết bắt đầu với
    default_instances.
    """

    def __init__(self, default_instances: int = 1, instances: Dict[str, int] = None):
        self.default_instances = default_instances
        self._instances: Dict[str, int] = dict(instances or {})
        self._lock = threading.Lock()

    def get_current_instances(self, component_id: str) -> int:
        with self._lock:
            return self._instances.get(component_id, self.default_instances)

    def scale_component(self, component_id: str, target_instances: int) -> None:
        if target_instances < 0:
            raise ProvisioningError(
                f"Invalid target {target_instances} for {component_id}", component_id
            )
        with self._lock:
            self._instances[component_id] = target_instances


@dataclass(frozen=True)
class ScalingResult:
    """Kết quả của một scaling action."""
    success: bool
    previous_instances: int
    new_instances: int
    reason: str
    metrics: Optional[ScalingMetrics]
    estimated_cost: float
    event: ScalingEvent


def _default_event_id() -> str:
    return f"scale-{uuid.uuid4().hex[:12]}"


def call_provisioner(fn, *args, pool: Optional[ThreadPoolExecutor] = None,
                     timeout: Optional[float] = None):
    """
    Gọi một method của provisioner, áp dụng deadline nếu có pool + timeout.

    Mọi lỗi của adapter (kể cả timeout) được chuẩn hoá thành ProvisioningError.
    """
    try:
        if pool is None or timeout is None:
            return fn(*args)
        future = pool.submit(fn, *args)
        return future.result(timeout=timeout)
    except ProvisioningError:
        raise
    except FutureTimeout as e:
        raise ProvisioningError(f"Provisioner call timed out after {timeout}s") from e
    except Exception as e:
        raise ProvisioningError(f"Provisioner error: {e}") from e


class ScalingExecutor:
    """
    Thực thi scaling decisions và ghi lại kết quả.

    Attributes:
        provisioner: Provisioner adapter
        event_log: EventLog để append events
        notifier: Notifier cho observers
        unit_cost_per_instance_hour: Chi phí mỗi instance / giờ (USD)
        provisioner_timeout: Deadline (giây) cho mỗi provisioner call, None = không giới hạn
    """

    def __init__(
        self,
        provisioner: Provisioner,
        event_log: EventLog,
        notifier: Notifier = None,
        unit_cost_per_instance_hour: float = 0.10,
        provisioner_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = _default_event_id
    ):
        self.provisioner = provisioner
        self.event_log = event_log
        self.notifier = notifier or Notifier()
        self.unit_cost_per_instance_hour = unit_cost_per_instance_hour
        self.provisioner_timeout = provisioner_timeout
        self.clock = clock
        self.id_factory = id_factory

        self._component_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._deadline_pool: Optional[ThreadPoolExecutor] = None
        if provisioner_timeout is not None:
            self._deadline_pool = ThreadPoolExecutor(
                max_workers=4, thread_name_prefix="provisioner"
            )

    def component_lock(self, component_id: str) -> threading.Lock:
        """Lock serialize các scaling actions của một component."""
        with self._locks_guard:
            lock = self._component_locks.get(component_id)
            if lock is None:
                lock = threading.Lock()
                self._component_locks[component_id] = lock
            return lock

    def estimate_cost(self, instances: int) -> float:
        """Chi phí / giờ cho số instances."""
        return instances * self.unit_cost_per_instance_hour

    def _call_provisioner(self, fn, *args):
        return call_provisioner(
            fn, *args, pool=self._deadline_pool, timeout=self.provisioner_timeout
        )

    def current_instances(self, component_id: str) -> int:
        """
        Đọc instance count qua cùng deadline / error normalization với scaling actions.

        Raises:
            ProvisioningError: Adapter lỗi hoặc quá deadline
        """
        value = self._call_provisioner(self.provisioner.get_current_instances, component_id)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ProvisioningError(
                f"Invalid instance count {value!r} for {component_id}", component_id
            ) from e

    def _last_known_instances(self, component_id: str) -> int:
        history = self.event_log.history(component_id)
        return history[-1].new_instances if history else 0

    def _apply(
        self,
        component_id: str,
        policy_id: Optional[str],
        trigger: str,
        compute_target: Callable[[int], int],
        metrics: Optional[ScalingMetrics],
        event_type: Optional[str] = None
    ) -> Tuple[ScalingResult, Optional[ProvisioningError]]:
        """
        Đọc count, apply target, ghi event. Caller giữ component lock.

        Nếu event_type là None, type được suy ra từ hướng thay đổi
        (target < current -> scale-down, còn lại scale-up).
        """
        started_at = self.clock()
        t0 = time.monotonic()
        current = None
        target = None
        error = None

        try:
            current = self.current_instances(component_id)
            target = compute_target(current)
            self._call_provisioner(self.provisioner.scale_component, component_id, target)
        except ProvisioningError as e:
            error = e

        previous = current if current is not None else self._last_known_instances(component_id)
        if event_type is None:
            down = target is not None and target < previous
            event_type = ScaleAction.SCALE_DOWN.value if down else ScaleAction.SCALE_UP.value

        if error is None:
            new = target
            action = f"Scaled from {previous} to {target} instances"
        else:
            new = previous
            action = (
                f"Attempted {previous} -> {target} instances" if target is not None
                else "Could not read current instance count"
            )

        event = ScalingEvent(
            id=self.id_factory(),
            type=event_type,
            component_id=component_id,
            policy_id=policy_id,
            trigger=trigger,
            action=action,
            result=EventResult.SUCCESS if error is None else EventResult.FAILURE,
            metrics=metrics,
            timestamp=started_at,
            duration=time.monotonic() - t0,
            previous_instances=previous,
            new_instances=new,
            error=str(error) if error is not None else None
        )
        self.event_log.append(event)

        if error is None:
            LOGGER.info("Scaled %s %s -> %s instances (%s)", component_id, previous, new, trigger)
        else:
            LOGGER.warning("Scaling %s for %s failed (%s): %s", event_type, component_id, trigger, error)

        result = ScalingResult(
            success=error is None,
            previous_instances=previous,
            new_instances=new,
            reason=trigger if error is None else f"{trigger}: {error}",
            metrics=metrics,
            estimated_cost=self.estimate_cost(new),
            event=event
        )
        return result, error

    def execute(
        self,
        component_id: str,
        decision: ScalingDecision,
        policy: ScalingPolicy,
        sample: ScalingMetrics
    ) -> ScalingResult:
        """
        Thực hiện scaling decision của một policy.

        Args:
            component_id: ID của component
            decision: ScalingDecision (SCALE_UP hoặc SCALE_DOWN)
            policy: Policy đã sinh ra decision
            sample: Metrics snapshot dùng để quyết định

        Returns:
            ScalingResult
        """
        if decision.action == ScaleAction.SCALE_UP:
            delta = policy.scale_up_step
        elif decision.action == ScaleAction.SCALE_DOWN:
            delta = -policy.scale_down_step
        else:
            raise ValueError(f"Cannot execute decision {decision.action.value}")

        def compute_target(current: int) -> int:
            return max(policy.min_instances, min(current + delta, policy.max_instances))

        trigger = f"Policy {policy.id}: {decision.reason}"

        with self.component_lock(component_id):
            result, error = self._apply(
                component_id, policy.id, trigger, compute_target, sample,
                event_type=decision.action.value
            )

        if error is None:
            self.notifier.notify('scaled', event=result.event)
        else:
            self.notifier.notify('scaling-failed', event=result.event, error=error)
        return result

    def manual_scale(
        self,
        component_id: str,
        target_instances: int,
        reason: str = "",
        sample: Optional[ScalingMetrics] = None
    ) -> ScalingResult:
        """
        Scale component tới số instances tuyệt đối theo yêu cầu của operator.

        Manual actions không thuộc policy nào nên không bị cooldown.

        Args:
            component_id: ID của component
            target_instances: Số instances mong muốn
            reason: Lý do (ghi vào event trigger)
            sample: Metrics snapshot hiện tại (optional)

        Returns:
            ScalingResult

        Raises:
            ConfigurationError: Nếu target_instances < 0
        """
        if target_instances < 0:
            raise ConfigurationError(f"target_instances must be >= 0 (got {target_instances})")

        trigger = f"Manual scaling: {reason}" if reason else "Manual scaling"

        with self.component_lock(component_id):
            result, error = self._apply(
                component_id, None, trigger, lambda _current: target_instances, sample
            )

        if error is None:
            self.notifier.notify('manual-scaling-completed', result=result)
        else:
            self.notifier.notify('manual-scaling-failed', result=result, error=error)
        return result

    def shutdown(self) -> None:
        if self._deadline_pool is not None:
            self._deadline_pool.shutdown(wait=True)
