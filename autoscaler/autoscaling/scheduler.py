"""
Autoscaling Scheduler Module
============================
Control loop của autoscaler và facade cho ingestion / queries.

Mỗi tick:
    1. Với mỗi component có ít nhất một sample, đọc sample mới nhất
    2. Với mỗi policy đang enabled: PolicyEngine.evaluate
    3. Decision khác NONE -> ScalingExecutor.execute

Các components khác nhau được xử lý song song trên thread pool, các
actions của cùng một component chạy tuần tự. Loop không chờ kết quả:
component còn action đang chạy (vd provisioner call chậm) bị bỏ qua ở
các tick sau cho tới khi action đó xong, các components khác vẫn được
đánh giá bình thường. Lỗi của một cặp (component, policy) được log lại
và không dừng các cặp còn lại.

Usage:
    >>> scaler = AutoScaler(config, provisioner)
    >>> scaler.add_metrics('api', sample)
    >>> scaler.start()
    >>> ...
    >>> scaler.stop()
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..bottleneck.detector import BottleneckDetector, PerformanceBottleneck, Severity
from ..exceptions import EvaluationError, ProvisioningError
from ..metrics.window import MetricsWindow, ScalingMetrics, utcnow
from .cost_analyzer import CostOptimization, CostOptimizer
from .events import EventLog, ScalingEvent
from .executor import InMemoryProvisioner, Provisioner, ScalingExecutor, ScalingResult
from .notifier import Notifier, Observer
from .policy import PolicyEngine, ScalingPolicy

if TYPE_CHECKING:
    from ..config import AutoscalerConfig

LOGGER = logging.getLogger(__name__)

# Đánh dấu các threads đang chạy evaluation của một component
_worker_state = threading.local()


class PeriodicTask:
    """
    Cancellable periodic task chạy trên một background thread.

    stop() chờ lần chạy đang dở hoàn tất rồi mới return (trừ khi được
    gọi từ chính thread của task).
    """

    def __init__(self, interval: float, fn: Callable[[], Any], name: str = "periodic-task"):
        self.interval = interval
        self.fn = fn
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.fn()
            except Exception:
                LOGGER.exception("Periodic task '%s' failed", self.name)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        # Gọi từ chính fn: chỉ signal, loop tự thoát sau lần chạy hiện tại
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)


class AutoScaler:
    """
    Autoscaling control loop.

    State machine: stopped -> running -> stopped.

    Attributes:
        config: AutoscalerConfig
        window: MetricsWindow
        event_log: EventLog
        executor: ScalingExecutor
        detector: BottleneckDetector
        optimizer: CostOptimizer

    Example:
        >>> scaler = AutoScaler(AutoscalerConfig(policies=[cpu_policy]))
        >>> scaler.add_metrics('web', sample)
        >>> results = scaler.tick()
        >>> scaler.get_scaling_history('web')
    """

    def __init__(
        self,
        config: "AutoscalerConfig",
        provisioner: Provisioner = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = None,
        max_workers: int = 8
    ):
        """
        Khởi tạo autoscaler.

        Args:
            config: Cấu hình (được validate ngay)
            provisioner: Provisioner adapter (mặc định: InMemoryProvisioner)
            clock: Nguồn thời gian
            id_factory: Sinh event ids (mặc định: uuid)
            max_workers: Số components được scale song song mỗi tick
        """
        self.config = config.validate()
        self.provisioner = provisioner or InMemoryProvisioner()
        self.clock = clock

        self.notifier = Notifier()
        self.window = MetricsWindow(config.metrics_window, clock=clock)
        self.event_log = EventLog(config.max_events_per_component)
        self.policy_engine = PolicyEngine(clock=clock)

        executor_kwargs = {'id_factory': id_factory} if id_factory else {}
        self.executor = ScalingExecutor(
            self.provisioner,
            self.event_log,
            self.notifier,
            unit_cost_per_instance_hour=config.unit_cost_per_instance_hour,
            provisioner_timeout=config.provisioner_timeout,
            clock=clock,
            **executor_kwargs
        )
        self.detector = BottleneckDetector(self.window, clock=clock)
        self.optimizer = CostOptimizer(
            self.window, self.provisioner, config.unit_cost_per_instance_hour,
            instance_reader=self.executor.current_instances
        )

        self._policies: Dict[str, ScalingPolicy] = {p.id: p for p in config.policies}
        self._policies_lock = threading.Lock()

        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scaling")
        self._task: Optional[PeriodicTask] = None
        self._state_lock = threading.Lock()
        # component_id -> Future của evaluation đang chạy
        self._in_flight: Dict[str, Future] = {}
        self._dispatch_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Bắt đầu control loop (no-op nếu đang chạy)."""
        with self._state_lock:
            if self._task is not None:
                return
            self._task = PeriodicTask(
                self.config.evaluation_interval, self._dispatch, name="autoscaler-loop"
            )
            self._task.start()

        LOGGER.info(
            "Autoscaler started (interval=%ss, window=%ss, policies=%d)",
            self.config.evaluation_interval, self.config.metrics_window, len(self._policies)
        )
        self.notifier.notify('started')

    def stop(self) -> None:
        """
        Dừng control loop (no-op nếu đã dừng).

        Chờ các evaluations đang chạy hoàn tất. Nếu được gọi từ bên trong
        một evaluation (vd observer của 'scaled') thì chỉ signal loop dừng.
        """
        with self._state_lock:
            task, self._task = self._task, None
        if task is None:
            return

        task.stop()
        if not getattr(_worker_state, 'active', False):
            self._drain()

        LOGGER.info("Autoscaler stopped")
        self.notifier.notify('stopped')

    def close(self) -> None:
        """Dừng loop và giải phóng thread pools."""
        self.stop()
        self._pool.shutdown(wait=True)
        self.executor.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    def _evaluate_component(
        self,
        component_id: str,
        sample: ScalingMetrics,
        policies: List[ScalingPolicy]
    ) -> List[ScalingResult]:
        results = []

        for policy in policies:
            try:
                last_event = self.event_log.last_event(component_id, policy.id)
                decision = self.policy_engine.evaluate(policy, sample, last_event)
                if decision.is_action:
                    results.append(self.executor.execute(component_id, decision, policy, sample))
            except Exception as e:
                error = e if isinstance(e, EvaluationError) else EvaluationError(
                    f"Unexpected error: {e}", component_id, policy.id
                )
                LOGGER.error(
                    "Evaluation of policy %s for %s failed: %s",
                    policy.id, component_id, error, exc_info=True
                )
                self.notifier.notify(
                    'evaluation-failed', component_id=component_id,
                    policy_id=policy.id, error=error
                )

        return results

    def _run_component(
        self,
        component_id: str,
        sample: ScalingMetrics,
        policies: List[ScalingPolicy]
    ) -> List[ScalingResult]:
        _worker_state.active = True
        try:
            return self._evaluate_component(component_id, sample, policies)
        finally:
            _worker_state.active = False

    def _dispatch(self) -> Dict[str, Future]:
        """
        Submit evaluation cho mỗi component có sample, không chờ kết quả.

        Component có evaluation trước đó chưa xong bị bỏ qua ở lần này.

        Returns:
            Dict component_id -> Future của các evaluations vừa submit
        """
        with self._policies_lock:
            policies = [p for p in self._policies.values() if p.enabled]

        if not policies:
            return {}

        dispatched = {}
        with self._dispatch_lock:
            for component_id in self.window.components():
                running = self._in_flight.get(component_id)
                if running is not None and not running.done():
                    LOGGER.debug("Skipping %s: previous evaluation still in flight", component_id)
                    continue

                sample = self.window.latest(component_id)
                if sample is None:
                    continue

                future = self._pool.submit(self._run_component, component_id, sample, policies)
                self._in_flight[component_id] = future
                dispatched[component_id] = future

        return dispatched

    def _drain(self) -> None:
        with self._dispatch_lock:
            pending = [f for f in self._in_flight.values() if not f.done()]
        if pending:
            LOGGER.info("Waiting for %d in-flight evaluations", len(pending))
            wait(pending)

    def tick(self) -> List[ScalingResult]:
        """
        Chạy một vòng evaluation và chờ các components vừa được dispatch.

        Components còn evaluation từ lần trước đang chạy bị bỏ qua, nên
        một provisioner call chậm chỉ giữ lại component của nó.

        Returns:
            ScalingResults của các actions đã thực hiện trong tick
        """
        results = []
        for future in self._dispatch().values():
            results.extend(future.result())

        if results:
            LOGGER.debug("Tick completed with %d scaling actions", len(results))
        return results

    # ------------------------------------------------------------------
    # Ingestion & configuration
    # ------------------------------------------------------------------

    def add_metrics(self, component_id: str, sample: ScalingMetrics) -> None:
        """Ingest một sample cho component."""
        self.window.add(component_id, sample)
        self.notifier.notify('metrics-added', component_id=component_id, metrics=sample)

    def update_policy(self, policy: ScalingPolicy) -> None:
        """
        Upsert policy theo id.

        Raises:
            ConfigurationError: Nếu policy không hợp lệ
        """
        policy.validate()
        with self._policies_lock:
            self._policies[policy.id] = policy
        LOGGER.info("Policy %s updated (target=%s)", policy.id, policy.target_metric)

    def remove_policy(self, policy_id: str) -> bool:
        with self._policies_lock:
            removed = self._policies.pop(policy_id, None)
        if removed is not None:
            LOGGER.info("Policy %s removed", policy_id)
        return removed is not None

    def get_policies(self) -> List[ScalingPolicy]:
        with self._policies_lock:
            return list(self._policies.values())

    def subscribe(self, observer: Observer) -> None:
        self.notifier.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self.notifier.unsubscribe(observer)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_scaling_history(self, component_id: str) -> List[ScalingEvent]:
        return self.event_log.history(component_id)

    def detect_bottlenecks(self, component_id: str) -> List[PerformanceBottleneck]:
        return self.detector.detect(component_id)

    def get_system_bottlenecks(self) -> List[PerformanceBottleneck]:
        return self.detector.detect_all()

    def generate_cost_optimization(self, component_id: str = None) -> CostOptimization:
        """Cost optimization cho một component, hoặc toàn hệ thống nếu component_id là None."""
        if component_id is None:
            return self.optimizer.recommend_all()
        return self.optimizer.recommend(component_id)

    def manual_scale(self, component_id: str, target_instances: int, reason: str = "") -> ScalingResult:
        """Scale component tới số instances tuyệt đối (không qua policy)."""
        return self.executor.manual_scale(
            component_id, target_instances, reason, self.window.latest(component_id)
        )

    def get_scaling_status(self, component_id: str) -> Dict:
        """
        Trạng thái scaling của một component.

        Returns:
            Dict với latest_metrics, current_instances (None nếu provisioner lỗi),
            history, stats và bottlenecks
        """
        try:
            current_instances = self.executor.current_instances(component_id)
        except ProvisioningError as e:
            LOGGER.warning("Could not read instances of %s: %s", component_id, e)
            current_instances = None

        return {
            'component_id': component_id,
            'latest_metrics': self.window.latest(component_id),
            'current_instances': current_instances,
            'history': self.event_log.history(component_id),
            'stats': self.event_log.get_stats(component_id),
            'bottlenecks': self.detector.detect(component_id),
        }

    def get_system_health(self) -> Dict:
        """
        Tổng hợp sức khoẻ hệ thống.

        overall:
            - 'critical' nếu có bottleneck critical
            - 'warning' nếu có bottleneck bất kỳ
            - 'healthy' nếu không có
        """
        components = self.window.components()
        bottlenecks = self.detector.detect_all()

        latest = [s for s in (self.window.latest(c) for c in components) if s is not None]
        avg_cpu = sum(s.cpu for s in latest) / len(latest) if latest else 0.0
        avg_memory = sum(s.memory for s in latest) / len(latest) if latest else 0.0

        if any(b.severity == Severity.CRITICAL for b in bottlenecks):
            overall = 'critical'
        elif bottlenecks:
            overall = 'warning'
        else:
            overall = 'healthy'

        return {
            'overall': overall,
            'components': len(components),
            'active_alerts': sum(
                1 for b in bottlenecks if b.severity in (Severity.HIGH, Severity.CRITICAL)
            ),
            'bottlenecks': len(bottlenecks),
            'resource_utilization': {'cpu': avg_cpu, 'memory': avg_memory},
        }
