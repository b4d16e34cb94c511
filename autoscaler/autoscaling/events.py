"""
Scaling Events Module
=====================
Append-only history của scaling events, index theo component.

EventLog được dùng cho:
    - Cooldown lookup: event cuối của mỗi (component, policy)
    - Audit: lịch sử scaling theo component

History mỗi component được giới hạn bởi max_events_per_component;
event cuối của từng (component, policy) được giữ riêng nên việc trim
history không làm mất cooldown.
"""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Dict, List, Optional, Tuple

import pandas as pd

from ..metrics.window import ScalingMetrics


class EventResult:
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ScalingEvent:
    """Record của một scaling event (immutable)."""
    id: str
    type: str  # 'scale-up' hoặc 'scale-down'
    component_id: str
    policy_id: Optional[str]  # None cho manual scaling
    trigger: str
    action: str
    result: str  # 'success' hoặc 'failure'
    metrics: Optional[ScalingMetrics]
    timestamp: datetime
    duration: float  # seconds
    previous_instances: int
    new_instances: int
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result == EventResult.SUCCESS

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'type': self.type,
            'component_id': self.component_id,
            'policy_id': self.policy_id,
            'trigger': self.trigger,
            'action': self.action,
            'result': self.result,
            'timestamp': self.timestamp,
            'duration': self.duration,
            'previous_instances': self.previous_instances,
            'new_instances': self.new_instances,
            'error': self.error,
            'metrics': self.metrics.to_dict() if self.metrics else None,
        }


class EventLog:
    """
    Component-indexed, append-only log của ScalingEvents.

    Attributes:
        max_events_per_component: Số events giữ lại mỗi component
    """

    def __init__(self, max_events_per_component: int = 1000):
        self.max_events_per_component = max_events_per_component

        self._events: Dict[str, Deque[ScalingEvent]] = {}
        self._last: Dict[Tuple[str, Optional[str]], ScalingEvent] = {}
        self._lock = threading.Lock()

    def append(self, event: ScalingEvent) -> None:
        """Thêm event vào cuối history của component."""
        with self._lock:
            events = self._events.get(event.component_id)
            if events is None:
                events = deque(maxlen=self.max_events_per_component)
                self._events[event.component_id] = events
            events.append(event)
            self._last[(event.component_id, event.policy_id)] = event

    def last_event(self, component_id: str, policy_id: str) -> Optional[ScalingEvent]:
        """Event cuối của (component, policy), hoặc None."""
        with self._lock:
            return self._last.get((component_id, policy_id))

    def history(self, component_id: str) -> List[ScalingEvent]:
        """Copy history của component theo thứ tự insertion."""
        with self._lock:
            return list(self._events.get(component_id, ()))

    def to_frame(self, component_id: str) -> pd.DataFrame:
        """Lấy history dưới dạng DataFrame."""
        history = self.history(component_id)
        if not history:
            return pd.DataFrame()

        return pd.DataFrame([
            {k: v for k, v in e.to_dict().items() if k != 'metrics'}
            for e in history
        ])

    def get_stats(self, component_id: str) -> Dict:
        """Lấy thống kê về scaling của component."""
        history_df = self.to_frame(component_id)

        if len(history_df) == 0:
            return {
                'total_events': 0,
                'scale_up_count': 0,
                'scale_down_count': 0,
                'failure_count': 0
            }

        return {
            'total_events': len(history_df),
            'scale_up_count': int((history_df['type'] == 'scale-up').sum()),
            'scale_down_count': int((history_df['type'] == 'scale-down').sum()),
            'failure_count': int((history_df['result'] == EventResult.FAILURE).sum())
        }
