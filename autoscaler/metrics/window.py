"""
Metrics Window Module
=====================
Module lưu trữ load metrics theo từng component trong một cửa sổ thời gian.

Mỗi lần ingest:
    1. Append sample vào series của component
    2. Loại bỏ mọi sample có timestamp < now - metrics_window

Hai bước trên chạy dưới cùng một lock, nên scheduler tick không bao giờ
thấy series đang append dở hoặc trim dở.

Usage:
    >>> window = MetricsWindow(metrics_window=300)
    >>> window.add('api', ScalingMetrics(timestamp=now, cpu=75, memory=60, response_time=200))
    >>> sample = window.latest('api')
"""

import re
import threading
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

import pandas as pd

from ..exceptions import EvaluationError


def utcnow() -> datetime:
    """Clock mặc định (timezone-aware UTC)."""
    return datetime.now(timezone.utc)


_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def _to_snake(name: str) -> str:
    return _CAMEL_RE.sub('_', name).lower()


@dataclass(frozen=True)
class ScalingMetrics:
    """
    Một sample load metrics của component.

    Attributes:
        timestamp: Thời điểm đo
        cpu: CPU usage (%)
        memory: Memory usage (%)
        response_time: Response time (ms)
        request_rate: Requests / giây
        error_rate: Error rate (%)
        active_connections: Số connections đang mở
        queue_length: Độ dài queue
        extra: Các metrics khác mà policy có thể target theo tên
    """
    timestamp: datetime
    cpu: float
    memory: float
    response_time: float
    request_rate: float = 0.0
    error_rate: float = 0.0
    active_connections: float = 0.0
    queue_length: float = 0.0
    extra: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        # Naive timestamps được coi là UTC
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, 'timestamp', self.timestamp.replace(tzinfo=timezone.utc))

    def value(self, name: str) -> float:
        """
        Đọc giá trị metric theo tên (snake_case hoặc camelCase).

        Args:
            name: Tên metric, vd 'cpu', 'responseTime', 'queue_length'

        Returns:
            Giá trị numeric

        Raises:
            EvaluationError: Nếu metric không tồn tại
        """
        if name in self.extra:
            return float(self.extra[name])

        attr = _to_snake(name)
        if attr in _NUMERIC_FIELDS:
            return float(getattr(self, attr))

        raise EvaluationError(f"Unknown metric '{name}'")

    def to_dict(self) -> Dict:
        """Flatten sample thành dict (extra metrics được merge vào)."""
        data = {f: getattr(self, f) for f in ('timestamp',) + _NUMERIC_FIELDS}
        data.update(self.extra)
        return data


_NUMERIC_FIELDS = tuple(
    f.name for f in fields(ScalingMetrics) if f.name not in ('timestamp', 'extra')
)


class MetricsWindow:
    """
    Time-bounded series của metrics cho từng component.

    Thread-safe: ingestion có thể đến đồng thời từ nhiều pollers.

    Attributes:
        metrics_window: Độ dài cửa sổ giữ lại (giây)
        clock: Hàm trả về thời điểm hiện tại

    Example:
        >>> window = MetricsWindow(metrics_window=300)
        >>> window.add('web', sample)
        >>> df = window.to_frame('web')
    """

    def __init__(
        self,
        metrics_window: float,
        clock: Callable[[], datetime] = utcnow
    ):
        self.metrics_window = metrics_window
        self.clock = clock

        self._series: Dict[str, List[ScalingMetrics]] = {}
        self._lock = threading.Lock()

    def add(self, component_id: str, sample: ScalingMetrics) -> None:
        """
        Append sample rồi trim các entries cũ hơn cửa sổ.

        Args:
            component_id: ID của component
            sample: ScalingMetrics
        """
        cutoff = self.clock() - timedelta(seconds=self.metrics_window)

        with self._lock:
            series = self._series.get(component_id, [])
            series.append(sample)
            # Filter toàn bộ series: samples có thể đến không theo thứ tự
            self._series[component_id] = [s for s in series if s.timestamp >= cutoff]

    def latest(self, component_id: str) -> Optional[ScalingMetrics]:
        """Sample được append gần nhất, hoặc None."""
        with self._lock:
            series = self._series.get(component_id)
            return series[-1] if series else None

    def snapshot(self, component_id: str) -> List[ScalingMetrics]:
        """Copy của series hiện tại."""
        with self._lock:
            return list(self._series.get(component_id, []))

    def components(self) -> List[str]:
        """Các components đang có ít nhất một sample."""
        with self._lock:
            return [cid for cid, series in self._series.items() if series]

    def to_frame(self, component_id: str) -> pd.DataFrame:
        """
        Series của component dưới dạng DataFrame.

        Returns:
            DataFrame với một row mỗi sample (thứ tự append), rỗng nếu chưa có data
        """
        samples = self.snapshot(component_id)
        if not samples:
            return pd.DataFrame()

        return pd.DataFrame([s.to_dict() for s in samples])
