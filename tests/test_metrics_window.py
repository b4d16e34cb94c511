"""
Test Metrics Window
===================
Unit tests cho ScalingMetrics và MetricsWindow.
"""

import threading

import pytest
from datetime import datetime, timedelta, timezone
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoscaler.exceptions import EvaluationError
from autoscaler.metrics import MetricsWindow, ScalingMetrics


class TestScalingMetrics:
    """Test cases cho ScalingMetrics."""

    def test_value_by_field_name(self, make_sample):
        sample = make_sample(cpu=75, memory=60, response_time=250, queue_length=4)

        assert sample.value('cpu') == 75
        assert sample.value('memory') == 60
        assert sample.value('queue_length') == 4

    def test_value_accepts_camel_case(self, make_sample):
        sample = make_sample(response_time=1234, active_connections=12)

        assert sample.value('responseTime') == 1234
        assert sample.value('activeConnections') == 12

    def test_value_reads_extra_metrics(self, make_sample):
        sample = make_sample(extra={'gpu': 42.5})

        assert sample.value('gpu') == 42.5

    def test_unknown_metric_raises(self, make_sample):
        with pytest.raises(EvaluationError):
            make_sample().value('disk_io')

    def test_naive_timestamp_is_utc(self):
        sample = ScalingMetrics(
            timestamp=datetime(2024, 3, 1, 12, 0), cpu=1, memory=1, response_time=1
        )

        assert sample.timestamp.tzinfo == timezone.utc

    def test_immutable(self, make_sample):
        sample = make_sample()

        with pytest.raises(AttributeError):
            sample.cpu = 99


class TestMetricsWindow:
    """Test cases cho MetricsWindow."""

    @pytest.fixture
    def window(self, clock):
        return MetricsWindow(metrics_window=300, clock=clock)

    def test_latest_absent_for_unknown_component(self, window):
        assert window.latest('api') is None
        assert window.snapshot('api') == []
        assert window.components() == []

    def test_latest_is_last_appended(self, window, make_sample):
        window.add('api', make_sample(cpu=10))
        window.add('api', make_sample(cpu=20))

        assert window.latest('api').cpu == 20
        assert len(window.snapshot('api')) == 2

    def test_components_are_independent(self, window, make_sample):
        window.add('api', make_sample(cpu=10))
        window.add('worker', make_sample(cpu=90))

        assert sorted(window.components()) == ['api', 'worker']
        assert window.latest('api').cpu == 10
        assert window.latest('worker').cpu == 90

    def test_old_samples_trimmed_on_ingestion(self, window, clock, make_sample):
        window.add('api', make_sample(cpu=10))
        clock.advance(200)
        window.add('api', make_sample(cpu=20))
        clock.advance(200)
        window.add('api', make_sample(cpu=30))

        cutoff = clock() - timedelta(seconds=300)
        series = window.snapshot('api')

        assert [s.cpu for s in series] == [20, 30]
        assert all(s.timestamp >= cutoff for s in series)

    def test_sample_at_cutoff_is_kept(self, window, clock, make_sample):
        window.add('api', make_sample(cpu=10))
        clock.advance(300)
        window.add('api', make_sample(cpu=20))

        assert [s.cpu for s in window.snapshot('api')] == [10, 20]

    def test_out_of_order_old_sample_dropped(self, window, clock, make_sample):
        window.add('api', make_sample(cpu=10))
        window.add('api', make_sample(cpu=99, timestamp=clock() - timedelta(seconds=600)))

        assert [s.cpu for s in window.snapshot('api')] == [10]

    def test_duplicate_timestamps_accepted(self, window, make_sample):
        window.add('api', make_sample(cpu=10))
        window.add('api', make_sample(cpu=10))

        assert len(window.snapshot('api')) == 2

    def test_to_frame(self, window, make_sample):
        window.add('api', make_sample(cpu=10, memory=20, extra={'gpu': 5}))
        window.add('api', make_sample(cpu=30, memory=40))

        df = window.to_frame('api')

        assert len(df) == 2
        assert df['cpu'].mean() == 20
        assert 'gpu' in df.columns

    def test_to_frame_empty(self, window):
        assert window.to_frame('api').empty

    def test_concurrent_add_never_exposes_stale_samples(self, clock, make_sample):
        window = MetricsWindow(metrics_window=300, clock=clock)
        cutoff = clock() - timedelta(seconds=300)
        stale = clock() - timedelta(seconds=600)
        done = threading.Event()
        violations = []

        def reader():
            while not done.is_set():
                violations.extend(s for s in window.snapshot('api') if s.timestamp < cutoff)

        def writer(n):
            # Xen kẽ sample cũ hơn cửa sổ và sample mới
            for i in range(100):
                window.add('api', make_sample(cpu=n, timestamp=stale if i % 2 else None))

        readers = [threading.Thread(target=reader) for _ in range(2)]
        writers = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in readers + writers:
            t.start()
        for t in writers:
            t.join()
        done.set()
        for t in readers:
            t.join()

        assert violations == []
        series = window.snapshot('api')
        assert len(series) == 4 * 50
        assert sorted({s.cpu for s in series}) == [0, 1, 2, 3]


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
