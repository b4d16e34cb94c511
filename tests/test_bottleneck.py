"""
Test Bottleneck Detector
========================
Unit tests cho BottleneckDetector.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoscaler.bottleneck import BottleneckDetector, BottleneckType, Severity
from autoscaler.metrics import MetricsWindow


class TestBottleneckDetector:
    """Test cases cho BottleneckDetector."""

    @pytest.fixture
    def window(self, clock):
        return MetricsWindow(metrics_window=300, clock=clock)

    @pytest.fixture
    def detector(self, window, clock):
        return BottleneckDetector(window, clock=clock)

    def detect_one(self, detector, window, make_sample, **metrics):
        window.add('api', make_sample(**metrics))
        return detector.detect('api')

    def test_no_samples(self, detector):
        assert detector.detect('api') == []

    @pytest.mark.parametrize('cpu, expected', [
        (79, None),
        (80, None),
        (81, Severity.HIGH),
        (94.9, Severity.HIGH),
        (95, Severity.CRITICAL),
        (96, Severity.CRITICAL),
    ])
    def test_cpu_thresholds(self, detector, window, make_sample, cpu, expected):
        found = [b for b in self.detect_one(detector, window, make_sample, cpu=cpu)
                 if b.type == BottleneckType.CPU]

        if expected is None:
            assert found == []
        else:
            assert [b.severity for b in found] == [expected]

    @pytest.mark.parametrize('memory, expected', [
        (85, None),
        (86, Severity.HIGH),
        (95, Severity.HIGH),
        (96, Severity.CRITICAL),
    ])
    def test_memory_thresholds(self, detector, window, make_sample, memory, expected):
        found = [b for b in self.detect_one(detector, window, make_sample, memory=memory)
                 if b.type == BottleneckType.MEMORY]

        if expected is None:
            assert found == []
        else:
            assert [b.severity for b in found] == [expected]

    @pytest.mark.parametrize('response_time, expected', [
        (2000, None),
        (2500, Severity.MEDIUM),
        (5000, Severity.MEDIUM),
        (5001, Severity.CRITICAL),
    ])
    def test_response_time_thresholds(self, detector, window, make_sample, response_time, expected):
        found = [b for b in self.detect_one(detector, window, make_sample, response_time=response_time)
                 if b.type == BottleneckType.NETWORK]

        if expected is None:
            assert found == []
        else:
            assert [b.severity for b in found] == [expected]

    def test_multiple_bottlenecks_ranked(self, detector, window, make_sample, clock):
        found = self.detect_one(
            detector, window, make_sample, cpu=85, memory=97, response_time=3000
        )

        assert [b.type for b in found] == [
            BottleneckType.MEMORY, BottleneckType.CPU, BottleneckType.NETWORK
        ]
        for b in found:
            assert b.resolved is False
            assert b.affected_components == ['api']
            assert b.recommendations
            assert b.detected_at == clock()

    def test_uses_latest_sample_only(self, detector, window, make_sample):
        window.add('api', make_sample(cpu=99))
        window.add('api', make_sample(cpu=10))

        assert detector.detect('api') == []

    def test_detect_all(self, detector, window, make_sample):
        window.add('api', make_sample(cpu=85))
        window.add('worker', make_sample(cpu=99))
        window.add('idle', make_sample(cpu=5))

        found = detector.detect_all()

        assert [b.affected_components for b in found] == [['worker'], ['api']]
        assert found[0].severity == Severity.CRITICAL


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
