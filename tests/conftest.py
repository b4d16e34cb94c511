"""
Shared fixtures cho test suite.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoscaler.autoscaling.executor import InMemoryProvisioner
from autoscaler.exceptions import ProvisioningError
from autoscaler.metrics import ScalingMetrics


class FakeClock:
    """Clock điều khiển được từ test."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FlakyProvisioner(InMemoryProvisioner):
    """InMemoryProvisioner có thể bật chế độ fail khi scale."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail = False
        self.calls = []

    def scale_component(self, component_id, target_instances):
        self.calls.append((component_id, target_instances))
        if self.fail:
            raise ProvisioningError("backend rejected request", component_id)
        super().scale_component(component_id, target_instances)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_sample(clock):
    """Factory tạo ScalingMetrics tại thời điểm hiện tại của clock."""
    def _make(cpu=50.0, memory=50.0, response_time=100.0, timestamp=None, **kwargs):
        return ScalingMetrics(
            timestamp=timestamp or clock(),
            cpu=cpu,
            memory=memory,
            response_time=response_time,
            **kwargs
        )
    return _make


@pytest.fixture
def provisioner():
    return FlakyProvisioner(default_instances=3)
