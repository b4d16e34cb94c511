"""
Test API
========
Tests cho FastAPI endpoints.
"""

import pytest
from fastapi.testclient import TestClient
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.main import create_app
from autoscaler.autoscaling import AutoScaler, ScalingPolicy
from autoscaler.config import AutoscalerConfig


@pytest.fixture
def scaler(provisioner, clock):
    config = AutoscalerConfig(
        metrics_window=600,
        policies=[ScalingPolicy(
            id='cpu-policy', target_metric='cpu', scale_up_threshold=80,
            scale_down_threshold=30, scale_up_step=2, cooldown_period=300
        )]
    )
    scaler = AutoScaler(config, provisioner, clock=clock)
    yield scaler
    scaler.close()


@pytest.fixture
def client(scaler):
    return TestClient(create_app(scaler))


def post_metrics(client, component_id, **metrics):
    body = {'cpu': 50, 'memory': 50, 'response_time': 100}
    body.update(metrics)
    return client.post(f"/components/{component_id}/metrics", json=body)


class TestMetricsEndpoints:
    """Test cases cho metrics ingestion."""

    def test_ingest_metrics(self, client, scaler):
        response = post_metrics(client, 'api', cpu=85, extra={'gpu': 10})

        assert response.status_code == 202
        assert response.json()['samples_in_window'] == 1
        assert scaler.window.latest('api').cpu == 85
        assert scaler.window.latest('api').value('gpu') == 10

    def test_ingest_rejects_negative(self, client):
        response = post_metrics(client, 'api', cpu=-5)
        assert response.status_code == 422


class TestScalingEndpoints:
    """Test cases cho history, status và manual scaling."""

    def test_history_after_tick(self, client, scaler):
        post_metrics(client, 'api', cpu=85)
        scaler.tick()

        response = client.get("/components/api/history")

        assert response.status_code == 200
        events = response.json()
        assert len(events) == 1
        assert events[0]['type'] == 'scale-up'
        assert events[0]['previous_instances'] == 3
        assert events[0]['new_instances'] == 5
        assert events[0]['metrics']['cpu'] == 85

    def test_status(self, client, scaler):
        post_metrics(client, 'api', cpu=85)

        body = client.get("/components/api/status").json()

        assert body['current_instances'] == 3
        assert body['latest_metrics']['cpu'] == 85
        assert body['bottlenecks'][0]['severity'] == 'high'

    def test_manual_scale(self, client):
        response = client.post(
            "/components/api/scale",
            json={'target_instances': 5, 'reason': 'Load testing preparation'}
        )

        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        assert body['new_instances'] == 5
        assert 'Load testing preparation' in body['reason']

    def test_manual_scale_failure(self, client, provisioner):
        provisioner.fail = True

        body = client.post("/components/api/scale", json={'target_instances': 5}).json()

        assert body['success'] is False
        assert body['event']['result'] == 'failure'


class TestAnalysisEndpoints:
    """Test cases cho bottleneck và cost endpoints."""

    def test_bottlenecks(self, client):
        post_metrics(client, 'api', cpu=96, response_time=6000)

        component = client.get("/components/api/bottlenecks").json()
        system = client.get("/bottlenecks").json()

        assert {b['type'] for b in component} == {'cpu', 'network'}
        assert all(b['severity'] == 'critical' for b in component)
        assert len(system) == 2

    def test_cost(self, client):
        post_metrics(client, 'api', cpu=20, memory=25)

        body = client.get("/components/api/cost").json()

        assert body['current_cost'] == pytest.approx(0.30)
        assert body['savings'] == pytest.approx(0.09)
        assert body['recommendations'][0]['type'] == 'downsize'
        assert client.get("/cost").json()['projected_cost'] == pytest.approx(0.21)

    def test_health(self, client):
        post_metrics(client, 'api', cpu=98)

        body = client.get("/health").json()

        assert body['overall'] == 'critical'
        assert body['components'] == 1
        assert body['running'] is False

    def test_provisioner_error_maps_to_502(self, client, provisioner, monkeypatch):
        def broken(component_id):
            raise RuntimeError("backend down")

        monkeypatch.setattr(provisioner, 'get_current_instances', broken)
        post_metrics(client, 'api', cpu=20)

        assert client.get("/components/api/cost").status_code == 502
        assert client.get("/cost").status_code == 502
        assert client.get("/components/api/status").json()['current_instances'] is None


class TestLifecycle:
    """Test cases cho startup / shutdown của app."""

    def test_startup_starts_and_shutdown_stops_loop(self, scaler):
        with TestClient(create_app(scaler)) as client:
            assert scaler.is_running is True
            assert client.get("/health").json()['running'] is True

        assert scaler.is_running is False


class TestPolicyEndpoints:
    """Test cases cho policy management."""

    def test_list_policies(self, client):
        policies = client.get("/policies").json()
        assert [p['id'] for p in policies] == ['cpu-policy']

    def test_upsert_policy(self, client, scaler):
        response = client.put("/policies/memory-policy", json={
            'target_metric': 'memory',
            'scale_up_threshold': 85,
            'min_instances': 2,
            'max_instances': 8
        })

        assert response.status_code == 200
        assert response.json()['id'] == 'memory-policy'
        assert {p.id for p in scaler.get_policies()} == {'cpu-policy', 'memory-policy'}

    def test_upsert_invalid_policy(self, client, scaler):
        response = client.put("/policies/cpu-policy", json={
            'target_metric': 'cpu',
            'min_instances': 5,
            'max_instances': 2
        })

        assert response.status_code == 422
        assert scaler.get_policies()[0].max_instances == 10

    def test_delete_policy(self, client, scaler):
        assert client.delete("/policies/cpu-policy").status_code == 204
        assert scaler.get_policies() == []
        assert client.delete("/policies/cpu-policy").status_code == 404


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
