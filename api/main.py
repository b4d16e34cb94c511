"""
FastAPI Application
===================
API endpoints cho Component Autoscaler.

Endpoints:
    - GET /health: Health check + system health summary
    - POST /components/{component_id}/metrics: Ingest metrics sample
    - GET /components/{component_id}/history: Scaling history
    - GET /components/{component_id}/status: Scaling status
    - GET /components/{component_id}/bottlenecks: Bottlenecks của component
    - GET /components/{component_id}/cost: Cost optimization của component
    - POST /components/{component_id}/scale: Manual scaling
    - GET /bottlenecks: System-wide bottlenecks
    - GET /cost: System-wide cost optimization
    - GET /policies, PUT /policies/{policy_id}, DELETE /policies/{policy_id}

Run:
    uvicorn api.main:app --reload --port 8000
"""

import logging
import os
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from autoscaler import __version__
from autoscaler.autoscaling import AutoScaler, ScalingPolicy
from autoscaler.autoscaling.cost_analyzer import CostOptimization
from autoscaler.autoscaling.events import ScalingEvent
from autoscaler.autoscaling.executor import ScalingResult
from autoscaler.bottleneck import PerformanceBottleneck
from autoscaler.config import AutoscalerConfig
from autoscaler.exceptions import ConfigurationError, ProvisioningError
from autoscaler.logging_setup import configure_logging
from autoscaler.metrics import ScalingMetrics

from api.schemas import (
    MetricsSample, MetricsAccepted,
    PolicySchema, PolicyResponse,
    ScalingEventResponse, ManualScaleRequest, ScalingResultResponse,
    BottleneckResponse, CostOptimizationResponse, CostRecommendationSchema,
    ComponentStatusResponse, ScalingStats, HealthResponse, ResourceUtilization
)

LOGGER = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helpers
# =============================================================================

def get_scaler(request: Request) -> AutoScaler:
    return request.app.state.scaler


def _event_response(event: ScalingEvent) -> ScalingEventResponse:
    return ScalingEventResponse(**event.to_dict())


def _bottleneck_response(b: PerformanceBottleneck) -> BottleneckResponse:
    return BottleneckResponse(
        type=b.type.value,
        severity=b.severity.value,
        description=b.description,
        affected_components=b.affected_components,
        recommendations=b.recommendations,
        detected_at=b.detected_at,
        resolved=b.resolved
    )


def _cost_response(opt: CostOptimization) -> CostOptimizationResponse:
    return CostOptimizationResponse(
        current_cost=opt.current_cost,
        projected_cost=opt.projected_cost,
        savings=opt.savings,
        recommendations=[
            CostRecommendationSchema(
                type=r.type,
                description=r.description,
                estimated_savings=r.estimated_savings,
                impact=r.impact,
                component_id=r.component_id
            )
            for r in opt.recommendations
        ]
    )


def _result_response(result: ScalingResult) -> ScalingResultResponse:
    return ScalingResultResponse(
        success=result.success,
        previous_instances=result.previous_instances,
        new_instances=result.new_instances,
        reason=result.reason,
        estimated_cost=result.estimated_cost,
        event=_event_response(result.event)
    )


def _policy_response(policy: ScalingPolicy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        target_metric=policy.target_metric,
        scale_up_threshold=policy.scale_up_threshold,
        scale_down_threshold=policy.scale_down_threshold,
        scale_up_step=policy.scale_up_step,
        scale_down_step=policy.scale_down_step,
        min_instances=policy.min_instances,
        max_instances=policy.max_instances,
        cooldown_period=policy.cooldown_period,
        enabled=policy.enabled,
        name=policy.name
    )


# =============================================================================
# Health Endpoint
# =============================================================================

@router.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check(request: Request):
    """
    Health check endpoint.

    Trả về trạng thái control loop và tổng hợp sức khoẻ các components.
    """
    scaler = get_scaler(request)
    health = scaler.get_system_health()

    return HealthResponse(
        status="healthy",
        running=scaler.is_running,
        overall=health['overall'],
        components=health['components'],
        active_alerts=health['active_alerts'],
        bottlenecks=health['bottlenecks'],
        resource_utilization=ResourceUtilization(**health['resource_utilization']),
        timestamp=datetime.now(timezone.utc),
        version=__version__
    )


# =============================================================================
# Metrics Endpoints
# =============================================================================

@router.post(
    "/components/{component_id}/metrics",
    response_model=MetricsAccepted,
    status_code=202,
    tags=["Metrics"]
)
def ingest_metrics(component_id: str, sample: MetricsSample, request: Request):
    """
    Ingest một metrics sample cho component.
    """
    scaler = get_scaler(request)
    metrics = ScalingMetrics(
        timestamp=sample.timestamp or scaler.clock(),
        cpu=sample.cpu,
        memory=sample.memory,
        response_time=sample.response_time,
        request_rate=sample.request_rate,
        error_rate=sample.error_rate,
        active_connections=sample.active_connections,
        queue_length=sample.queue_length,
        extra=dict(sample.extra)
    )
    scaler.add_metrics(component_id, metrics)

    return MetricsAccepted(
        component_id=component_id,
        timestamp=metrics.timestamp,
        samples_in_window=len(scaler.window.snapshot(component_id))
    )


# =============================================================================
# Scaling Endpoints
# =============================================================================

@router.get(
    "/components/{component_id}/history",
    response_model=List[ScalingEventResponse],
    tags=["Scaling"]
)
def scaling_history(component_id: str, request: Request):
    """Lịch sử scaling events của component."""
    return [_event_response(e) for e in get_scaler(request).get_scaling_history(component_id)]


@router.get(
    "/components/{component_id}/status",
    response_model=ComponentStatusResponse,
    tags=["Scaling"]
)
def component_status(component_id: str, request: Request):
    """Trạng thái scaling của component."""
    status = get_scaler(request).get_scaling_status(component_id)
    latest = status['latest_metrics']

    return ComponentStatusResponse(
        component_id=component_id,
        current_instances=status['current_instances'],
        latest_metrics=latest.to_dict() if latest else None,
        stats=ScalingStats(**status['stats']),
        history=[_event_response(e) for e in status['history']],
        bottlenecks=[_bottleneck_response(b) for b in status['bottlenecks']]
    )


@router.post(
    "/components/{component_id}/scale",
    response_model=ScalingResultResponse,
    tags=["Scaling"]
)
def manual_scale(component_id: str, body: ManualScaleRequest, request: Request):
    """
    Manual scaling tới số instances tuyệt đối.

    Provisioner failure được ghi vào history và trả về với success=False.
    """
    try:
        result = get_scaler(request).manual_scale(
            component_id, body.target_instances, body.reason
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return _result_response(result)


# =============================================================================
# Bottleneck & Cost Endpoints
# =============================================================================

@router.get(
    "/components/{component_id}/bottlenecks",
    response_model=List[BottleneckResponse],
    tags=["Analysis"]
)
def component_bottlenecks(component_id: str, request: Request):
    """Bottlenecks từ sample mới nhất của component."""
    return [_bottleneck_response(b) for b in get_scaler(request).detect_bottlenecks(component_id)]


@router.get("/bottlenecks", response_model=List[BottleneckResponse], tags=["Analysis"])
def system_bottlenecks(request: Request):
    """Bottlenecks của mọi component."""
    return [_bottleneck_response(b) for b in get_scaler(request).get_system_bottlenecks()]


@router.get(
    "/components/{component_id}/cost",
    response_model=CostOptimizationResponse,
    tags=["Analysis"]
)
def component_cost(component_id: str, request: Request):
    """Cost optimization cho component."""
    try:
        return _cost_response(get_scaler(request).generate_cost_optimization(component_id))
    except ProvisioningError as e:
        raise HTTPException(status_code=502, detail=f"Provisioner error: {e}")


@router.get("/cost", response_model=CostOptimizationResponse, tags=["Analysis"])
def system_cost(request: Request):
    """Cost optimization toàn hệ thống."""
    try:
        return _cost_response(get_scaler(request).generate_cost_optimization())
    except ProvisioningError as e:
        raise HTTPException(status_code=502, detail=f"Provisioner error: {e}")


# =============================================================================
# Policy Endpoints
# =============================================================================

@router.get("/policies", response_model=List[PolicyResponse], tags=["Policies"])
def list_policies(request: Request):
    """Liệt kê các scaling policies."""
    return [_policy_response(p) for p in get_scaler(request).get_policies()]


@router.put("/policies/{policy_id}", response_model=PolicyResponse, tags=["Policies"])
def upsert_policy(policy_id: str, body: PolicySchema, request: Request):
    """
    Tạo mới hoặc cập nhật policy theo id.

    Policy không hợp lệ (vd min_instances > max_instances) bị reject với 422.
    """
    policy = ScalingPolicy(id=policy_id, **body.model_dump())
    try:
        get_scaler(request).update_policy(policy)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return _policy_response(policy)


@router.delete("/policies/{policy_id}", status_code=204, tags=["Policies"])
def delete_policy(policy_id: str, request: Request):
    """Xoá policy."""
    if not get_scaler(request).remove_policy(policy_id):
        raise HTTPException(status_code=404, detail=f"Policy '{policy_id}' not found")


# =============================================================================
# App Configuration
# =============================================================================

def create_app(scaler: AutoScaler = None) -> FastAPI:
    """
    Tạo FastAPI app.

    Args:
        scaler: AutoScaler instance (mặc định: tạo từ environment)
    """
    app = FastAPI(
        title="Component Autoscaler API",
        description="""
    API cho hệ thống autoscaling các components.

    ## Features
    - **Metrics ingestion**: Nhận metrics từ monitoring adapters
    - **Policies**: Quản lý threshold scaling policies
    - **Scaling**: History, status và manual scaling
    - **Analysis**: Bottleneck detection và cost optimization
    """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.scaler = scaler or AutoScaler(AutoscalerConfig.from_env())
    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():
        """Start control loop khi startup."""
        LOGGER.info("Starting Component Autoscaler API...")
        app.state.scaler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Dừng control loop, chờ các evaluations đang chạy hoàn tất."""
        # close() join threads, không chạy trực tiếp trên event loop
        await run_in_threadpool(app.state.scaler.close)

    return app


configure_logging(os.environ.get("AUTOSCALER_LOG_LEVEL", "INFO"))
app = create_app()


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
