"""
API Schemas
===========
Pydantic schemas cho FastAPI endpoints.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum


class HealthStatus(str, Enum):
    """Overall system health."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


# =============================================================================
# Metrics Schemas
# =============================================================================

class MetricsSample(BaseModel):
    """Một sample metrics được push bởi monitoring adapters."""
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Thời điểm đo (mặc định: thời điểm nhận)"
    )
    cpu: float = Field(ge=0, description="CPU usage (%)")
    memory: float = Field(ge=0, description="Memory usage (%)")
    response_time: float = Field(ge=0, description="Response time (ms)")
    request_rate: float = Field(default=0.0, ge=0)
    error_rate: float = Field(default=0.0, ge=0)
    active_connections: float = Field(default=0.0, ge=0)
    queue_length: float = Field(default=0.0, ge=0)
    extra: Dict[str, float] = Field(
        default_factory=dict,
        description="Các metrics khác mà policy có thể target theo tên"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "cpu": 85.0,
                "memory": 60.0,
                "response_time": 250.0,
                "request_rate": 120.0,
                "extra": {"gpu": 40.0}
            }
        }


class MetricsAccepted(BaseModel):
    """Response khi ingest metrics."""
    component_id: str
    timestamp: datetime
    samples_in_window: int


# =============================================================================
# Policy Schemas
# =============================================================================

class PolicySchema(BaseModel):
    """Scaling policy."""
    target_metric: str = Field(min_length=1, description="Tên metric, vd 'cpu'")
    scale_up_threshold: float = 80.0
    scale_down_threshold: float = 30.0
    scale_up_step: int = Field(default=1, ge=1)
    scale_down_step: int = Field(default=1, ge=1)
    min_instances: int = Field(default=1, ge=0)
    max_instances: int = Field(default=10, ge=0)
    cooldown_period: float = Field(default=300.0, ge=0, description="Cooldown (giây)")
    enabled: bool = True
    name: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "target_metric": "cpu",
                "scale_up_threshold": 80,
                "scale_down_threshold": 30,
                "scale_up_step": 2,
                "scale_down_step": 1,
                "min_instances": 1,
                "max_instances": 10,
                "cooldown_period": 300,
                "enabled": True
            }
        }


class PolicyResponse(PolicySchema):
    """Policy kèm id."""
    id: str


# =============================================================================
# Scaling Schemas
# =============================================================================

class ScalingEventResponse(BaseModel):
    """Một scaling event trong history."""
    id: str
    type: str
    component_id: str
    policy_id: Optional[str]
    trigger: str
    action: str
    result: str
    timestamp: datetime
    duration: float
    previous_instances: int
    new_instances: int
    error: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None


class ManualScaleRequest(BaseModel):
    """Request cho manual scaling."""
    target_instances: int = Field(ge=0, description="Số instances mong muốn")
    reason: str = Field(default="", description="Lý do scale")

    class Config:
        json_schema_extra = {
            "example": {
                "target_instances": 5,
                "reason": "Load testing preparation"
            }
        }


class ScalingResultResponse(BaseModel):
    """Kết quả của một scaling action."""
    success: bool
    previous_instances: int
    new_instances: int
    reason: str
    estimated_cost: float
    event: ScalingEventResponse


# =============================================================================
# Bottleneck & Cost Schemas
# =============================================================================

class BottleneckResponse(BaseModel):
    """Performance bottleneck."""
    type: str
    severity: str
    description: str
    affected_components: List[str]
    recommendations: List[str]
    detected_at: datetime
    resolved: bool


class CostRecommendationSchema(BaseModel):
    """Cost recommendation."""
    type: str
    description: str
    estimated_savings: float
    impact: str
    component_id: Optional[str] = None


class CostOptimizationResponse(BaseModel):
    """Cost model ($/giờ) và recommendations."""
    current_cost: float
    projected_cost: float
    savings: float
    recommendations: List[CostRecommendationSchema]


# =============================================================================
# Status Schemas
# =============================================================================

class ScalingStats(BaseModel):
    total_events: int
    scale_up_count: int
    scale_down_count: int
    failure_count: int


class ComponentStatusResponse(BaseModel):
    """Trạng thái scaling của một component."""
    component_id: str
    current_instances: Optional[int]
    latest_metrics: Optional[Dict[str, Any]]
    stats: ScalingStats
    history: List[ScalingEventResponse]
    bottlenecks: List[BottleneckResponse]


class ResourceUtilization(BaseModel):
    cpu: float
    memory: float


class HealthResponse(BaseModel):
    """Response cho health check."""
    status: str
    running: bool
    overall: HealthStatus
    components: int
    active_alerts: int
    bottlenecks: int
    resource_utilization: ResourceUtilization
    timestamp: datetime
    version: str
