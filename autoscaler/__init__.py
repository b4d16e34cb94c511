"""
COMPONENT AUTOSCALER
====================
Hệ thống tự động điều chỉnh số instances cho từng component
dựa trên load metrics, scaling policies và cooldown.

Modules:
- metrics: ScalingMetrics và MetricsWindow (time-bounded series)
- autoscaling: Policy engine, executor, event log, control loop, cost optimizer
- bottleneck: Phát hiện performance bottlenecks (cpu, memory, latency)
"""

__version__ = "1.0.0"
__author__ = "Autoscaling Analysis Team"
