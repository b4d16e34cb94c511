"""
Exceptions
==========
Error taxonomy cho autoscaler.

- ConfigurationError: policy/config không hợp lệ, bị reject khi upsert
- ProvisioningError: provisioner adapter không đọc/đổi được instance count
- EvaluationError: lỗi bất ngờ khi tính decision cho một (component, policy)
"""


class AutoscalerError(Exception):
    """Base class cho mọi lỗi của autoscaler."""


class ConfigurationError(AutoscalerError, ValueError):
    """Policy hoặc config không hợp lệ."""


class ProvisioningError(AutoscalerError):
    """Provisioner adapter fail (backend reject hoặc timeout)."""

    def __init__(self, message: str, component_id: str = None):
        super().__init__(message)
        self.component_id = component_id


class EvaluationError(AutoscalerError):
    """Lỗi khi evaluate một cặp (component, policy)."""

    def __init__(self, message: str, component_id: str = None, policy_id: str = None):
        super().__init__(message)
        self.component_id = component_id
        self.policy_id = policy_id
