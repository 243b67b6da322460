"""Models for pairpush."""

from pairpush.models.health import HealthCheckResponse, HealthStatus, ServiceHealth
from pairpush.models.push import (
    DeviceRegisterRequest,
    DeviceToken,
    DispatchResponse,
    NotificationType,
    PushRequest,
    RegisterResponse,
)

__all__ = [
    "DeviceRegisterRequest",
    "DeviceToken",
    "DispatchResponse",
    "HealthCheckResponse",
    "HealthStatus",
    "NotificationType",
    "PushRequest",
    "RegisterResponse",
    "ServiceHealth",
]
