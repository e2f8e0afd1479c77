"""FastAPI routes for the Agent Fleet Dashboard API.

This module contains:
- Dashboard endpoints (overview and analytics views)
- Health check endpoints
- Response models
"""

from src.api.health import (
    ComponentCheck,
    HealthChecker,
    HealthCheckResult,
    HealthService,
    HealthStatus,
    ServiceStatus,
    SourceGatewayHealthChecker,
    create_health_service,
    get_health_service,
    reset_health_service,
    set_health_service,
)
from src.api.routes import ErrorResponse, NotificationOut, app, create_app

__all__ = [
    # Health check classes
    "ComponentCheck",
    "HealthCheckResult",
    "HealthChecker",
    "HealthService",
    "SourceGatewayHealthChecker",
    # Health check enums
    "HealthStatus",
    "ServiceStatus",
    # Health service factory and global instance
    "create_health_service",
    "get_health_service",
    "reset_health_service",
    "set_health_service",
    # Response models
    "ErrorResponse",
    "NotificationOut",
    # App factory and instance
    "app",
    "create_app",
]
