"""Health check endpoints support for monitoring and orchestration.

This module provides:
- /health (liveness): Basic check that the service is running
- /health/live (liveness): Alias for Kubernetes compatibility
- /health/ready (readiness): Reachability of the analytics service

A failing analytics service makes the process not ready, but the
dashboard endpoints keep answering with degraded, all-default data.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CHECK_TIMEOUT = 5.0


class HealthStatus(Enum):
    """Health status values."""

    OK = "ok"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ServiceStatus(Enum):
    """Overall service status."""

    READY = "ready"
    DEGRADED = "degraded"
    NOT_READY = "not_ready"


@dataclass
class ComponentCheck:
    """Result of a component health check.

    Attributes:
        name: Component name.
        status: Health status.
        latency_ms: Check latency in milliseconds.
        error: Error message if unhealthy.
    """

    name: str
    status: HealthStatus
    latency_ms: float
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.error:
            result["error"] = self.error
        return result


class HealthChecker:
    """Base class for component health checkers."""

    def __init__(self, name: str, timeout: float = DEFAULT_CHECK_TIMEOUT) -> None:
        """Initialize health checker.

        Args:
            name: Component name.
            timeout: Check timeout in seconds.
        """
        self.name = name
        self.timeout = timeout

    async def check(self) -> ComponentCheck:
        """Run health check, converting timeouts and errors to UNHEALTHY."""
        start = time.monotonic()
        try:
            status = await asyncio.wait_for(self._do_check(), timeout=self.timeout)
            return ComponentCheck(
                name=self.name,
                status=status,
                latency_ms=(time.monotonic() - start) * 1000,
            )
        except TimeoutError:
            return ComponentCheck(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.monotonic() - start) * 1000,
                error=f"Timeout after {self.timeout}s",
            )
        except Exception as e:
            return ComponentCheck(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.monotonic() - start) * 1000,
                error=str(e),
            )

    async def _do_check(self) -> HealthStatus:
        """Implement the actual health check.

        Returns:
            Health status; raising marks the component unhealthy.
        """
        raise NotImplementedError


class SourceGatewayHealthChecker(HealthChecker):
    """Health checker for the agent analytics service."""

    def __init__(self, gateway: Any, timeout: float = DEFAULT_CHECK_TIMEOUT) -> None:
        """Initialize the checker.

        Args:
            gateway: Gateway exposing an async ``ping()``.
            timeout: Check timeout.
        """
        super().__init__("analytics_service", timeout)
        self.gateway = gateway

    async def _do_check(self) -> HealthStatus:
        """Ping the analytics service."""
        await self.gateway.ping()
        return HealthStatus.OK


@dataclass
class HealthCheckResult:
    """Result of full health check.

    Attributes:
        status: Overall service status.
        checks: Individual component checks.
        timestamp: When the check was performed.
        version: Service version.
    """

    status: ServiceStatus
    checks: dict[str, dict[str, Any]]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    version: str = "1.0.0"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "checks": self.checks,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
        }


class HealthService:
    """Service for running health checks.

    Example:
        service = HealthService()
        service.register_checker(SourceGatewayHealthChecker(gateway))
        result = await service.readiness()
    """

    def __init__(self, version: str = "1.0.0") -> None:
        """Initialize health service.

        Args:
            version: Service version to include in responses.
        """
        self.version = version
        self._checkers: list[HealthChecker] = []

    def register_checker(self, checker: HealthChecker) -> None:
        """Register a health checker."""
        self._checkers.append(checker)
        logger.debug("health_checker_registered", name=checker.name)

    async def liveness(self) -> dict[str, Any]:
        """Basic liveness check. Does not check dependencies."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def readiness(self) -> HealthCheckResult:
        """Full readiness check.

        Checks all registered components in parallel.

        Returns:
            Comprehensive health check result.
        """
        results = await asyncio.gather(*(checker.check() for checker in self._checkers))

        checks = {result.name: result.to_dict() for result in results}
        statuses = {result.status for result in results}

        if HealthStatus.UNHEALTHY in statuses:
            status = ServiceStatus.NOT_READY
        elif HealthStatus.DEGRADED in statuses:
            status = ServiceStatus.DEGRADED
        else:
            status = ServiceStatus.READY

        logger.info(
            "health_check_completed",
            status=status.value,
            checks_count=len(checks),
        )

        return HealthCheckResult(status=status, checks=checks, version=self.version)


# Global health service instance
_health_service: HealthService | None = None


def get_health_service() -> HealthService | None:
    """Get the global health service instance."""
    return _health_service


def set_health_service(service: HealthService) -> None:
    """Set the global health service instance."""
    global _health_service
    _health_service = service


def reset_health_service() -> None:
    """Reset the global health service (for testing)."""
    global _health_service
    _health_service = None


def create_health_service(
    version: str = "1.0.0",
    gateway: Any | None = None,
    timeout: float = DEFAULT_CHECK_TIMEOUT,
) -> HealthService:
    """Create a health service with a checker for the analytics service.

    Args:
        version: Service version.
        gateway: Source gateway to ping; no checker is registered if None.
        timeout: Check timeout.

    Returns:
        Configured HealthService.
    """
    service = HealthService(version=version)
    if gateway is not None and hasattr(gateway, "ping"):
        service.register_checker(SourceGatewayHealthChecker(gateway, timeout=timeout))
    return service
