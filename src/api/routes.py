"""FastAPI routes for the Agent Fleet Dashboard API.

This module provides:
- /dashboard for the overview view (top 3 agents, 3 latest transactions)
- /dashboard/analytics for the analytics view (top 5 agents, 10 latest)
- /notifications for the warnings raised by degraded fetch cycles
- Health check endpoints integration
- CORS configuration
- Error handling

Each dashboard request runs a fetch cycle on the view's session. A request
naming a window is answered for that window. The response is always a
complete state, possibly all defaults when the analytics service is down.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.health import (
    ServiceStatus,
    create_health_service,
    get_health_service,
    set_health_service,
)
from src.config import settings
from src.dashboard.coordinator import FetchCoordinator
from src.dashboard.notifications import MemoryNotificationSink
from src.dashboard.session import DashboardSession, DashboardState
from src.dashboard.view_model import ANALYTICS_VIEW, OVERVIEW_VIEW, ViewProfile
from src.data.gateway import HttpSourceGateway, SourceGateway
from src.data.models import ReportingWindow
from src.logging_config import configure_logging

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(default=None, description="Detailed error information")


class NotificationOut(BaseModel):
    """A warning raised by a degraded fetch cycle."""

    level: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


# ============================================================================
# Application Setup
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    logger.info("application_starting")

    if get_health_service() is None:
        set_health_service(
            create_health_service(version=app.version, gateway=app.state.gateway)
        )

    yield

    logger.info("application_shutting_down")
    close = getattr(app.state.gateway, "close", None)
    if close is not None:
        await close()


OPENAPI_TAGS = [
    {
        "name": "Dashboard",
        "description": "Aggregated usage analytics and recent activity for the agent fleet.",
    },
    {
        "name": "Health",
        "description": "Health check endpoints for monitoring service status and readiness. "
        "Compatible with Kubernetes liveness and readiness probes.",
    },
]

API_DESCRIPTION = """
## Overview

The Agent Fleet Dashboard API aggregates overall analytics, the agent roster
and transaction history into render-ready dashboard state:

- **Stat cards**: total calls, success rate, resource cost, active agents
- **Top agents**: agents ranked by call count
- **Recent activity**: the latest transactions, normalized for display

When a source is unavailable the affected values fall back to zero or
empty, and the response carries a single `warning`.

## Quick Start

```bash
curl "http://localhost:8000/dashboard/analytics?window=7d"
```
"""


def create_app(
    title: str = "Agent Fleet Dashboard API",
    version: str = "1.0.0",
    description: str | None = None,
    cors_origins: list[str] | None = None,
    gateway: SourceGateway | None = None,
    notifier: MemoryNotificationSink | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        title: API title.
        version: API version.
        description: API description (uses default if not provided).
        cors_origins: Allowed CORS origins.
        gateway: Source gateway. Defaults to an HttpSourceGateway built
            from settings.
        notifier: Sink collecting degradation warnings.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title=title,
        version=version,
        description=description or API_DESCRIPTION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=OPENAPI_TAGS,
    )

    app.state.gateway = gateway or HttpSourceGateway()
    app.state.notifier = notifier or MemoryNotificationSink()
    app.state.sessions = {
        profile.name: _create_session(app.state.gateway, profile, app.state.notifier)
        for profile in (OVERVIEW_VIEW, ANALYTICS_VIEW)
    }

    # Configure CORS
    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add exception handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception  # noqa: ARG001
    ) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if app.debug else None,
            ).model_dump(),
        )

    register_routes(app)

    return app


def _create_session(
    gateway: SourceGateway,
    profile: ViewProfile,
    notifier: MemoryNotificationSink,
) -> DashboardSession:
    """Create the session backing one dashboard view."""
    coordinator = FetchCoordinator(gateway, transaction_limit=profile.activity_cap)
    return DashboardSession(
        coordinator,
        profile=profile,
        notifier=notifier,
        cost_unit=settings.COST_UNIT,
    )


async def _refresh(session: DashboardSession, window: ReportingWindow | None) -> DashboardState:
    """Run a cycle and return the state to render.

    A request naming a window always gets the state built for that
    window, even when an overlapping request superseded it. A request
    without one polls the current selection and, if superseded, gets
    the session's newer state.
    """
    if window is not None:
        return await session.render(window)
    state = await session.refresh()
    return state if state is not None else session.state


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """

    # Health endpoints
    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check."""
        health_service = get_health_service()
        if health_service:
            return await health_service.liveness()
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    @app.get("/health/live", tags=["Health"])
    async def liveness() -> dict[str, Any]:
        """Kubernetes-style liveness probe. Alias for /health."""
        return await health()

    @app.get("/health/ready", tags=["Health"])
    async def readiness() -> Any:
        """Full readiness check, including the analytics service."""
        health_service = get_health_service()
        if health_service:
            result = await health_service.readiness()
            status_code = 200 if result.status != ServiceStatus.NOT_READY else 503
            return JSONResponse(content=result.to_dict(), status_code=status_code)
        return {"status": "ready", "checks": {}, "timestamp": datetime.now(UTC).isoformat()}

    # Dashboard endpoints
    @app.get(
        "/dashboard",
        response_model=DashboardState,
        tags=["Dashboard"],
        responses={
            422: {"description": "Unknown reporting window"},
            500: {"description": "Internal error", "model": ErrorResponse},
        },
    )
    async def overview(
        window: ReportingWindow | None = Query(default=None, description="Reporting window"),
    ) -> DashboardState:
        """Overview dashboard: top 3 agents and the 3 latest transactions."""
        return await _refresh(app.state.sessions[OVERVIEW_VIEW.name], window)

    @app.get(
        "/dashboard/analytics",
        response_model=DashboardState,
        tags=["Dashboard"],
        responses={
            422: {"description": "Unknown reporting window"},
            500: {"description": "Internal error", "model": ErrorResponse},
        },
    )
    async def analytics(
        window: ReportingWindow | None = Query(default=None, description="Reporting window"),
    ) -> DashboardState:
        """Analytics dashboard: top 5 agents and the 10 latest transactions."""
        return await _refresh(app.state.sessions[ANALYTICS_VIEW.name], window)

    @app.get("/notifications", response_model=list[NotificationOut], tags=["Dashboard"])
    async def notifications(
        limit: int = Query(default=20, ge=1, le=100),
    ) -> list[dict[str, Any]]:
        """Most recent degradation warnings, newest first."""
        items = app.state.notifier.notifications[-limit:]
        return [item.to_dict() for item in reversed(items)]


# Default application instance for uvicorn: `uvicorn src.api.routes:app`
app = create_app()
