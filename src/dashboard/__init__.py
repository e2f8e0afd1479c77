"""Dashboard aggregation pipeline.

This module contains:
- Fetch coordinator that isolates per-source failures
- View-model builder and its aggregation primitives
- Session with last-request-wins refresh semantics
- Notification sinks for degraded fetch cycles
"""

from src.dashboard.coordinator import FetchCoordinator, SourceBundle, SourceName
from src.dashboard.notifications import (
    LoggingNotificationSink,
    MemoryNotificationSink,
    Notification,
    NotificationLevel,
    NotificationSink,
)
from src.dashboard.primitives import (
    RecencyBucket,
    StatusBucket,
    Trend,
    classify_status,
    percent,
    rank_by_call_count,
    truncate_address,
)
from src.dashboard.session import DashboardSession, DashboardState
from src.dashboard.view_model import (
    ANALYTICS_VIEW,
    OVERVIEW_VIEW,
    ActivityItem,
    DashboardViewModel,
    StatCard,
    TopAgentRow,
    ViewProfile,
    build_view_model,
)

__all__ = [
    # Coordinator
    "FetchCoordinator",
    "SourceBundle",
    "SourceName",
    # Notifications
    "LoggingNotificationSink",
    "MemoryNotificationSink",
    "Notification",
    "NotificationLevel",
    "NotificationSink",
    # Primitives
    "RecencyBucket",
    "StatusBucket",
    "Trend",
    "classify_status",
    "percent",
    "rank_by_call_count",
    "truncate_address",
    # Session
    "DashboardSession",
    "DashboardState",
    # View model
    "ANALYTICS_VIEW",
    "OVERVIEW_VIEW",
    "ActivityItem",
    "DashboardViewModel",
    "StatCard",
    "TopAgentRow",
    "ViewProfile",
    "build_view_model",
]
