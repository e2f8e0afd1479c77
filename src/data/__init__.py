"""Data layer for the agent analytics service.

This module provides:
- HttpSourceGateway: Async client for the analytics REST API
- SourceGateway: Protocol the dashboard reads through
- Data models: AnalyticsSnapshot, Agent, TransactionRecord
"""

from src.data.gateway import HttpSourceGateway, SourceGateway
from src.data.models import (
    Agent,
    AgentAnalytics,
    AnalyticsSnapshot,
    ReportingWindow,
    TransactionRecord,
)

__all__ = [
    "Agent",
    "AgentAnalytics",
    "AnalyticsSnapshot",
    "HttpSourceGateway",
    "ReportingWindow",
    "SourceGateway",
    "TransactionRecord",
]
