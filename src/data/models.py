"""Data models for the agent analytics service.

This module defines the Pydantic models for the three payloads the
dashboard reads: the overall analytics snapshot, the agent roster and
the transaction history. Every model is immutable once parsed, accepts
the service's camelCase keys and ignores keys it does not know about.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ReportingWindow(str, Enum):
    """Reporting windows selectable on the dashboard."""

    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"


class SourceModel(BaseModel):
    """Base configuration shared by all source payload models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class AnalyticsSnapshot(SourceModel):
    """Aggregate counters for a reporting window.

    Every field is optional: an empty snapshot is what a failed
    analytics fetch degrades to.

    Attributes:
        total_calls: Total agent invocations in the window.
        success_rate: Percentage of successful invocations (0-100).
        total_gas_used: Total resource cost, kept at the service's precision.
        total_agents: Roster size as counted by the service.
        new_agents_this_week: Agents registered in the last seven days.
        calls_growth_percent: Week-over-week change in call volume (%).
        success_rate_growth: Week-over-week change in success rate (points).
        gas_growth: Week-over-week change in resource cost.
    """

    total_calls: int | None = None
    success_rate: float | None = None
    total_gas_used: Decimal | None = None
    total_agents: int | None = None
    new_agents_this_week: int | None = None
    calls_growth_percent: float | None = None
    success_rate_growth: float | None = None
    gas_growth: Decimal | None = None

    @property
    def is_empty(self) -> bool:
        """Check whether no counter was supplied."""
        return all(getattr(self, name) is None for name in type(self).model_fields)


class AgentAnalytics(SourceModel):
    """Activity counters recorded for a single agent."""

    total_calls: int | None = None
    success_rate: float | None = None
    total_gas_used: Decimal | None = None


class Agent(SourceModel):
    """An agent in the fleet roster.

    Attributes:
        id: Service-assigned identifier.
        name: Display name.
        active: Lifecycle flag.
        analytics: Activity counters, absent when the agent has never run.
        created_at: Creation timestamp as sent by the service.
        updated_at: Last update timestamp as sent by the service.
    """

    id: int | str
    name: str = ""
    active: bool = False
    analytics: AgentAnalytics | None = None
    created_at: str | None = None
    updated_at: str | None = None


class TransactionRecord(SourceModel):
    """One observed agent invocation.

    The service has used several key names for the same fields over
    time; all of them are accepted. The timestamp is kept raw and only
    interpreted when the feed is rendered.
    """

    id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("hash", "txHash", "id")
    )
    function_name: str | None = Field(
        default=None, validation_alias=AliasChoices("functionName", "function_name", "type")
    )
    user_address: str | None = Field(
        default=None, validation_alias=AliasChoices("userAddress", "user_address", "from")
    )
    agent_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("agentId", "agent_id", "agent")
    )
    status: str | None = None
    timestamp: str | int | float | None = Field(
        default=None, validation_alias=AliasChoices("createdAt", "timestamp", "created_at")
    )

    @model_validator(mode="before")
    @classmethod
    def _status_from_success_flag(cls, data: Any) -> Any:
        """Derive ``status`` from the legacy boolean ``success`` key."""
        if isinstance(data, dict) and data.get("status") is None and "success" in data:
            data = {**data, "status": "success" if data["success"] is True else "failed"}
        return data

    @field_validator("status", mode="before")
    @classmethod
    def _status_as_text(cls, value: Any) -> Any:
        """Keep non-string statuses as text so they render as failures."""
        if value is None or isinstance(value, str):
            return value
        return str(value)
