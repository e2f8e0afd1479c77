"""View-model builder for the agent fleet dashboard.

Turns a raw ``SourceBundle`` into the render-ready structure consumed by
the presentation layer:
- Four stat cards (Total Calls, Success Rate, Total Resource Cost,
  Active Agents), in that order
- Top agents ranked by call count
- A bounded recent-activity feed with an explicit empty state

``build_view_model`` is pure. It performs no I/O, never mutates the
bundle and defines a fallback for every displayed value. An exception
raised from here is a defect and is left to propagate.
"""

import math
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from src.dashboard.coordinator import SourceBundle
from src.dashboard.primitives import (
    StatusBucket,
    Trend,
    classify_status,
    format_cost,
    format_count,
    format_delta,
    humanize_timestamp,
    parse_timestamp,
    percent,
    rank_by_call_count,
    trend_from_delta,
    truncate_address,
)
from src.data.models import Agent, ReportingWindow, TransactionRecord

DEFAULT_COST_UNIT = "SOMI"
EMPTY_ACTIVITY_MESSAGE = "No recent activity"
DEFAULT_FUNCTION_NAME = "Transaction"
UNKNOWN_STATUS = "unknown"


@dataclass(frozen=True)
class ViewProfile:
    """Caps applied by a dashboard view.

    Attributes:
        name: View identifier.
        top_agents_cap: Maximum number of ranked agents.
        activity_cap: Maximum number of activity items.
    """

    name: str
    top_agents_cap: int
    activity_cap: int


ANALYTICS_VIEW = ViewProfile(name="analytics", top_agents_cap=5, activity_cap=10)
OVERVIEW_VIEW = ViewProfile(name="overview", top_agents_cap=3, activity_cap=3)


class ViewModel(BaseModel):
    """Base for immutable view-model records."""

    model_config = ConfigDict(frozen=True)


class StatCard(ViewModel):
    """A headline metric card."""

    label: str
    value: str
    trend: Trend
    change: str


class TopAgentRow(ViewModel):
    """A row of the top-agents table.

    ``trend`` is always ``none`` and ``change`` always None: the roster
    carries no per-agent baseline to compare against.

    ``last_active`` is the agent's last update, or its creation time when
    it was never updated.
    """

    id: int | str
    name: str
    calls: int
    success_rate: float
    gas_used: str
    active: bool = False
    last_active: str | None = None
    trend: Trend = Trend.NONE
    change: float | None = None


class ActivityItem(ViewModel):
    """A normalized entry of the recent-activity feed.

    Attributes:
        id: Source identifier of the transaction.
        agent_id: Invoking agent, when known.
        function_name: Invoked function.
        status: Status as reported by the source.
        bucket: Display bucket derived from the status.
        short_address: Truncated initiating address, or "".
        timestamp: Resolved timestamp.
        relative_time: Human-readable age.
        timestamp_estimated: True when the source timestamp was unusable
            and ``timestamp`` is the build time instead.
    """

    id: int | str
    agent_id: int | str | None = None
    function_name: str
    status: str
    bucket: StatusBucket
    short_address: str
    timestamp: datetime
    relative_time: str
    timestamp_estimated: bool = False


class DashboardViewModel(ViewModel):
    """Render-ready dashboard state for one fetch cycle.

    Attributes:
        view: Name of the view profile the model was built for.
        window: Reporting window of the underlying cycle.
        stats: Stat cards in fixed order.
        top_agents: Ranked agents, at most the profile's cap.
        recent_activity: Activity feed in source order.
        activity_empty: Explicit no-activity state.
        empty_message: Guidance text when ``activity_empty`` is set.
        degraded_sources: Sources that failed during the cycle.
        skipped_records: Activity records dropped for lacking an identifier.
        generated_at: Build time used for relative timestamps.
    """

    view: str
    window: ReportingWindow
    stats: tuple[StatCard, ...]
    top_agents: tuple[TopAgentRow, ...]
    recent_activity: tuple[ActivityItem, ...]
    activity_empty: bool
    empty_message: str | None = None
    degraded_sources: tuple[str, ...] = ()
    skipped_records: int = 0
    generated_at: datetime


def build_view_model(
    bundle: SourceBundle,
    profile: ViewProfile = ANALYTICS_VIEW,
    *,
    now: datetime | None = None,
    cost_unit: str = DEFAULT_COST_UNIT,
) -> DashboardViewModel:
    """Build the dashboard view model from a fetch bundle.

    Args:
        bundle: Raw bundle from the fetch coordinator.
        profile: View caps to apply.
        now: Reference time for relative timestamps. Defaults to the
            current UTC time.
        cost_unit: Unit suffix for resource costs.

    Returns:
        Fully populated view model.
    """
    now = now or datetime.now(UTC)
    activity, skipped = build_activity_feed(
        bundle.transactions, profile.activity_cap, now=now
    )

    return DashboardViewModel(
        view=profile.name,
        window=bundle.window,
        stats=build_stat_cards(bundle, cost_unit=cost_unit),
        top_agents=build_top_agents(
            bundle.agents, profile.top_agents_cap, cost_unit=cost_unit
        ),
        recent_activity=activity,
        activity_empty=not activity,
        empty_message=None if activity else EMPTY_ACTIVITY_MESSAGE,
        degraded_sources=tuple(sorted(s.value for s in bundle.failed_sources)),
        skipped_records=skipped,
        generated_at=now,
    )


def build_stat_cards(
    bundle: SourceBundle, cost_unit: str = DEFAULT_COST_UNIT
) -> tuple[StatCard, ...]:
    """Compute the four headline cards.

    A card's trend follows the matching week-over-week delta in the
    snapshot. Without a delta the trend is ``none``.
    """
    analytics = bundle.analytics
    active = sum(1 for agent in bundle.agents if agent.active is True)

    return (
        StatCard(
            label="Total Calls",
            value=format_count(analytics.total_calls),
            trend=trend_from_delta(analytics.calls_growth_percent),
            change=format_delta(analytics.calls_growth_percent, "%"),
        ),
        StatCard(
            label="Success Rate",
            value=percent(analytics.success_rate, 1),
            trend=trend_from_delta(analytics.success_rate_growth),
            change=format_delta(analytics.success_rate_growth, "%"),
        ),
        StatCard(
            label="Total Resource Cost",
            value=format_cost(analytics.total_gas_used, cost_unit),
            trend=trend_from_delta(analytics.gas_growth),
            change=format_delta(analytics.gas_growth, f" {cost_unit}"),
        ),
        StatCard(
            label="Active Agents",
            value=str(active),
            trend=trend_from_delta(analytics.new_agents_this_week),
            change=f"{analytics.total_agents or len(bundle.agents)} total",
        ),
    )


def build_top_agents(
    agents: tuple[Agent, ...] | list[Agent],
    cap: int,
    cost_unit: str = DEFAULT_COST_UNIT,
) -> tuple[TopAgentRow, ...]:
    """Rank agents and map them to table rows."""
    rows = []
    for agent in rank_by_call_count(agents, cap):
        stats = agent.analytics
        success_rate = stats.success_rate if stats else None
        if success_rate is None or not math.isfinite(success_rate):
            success_rate = 0.0
        rows.append(
            TopAgentRow(
                id=agent.id,
                name=agent.name,
                calls=(stats.total_calls or 0) if stats else 0,
                success_rate=success_rate,
                gas_used=format_cost(stats.total_gas_used if stats else None, cost_unit),
                active=agent.active is True,
                last_active=agent.updated_at or agent.created_at,
            )
        )
    return tuple(rows)


def build_activity_feed(
    transactions: tuple[TransactionRecord, ...] | list[TransactionRecord],
    cap: int,
    now: datetime,
) -> tuple[tuple[ActivityItem, ...], int]:
    """Normalize the most recent transactions for display.

    The source order is kept. Records without an identifier are dropped
    rather than given a synthetic key.

    Returns:
        Tuple of (activity items, number of records dropped).
    """
    items = []
    skipped = 0

    for record in list(transactions)[: max(cap, 0)]:
        if record.id is None or record.id == "":
            skipped += 1
            continue

        moment = parse_timestamp(record.timestamp)
        items.append(
            ActivityItem(
                id=record.id,
                agent_id=record.agent_id,
                function_name=record.function_name or DEFAULT_FUNCTION_NAME,
                status=record.status or UNKNOWN_STATUS,
                bucket=classify_status(record.status),
                short_address=truncate_address(record.user_address),
                timestamp=moment or now,
                relative_time=humanize_timestamp(moment or now, now),
                timestamp_estimated=moment is None,
            )
        )

    return tuple(items), skipped
