"""Aggregation primitives for the dashboard view model.

Small stateless helpers used by the view-model builder:
- Ranking agents by activity
- Number, percentage and cost formatting
- Status classification (fail-closed)
- Address truncation
- Timestamp parsing and recency bucketing
- Trend derivation from a period-over-period delta

Every helper is total over its input domain: absent or malformed
values map to a defined fallback instead of raising.
"""

import math
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum

from src.data.models import Agent

DEFAULT_ADDRESS_PREFIX = 10
NO_BASELINE_TEXT = "No baseline"

# Statuses rendered as successful. Anything else renders as failed.
SUCCESS_STATUSES = frozenset({"success", "completed"})

# Epoch values above this are taken to be milliseconds
_EPOCH_MS_THRESHOLD = 1e11


class StatusBucket(str, Enum):
    """Visual bucket a transaction status is rendered in."""

    SUCCESS = "success"
    FAILED = "failed"


class Trend(str, Enum):
    """Direction of a period-over-period change."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"
    NONE = "none"  # No baseline to compare against


class RecencyBucket(Enum):
    """Coarse age buckets for activity timestamps."""

    JUST_NOW = "just_now"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    OLDER = "older"


# ============================================================================
# Ranking
# ============================================================================


def _call_count(agent: Agent) -> int:
    return (agent.analytics.total_calls or 0) if agent.analytics else 0


def rank_by_call_count(agents: Sequence[Agent], cap: int) -> list[Agent]:
    """Rank agents with recorded activity by call count.

    Agents without an ``analytics`` object are excluded. Ties keep their
    input order.

    Args:
        agents: Agent roster in source order.
        cap: Maximum number of agents to return.

    Returns:
        At most ``cap`` agents, highest call count first.

    Raises:
        ValueError: If cap is negative.
    """
    if cap < 0:
        raise ValueError(f"cap must be non-negative, got {cap}")

    eligible = [agent for agent in agents if agent.analytics is not None]
    # sorted() is stable, including with reverse=True
    return sorted(eligible, key=_call_count, reverse=True)[:cap]


# ============================================================================
# Formatting
# ============================================================================


def _is_missing(value: float | Decimal | None) -> bool:
    if value is None:
        return True
    if isinstance(value, Decimal):
        return not value.is_finite()
    return math.isnan(value) or math.isinf(value)


def percent(value: float | None, decimals: int = 1) -> str:
    """Format a number as a percentage string.

    Args:
        value: Percentage in the 0-100 range.
        decimals: Digits after the decimal point.

    Returns:
        Formatted percentage, ``'0%'`` when the value is absent.
    """
    if _is_missing(value):
        return "0%"
    return f"{value:.{decimals}f}%"


def format_count(value: int | float | None) -> str:
    """Format a count with thousands grouping ('1,247')."""
    if _is_missing(value):
        return "0"
    return f"{int(value):,}"


def _plain_number(value: float | Decimal) -> str:
    if isinstance(value, Decimal):
        return format(value, "f")
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_cost(value: float | Decimal | None, unit: str = "") -> str:
    """Format a resource cost with its unit suffix.

    Args:
        value: Cost amount.
        unit: Unit suffix (e.g. "SOMI").

    Returns:
        ``'<amount> <unit>'``, or ``'0'`` when the value is absent.
    """
    if _is_missing(value):
        return "0"
    amount = _plain_number(value)
    return f"{amount} {unit}" if unit else amount


def format_delta(delta: float | Decimal | None, suffix: str = "") -> str:
    """Format a signed period-over-period change ('+18%', '-0.5 SOMI').

    Returns ``NO_BASELINE_TEXT`` when there is nothing to compare against.
    """
    if _is_missing(delta):
        return NO_BASELINE_TEXT
    sign = "+" if delta >= 0 else "-"
    return f"{sign}{_plain_number(abs(delta))}{suffix}"


def trend_from_delta(delta: float | Decimal | None) -> Trend:
    """Derive a trend direction from a period-over-period delta."""
    if _is_missing(delta):
        return Trend.NONE
    if delta > 0:
        return Trend.UP
    if delta < 0:
        return Trend.DOWN
    return Trend.FLAT


def truncate_address(address: str | None, prefix_len: int = DEFAULT_ADDRESS_PREFIX) -> str:
    """Shorten an address to a fixed-length prefix.

    Args:
        address: Full address, possibly absent.
        prefix_len: Number of leading characters to keep.

    Returns:
        The prefix followed by '...', the address itself if it is
        already short enough, or an empty string when absent.
    """
    if not address:
        return ""
    if len(address) <= prefix_len:
        return address
    return f"{address[:prefix_len]}..."


# ============================================================================
# Status classification
# ============================================================================


def classify_status(raw: object) -> StatusBucket:
    """Map an open-ended status value onto a display bucket.

    Only values exactly in ``SUCCESS_STATUSES`` are successful; every
    other value, including None and 'pending', is a failure.
    """
    if isinstance(raw, str) and raw in SUCCESS_STATUSES:
        return StatusBucket.SUCCESS
    return StatusBucket.FAILED


# ============================================================================
# Timestamps
# ============================================================================


def parse_timestamp(raw: str | int | float | None) -> datetime | None:
    """Parse an ISO-8601 string or epoch value into an aware datetime.

    Epoch values may be seconds or milliseconds. Naive values are taken
    to be UTC.

    Returns:
        The parsed datetime, or None if the value cannot be interpreted.
    """
    if raw is None or isinstance(raw, bool):
        return None

    try:
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return None
            try:
                epoch = float(text)
            except ValueError:
                if text.endswith("Z"):
                    text = f"{text[:-1]}+00:00"
                parsed = datetime.fromisoformat(text)
            else:
                parsed = _from_epoch(epoch)
        else:
            parsed = _from_epoch(float(raw))
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _from_epoch(epoch: float) -> datetime:
    if math.isnan(epoch) or math.isinf(epoch):
        raise ValueError("epoch must be finite")
    if abs(epoch) > _EPOCH_MS_THRESHOLD:
        epoch /= 1000
    return datetime.fromtimestamp(epoch, tz=UTC)


def bucket_recency(moment: datetime, now: datetime) -> RecencyBucket:
    """Place a timestamp into a coarse age bucket relative to ``now``.

    Timestamps in the future count as just now.
    """
    age = now - moment
    if age < timedelta(minutes=1):
        return RecencyBucket.JUST_NOW
    if age < timedelta(hours=1):
        return RecencyBucket.MINUTES
    if age < timedelta(days=1):
        return RecencyBucket.HOURS
    if age < timedelta(days=7):
        return RecencyBucket.DAYS
    return RecencyBucket.OLDER


def humanize_timestamp(moment: datetime, now: datetime) -> str:
    """Render a timestamp relative to ``now`` ('12 min ago')."""
    age = now - moment
    bucket = bucket_recency(moment, now)

    if bucket is RecencyBucket.JUST_NOW:
        return "just now"
    if bucket is RecencyBucket.MINUTES:
        return f"{int(age.total_seconds() // 60)} min ago"
    if bucket is RecencyBucket.HOURS:
        return f"{int(age.total_seconds() // 3600)} h ago"
    if bucket is RecencyBucket.DAYS:
        return f"{age.days} d ago"
    return moment.strftime("%Y-%m-%d")
