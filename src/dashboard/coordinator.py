"""Partial-failure fetch coordinator.

This module provides:
- SourceName: the three independent dashboard sources
- SourceBundle: the best-effort result of one fetch cycle
- FetchCoordinator: issues the source calls concurrently and isolates
  each call's failure

A failing source never fails, delays or nulls out the others. It is
replaced by its neutral default and recorded in ``failed_sources``.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

import structlog

from src.data.gateway import SourceGateway
from src.data.models import Agent, AnalyticsSnapshot, ReportingWindow, TransactionRecord

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SourceName(str, Enum):
    """Independent data sources feeding the dashboard."""

    ANALYTICS = "analytics"
    AGENTS = "agents"
    TRANSACTIONS = "transactions"


@dataclass(frozen=True)
class SourceBundle:
    """Raw, possibly degraded data from one fetch cycle.

    Attributes:
        window: Reporting window the cycle was issued for.
        analytics: Overall snapshot; empty when the source failed.
        agents: Agent roster in source order; empty when the source failed.
        transactions: Transaction history, most recent first.
        failed_sources: Sources that raised during the cycle.
    """

    window: ReportingWindow
    analytics: AnalyticsSnapshot = field(default_factory=AnalyticsSnapshot)
    agents: tuple[Agent, ...] = ()
    transactions: tuple[TransactionRecord, ...] = ()
    failed_sources: frozenset[SourceName] = frozenset()

    @property
    def degraded(self) -> bool:
        """Check if any source failed during the cycle."""
        return bool(self.failed_sources)

    @classmethod
    def empty(cls, window: ReportingWindow) -> "SourceBundle":
        """Create the bundle shown before the first cycle completes."""
        return cls(window=window)


class FetchCoordinator:
    """Fetches all dashboard sources concurrently with isolated failures.

    The coordinator never raises for a source failure and never retries;
    retrying belongs to the gateway.

    Example:
        coordinator = FetchCoordinator(gateway)
        bundle = await coordinator.fetch_bundle(ReportingWindow.WEEK)
        if bundle.degraded:
            print(f"Missing: {sorted(s.value for s in bundle.failed_sources)}")
    """

    def __init__(
        self,
        gateway: SourceGateway,
        transaction_limit: int | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            gateway: Source gateway to read from.
            transaction_limit: Optional limit passed to the history call.
        """
        self._gateway = gateway
        self._transaction_limit = transaction_limit
        self._logger = logger.bind(component="fetch_coordinator")

    async def fetch_bundle(self, window: ReportingWindow) -> SourceBundle:
        """Run one fetch cycle.

        Args:
            window: Reporting window to fetch for.

        Returns:
            Bundle holding whatever succeeded, with defaults elsewhere.
        """
        failed: set[SourceName] = set()

        analytics, agents, transactions = await asyncio.gather(
            self._guarded(
                SourceName.ANALYTICS,
                lambda: self._gateway.get_overall_analytics(window),
                AnalyticsSnapshot(),
                failed,
            ),
            self._guarded(SourceName.AGENTS, self._gateway.get_agents, [], failed),
            self._guarded(
                SourceName.TRANSACTIONS,
                lambda: self._gateway.get_transaction_history(
                    window, self._transaction_limit
                ),
                [],
                failed,
            ),
        )

        bundle = SourceBundle(
            window=window,
            analytics=analytics if analytics is not None else AnalyticsSnapshot(),
            agents=tuple(agents or ()),
            transactions=tuple(transactions or ()),
            failed_sources=frozenset(failed),
        )

        self._logger.info(
            "bundle_fetched",
            window=window.value,
            agents=len(bundle.agents),
            transactions=len(bundle.transactions),
            failed_sources=sorted(s.value for s in bundle.failed_sources),
        )
        return bundle

    async def _guarded(
        self,
        source: SourceName,
        call: Callable[[], Awaitable[T]],
        default: T,
        failed: set[SourceName],
    ) -> T:
        """Await a source call, substituting ``default`` if it raises."""
        try:
            return await call()
        except Exception as e:
            failed.add(source)
            self._logger.warning(
                "source_fetch_failed",
                source=source.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            return default
