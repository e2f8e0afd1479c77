"""Dashboard session: refresh cycles with last-request-wins semantics.

This module provides:
- DashboardState: the object handed to the presentation layer
- DashboardSession: owns the selected reporting window, the current
  state and the request-generation counter

Every refresh takes a new generation number. A cycle's result is applied
only if its generation is still the latest issued when it arrives, so a
slow response for a superseded window can never overwrite a fresher one.
The current state is replaced as a whole, never patched field by field.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, ConfigDict

from src.config import settings
from src.dashboard.coordinator import FetchCoordinator, SourceBundle
from src.dashboard.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationLevel,
    NotificationSink,
)
from src.dashboard.view_model import (
    ANALYTICS_VIEW,
    DashboardViewModel,
    ViewProfile,
    build_view_model,
)
from src.data.models import ReportingWindow

logger = structlog.get_logger(__name__)

DEGRADED_WARNING = "Some dashboard data could not be loaded"


class DashboardState(BaseModel):
    """Render-ready state exposed to the presentation layer.

    Attributes:
        view_model: Fully built view model.
        loading: True while the latest issued cycle is in flight.
        window: Reporting window of ``view_model``.
        generation: Generation of the cycle that produced ``view_model``
            (0 before the first cycle completes).
        warning: Warning raised by that cycle, if it was degraded.
    """

    model_config = ConfigDict(frozen=True)

    view_model: DashboardViewModel
    loading: bool
    window: ReportingWindow
    generation: int
    warning: str | None = None


def default_window() -> ReportingWindow:
    """Window configured by DEFAULT_WINDOW, or 30 days if it is invalid."""
    try:
        return ReportingWindow(settings.DEFAULT_WINDOW)
    except ValueError:
        logger.warning("invalid_default_window", value=settings.DEFAULT_WINDOW)
        return ReportingWindow.MONTH


class DashboardSession:
    """Runs fetch cycles for one dashboard view.

    Example:
        session = DashboardSession(FetchCoordinator(gateway), OVERVIEW_VIEW)
        state = await session.change_window(ReportingWindow.WEEK)
        if state is not None and state.warning:
            print(state.warning)
    """

    def __init__(
        self,
        coordinator: FetchCoordinator,
        profile: ViewProfile = ANALYTICS_VIEW,
        notifier: NotificationSink | None = None,
        window: ReportingWindow | None = None,
        cost_unit: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            coordinator: Fetch coordinator for the view's sources.
            profile: View caps to build with.
            notifier: Sink for the per-cycle degradation warning.
            window: Initially selected window. Defaults to DEFAULT_WINDOW.
            cost_unit: Unit suffix for costs. Defaults to COST_UNIT.
            clock: Source of the current time (for tests).
        """
        self._coordinator = coordinator
        self._profile = profile
        self._notifier = notifier or LoggingNotificationSink()
        self._window = window or default_window()
        self._cost_unit = cost_unit or settings.COST_UNIT
        self._clock = clock or (lambda: datetime.now(UTC))
        self._generation = 0
        self._logger = logger.bind(component="dashboard_session", view=profile.name)

        self._state = DashboardState(
            view_model=build_view_model(
                SourceBundle.empty(self._window),
                profile,
                now=self._clock(),
                cost_unit=self._cost_unit,
            ),
            loading=True,
            window=self._window,
            generation=0,
        )

    @property
    def state(self) -> DashboardState:
        """Current state. Always complete, possibly all zeros."""
        return self._state

    @property
    def window(self) -> ReportingWindow:
        """Currently selected reporting window."""
        return self._window

    @property
    def profile(self) -> ViewProfile:
        """View caps this session builds with."""
        return self._profile

    @property
    def generation(self) -> int:
        """Generation of the most recently issued cycle."""
        return self._generation

    async def change_window(self, window: ReportingWindow | str) -> DashboardState | None:
        """Select a reporting window and refresh.

        Args:
            window: New window, as an enum member or its value ("7d").

        Returns:
            The applied state, or None if superseded before it arrived.

        Raises:
            ValueError: If ``window`` is not a known reporting window.
        """
        return await self.refresh(ReportingWindow(window))

    async def refresh(self, window: ReportingWindow | None = None) -> DashboardState | None:
        """Run a fetch cycle and apply it if it is still the latest.

        Args:
            window: Window to select first; keeps the current one if None.

        Returns:
            The applied state, or None if a newer cycle was issued while
            this one was in flight.
        """
        state, applied = await self._run_cycle(window, deliver_stale=False)
        return state if applied else None

    async def render(self, window: ReportingWindow) -> DashboardState:
        """Select ``window``, run a cycle and return the state built for it.

        The shared state follows the same last-request-wins rule as
        ``refresh``. A caller whose cycle is superseded still receives
        the state for the window it asked for, never another caller's.

        Args:
            window: Window to select and fetch.

        Returns:
            The state built by this cycle, applied or not.
        """
        state, _ = await self._run_cycle(window, deliver_stale=True)
        return state

    async def _run_cycle(
        self, window: ReportingWindow | None, deliver_stale: bool
    ) -> tuple[DashboardState, bool]:
        """Fetch and build one cycle, applying it only if still the latest.

        A superseded cycle is built and reported only when ``deliver_stale``
        is set. Returns the built state and whether it was applied.
        """
        if window is not None:
            self._window = window
        self._generation += 1
        generation = self._generation
        target = self._window

        if not self._state.loading:
            self._state = self._state.model_copy(update={"loading": True})

        bundle = await self._coordinator.fetch_bundle(target)

        stale = generation != self._generation
        if stale:
            self._logger.debug(
                "stale_result_discarded",
                generation=generation,
                latest_generation=self._generation,
                window=target.value,
                delivered=deliver_stale,
            )
            if not deliver_stale:
                return self._state, False

        view_model = build_view_model(
            bundle, self._profile, now=self._clock(), cost_unit=self._cost_unit
        )
        state = DashboardState(
            view_model=view_model,
            loading=False,
            window=target,
            generation=generation,
            warning=DEGRADED_WARNING if bundle.degraded else None,
        )
        if not stale:
            self._state = state

        self._logger.info(
            "view_model_built",
            generation=generation,
            window=target.value,
            applied=not stale,
            degraded_sources=list(view_model.degraded_sources),
        )
        if view_model.skipped_records:
            self._logger.warning(
                "data_quality_issue",
                issue="transaction_missing_identifier",
                count=view_model.skipped_records,
                generation=generation,
            )
        if bundle.degraded:
            self._notify_degraded(bundle)

        return state, not stale

    def _notify_degraded(self, bundle: SourceBundle) -> None:
        """Send the single warning for a degraded cycle."""
        sources = sorted(s.value for s in bundle.failed_sources)
        notification = Notification(
            level=NotificationLevel.WARNING,
            message=DEGRADED_WARNING,
            details={"failed_sources": sources, "window": bundle.window.value},
        )
        try:
            self._notifier.notify(notification)
        except Exception as e:
            self._logger.error("notification_failed", error=str(e))
