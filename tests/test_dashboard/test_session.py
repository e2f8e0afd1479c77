"""Tests for DashboardSession refresh cycles."""

import asyncio
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from src.dashboard.coordinator import FetchCoordinator
from src.dashboard.notifications import MemoryNotificationSink, NotificationLevel
from src.dashboard.session import DEGRADED_WARNING, DashboardSession, default_window
from src.dashboard.view_model import OVERVIEW_VIEW
from src.data.gateway import GatewayAPIError
from src.data.models import Agent, AnalyticsSnapshot, ReportingWindow, TransactionRecord
from tests.fakes import FakeGateway, GatedGateway


def _session(gateway, fixed_now: datetime, **kwargs) -> tuple[DashboardSession, MemoryNotificationSink]:
    sink = MemoryNotificationSink()
    session = DashboardSession(
        FetchCoordinator(gateway),
        notifier=sink,
        clock=lambda: fixed_now,
        **kwargs,
    )
    return session, sink


class TestInitialState:
    """Tests for the state before the first cycle."""

    def test_initial_state_is_complete(self, fixed_now: datetime) -> None:
        """A new session should expose a loading, all-default state."""
        session, _ = _session(FakeGateway(), fixed_now, window=ReportingWindow.WEEK)

        state = session.state
        assert state.loading is True
        assert state.generation == 0
        assert state.window is ReportingWindow.WEEK
        assert state.view_model.stats[0].value == "0"
        assert state.view_model.activity_empty is True
        assert state.warning is None

    def test_default_window_from_settings(self, fixed_now: datetime) -> None:
        """Without an explicit window the configured default should be used."""
        with patch("src.dashboard.session.settings") as mock_settings:
            mock_settings.DEFAULT_WINDOW = "90d"
            mock_settings.COST_UNIT = "SOMI"
            session, _ = _session(FakeGateway(), fixed_now)

        assert session.window is ReportingWindow.QUARTER

    def test_invalid_default_window_falls_back(self) -> None:
        """An unknown configured window should fall back to 30 days."""
        with patch("src.dashboard.session.settings") as mock_settings:
            mock_settings.DEFAULT_WINDOW = "2y"
            assert default_window() is ReportingWindow.MONTH


class TestRefresh:
    """Tests for a single refresh cycle."""

    @pytest.mark.asyncio
    async def test_successful_cycle(self, fake_gateway: FakeGateway, fixed_now: datetime) -> None:
        """A healthy cycle should apply a full state with no warning."""
        session, sink = _session(fake_gateway, fixed_now)

        state = await session.refresh(ReportingWindow.MONTH)

        assert state is session.state
        assert state.loading is False
        assert state.generation == 1
        assert state.warning is None
        assert state.view_model.stats[0].value == "1,247"
        assert sink.notifications == []

    @pytest.mark.asyncio
    async def test_analytics_down_scenario(self, fixed_now: datetime) -> None:
        """Analytics failing should degrade the cards and warn exactly once."""
        gateway = FakeGateway(
            analytics=GatewayAPIError(503, "unavailable"),
            agents=[Agent.model_validate({"id": 1, "active": True})],
            transactions=[],
        )
        session, sink = _session(gateway, fixed_now)

        state = await session.refresh(ReportingWindow.MONTH)

        stats = {card.label: card.value for card in state.view_model.stats}
        assert stats["Total Calls"] == "0"
        assert stats["Active Agents"] == "1"
        assert state.view_model.activity_empty is True
        assert state.warning == DEGRADED_WARNING

        assert len(sink.notifications) == 1
        notification = sink.latest
        assert notification.level is NotificationLevel.WARNING
        assert notification.message == DEGRADED_WARNING
        assert notification.details == {"failed_sources": ["analytics"], "window": "30d"}

    @pytest.mark.asyncio
    async def test_single_warning_when_everything_fails(self, fixed_now: datetime) -> None:
        """Several failed sources in one cycle should still warn only once."""
        gateway = FakeGateway(
            analytics=RuntimeError("a"),
            agents=RuntimeError("b"),
            transactions=RuntimeError("c"),
        )
        session, sink = _session(gateway, fixed_now)

        state = await session.refresh()

        assert len(sink.notifications) == 1
        assert sink.latest.details["failed_sources"] == ["agents", "analytics", "transactions"]
        assert state.view_model.top_agents == ()

    @pytest.mark.asyncio
    async def test_each_degraded_cycle_warns(self, fixed_now: datetime) -> None:
        """Every applied degraded cycle should produce its own warning."""
        gateway = FakeGateway(analytics=RuntimeError("down"))
        session, sink = _session(gateway, fixed_now)

        await session.refresh()
        await session.refresh()

        assert len(sink.notifications) == 2

    @pytest.mark.asyncio
    async def test_recovery_clears_warning(
        self, fake_gateway: FakeGateway, sample_analytics, fixed_now: datetime
    ) -> None:
        """A healthy cycle after a degraded one should drop the warning."""
        fake_gateway.analytics = RuntimeError("down")
        session, _ = _session(fake_gateway, fixed_now)

        degraded = await session.refresh()
        fake_gateway.analytics = sample_analytics
        healthy = await session.refresh()

        assert degraded.warning == DEGRADED_WARNING
        assert healthy.warning is None
        assert healthy.view_model.degraded_sources == ()

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_break_cycle(self, fixed_now: datetime) -> None:
        """A failing notification sink should not prevent the state update."""
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("sink down")
        session = DashboardSession(
            FetchCoordinator(FakeGateway(agents=RuntimeError("down"))),
            notifier=notifier,
            clock=lambda: fixed_now,
        )

        state = await session.refresh()

        assert state.warning == DEGRADED_WARNING
        notifier.notify.assert_called_once()

    @pytest.mark.asyncio
    async def test_uses_profile_caps(self, fixed_now: datetime) -> None:
        """The session should build with its view profile."""
        agents = [Agent.model_validate({"id": i, "analytics": {"totalCalls": i}}) for i in range(6)]
        session = DashboardSession(
            FetchCoordinator(FakeGateway(agents=agents)),
            profile=OVERVIEW_VIEW,
            notifier=MemoryNotificationSink(),
            clock=lambda: fixed_now,
        )

        state = await session.refresh()

        assert state.view_model.view == "overview"
        assert [row.id for row in state.view_model.top_agents] == [5, 4, 3]

    @pytest.mark.asyncio
    async def test_logs_data_quality_issue(self, fixed_now: datetime) -> None:
        """Dropped records should be reported once per cycle."""
        gateway = FakeGateway(
            transactions=[
                TransactionRecord.model_validate({"functionName": "stake"}),
                TransactionRecord.model_validate({"functionName": "vote"}),
            ]
        )
        session, _ = _session(gateway, fixed_now)

        with patch.object(session, "_logger") as mock_logger:
            state = await session.refresh()

        assert state.view_model.skipped_records == 2
        warnings = [c for c in mock_logger.warning.call_args_list if c.args[0] == "data_quality_issue"]
        assert len(warnings) == 1
        assert warnings[0].kwargs["count"] == 2


class TestChangeWindow:
    """Tests for window selection."""

    @pytest.mark.asyncio
    async def test_accepts_enum_and_value(self, fake_gateway: FakeGateway, fixed_now: datetime) -> None:
        """Windows may be given as members or as their string value."""
        session, _ = _session(fake_gateway, fixed_now)

        first = await session.change_window(ReportingWindow.WEEK)
        second = await session.change_window("90d")

        assert first.window is ReportingWindow.WEEK
        assert second.window is ReportingWindow.QUARTER
        assert session.window is ReportingWindow.QUARTER

    @pytest.mark.asyncio
    async def test_unknown_window_rejected(self, fake_gateway: FakeGateway, fixed_now: datetime) -> None:
        """An unknown window should be rejected before any fetch."""
        session, _ = _session(fake_gateway, fixed_now)

        with pytest.raises(ValueError):
            await session.change_window("2y")

        assert fake_gateway.calls == []
        assert session.generation == 0

    @pytest.mark.asyncio
    async def test_superseded_result_is_discarded(self, fixed_now: datetime) -> None:
        """A slow response for an old window must not overwrite a newer one."""
        gateway = GatedGateway(
            {
                ReportingWindow.WEEK: AnalyticsSnapshot(total_calls=7),
                ReportingWindow.MONTH: AnalyticsSnapshot(total_calls=30),
            }
        )
        session, sink = _session(gateway, fixed_now)

        week = asyncio.create_task(session.change_window(ReportingWindow.WEEK))
        await asyncio.sleep(0)
        month = asyncio.create_task(session.change_window(ReportingWindow.MONTH))
        await asyncio.sleep(0)

        assert session.state.loading is True

        gateway.gates[ReportingWindow.MONTH].set()
        month_state = await month
        gateway.gates[ReportingWindow.WEEK].set()
        week_state = await week

        assert week_state is None
        assert month_state is not None
        assert session.state is month_state
        assert session.state.window is ReportingWindow.MONTH
        assert session.state.generation == 2
        assert session.state.view_model.stats[0].value == "30"
        assert session.state.loading is False
        assert sink.notifications == []

    @pytest.mark.asyncio
    async def test_stale_degraded_cycle_does_not_warn(self, fixed_now: datetime) -> None:
        """A discarded cycle should not produce a notification."""

        class FlakyGatedGateway(GatedGateway):
            async def get_agents(self):
                if self.calls[-1][1].get("window") is ReportingWindow.WEEK:
                    raise RuntimeError("agents down")
                return []

        gateway = FlakyGatedGateway(
            {
                ReportingWindow.WEEK: AnalyticsSnapshot(),
                ReportingWindow.MONTH: AnalyticsSnapshot(),
            }
        )
        session, sink = _session(gateway, fixed_now)

        week = asyncio.create_task(session.change_window(ReportingWindow.WEEK))
        await asyncio.sleep(0)
        month = asyncio.create_task(session.change_window(ReportingWindow.MONTH))
        await asyncio.sleep(0)

        gateway.gates[ReportingWindow.MONTH].set()
        await month
        gateway.gates[ReportingWindow.WEEK].set()
        assert await week is None

        assert sink.notifications == []
        assert session.state.warning is None


class TestRender:
    """Tests for DashboardSession.render."""

    @pytest.mark.asyncio
    async def test_superseded_caller_keeps_its_window(self, fixed_now: datetime) -> None:
        """An overlapped render should still answer for its own window."""
        gateway = GatedGateway(
            {
                ReportingWindow.WEEK: AnalyticsSnapshot(total_calls=7),
                ReportingWindow.YEAR: AnalyticsSnapshot(total_calls=365),
            }
        )
        session, sink = _session(gateway, fixed_now)

        week = asyncio.create_task(session.render(ReportingWindow.WEEK))
        await gateway.wait_for_calls(1)
        year = asyncio.create_task(session.render(ReportingWindow.YEAR))
        await gateway.wait_for_calls(2)

        gateway.gates[ReportingWindow.YEAR].set()
        year_state = await year
        gateway.gates[ReportingWindow.WEEK].set()
        week_state = await week

        assert week_state.window is ReportingWindow.WEEK
        assert week_state.view_model.stats[0].value == "7"
        assert week_state.generation == 1
        assert year_state.window is ReportingWindow.YEAR
        assert year_state.view_model.stats[0].value == "365"
        assert session.state is year_state
        assert session.window is ReportingWindow.YEAR
        assert sink.notifications == []

    @pytest.mark.asyncio
    async def test_superseded_degraded_render_warns(self, fixed_now: datetime) -> None:
        """A delivered stale cycle is seen by its caller, so it should warn once."""

        class FlakyGatedGateway(GatedGateway):
            async def get_agents(self):
                if self.calls[-1][1].get("window") is ReportingWindow.WEEK:
                    raise RuntimeError("agents down")
                return []

        gateway = FlakyGatedGateway(
            {
                ReportingWindow.WEEK: AnalyticsSnapshot(),
                ReportingWindow.MONTH: AnalyticsSnapshot(),
            }
        )
        session, sink = _session(gateway, fixed_now)

        week = asyncio.create_task(session.render(ReportingWindow.WEEK))
        await gateway.wait_for_calls(1)
        month = asyncio.create_task(session.render(ReportingWindow.MONTH))
        await gateway.wait_for_calls(2)

        gateway.gates[ReportingWindow.MONTH].set()
        await month
        gateway.gates[ReportingWindow.WEEK].set()
        week_state = await week

        assert week_state.warning == DEGRADED_WARNING
        assert session.state.warning is None
        assert len(sink.notifications) == 1
        assert sink.notifications[0].details["window"] == "7d"
