"""Shared fixtures for dashboard tests."""

from datetime import UTC, datetime

import pytest

from src.data.models import Agent, AnalyticsSnapshot, TransactionRecord
from tests.fakes import FakeGateway

FIXED_NOW = datetime(2024, 10, 30, 12, 0, tzinfo=UTC)


@pytest.fixture
def fixed_now() -> datetime:
    """Reference time used for relative timestamps."""
    return FIXED_NOW


@pytest.fixture
def sample_analytics() -> AnalyticsSnapshot:
    """Snapshot with every counter populated."""
    return AnalyticsSnapshot.model_validate(
        {
            "totalCalls": 1247,
            "successRate": 98.46,
            "totalGasUsed": "2.4",
            "totalAgents": 4,
            "newAgentsThisWeek": 1,
            "callsGrowthPercent": 18,
            "successRateGrowth": -0.5,
            "gasGrowth": "0",
        }
    )


@pytest.fixture
def sample_agents() -> list[Agent]:
    """Roster with mixed activity and lifecycle flags."""
    return [
        Agent.model_validate(
            {
                "id": "a1",
                "name": "DeFi Staking Agent",
                "active": True,
                "analytics": {"totalCalls": 654, "successRate": 98.5, "totalGasUsed": "1.2"},
            }
        ),
        Agent.model_validate(
            {
                "id": "a2",
                "name": "NFT Marketplace Agent",
                "active": True,
                "analytics": {"totalCalls": 892, "successRate": 97.2, "totalGasUsed": "1.8"},
            }
        ),
        Agent.model_validate({"id": "a3", "name": "Idle Agent", "active": False}),
        Agent.model_validate(
            {
                "id": "a4",
                "name": "Token Swap Agent",
                "active": False,
                "analytics": {"totalCalls": 423},
            }
        ),
    ]


@pytest.fixture
def sample_transactions() -> list[TransactionRecord]:
    """Transaction history, most recent first."""
    return [
        TransactionRecord.model_validate(
            {
                "hash": "0xaaa1",
                "functionName": "stake",
                "userAddress": "0x1234567890abcdef",
                "status": "success",
                "createdAt": "2024-10-30T11:58:00Z",
            }
        ),
        TransactionRecord.model_validate(
            {
                "hash": "0xaaa2",
                "functionName": "unstake",
                "userAddress": "0x9999111122223333",
                "status": "failed",
                "createdAt": "2024-10-30T09:00:00Z",
            }
        ),
        TransactionRecord.model_validate(
            {
                "id": "tx-3",
                "functionName": "vote",
                "status": "pending",
                "createdAt": "not a date",
            }
        ),
    ]


@pytest.fixture
def fake_gateway(sample_analytics, sample_agents, sample_transactions) -> FakeGateway:
    """Gateway where every source succeeds."""
    return FakeGateway(
        analytics=sample_analytics,
        agents=sample_agents,
        transactions=sample_transactions,
    )
