"""Shared fixtures for prediction engine tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest

from src.cycles.config_loader import PredictionConfig, load_prediction_config
from src.cycles.stores.memory import (
    InMemoryPeriodStore,
    InMemoryPredictionStore,
    InMemorySettingsProvider,
)
from src.models.cycles import FlowIntensity, PeriodRecord

# Canonical test user IDs
TEST_USER_ID = UUID("12345678-1234-5678-1234-567812345678")
OTHER_USER_ID = UUID("87654321-4321-8765-4321-876543218765")
TEST_DATE = date(2026, 2, 23)
TEST_NOW = datetime(2026, 2, 23, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_period(
    start: date,
    length: int | None = 5,
    flow: FlowIntensity = FlowIntensity.medium,
    user_id: UUID = TEST_USER_ID,
) -> PeriodRecord:
    """Build a period record; ``length=None`` leaves the end date open."""
    end = start + timedelta(days=length - 1) if length is not None else None
    return PeriodRecord(user_id=user_id, start_date=start, end_date=end, flow_intensity=flow)


def build_history(
    gaps: list[int],
    start: date = date(2025, 6, 2),
    period_length: int | None = 5,
    user_id: UUID = TEST_USER_ID,
) -> list[PeriodRecord]:
    """Build len(gaps) + 1 periods separated by the given cycle lengths."""
    periods = [make_period(start, period_length, user_id=user_id)]
    for gap in gaps:
        start += timedelta(days=gap)
        periods.append(make_period(start, period_length, user_id=user_id))
    return periods


class _AsyncContext:
    """Minimal async context manager returning a fixed value."""

    def __init__(self, value=None) -> None:
        self._value = value

    async def __aenter__(self):
        return self._value

    async def __aexit__(self, *exc) -> bool:
        return False


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def prediction_config() -> PredictionConfig:
    """Load the bundled prediction config."""
    return load_prediction_config()


@pytest.fixture
def fixed_clock():
    return lambda: TEST_NOW


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def period_store() -> InMemoryPeriodStore:
    return InMemoryPeriodStore()


@pytest.fixture
def prediction_store() -> InMemoryPredictionStore:
    return InMemoryPredictionStore()


@pytest.fixture
def settings_provider() -> InMemorySettingsProvider:
    return InMemorySettingsProvider()


@pytest.fixture
def mock_connection() -> MagicMock:
    """Mock asyncpg connection with an async transaction context."""
    conn = MagicMock()
    conn.transaction = MagicMock(return_value=_AsyncContext())
    conn.execute = AsyncMock(return_value="DELETE 0")
    conn.executemany = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def mock_pool(mock_connection: MagicMock) -> MagicMock:
    """Mock asyncpg pool whose ``acquire()`` yields ``mock_connection``."""
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=_AsyncContext(mock_connection))
    return pool
