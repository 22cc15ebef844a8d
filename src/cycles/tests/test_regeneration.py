"""Tests for prediction regeneration after period history changes."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Sequence
from uuid import UUID

import pytest

from src.cycles.config_loader import PredictionConfig
from src.cycles.generator import PredictionGenerator
from src.cycles.regeneration import RegenerationOrchestrator
from src.cycles.stores.memory import (
    InMemoryPeriodStore,
    InMemoryPredictionStore,
    InMemorySettingsProvider,
)
from src.cycles.tests.conftest import (
    OTHER_USER_ID,
    TEST_DATE,
    TEST_USER_ID,
    build_history,
    make_period,
)
from src.models.cycles import (
    CycleSettings,
    Prediction,
    PredictionAlgorithm,
    PredictionType,
)


def stored_prediction(start: date, prediction_type: PredictionType = PredictionType.period) -> Prediction:
    return Prediction(
        user_id=TEST_USER_ID,
        type=prediction_type,
        start_date=start,
        end_date=start + timedelta(days=4),
        confidence=50,
        algorithm=PredictionAlgorithm.weighted_average,
    )


def comparable(predictions: Sequence[Prediction]) -> list[dict]:
    return [p.model_dump(exclude={"created_at", "updated_at"}) for p in predictions]


@pytest.fixture
def orchestrator(
    prediction_config: PredictionConfig,
    period_store: InMemoryPeriodStore,
    prediction_store: InMemoryPredictionStore,
    settings_provider: InMemorySettingsProvider,
    fixed_clock,
) -> RegenerationOrchestrator:
    return RegenerationOrchestrator(
        period_store=period_store,
        prediction_store=prediction_store,
        settings_provider=settings_provider,
        generator=PredictionGenerator(prediction_config),
        clock=fixed_clock,
    )


class SlowPredictionStore(InMemoryPredictionStore):
    """Prediction store that yields mid-replace and records overlap per user."""

    def __init__(self) -> None:
        super().__init__()
        self.active: dict[UUID, int] = {}
        self.max_active_same_user = 0
        self.max_active_total = 0

    async def replace_future(
        self, user_id: UUID, as_of: date, predictions: Sequence[Prediction]
    ) -> int:
        self.active[user_id] = self.active.get(user_id, 0) + 1
        self.max_active_same_user = max(self.max_active_same_user, self.active[user_id])
        self.max_active_total = max(self.max_active_total, sum(self.active.values()))
        try:
            deleted = await self.delete_future(user_id, as_of)
            await asyncio.sleep(0.01)
            for prediction in predictions:
                await self.upsert(prediction)
                await asyncio.sleep(0)
            return deleted
        finally:
            self.active[user_id] -= 1


class FailingPeriodStore(InMemoryPeriodStore):
    async def list_periods(self, user_id: UUID):
        raise ConnectionError("period store unreachable")


# ---------------------------------------------------------------------------
# regenerate
# ---------------------------------------------------------------------------


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_writes_generated_batch(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        prediction_store: InMemoryPredictionStore,
    ) -> None:
        for period in build_history([28, 29, 27], start=date(2025, 12, 15)):
            period_store.add(period)

        batch = await orchestrator.regenerate(TEST_USER_ID)

        assert len(batch) == 5
        stored = await prediction_store.query_future(TEST_USER_ID, TEST_DATE)
        assert comparable(stored) == comparable(
            sorted(batch, key=lambda p: (p.start_date, p.type.value))
        )

    @pytest.mark.asyncio
    async def test_empty_history_anchors_on_clock(
        self,
        orchestrator: RegenerationOrchestrator,
        prediction_store: InMemoryPredictionStore,
    ) -> None:
        batch = await orchestrator.regenerate(TEST_USER_ID)
        assert len(batch) == 3
        period = next(p for p in batch if p.type == PredictionType.period)
        assert period.start_date == TEST_DATE + timedelta(days=28)
        assert len(prediction_store) == 3

    @pytest.mark.asyncio
    async def test_historical_predictions_untouched(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        prediction_store: InMemoryPredictionStore,
    ) -> None:
        past = stored_prediction(TEST_DATE - timedelta(days=3))
        await prediction_store.upsert(past)
        period_store.add(make_period(date(2026, 2, 15)))

        await orchestrator.regenerate(TEST_USER_ID)

        everything = prediction_store.all_for_user(TEST_USER_ID)
        assert everything[0] == past
        assert len(everything) == 4

    @pytest.mark.asyncio
    async def test_past_dated_batch_entries_not_written(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        prediction_store: InMemoryPredictionStore,
    ) -> None:
        # Next period 2026-02-26 puts ovulation (02-12) and the fertile window before today
        for period in build_history([28], start=date(2026, 1, 1)):
            period_store.add(period)
        past = Prediction(
            user_id=TEST_USER_ID,
            type=PredictionType.ovulation,
            start_date=date(2026, 2, 12),
            confidence=50,
            algorithm=PredictionAlgorithm.calendar,
            metadata={"note": "historical"},
        )
        await prediction_store.upsert(past)

        batch = await orchestrator.regenerate(TEST_USER_ID)

        assert [p.type for p in batch] == [PredictionType.period] * 3
        assert all(p.start_date >= TEST_DATE for p in batch)
        everything = prediction_store.all_for_user(TEST_USER_ID)
        assert everything[0] == past
        assert len(everything) == 4

    @pytest.mark.asyncio
    async def test_stale_future_predictions_removed(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        prediction_store: InMemoryPredictionStore,
    ) -> None:
        stale = stored_prediction(TEST_DATE + timedelta(days=200))
        await prediction_store.upsert(stale)
        for period in build_history([28, 28], start=date(2026, 1, 1)):
            period_store.add(period)

        await orchestrator.regenerate(TEST_USER_ID)

        stored = await prediction_store.query_future(TEST_USER_ID, TEST_DATE)
        assert stale.start_date not in {p.start_date for p in stored}
        assert len(stored) == 5

    @pytest.mark.asyncio
    async def test_idempotent(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        prediction_store: InMemoryPredictionStore,
    ) -> None:
        for period in build_history([30, 26, 29], start=date(2025, 11, 1)):
            period_store.add(period)

        await orchestrator.regenerate(TEST_USER_ID)
        first = await prediction_store.query_future(TEST_USER_ID, TEST_DATE)
        await orchestrator.regenerate(TEST_USER_ID)
        second = await prediction_store.query_future(TEST_USER_ID, TEST_DATE)

        assert comparable(first) == comparable(second)

    @pytest.mark.asyncio
    async def test_history_change_moves_predictions(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
    ) -> None:
        for period in build_history([28], start=date(2026, 1, 20)):
            period_store.add(period)
        before = await orchestrator.regenerate(TEST_USER_ID)

        period_store.add(make_period(date(2026, 3, 20)))
        after = await orchestrator.regenerate(TEST_USER_ID)

        assert after[0].start_date != before[0].start_date
        assert len(await orchestrator.get_predictions(TEST_USER_ID)) == 5

    @pytest.mark.asyncio
    async def test_predictions_disabled(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        prediction_store: InMemoryPredictionStore,
        settings_provider: InMemorySettingsProvider,
    ) -> None:
        period_store.add(make_period(date(2026, 2, 20)))
        await orchestrator.regenerate(TEST_USER_ID)
        assert len(prediction_store) == 3

        settings_provider.set(TEST_USER_ID, CycleSettings(enable_predictions=False))
        batch = await orchestrator.regenerate(TEST_USER_ID)

        assert batch == []
        assert len(prediction_store) == 0

    @pytest.mark.asyncio
    async def test_user_luteal_phase_applied(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
        settings_provider: InMemorySettingsProvider,
    ) -> None:
        for period in build_history([28], start=date(2026, 1, 20)):
            period_store.add(period)
        settings_provider.set(TEST_USER_ID, CycleSettings(luteal_phase_length=11))

        batch = await orchestrator.regenerate(TEST_USER_ID)

        ovulation = next(p for p in batch if p.type == PredictionType.ovulation)
        assert ovulation.start_date == date(2026, 3, 17) - timedelta(days=11)

    @pytest.mark.asyncio
    async def test_store_errors_propagate(
        self, prediction_store: InMemoryPredictionStore, fixed_clock
    ) -> None:
        orchestrator = RegenerationOrchestrator(
            period_store=FailingPeriodStore(),
            prediction_store=prediction_store,
            clock=fixed_clock,
        )
        with pytest.raises(ConnectionError):
            await orchestrator.regenerate(TEST_USER_ID)


# ---------------------------------------------------------------------------
# regenerate_after_mutation
# ---------------------------------------------------------------------------


class TestRegenerateAfterMutation:
    @pytest.mark.asyncio
    async def test_success(
        self, orchestrator: RegenerationOrchestrator, period_store: InMemoryPeriodStore
    ) -> None:
        period_store.add(make_period(date(2026, 2, 2)))
        assert await orchestrator.regenerate_after_mutation(TEST_USER_ID) is True

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(
        self,
        prediction_store: InMemoryPredictionStore,
        fixed_clock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        orchestrator = RegenerationOrchestrator(
            period_store=FailingPeriodStore(),
            prediction_store=prediction_store,
            clock=fixed_clock,
        )
        with caplog.at_level(logging.ERROR, logger="cyclecast.cycles.regeneration"):
            result = await orchestrator.regenerate_after_mutation(TEST_USER_ID)

        assert result is False
        assert "Failed to regenerate predictions" in caplog.text
        assert len(prediction_store) == 0

    @pytest.mark.asyncio
    async def test_delete_mutation_falls_back(
        self,
        orchestrator: RegenerationOrchestrator,
        period_store: InMemoryPeriodStore,
    ) -> None:
        periods = build_history([28], start=date(2026, 2, 10))
        for period in periods:
            period_store.add(period)
        await orchestrator.regenerate_after_mutation(TEST_USER_ID)

        period_store.remove(TEST_USER_ID, periods[0].start_date)
        await orchestrator.regenerate_after_mutation(TEST_USER_ID)

        stored = await orchestrator.get_predictions(TEST_USER_ID)
        assert len(stored) == 3
        assert {p.confidence for p in stored} == {30, 25, 40}


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_lock_reused_per_user(self, orchestrator: RegenerationOrchestrator) -> None:
        lock = orchestrator._lock_for(TEST_USER_ID)
        assert orchestrator._lock_for(TEST_USER_ID) is lock
        assert orchestrator._lock_for(OTHER_USER_ID) is not lock

    @pytest.mark.asyncio
    async def test_same_user_serialized(
        self,
        prediction_config: PredictionConfig,
        period_store: InMemoryPeriodStore,
        fixed_clock,
    ) -> None:
        store = SlowPredictionStore()
        for period in build_history([28, 30], start=date(2026, 1, 10)):
            period_store.add(period)
        orchestrator = RegenerationOrchestrator(
            period_store=period_store,
            prediction_store=store,
            generator=PredictionGenerator(prediction_config),
            clock=fixed_clock,
        )

        await asyncio.gather(*(orchestrator.regenerate(TEST_USER_ID) for _ in range(4)))

        assert store.max_active_same_user == 1
        assert len(await store.query_future(TEST_USER_ID, TEST_DATE)) == 5

    @pytest.mark.asyncio
    async def test_different_users_run_in_parallel(
        self,
        prediction_config: PredictionConfig,
        period_store: InMemoryPeriodStore,
        fixed_clock,
    ) -> None:
        store = SlowPredictionStore()
        for user_id in (TEST_USER_ID, OTHER_USER_ID):
            for period in build_history([28], start=date(2026, 2, 1), user_id=user_id):
                period_store.add(period)
        orchestrator = RegenerationOrchestrator(
            period_store=period_store,
            prediction_store=store,
            generator=PredictionGenerator(prediction_config),
            clock=fixed_clock,
        )

        await asyncio.gather(
            orchestrator.regenerate(TEST_USER_ID),
            orchestrator.regenerate(OTHER_USER_ID),
        )

        assert store.max_active_total == 2
        assert len(await store.query_future(OTHER_USER_ID, TEST_DATE)) == 5
