"""Prediction regeneration after period history changes.

Every create, update or delete of a period record must be followed by a
call to ``RegenerationOrchestrator.regenerate_after_mutation``.  The
orchestrator:

1. Reads the full period history and the user's settings
2. Runs the prediction generator over the snapshot
3. Replaces the user's future predictions (``start_date >= today``) with
   the future part of the new batch; past predictions are never touched

Step 3 is serialized per user, so two concurrent regenerations for the same
user cannot interleave their delete and insert.  Different users never
wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Callable
from uuid import UUID

from src.cycles.generator import PredictionGenerator
from src.cycles.ports import PeriodStore, PredictionStore, SettingsProvider, StaticSettingsProvider
from src.models.base import utc_now
from src.models.cycles import Prediction

logger = logging.getLogger("cyclecast.cycles.regeneration")


class RegenerationOrchestrator:
    """Keep a user's stored future predictions in sync with their history.

    Usage::

        orchestrator = RegenerationOrchestrator(
            period_store=PostgresPeriodStore(),
            prediction_store=PostgresPredictionStore(),
            settings_provider=PostgresSettingsProvider(),
        )
        await orchestrator.regenerate_after_mutation(user_id)
    """

    def __init__(
        self,
        period_store: PeriodStore,
        prediction_store: PredictionStore,
        settings_provider: SettingsProvider | None = None,
        generator: PredictionGenerator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._periods = period_store
        self._predictions = prediction_store
        self._settings = settings_provider or StaticSettingsProvider()
        self._generator = generator or PredictionGenerator()
        self._clock = clock
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, user_id: UUID) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    def _today(self) -> date:
        return self._clock().date()

    async def regenerate(self, user_id: UUID) -> list[Prediction]:
        """Rebuild and store the user's future predictions.

        Store errors propagate to the caller.

        Generated predictions that start before today are dropped, so a
        late period never rewrites a historical row with the same key.

        Returns:
            The batch written, empty when the user has predictions disabled.
        """
        async with self._lock_for(user_id):
            today = self._today()
            periods = await self._periods.list_periods(user_id)
            settings = await self._settings.get_settings(user_id)

            if not settings.enable_predictions:
                deleted = await self._predictions.delete_future(user_id, today)
                logger.info(
                    "Predictions disabled for user %s; removed %d future predictions",
                    user_id,
                    deleted,
                )
                return []

            generated = self._generator.generate(user_id, periods, as_of=today, settings=settings)
            # Rows dated before today are history and must keep their stored values
            batch = [p for p in generated if p.start_date >= today]
            deleted = await self._predictions.replace_future(user_id, today, batch)

        logger.info(
            "Regenerated predictions for user %s: %d periods → %d predictions "
            "(%d past-dated skipped, %d replaced)",
            user_id,
            len(periods),
            len(batch),
            len(generated) - len(batch),
            deleted,
        )
        return batch

    async def regenerate_after_mutation(self, user_id: UUID) -> bool:
        """Regenerate after a period write, without failing the write.

        Returns:
            True on success, False if a store call failed (the failure is logged).
        """
        try:
            await self.regenerate(user_id)
        except Exception:
            logger.exception("Failed to regenerate predictions for user %s", user_id)
            return False
        return True

    async def get_predictions(self, user_id: UUID) -> list[Prediction]:
        """Return the user's stored future predictions, soonest first."""
        return await self._predictions.query_future(user_id, self._today())
