"""Storage ports consumed by the prediction engine.

The engine never talks to a database directly.  It pulls period history
through a ``PeriodStore``, writes predictions through a ``PredictionStore``
and reads per-user settings through a ``SettingsProvider``.  Adapters for
the remote Postgres store and the in-memory local cache live in
``src.cycles.stores``; both drive the same analyzer and generator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Sequence
from uuid import UUID

from src.models.cycles import CycleSettings, PeriodRecord, Prediction


class PeriodStore(ABC):
    """Read view of a user's period history."""

    @abstractmethod
    async def list_periods(self, user_id: UUID) -> list[PeriodRecord]:
        """Return all periods for ``user_id``, ascending by start date."""


class PredictionStore(ABC):
    """Write sink and read view for predictions.

    Predictions are keyed by (user_id, type, start_date); ``upsert`` replaces
    an existing row with the same key.
    """

    @abstractmethod
    async def delete_future(self, user_id: UUID, as_of: date) -> int:
        """Delete predictions with ``start_date >= as_of``.  Returns the count removed."""

    @abstractmethod
    async def upsert(self, prediction: Prediction) -> None:
        """Insert or update a prediction by its natural key."""

    @abstractmethod
    async def query_future(self, user_id: UUID, as_of: date) -> list[Prediction]:
        """Return predictions with ``start_date >= as_of``, ascending by start date."""

    async def replace_future(
        self, user_id: UUID, as_of: date, predictions: Sequence[Prediction]
    ) -> int:
        """Swap the user's future predictions for ``predictions``.

        Every prediction must start on or after ``as_of``; rows before it
        belong to history.  Adapters with transactions should override this
        so the delete and the inserts commit together.  Returns the count
        deleted.
        """
        deleted = await self.delete_future(user_id, as_of)
        for prediction in predictions:
            await self.upsert(prediction)
        return deleted


class SettingsProvider(ABC):
    """Per-user cycle settings (luteal phase length, predictions on/off)."""

    @abstractmethod
    async def get_settings(self, user_id: UUID) -> CycleSettings:
        """Return the user's settings, or defaults when none are stored."""


class StaticSettingsProvider(SettingsProvider):
    """Serve the same settings to every user."""

    def __init__(self, settings: CycleSettings | None = None) -> None:
        self._settings = settings or CycleSettings()

    async def get_settings(self, user_id: UUID) -> CycleSettings:
        return self._settings
