"""In-process implementations of the storage ports.

Used for the device-local cache and in tests.  Each store keeps plain
dicts keyed by user; nothing is shared between instances.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable
from uuid import UUID

from src.cycles.ports import PeriodStore, PredictionStore, SettingsProvider
from src.models.cycles import CycleSettings, PeriodRecord, Prediction, PredictionType


class InMemoryPeriodStore(PeriodStore):
    """Period history held in memory.

    Usage::

        store = InMemoryPeriodStore()
        store.add(PeriodRecord(user_id=uid, start_date=date(2026, 1, 3)))
        periods = await store.list_periods(uid)
    """

    def __init__(self, periods: Iterable[PeriodRecord] = ()) -> None:
        self._periods: dict[UUID, list[PeriodRecord]] = {}
        for period in periods:
            self.add(period)

    def add(self, period: PeriodRecord) -> None:
        self._periods.setdefault(period.user_id, []).append(period)

    def remove(self, user_id: UUID, start_date: date) -> bool:
        """Remove the user's period starting on ``start_date``.  Returns True if found."""
        periods = self._periods.get(user_id, [])
        for i, period in enumerate(periods):
            if period.start_date == start_date:
                del periods[i]
                return True
        return False

    async def list_periods(self, user_id: UUID) -> list[PeriodRecord]:
        return sorted(self._periods.get(user_id, []), key=lambda p: p.start_date)


class InMemoryPredictionStore(PredictionStore):
    """Predictions held in memory, keyed by (type, start_date) per user."""

    def __init__(self) -> None:
        self._rows: dict[UUID, dict[tuple[PredictionType, date], Prediction]] = {}

    async def delete_future(self, user_id: UUID, as_of: date) -> int:
        rows = self._rows.get(user_id, {})
        stale = [key for key, p in rows.items() if p.start_date >= as_of]
        for key in stale:
            del rows[key]
        return len(stale)

    async def upsert(self, prediction: Prediction) -> None:
        rows = self._rows.setdefault(prediction.user_id, {})
        key = (prediction.type, prediction.start_date)
        existing = rows.get(key)
        if existing is not None:
            prediction = prediction.model_copy(update={"created_at": existing.created_at})
        rows[key] = prediction

    async def query_future(self, user_id: UUID, as_of: date) -> list[Prediction]:
        rows = self._rows.get(user_id, {}).values()
        return sorted(
            (p for p in rows if p.start_date >= as_of),
            key=lambda p: (p.start_date, p.type.value),
        )

    def all_for_user(self, user_id: UUID) -> list[Prediction]:
        """Every stored prediction for the user, past and future."""
        return sorted(self._rows.get(user_id, {}).values(), key=lambda p: p.start_date)

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._rows.values())


class InMemorySettingsProvider(SettingsProvider):
    """Per-user settings with a shared default."""

    def __init__(self, default: CycleSettings | None = None) -> None:
        self._default = default or CycleSettings()
        self._settings: dict[UUID, CycleSettings] = {}

    def set(self, user_id: UUID, settings: CycleSettings) -> None:
        self._settings[user_id] = settings

    async def get_settings(self, user_id: UUID) -> CycleSettings:
        return self._settings.get(user_id, self._default)
