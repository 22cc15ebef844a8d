"""asyncpg-backed implementations of the storage ports.

Tables:
    periods              (period_id, user_id, start_date, end_date, flow_intensity, ...)
    predictions          (prediction_id, user_id, type, start_date, end_date, confidence,
                          algorithm, based_on_cycles, metadata JSONB, created_at, updated_at)
                         UNIQUE (user_id, type, start_date)
    user_cycle_settings  (user_id PRIMARY KEY, luteal_phase_length, enable_predictions)

Every query runs through ``get_connection`` so the user context is set for
row-level security.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Mapping, Sequence
from uuid import UUID

import asyncpg

from src.cycles.ports import PeriodStore, PredictionStore, SettingsProvider
from src.models.cycles import CycleSettings, PeriodRecord, Prediction
from src.services.database import get_connection

logger = logging.getLogger("cyclecast.cycles.stores.postgres")

PREDICTION_COLUMNS = [
    "user_id",
    "type",
    "start_date",
    "end_date",
    "confidence",
    "algorithm",
    "based_on_cycles",
    "metadata",
    "created_at",
    "updated_at",
]
PREDICTION_KEY = ["user_id", "type", "start_date"]
PREDICTION_REFRESH_COLUMNS = ["end_date", "confidence", "algorithm", "based_on_cycles", "metadata"]


def build_upsert_query(
    table: str, columns: Sequence[str], key: Sequence[str], refresh: Sequence[str]
) -> str:
    """INSERT that refreshes ``refresh`` and ``updated_at`` when ``key`` already exists.

    Columns outside ``refresh`` (notably ``created_at``) keep their stored value.
    """
    values = ", ".join(f"${n}" for n in range(1, len(columns) + 1))
    assignments = [f"{col} = EXCLUDED.{col}" for col in refresh] + ["updated_at = NOW()"]
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({values}) "
        f"ON CONFLICT ({', '.join(key)}) DO UPDATE SET {', '.join(assignments)}"
    )


UPSERT_PREDICTION_SQL = build_upsert_query(
    "predictions", PREDICTION_COLUMNS, PREDICTION_KEY, PREDICTION_REFRESH_COLUMNS
)
DELETE_FUTURE_SQL = "DELETE FROM predictions WHERE user_id = $1 AND start_date >= $2"
SELECT_FUTURE_SQL = (
    f"SELECT {', '.join(PREDICTION_COLUMNS)} FROM predictions "
    "WHERE user_id = $1 AND start_date >= $2 ORDER BY start_date, type"
)
SELECT_PERIODS_SQL = (
    "SELECT period_id, user_id, start_date, end_date, flow_intensity "
    "FROM periods WHERE user_id = $1 ORDER BY start_date"
)
SELECT_SETTINGS_SQL = (
    "SELECT luteal_phase_length, enable_predictions "
    "FROM user_cycle_settings WHERE user_id = $1"
)


def _affected_rows(status: str) -> int:
    """Parse the row count from a command tag such as ``'DELETE 3'``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


def _prediction_args(prediction: Prediction) -> list[Any]:
    return [
        prediction.user_id,
        prediction.type.value,
        prediction.start_date,
        prediction.end_date,
        prediction.confidence,
        prediction.algorithm.value,
        prediction.based_on_cycles,
        json.dumps(prediction.metadata, sort_keys=True, default=str),
        prediction.created_at,
        prediction.updated_at,
    ]


def _row_to_prediction(row: Mapping[str, Any]) -> Prediction:
    data = dict(row)
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        data["metadata"] = json.loads(metadata)
    elif metadata is None:
        data["metadata"] = {}
    return Prediction.model_validate(data)


class PostgresPeriodStore(PeriodStore):
    """Read period history from the ``periods`` table."""

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        self._pool = pool

    async def list_periods(self, user_id: UUID) -> list[PeriodRecord]:
        async with get_connection(user_id=user_id, pool=self._pool) as conn:
            rows = await conn.fetch(SELECT_PERIODS_SQL, user_id)
        return [PeriodRecord.model_validate(dict(row)) for row in rows]


class PostgresPredictionStore(PredictionStore):
    """Read and write the ``predictions`` table."""

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        self._pool = pool

    async def delete_future(self, user_id: UUID, as_of: date) -> int:
        async with get_connection(user_id=user_id, pool=self._pool) as conn:
            status = await conn.execute(DELETE_FUTURE_SQL, user_id, as_of)
        return _affected_rows(status)

    async def upsert(self, prediction: Prediction) -> None:
        async with get_connection(user_id=prediction.user_id, pool=self._pool) as conn:
            await conn.execute(UPSERT_PREDICTION_SQL, *_prediction_args(prediction))

    async def query_future(self, user_id: UUID, as_of: date) -> list[Prediction]:
        async with get_connection(user_id=user_id, pool=self._pool) as conn:
            rows = await conn.fetch(SELECT_FUTURE_SQL, user_id, as_of)
        return [_row_to_prediction(row) for row in rows]

    async def replace_future(
        self, user_id: UUID, as_of: date, predictions: Sequence[Prediction]
    ) -> int:
        """Delete and re-insert future predictions in a single transaction."""
        async with get_connection(user_id=user_id, pool=self._pool) as conn:
            status = await conn.execute(DELETE_FUTURE_SQL, user_id, as_of)
            if predictions:
                await conn.executemany(
                    UPSERT_PREDICTION_SQL,
                    [_prediction_args(p) for p in predictions],
                )
        deleted = _affected_rows(status)
        logger.debug(
            "Replaced %d future predictions with %d for user %s",
            deleted,
            len(predictions),
            user_id,
        )
        return deleted


class PostgresSettingsProvider(SettingsProvider):
    """Read per-user settings from ``user_cycle_settings``; defaults when absent."""

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        self._pool = pool

    async def get_settings(self, user_id: UUID) -> CycleSettings:
        async with get_connection(user_id=user_id, pool=self._pool) as conn:
            row = await conn.fetchrow(SELECT_SETTINGS_SQL, user_id)
        if row is None:
            return CycleSettings()
        return CycleSettings.model_validate(
            {k: v for k, v in dict(row).items() if v is not None}
        )
