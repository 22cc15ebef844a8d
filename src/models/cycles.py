"""Pydantic models for period history, predictions, and per-user cycle settings."""

from __future__ import annotations

import uuid
from datetime import date
from enum import Enum
from typing import Any

from pydantic import Field

from src.models.base import CyclecastBase, TimestampMixin


# ---------- Enums ----------

class FlowIntensity(str, Enum):
    light = "light"
    medium = "medium"
    heavy = "heavy"
    spotting = "spotting"
    no_period = "no_period"  # expected period that did not happen


class PredictionType(str, Enum):
    period = "period"
    ovulation = "ovulation"
    fertile_window = "fertile_window"


class PredictionAlgorithm(str, Enum):
    weighted_average = "weighted_average"
    calendar = "calendar"
    default = "default"


# ---------- Periods ----------

class PeriodRecord(CyclecastBase):
    """One logged period, as read from the period store.

    ``end_date`` is None for an ongoing or single-day entry.  Records are
    never validated for overlap or ordering here; the analyzer tolerates
    dirty input.
    """

    user_id: uuid.UUID
    start_date: date
    end_date: date | None = None
    flow_intensity: FlowIntensity = FlowIntensity.medium
    period_id: uuid.UUID | None = None

    @property
    def is_no_period(self) -> bool:
        return self.flow_intensity == FlowIntensity.no_period


# ---------- Predictions ----------

class Prediction(CyclecastBase, TimestampMixin):
    """A dated, confidence-scored forecast.

    Natural key: (user_id, type, start_date).
    """

    user_id: uuid.UUID
    type: PredictionType
    start_date: date
    end_date: date | None = None
    confidence: int = Field(ge=0, le=100)
    algorithm: PredictionAlgorithm
    based_on_cycles: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def natural_key(self) -> tuple[uuid.UUID, PredictionType, date]:
        return (self.user_id, self.type, self.start_date)


# ---------- Settings ----------

class CycleSettings(CyclecastBase):
    luteal_phase_length: int = Field(default=14, ge=8, le=20)
    enable_predictions: bool = True
