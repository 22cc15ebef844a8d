"""Prediction batch generation.

Two branches, picked by history size:

- fewer than two periods: a fixed fallback batch of three predictions
  anchored on the last period start (or the reference date when there is
  no history at all);
- two or more periods: calendar averaging over the accepted cycle samples,
  producing the next period, ovulation, fertile window, and two further
  period forecasts with decaying confidence.

Generation is deterministic for a given history, settings and reference
date; only ``created_at``/``updated_at`` differ between runs.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Sequence
from uuid import UUID

from src.cycles.analyzer import CycleAnalysis, CycleAnalyzer, round_half_up
from src.cycles.config_loader import PredictionConfig, get_prediction_config
from src.cycles.confidence import ConfidenceScorer, to_percentage
from src.models.base import utc_now
from src.models.cycles import (
    CycleSettings,
    PeriodRecord,
    Prediction,
    PredictionAlgorithm,
    PredictionType,
)

logger = logging.getLogger("cyclecast.cycles.generator")

# Extra period forecasts after the next one
FORECAST_HORIZON_COUNT = 2

# Periods needed before statistics are used instead of the fallback batch
MIN_PERIODS_FOR_ANALYSIS = 2


class PredictionGenerator:
    """Build the prediction batch for one user.

    Usage::

        generator = PredictionGenerator()
        batch = generator.generate(user_id, periods, as_of=date(2026, 3, 1))
    """

    def __init__(
        self,
        config: PredictionConfig | None = None,
        analyzer: CycleAnalyzer | None = None,
        scorer: ConfidenceScorer | None = None,
    ) -> None:
        self._config = config or get_prediction_config()
        self._analyzer = analyzer or CycleAnalyzer(self._config)
        self._scorer = scorer or ConfidenceScorer()

    def generate(
        self,
        user_id: UUID,
        periods: Sequence[PeriodRecord],
        as_of: date | None = None,
        settings: CycleSettings | None = None,
    ) -> list[Prediction]:
        """Generate predictions from a period history snapshot.

        Args:
            user_id:  Owner of the history.
            periods:  Period records (any order).
            as_of:    Reference date, used as the anchor when there is no
                      history (defaults to today).
            settings: Per-user settings; supplies the luteal phase length
                      used once there are enough periods to analyse.

        Returns:
            Three fallback predictions for fewer than two periods, otherwise
            five (three period, one ovulation, one fertile window).
        """
        ordered = sorted(periods, key=lambda p: p.start_date)

        if len(ordered) < MIN_PERIODS_FOR_ANALYSIS:
            base = ordered[-1].start_date if ordered else (as_of or date.today())
            batch = self._fallback_batch(user_id, base)
            logger.debug(
                "Fallback predictions for user %s anchored at %s (%d periods)",
                user_id,
                base,
                len(ordered),
            )
            return batch

        luteal = (
            settings.luteal_phase_length
            if settings is not None
            else self._config.calendar.luteal_phase_length
        )
        analysis = self._analyzer.analyze(ordered)
        batch = self._analysis_batch(user_id, ordered[-1], analysis, luteal)
        logger.debug(
            "Predictions for user %s from %d cycles (avg %.1f days, cv %.1f%%)",
            user_id,
            analysis.data_points,
            analysis.average_cycle_length,
            analysis.cycle_variability,
        )
        return batch

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _fallback_batch(self, user_id: UUID, base: date) -> list[Prediction]:
        # Fixed calendar layout; per-user luteal settings only shape the analysis batch
        cal = self._config.calendar
        luteal = cal.luteal_phase_length
        cycle_days = self._config.cycle_length.default_days
        period_days = self._config.period_length.default_days

        next_start = base + timedelta(days=cycle_days)
        ovulation = next_start - timedelta(days=luteal)
        fallback = ConfidenceScorer.fallback

        return [
            _prediction(
                user_id,
                PredictionType.period,
                next_start,
                next_start + timedelta(days=period_days - 1),
                fallback(PredictionType.period),
                PredictionAlgorithm.default,
                0,
                {"based_on_cycles": 0, "default_prediction": True},
            ),
            _prediction(
                user_id,
                PredictionType.ovulation,
                ovulation,
                None,
                fallback(PredictionType.ovulation),
                PredictionAlgorithm.calendar,
                0,
                {"method": "calendar", "default_prediction": True},
            ),
            _prediction(
                user_id,
                PredictionType.fertile_window,
                ovulation - timedelta(days=cal.fertile_days_before_ovulation),
                ovulation + timedelta(days=cal.fertile_days_after_ovulation),
                fallback(PredictionType.fertile_window),
                PredictionAlgorithm.calendar,
                0,
                {"method": "calendar", "default_prediction": True},
            ),
        ]

    def _analysis_batch(
        self,
        user_id: UUID,
        last_period: PeriodRecord,
        analysis: CycleAnalysis,
        luteal: int,
    ) -> list[Prediction]:
        cal = self._config.calendar
        scorer = self._scorer
        cycle_days = round_half_up(analysis.average_cycle_length)
        period_days = round_half_up(analysis.average_period_length)
        based_on = analysis.data_points

        next_start = last_period.start_date + timedelta(days=cycle_days)
        ovulation = next_start - timedelta(days=luteal)
        fertile_start = ovulation - timedelta(days=cal.fertile_days_before_ovulation)
        fertile_end = ovulation + timedelta(days=cal.fertile_days_after_ovulation)

        batch = [
            _prediction(
                user_id,
                PredictionType.period,
                next_start,
                next_start + timedelta(days=period_days - 1),
                to_percentage(scorer.period(analysis)),
                PredictionAlgorithm.weighted_average,
                based_on,
                {
                    "data_points": based_on,
                    "average_cycle_length": round(analysis.average_cycle_length, 2),
                    "average_period_length": round(analysis.average_period_length, 2),
                    "cycle_variability": round(analysis.cycle_variability, 2),
                },
            ),
            _prediction(
                user_id,
                PredictionType.ovulation,
                ovulation,
                None,
                to_percentage(scorer.ovulation(analysis)),
                PredictionAlgorithm.calendar,
                based_on,
                {
                    "method": "calendar",
                    "day_from_next_period": -luteal,
                    "luteal_phase_length": luteal,
                },
            ),
            _prediction(
                user_id,
                PredictionType.fertile_window,
                fertile_start,
                fertile_end,
                to_percentage(scorer.fertile_window(analysis)),
                PredictionAlgorithm.calendar,
                based_on,
                {
                    "method": "calendar",
                    "duration": (fertile_end - fertile_start).days + 1,
                },
            ),
        ]

        for horizon in range(1, FORECAST_HORIZON_COUNT + 1):
            future_start = next_start + timedelta(days=cycle_days * horizon)
            batch.append(
                _prediction(
                    user_id,
                    PredictionType.period,
                    future_start,
                    future_start + timedelta(days=period_days - 1),
                    to_percentage(scorer.period_at_horizon(analysis, horizon)),
                    PredictionAlgorithm.weighted_average,
                    based_on,
                    {"data_points": based_on, "months_ahead": horizon + 1},
                )
            )

        return batch


def _prediction(
    user_id: UUID,
    prediction_type: PredictionType,
    start: date,
    end: date | None,
    confidence: int,
    algorithm: PredictionAlgorithm,
    based_on_cycles: int,
    metadata: dict[str, Any],
) -> Prediction:
    now = utc_now()
    return Prediction(
        user_id=user_id,
        type=prediction_type,
        start_date=start,
        end_date=end,
        confidence=confidence,
        algorithm=algorithm,
        based_on_cycles=based_on_cycles,
        metadata=metadata,
        created_at=now,
        updated_at=now,
    )
