"""Cycle statistics derived from a user's period history.

The analyzer turns logged periods into cycle-length and period-length
samples, discards physiologically implausible values, and reports the
averages and regularity the prediction generator works from.

Self-reported data is noisy, so nothing here raises on bad records:
out-of-band lengths, missing end dates and reversed date pairs simply do not
contribute a sample.  Empty sample sets fall back to the configured defaults
(28-day cycle, 5-day period).

``no_period`` entries (an expected period that did not happen) take part in
cycle-length gaps so timing stays continuous, but never contribute a period
length.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Sequence

from src.cycles.config_loader import PredictionConfig, get_prediction_config
from src.models.cycles import PeriodRecord

logger = logging.getLogger("cyclecast.cycles.analyzer")


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round(28.5)`` gives 28)."""
    return int(math.floor(value + 0.5))


@dataclass
class CycleAnalysis:
    """Statistics for one generation call.  Never persisted.

    Attributes:
        average_cycle_length:  Mean accepted cycle length in days.
        average_period_length: Mean accepted period length in days.
        cycle_variability:     Coefficient of variation of cycle lengths, percent.
        data_points:           Number of accepted cycle-length samples.
        cycle_lengths:         Accepted cycle-length samples, oldest first.
        period_lengths:        Accepted period-length samples, oldest first.
    """

    average_cycle_length: float
    average_period_length: float
    cycle_variability: float
    data_points: int
    cycle_lengths: list[int] = field(default_factory=list)
    period_lengths: list[int] = field(default_factory=list)


@dataclass
class CycleSummary:
    """One derived cycle, from a period start to the next period start.

    Attributes:
        start_date:          First day of the cycle.
        end_date:            Day before the next period (None while in progress).
        cycle_length:        Days to the next period start (None while in progress).
        period_length:       Inclusive bleeding days, None if unknown.
        ovulation_date:      Next period start minus the luteal phase.
        luteal_phase_length: Luteal phase used for the ovulation estimate.
        is_regular:          Cycle length inside the regularity range.
        is_complete:         False for the in-progress cycle.
    """

    start_date: date
    end_date: date | None = None
    cycle_length: int | None = None
    period_length: int | None = None
    ovulation_date: date | None = None
    luteal_phase_length: int | None = None
    is_regular: bool = False
    is_complete: bool = False


class CycleAnalyzer:
    """Compute cycle statistics from a period history snapshot.

    Usage::

        analyzer = CycleAnalyzer()
        analysis = analyzer.analyze(periods)
        print(analysis.average_cycle_length, analysis.data_points)
    """

    def __init__(self, config: PredictionConfig | None = None) -> None:
        self._config = config or get_prediction_config()

    def analyze(self, periods: Sequence[PeriodRecord]) -> CycleAnalysis:
        """Derive averages and variability from the given periods.

        Args:
            periods: The user's period records.  Sorted by start date here,
                     so callers may pass them in any order.

        Returns:
            CycleAnalysis with defaults applied to empty sample sets.
        """
        ordered = sorted(periods, key=lambda p: p.start_date)
        cycle_lengths = self.cycle_length_samples(ordered)
        period_lengths = self.period_length_samples(ordered)

        avg_cycle = (
            statistics.mean(cycle_lengths)
            if cycle_lengths
            else self._config.cycle_length.default_days
        )
        avg_period = (
            statistics.mean(period_lengths)
            if period_lengths
            else self._config.period_length.default_days
        )

        return CycleAnalysis(
            average_cycle_length=float(avg_cycle),
            average_period_length=float(avg_period),
            cycle_variability=coefficient_of_variation(cycle_lengths),
            data_points=len(cycle_lengths),
            cycle_lengths=cycle_lengths,
            period_lengths=period_lengths,
        )

    def cycle_length_samples(self, ordered: Sequence[PeriodRecord]) -> list[int]:
        """Return accepted start-to-start gaps between adjacent periods."""
        band = self._config.cycle_length
        samples: list[int] = []
        for prev, curr in zip(ordered, ordered[1:]):
            days = (curr.start_date - prev.start_date).days
            if band.accepts(days):
                samples.append(days)
            else:
                logger.debug(
                    "Discarding cycle length %d (%s → %s)",
                    days,
                    prev.start_date,
                    curr.start_date,
                )
        return samples

    def period_length_samples(self, ordered: Sequence[PeriodRecord]) -> list[int]:
        """Return accepted inclusive bleeding lengths, skipping no_period entries."""
        band = self._config.period_length
        samples: list[int] = []
        for period in ordered:
            if period.end_date is None or period.is_no_period:
                continue
            days = (period.end_date - period.start_date).days + 1
            if band.accepts(days):
                samples.append(days)
            else:
                logger.debug("Discarding period length %d starting %s", days, period.start_date)
        return samples

    def summarize_cycles(
        self,
        periods: Sequence[PeriodRecord],
        luteal_phase_length: int | None = None,
        as_of_date: date | None = None,
    ) -> list[CycleSummary]:
        """Split the history into per-cycle summaries.

        Every adjacent pair of periods yields one complete cycle.  The last
        period yields an in-progress cycle when it started less than the
        maximum cycle length ago.

        Args:
            periods:             The user's period records.
            luteal_phase_length: Override for the configured luteal phase.
            as_of_date:          Reference date (defaults to today).

        Returns:
            Cycle summaries, oldest first.
        """
        ordered = sorted(periods, key=lambda p: p.start_date)
        if not ordered:
            return []

        luteal = luteal_phase_length or self._config.calendar.luteal_phase_length
        regularity = self._config.regularity
        today = as_of_date or date.today()

        summaries: list[CycleSummary] = []
        for current, following in zip(ordered, ordered[1:]):
            length = (following.start_date - current.start_date).days
            summaries.append(
                CycleSummary(
                    start_date=current.start_date,
                    end_date=following.start_date - timedelta(days=1),
                    cycle_length=length,
                    period_length=self._period_length(current),
                    ovulation_date=following.start_date - timedelta(days=luteal),
                    luteal_phase_length=luteal,
                    is_regular=regularity.min_days <= length <= regularity.max_days,
                    is_complete=True,
                )
            )

        last = ordered[-1]
        if (today - last.start_date).days < self._config.cycle_length.max_days:
            summaries.append(
                CycleSummary(
                    start_date=last.start_date,
                    period_length=self._period_length(last),
                )
            )

        return summaries

    def _period_length(self, period: PeriodRecord) -> int | None:
        if period.is_no_period:
            return None
        if period.end_date is None:
            return self._config.period_length.default_days
        days = (period.end_date - period.start_date).days + 1
        return days if days > 0 else None


def coefficient_of_variation(values: Sequence[int]) -> float:
    """Population standard deviation over mean, as a percentage.

    Returns 0.0 for fewer than two values.
    """
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values) / statistics.mean(values) * 100
