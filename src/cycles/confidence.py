"""Confidence scoring for cycle predictions.

Scores are built additively from two signals: how many accepted cycle
samples back the forecast, and how regular those cycles are (coefficient of
variation).  The period score is clamped to [30, 95]; ovulation and fertile
window scores derive from it.

Period score:
    base                50
    data points >= 6   +30    >= 3  +20    >= 2  +10
    variability < 10   +15    < 20  +10    < 30  +5    otherwise  -10

Scores are percentages, not probabilities.
"""

from __future__ import annotations

from src.cycles.analyzer import CycleAnalysis, round_half_up
from src.models.cycles import PredictionType

# ---------------------------------------------------------------------------
# Score constants
# ---------------------------------------------------------------------------

BASE_SCORE = 50

# (minimum data points, bonus), checked in order
DATA_POINT_BONUSES: tuple[tuple[int, int], ...] = ((6, 30), (3, 20), (2, 10))

# (variability below, adjustment), checked in order
VARIABILITY_ADJUSTMENTS: tuple[tuple[float, int], ...] = ((10, 15), (20, 10), (30, 5))
IRREGULAR_PENALTY = -10

PERIOD_MIN = 30
PERIOD_MAX = 95

OVULATION_VARIABILITY_THRESHOLD = 20
OVULATION_IRREGULAR_FACTOR = 0.7
OVULATION_MIN = 25

FERTILE_WINDOW_FACTOR = 1.2
FERTILE_WINDOW_MIN = 40

HORIZON_DECAY_PER_STEP = 20
HORIZON_MIN = 30

# Fixed scores for the no-history fallback batch
FALLBACK_CONFIDENCE: dict[PredictionType, int] = {
    PredictionType.period: 30,
    PredictionType.ovulation: 25,
    PredictionType.fertile_window: 40,
}


class ConfidenceScorer:
    """Map cycle statistics and forecast horizon to confidence scores.

    Stateless; all methods are pure functions of a ``CycleAnalysis``.
    """

    def period(self, analysis: CycleAnalysis) -> float:
        score = BASE_SCORE

        for minimum, bonus in DATA_POINT_BONUSES:
            if analysis.data_points >= minimum:
                score += bonus
                break

        for threshold, adjustment in VARIABILITY_ADJUSTMENTS:
            if analysis.cycle_variability < threshold:
                score += adjustment
                break
        else:
            score += IRREGULAR_PENALTY

        return float(min(PERIOD_MAX, max(PERIOD_MIN, score)))

    def ovulation(self, analysis: CycleAnalysis) -> float:
        score = self.period(analysis)
        if analysis.cycle_variability > OVULATION_VARIABILITY_THRESHOLD:
            score *= OVULATION_IRREGULAR_FACTOR
        return max(OVULATION_MIN, score)

    def fertile_window(self, analysis: CycleAnalysis) -> float:
        # Not capped: the window is scored above the single ovulation day.
        return max(FERTILE_WINDOW_MIN, self.ovulation(analysis) * FERTILE_WINDOW_FACTOR)

    def period_at_horizon(self, analysis: CycleAnalysis, horizon: int) -> float:
        """Period score decayed for a forecast ``horizon`` cycles past the next one.

        Non-increasing in ``horizon`` and never below 30.
        """
        if horizon <= 0:
            return self.period(analysis)
        return max(HORIZON_MIN, self.period(analysis) - HORIZON_DECAY_PER_STEP * horizon)

    def score(
        self,
        prediction_type: PredictionType,
        analysis: CycleAnalysis,
        horizon: int = 0,
    ) -> float:
        """Dispatch to the scorer for ``prediction_type``."""
        if prediction_type == PredictionType.period:
            return self.period_at_horizon(analysis, horizon)
        if prediction_type == PredictionType.ovulation:
            return self.ovulation(analysis)
        return self.fertile_window(analysis)

    @staticmethod
    def fallback(prediction_type: PredictionType) -> int:
        """Fixed score used when there is too little history to analyze."""
        return FALLBACK_CONFIDENCE[prediction_type]


def to_percentage(score: float) -> int:
    """Convert a raw score to the stored integer percentage in [0, 100]."""
    return min(100, max(0, round_half_up(score)))
