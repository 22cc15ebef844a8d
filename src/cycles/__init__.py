"""Cyclecast cycle analysis and prediction engine.

Turns a user's logged period history into dated, confidence-scored
forecasts (next period, ovulation day, fertile window) and keeps stored
future predictions in sync after every history change.

Core modules:
    analyzer       - Cycle/period length statistics with outlier rejection
    confidence     - Confidence scores by sample size, regularity and horizon
    generator      - Prediction batch generation (fallback + calendar averaging)
    regeneration   - Replace stored future predictions after a mutation
    ports          - Storage interfaces the engine depends on
    config_loader  - Load/validate/hot-reload prediction_config.yaml

Subpackages:
    stores/ - In-memory and Postgres adapters for the ports
"""

from src.cycles.analyzer import CycleAnalysis, CycleAnalyzer, CycleSummary
from src.cycles.config_loader import PredictionConfig, get_prediction_config
from src.cycles.confidence import ConfidenceScorer
from src.cycles.generator import FORECAST_HORIZON_COUNT, PredictionGenerator
from src.cycles.ports import PeriodStore, PredictionStore, SettingsProvider
from src.cycles.regeneration import RegenerationOrchestrator

__all__ = [
    "CycleAnalysis",
    "CycleAnalyzer",
    "CycleSummary",
    "ConfidenceScorer",
    "FORECAST_HORIZON_COUNT",
    "PredictionGenerator",
    "RegenerationOrchestrator",
    "PeriodStore",
    "PredictionStore",
    "SettingsProvider",
    "PredictionConfig",
    "get_prediction_config",
]
