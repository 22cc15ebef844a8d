"""Load, validate, and hot-reload the Cyclecast prediction configuration.

The config lives in ``prediction_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_prediction_config()`` to
re-read from disk; no restart required.

Usage::

    from src.cycles.config_loader import get_prediction_config

    config = get_prediction_config()
    config.cycle_length.accepts(31)        # True
    config.calendar.luteal_phase_length    # 14
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("cyclecast.cycles.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "prediction_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class SampleBand:
    """Exclusive acceptance band for a day-count sample, plus its fallback."""

    min_days: int
    max_days: int
    default_days: int

    def accepts(self, days: int) -> bool:
        return self.min_days < days < self.max_days


@dataclass
class CalendarConfig:
    """Calendar offsets used to place ovulation and the fertile window."""

    luteal_phase_length: int = 14
    fertile_days_before_ovulation: int = 5
    fertile_days_after_ovulation: int = 1


@dataclass
class RegularityConfig:
    min_days: int = 21
    max_days: int = 35


@dataclass
class PredictionConfig:
    """Complete, validated prediction engine configuration.

    Attributes:
        version:       Config schema version string.
        cycle_length:  Cycle-length sample band and default.
        period_length: Period-length sample band and default.
        calendar:      Luteal phase and fertile window offsets.
        regularity:    Inclusive range for the regular-cycle flag.
    """

    version: str
    cycle_length: SampleBand
    period_length: SampleBand
    calendar: CalendarConfig
    regularity: RegularityConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when prediction_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Prediction config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> PredictionConfig:
    """Validate the raw YAML dict and construct a PredictionConfig.

    Missing sections fall back to the built-in defaults; every problem found
    is collected and reported together.

    Raises:
        ConfigValidationError: If any value is non-numeric or out of range.
    """
    errors: list[str] = []

    def _int(section: dict, key: str, name: str, default: int) -> int:
        value = section.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            errors.append(f"{name}.{key} must be an integer, got {value!r}")
            return default

    def _section(name: str) -> dict:
        value = raw.get(name) or {}
        if not isinstance(value, dict):
            errors.append(f"'{name}' must be a mapping")
            return {}
        return value

    version = str(raw.get("version", "1.0"))

    # ── Sample bands ──
    bands: dict[str, SampleBand] = {}
    for name, (lo, hi, default) in {
        "cycle_length": (20, 45, 28),
        "period_length": (0, 15, 5),
    }.items():
        section = _section(name)
        band = SampleBand(
            min_days=_int(section, "min_days", name, lo),
            max_days=_int(section, "max_days", name, hi),
            default_days=_int(section, "default_days", name, default),
        )
        if band.min_days >= band.max_days:
            errors.append(
                f"{name}: min_days ({band.min_days}) must be below max_days ({band.max_days})"
            )
        elif not band.accepts(band.default_days):
            errors.append(
                f"{name}.default_days = {band.default_days} is outside "
                f"({band.min_days}, {band.max_days})"
            )
        bands[name] = band

    # ── Calendar ──
    cal_raw = _section("calendar")
    calendar = CalendarConfig(
        luteal_phase_length=_int(cal_raw, "luteal_phase_length", "calendar", 14),
        fertile_days_before_ovulation=_int(
            cal_raw, "fertile_days_before_ovulation", "calendar", 5
        ),
        fertile_days_after_ovulation=_int(
            cal_raw, "fertile_days_after_ovulation", "calendar", 1
        ),
    )
    if calendar.luteal_phase_length <= 0:
        errors.append("calendar.luteal_phase_length must be positive")
    if calendar.fertile_days_before_ovulation < 0 or calendar.fertile_days_after_ovulation < 0:
        errors.append("calendar fertile window offsets must not be negative")

    # ── Regularity ──
    reg_raw = _section("regularity")
    regularity = RegularityConfig(
        min_days=_int(reg_raw, "min_days", "regularity", 21),
        max_days=_int(reg_raw, "max_days", "regularity", 35),
    )
    if regularity.min_days > regularity.max_days:
        errors.append("regularity.min_days must not exceed regularity.max_days")

    if errors:
        raise ConfigValidationError(
            f"prediction_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return PredictionConfig(
        version=version,
        cycle_length=bands["cycle_length"],
        period_length=bands["period_length"],
        calendar=calendar,
        regularity=regularity,
        _raw=raw,
    )


def load_prediction_config(path: Path | None = None) -> PredictionConfig:
    """Load and validate the prediction config from disk.

    Args:
        path: Override path to YAML. Uses the bundled prediction_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded prediction config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: PredictionConfig | None = None
_config_lock = threading.Lock()


def get_prediction_config() -> PredictionConfig:
    """Return the global PredictionConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_prediction_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_prediction_config()
    return _config


def reload_prediction_config(path: Path | None = None) -> PredictionConfig:
    """Reload the prediction config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_prediction_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info(
        "Reloaded prediction config: %s → %s",
        old_version,
        new_config.version,
    )
    return new_config
