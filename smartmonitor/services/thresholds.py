from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional

from smartmonitor.errors import UnknownMetricError
from smartmonitor.models.domain import Band, Reading


@dataclass(frozen=True)
class MetricThresholds:
    """Warning/danger limits of one metric. ``None`` disables a side."""

    warning_high: Optional[float] = None
    danger_high: Optional[float] = None
    warning_low: Optional[float] = None
    danger_low: Optional[float] = None
    physical_min: Optional[float] = None    # below this the sensor reports nonsense

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "warning_high": self.warning_high,
            "danger_high": self.danger_high,
            "warning_low": self.warning_low,
            "danger_low": self.danger_low,
            "physical_min": self.physical_min,
        }


THRESHOLDS: Dict[str, MetricThresholds] = {
    "temperature": MetricThresholds(warning_high=45.0, danger_high=60.0, physical_min=-273.15),   # °C
    "humidity": MetricThresholds(
        warning_high=70.0, danger_high=80.0, warning_low=30.0, danger_low=20.0, physical_min=0.0
    ),                                                                                          # %
    "gas_emission": MetricThresholds(warning_high=300.0, danger_high=400.0, physical_min=0.0),   # ppm
    "vibration": MetricThresholds(warning_high=15000.0, danger_high=20000.0, physical_min=0.0),
    "current": MetricThresholds(warning_high=2.0, danger_high=2.5, physical_min=0.0),            # A
}


def get_thresholds(metric: str) -> MetricThresholds:
    try:
        return THRESHOLDS[metric]
    except KeyError:
        raise UnknownMetricError(metric) from None


def classify(metric: str, value: float) -> Band:
    """
    Map a metric value to its band. Danger wins over warning; NaN and values
    below the physical floor count as danger.
    """
    limits = get_thresholds(metric)
    value = float(value)

    # NaN compares False against everything and would otherwise end up "good"
    if math.isnan(value):
        return Band.DANGER
    if limits.physical_min is not None and value < limits.physical_min:
        return Band.DANGER

    if limits.danger_high is not None and value > limits.danger_high:
        return Band.DANGER
    if limits.danger_low is not None and value < limits.danger_low:
        return Band.DANGER
    if limits.warning_high is not None and value > limits.warning_high:
        return Band.WARNING
    if limits.warning_low is not None and value < limits.warning_low:
        return Band.WARNING
    return Band.GOOD


def classify_reading(reading: Reading) -> Dict[str, Band]:
    return {metric: classify(metric, value) for metric, value in reading.metrics().items()}


def crossed_threshold(metric: str, value: float) -> Optional[float]:
    """Return the limit ``value`` lies beyond, the danger one first."""
    limits = get_thresholds(metric)
    value = float(value)
    if math.isnan(value):
        return limits.danger_high if limits.danger_high is not None else limits.danger_low

    for limit, is_high in (
        (limits.danger_high, True),
        (limits.danger_low, False),
        (limits.warning_high, True),
        (limits.warning_low, False),
    ):
        if limit is None:
            continue
        if (is_high and value > limit) or (not is_high and value < limit):
            return limit
    if limits.physical_min is not None and value < limits.physical_min:
        return limits.physical_min
    return None
