"""
Risk scoring heuristic.

An additive, explainable score over the latest reading and the recent
trends. Every increment that fires contributes one recommendation so the
result can be audited line by line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from smartmonitor.models.domain import HistoryPoint, Reading, RiskAssessment, RiskLevel
from smartmonitor.services.trend import trend_ratio

NORMAL_OPERATION = "System operating within normal parameters"


@dataclass(frozen=True)
class RiskWeights:
    """Thresholds (in metric units) and the score points they add."""

    temperature_high: float = 50.0
    temperature_high_points: float = 30.0
    temperature_elevated: float = 40.0
    temperature_elevated_points: float = 15.0

    vibration_high: float = 18000.0
    vibration_high_points: float = 35.0
    vibration_elevated: float = 15000.0
    vibration_elevated_points: float = 20.0

    current_high: float = 2.3
    current_high_points: float = 25.0
    current_elevated: float = 2.0
    current_elevated_points: float = 10.0

    gas_high: float = 350.0
    gas_high_points: float = 20.0

    humidity_min: float = 25.0
    humidity_max: float = 75.0
    humidity_points: float = 10.0

    temperature_trend_ratio: float = 0.5
    temperature_trend_points: float = 15.0
    vibration_trend_ratio: float = 0.3
    vibration_trend_points: float = 20.0


DEFAULT_WEIGHTS = RiskWeights()

# (minimum score, level, base, slope, cap, time-to-failure bucket)
RISK_BANDS: Tuple[Tuple[float, RiskLevel, float, float, float, str], ...] = (
    (80.0, RiskLevel.CRITICAL, 70.0, 0.3, 95.0, "1-3 days"),
    (50.0, RiskLevel.HIGH, 40.0, 0.4, 70.0, "1-2 weeks"),
    (25.0, RiskLevel.MEDIUM, 15.0, 0.5, 40.0, "1-2 months"),
)
LOW_BUCKET = "3+ months"
LOW_SLOPE = 0.8
LOW_FLOOR = 5.0

CONFIDENCE_BASE = 85.0
CONFIDENCE_PER_POINT = 0.5
CONFIDENCE_MIN = 70.0
CONFIDENCE_MAX = 95.0


def map_risk_score(risk_score: float) -> Tuple[RiskLevel, float, str]:
    """Level, failure probability (0-100) and time bucket for a score."""
    for minimum, level, base, slope, cap, bucket in RISK_BANDS:
        if risk_score >= minimum:
            return level, min(cap, base + risk_score * slope), bucket
    return RiskLevel.LOW, max(LOW_FLOOR, risk_score * LOW_SLOPE), LOW_BUCKET


def confidence_for(history_length: int) -> float:
    raw = CONFIDENCE_BASE + history_length * CONFIDENCE_PER_POINT
    return max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, raw))


def evaluate_conditions(
    latest: Optional[Reading],
    histories: Mapping[str, Sequence[HistoryPoint]],
    weights: RiskWeights = DEFAULT_WEIGHTS,
) -> Tuple[float, List[str]]:
    """Return the raw risk score and the recommendations that produced it."""
    score = 0.0
    recommendations: List[str] = []

    if latest is not None:
        if latest.temperature > weights.temperature_high:
            score += weights.temperature_high_points
            recommendations.append("Immediate cooling system check required")
        elif latest.temperature > weights.temperature_elevated:
            score += weights.temperature_elevated_points
            recommendations.append("Monitor temperature trends")

        if latest.vibration > weights.vibration_high:
            score += weights.vibration_high_points
            recommendations.append("Critical: Check mechanical components for wear")
        elif latest.vibration > weights.vibration_elevated:
            score += weights.vibration_elevated_points
            recommendations.append("Schedule bearing inspection")

        if latest.current > weights.current_high:
            score += weights.current_high_points
            recommendations.append("Investigate electrical load anomalies")
        elif latest.current > weights.current_elevated:
            score += weights.current_elevated_points
            recommendations.append("Monitor power consumption patterns")

        if latest.gas_emission > weights.gas_high:
            score += weights.gas_high_points
            recommendations.append("Check ventilation and filtration systems")

        if latest.humidity > weights.humidity_max or latest.humidity < weights.humidity_min:
            score += weights.humidity_points
            recommendations.append("Adjust environmental controls")

    if trend_ratio(histories.get("temperature", ())) > weights.temperature_trend_ratio:
        score += weights.temperature_trend_points
        recommendations.append("Temperature rising rapidly: verify cooling capacity")
    if trend_ratio(histories.get("vibration", ())) > weights.vibration_trend_ratio:
        score += weights.vibration_trend_points
        recommendations.append("Vibration increasing: plan a mechanical inspection")

    return score, recommendations


def score(
    latest: Optional[Reading],
    histories: Mapping[str, Sequence[HistoryPoint]],
    *,
    history_length: Optional[int] = None,
    weights: RiskWeights = DEFAULT_WEIGHTS,
    trigger: str = "manual",
) -> RiskAssessment:
    """
    Compute a fresh RiskAssessment. Identical inputs give identical output;
    without a reading only the trend terms can contribute.
    """
    risk_score, recommendations = evaluate_conditions(latest, histories, weights)
    level, probability, bucket = map_risk_score(risk_score)

    if not recommendations:
        recommendations.append(NORMAL_OPERATION)

    if history_length is None:
        history_length = len(histories.get("temperature", ()))

    return RiskAssessment(
        risk_level=level,
        failure_probability=float(probability),
        time_to_failure=bucket,
        recommendations=tuple(recommendations),
        confidence=float(confidence_for(history_length)),
        risk_score=float(risk_score),
        trigger=trigger,
    )
