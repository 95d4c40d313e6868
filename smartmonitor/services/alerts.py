"""
Alert Lifecycle Manager
Owns the canonical alert set and its forward-only state machine.

    active --acknowledge--> acknowledged --fix--> fixed
    active|acknowledged --sensor back to good--> fixed   (auto-clear)

At most one alert per sensor is active at a time.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Optional

from smartmonitor.errors import AlertNotFoundError, UnknownMetricError
from smartmonitor.models.domain import (
    METRIC_UNITS,
    Alert,
    AlertSeverity,
    AlertState,
    Band,
    Reading,
    new_id,
    utcnow,
)
from smartmonitor.services.thresholds import crossed_threshold, get_thresholds

logger = logging.getLogger("smartmonitor.alerts")

OUT_OF_RANGE_TITLE = "Sensor reading out of range"


def _copy(alert: Alert) -> Alert:
    return replace(alert, suggestions=list(alert.suggestions))


@dataclass(frozen=True)
class AlertRule:
    """
    How a metric turns into an alert.

    ``bands`` lists the bands that raise an alert; a band outside this set
    (other than good) leaves existing alerts untouched.
    """
    metric: str
    sensor: str
    id_prefix: str
    severity: AlertSeverity
    title: str
    message: str                            # formatted with value, unit, threshold
    suggestions: tuple = ()
    contact_info: Optional[str] = None
    bands: FrozenSet[Band] = field(default_factory=lambda: frozenset({Band.DANGER}))
    low_title: Optional[str] = None         # two-sided metrics
    low_message: Optional[str] = None
    precision: int = 1

    def build_alert(self, value: float) -> Alert:
        unit = METRIC_UNITS.get(self.metric, "")
        floor = get_thresholds(self.metric).physical_min
        if math.isnan(value) or (floor is not None and value < floor):
            # The sensor itself is suspect, not the machine.
            threshold = floor if floor is not None else value
            title = OUT_OF_RANGE_TITLE
            message = (
                f"{self.sensor} reported {value:.{self.precision}f} {unit}, outside the "
                f"physical range (minimum {threshold:g} {unit})"
            )
        else:
            threshold = crossed_threshold(self.metric, value)
            if threshold is None:
                threshold = value
            is_low = value < threshold and self.low_title is not None
            title = self.low_title if is_low else self.title
            template = (self.low_message or self.message) if is_low else self.message
            message = template.format(
                value=f"{value:.{self.precision}f}",
                unit=unit,
                threshold=f"{threshold:g}",
            )
        return Alert(
            id=new_id(self.id_prefix),
            severity=self.severity,
            title=title,
            message=message,
            sensor=self.sensor,
            metric=self.metric,
            value=value,
            threshold=threshold,
            suggestions=list(self.suggestions),
            contact_info=self.contact_info,
            created_at=utcnow(),
        )


DEFAULT_RULES: Dict[str, AlertRule] = {
    "temperature": AlertRule(
        metric="temperature",
        sensor="Temperature Sensor",
        id_prefix="temp",
        severity=AlertSeverity.DANGER,
        title="Critical Temperature Alert",
        message="Temperature exceeded {threshold}°C (Current: {value}°C)",
        suggestions=(
            "Immediately check cooling system operation and coolant levels",
            "Reduce machine load by 50% to lower heat generation",
            "Ensure proper ventilation and air circulation around equipment",
            "Inspect heat exchangers for blockages or fouling",
            "Consider emergency shutdown if temperature continues to rise",
            "Check for mechanical friction or binding in moving parts",
        ),
        contact_info="For emergency support, contact our technical team immediately",
    ),
    "current": AlertRule(
        metric="current",
        sensor="Current Sensor",
        id_prefix="current",
        severity=AlertSeverity.DANGER,
        title="Electrical Current Overload",
        message="Current exceeded safe threshold (Current: {value} A)",
        suggestions=(
            "Immediately check all electrical connections for looseness",
            "Inspect motor windings for signs of damage or overheating",
            "Look for short circuits in wiring or control panels",
            "Check mechanical load on motor for binding or obstruction",
            "Reduce operational speed to decrease current draw",
            "Test insulation resistance of motor windings",
            "Consider temporary load reduction until issue is resolved",
        ),
        contact_info="Contact certified electrician for electrical system inspection",
    ),
    "vibration": AlertRule(
        metric="vibration",
        sensor="Vibration Sensor",
        id_prefix="vibration",
        severity=AlertSeverity.DANGER,
        title="Critical Vibration Level",
        message="Excessive vibrations detected (Current: {value})",
        suggestions=(
            "Stop operation immediately to prevent catastrophic failure",
            "Inspect all bearings for wear, damage, or inadequate lubrication",
            "Check shaft alignment using precision alignment tools",
            "Examine mounting bolts and foundation for looseness",
            "Look for signs of component wear, cracking, or fatigue",
            "Check balance of rotating components",
            "Schedule immediate professional vibration analysis",
        ),
        contact_info="Emergency mechanical support required - contact maintenance team",
        precision=0,
    ),
    "gas_emission": AlertRule(
        metric="gas_emission",
        sensor="Gas Sensor",
        id_prefix="gas",
        severity=AlertSeverity.DANGER,
        title="Hazardous Gas Concentration",
        message="Gas concentration critical (Current: {value} ppm)",
        suggestions=(
            "Evacuate personnel from affected area immediately",
            "Activate emergency ventilation systems",
            "Check for gas leaks in piping, valves, and connections",
            "Inspect gas detection equipment calibration",
            "Monitor air quality continuously with portable detectors",
            "Implement confined space entry procedures if applicable",
            "Do not operate electrical equipment in affected area",
        ),
        contact_info="Emergency response team - contact safety officer immediately",
    ),
    "humidity": AlertRule(
        metric="humidity",
        sensor="Humidity Sensor",
        id_prefix="humidity",
        severity=AlertSeverity.WARNING,
        title="Elevated Humidity Levels",
        message="Humidity exceeds normal range (Current: {value}%)",
        low_title="Low Humidity Levels",
        low_message="Humidity below normal range (Current: {value}%)",
        suggestions=(
            "Increase air circulation using fans or HVAC system",
            "Deploy dehumidification equipment in affected areas",
            "Check for water leaks in pipes, roof, or foundation",
            "Inspect steam sources and ensure proper ventilation",
            "Monitor condensation on equipment and surfaces",
            "Check humidity sensor calibration and placement",
        ),
        contact_info="Contact facilities management for HVAC support",
    ),
}


class AlertManager:
    """
    Not thread-safe; the monitor calls it under its lock. Every accessor
    returns copies so callers never see an alert change under them.
    """

    def __init__(self, rules: Optional[Dict[str, AlertRule]] = None):
        self._rules: Dict[str, AlertRule] = dict(rules or DEFAULT_RULES)
        self._alerts: Dict[str, Alert] = {}
        self._stats = {"created": 0, "suppressed": 0, "auto_cleared": 0}

    def rule_for(self, metric: str) -> AlertRule:
        try:
            return self._rules[metric]
        except KeyError:
            raise UnknownMetricError(metric) from None

    def rules(self) -> List[AlertRule]:
        return list(self._rules.values())

    def reconcile(self, metric: str, band: Band, reading: Reading) -> List[Alert]:
        """
        Bring the alerts of ``metric``'s sensor in line with ``band``.
        Returns copies of every alert that was created or changed.
        """
        rule = self.rule_for(metric)
        value = reading.value(metric)

        if band == Band.GOOD:
            return self._auto_clear(rule.sensor)

        if band not in rule.bands:
            return []

        if self._active_for(rule.sensor) is not None:
            self._stats["suppressed"] += 1
            logger.debug("Alert already active for %s, skipping duplicate", rule.sensor)
            return []

        alert = rule.build_alert(value)
        self._alerts[alert.id] = alert
        self._stats["created"] += 1
        logger.info("New %s alert for %s: %s", alert.severity.value, alert.sensor, alert.message)
        return [_copy(alert)]

    def acknowledge(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        if alert.state != AlertState.ACTIVE:
            raise AlertNotFoundError(alert_id, f"no active alert (state is {alert.state.value})")
        alert.state = AlertState.ACKNOWLEDGED
        alert.acknowledged_at = utcnow()
        return _copy(alert)

    def mark_fixed(self, alert_id: str) -> Alert:
        """Returns the alert; an already fixed alert is returned unchanged."""
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        if alert.is_open:
            self._fix(alert, resolution="manual")
        return _copy(alert)

    def get(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return _copy(alert)

    def list_active(self) -> List[Alert]:
        return [_copy(a) for a in self._alerts.values() if a.is_active]

    def list_acknowledged_or_fixed(self) -> List[Alert]:
        return [_copy(a) for a in self._alerts.values() if not a.is_active]

    def all_alerts(self) -> List[Alert]:
        return [_copy(a) for a in self._alerts.values()]

    def restore(self, alerts: Iterable[Alert]) -> int:
        """
        Seed from persisted alerts (creation ordered). If the store holds
        several active alerts for one sensor only the newest stays active.
        """
        self._alerts.clear()
        ordered = sorted(alerts, key=lambda a: a.created_at)
        for alert in ordered:
            self._alerts[alert.id] = _copy(alert)

        seen = set()
        for alert in reversed(ordered):
            current = self._alerts[alert.id]
            if not current.is_active:
                continue
            if current.sensor in seen:
                logger.warning("Duplicate active alert %s for %s closed on restore", current.id, current.sensor)
                self._fix(current, resolution="auto")
            seen.add(current.sensor)
        return len(self._alerts)

    def summary(self) -> dict:
        alerts = list(self._alerts.values())
        by_state = Counter(a.state.value for a in alerts)
        by_severity = Counter(a.severity.value for a in alerts if a.is_active)
        active = by_state.get(AlertState.ACTIVE.value, 0)
        handled = [a for a in alerts if not a.is_active]
        return {
            "total": len(alerts),
            "active": active,
            "acknowledged": by_state.get(AlertState.ACKNOWLEDGED.value, 0),
            "fixed": by_state.get(AlertState.FIXED.value, 0),
            "active_by_severity": dict(by_severity),
            "all_clear": active == 0 and bool(handled) and all(a.state == AlertState.FIXED for a in handled),
        }

    def stats(self) -> dict:
        return {**self._stats, "alerts": len(self._alerts)}

    def _active_for(self, sensor: str) -> Optional[Alert]:
        for alert in self._alerts.values():
            if alert.sensor == sensor and alert.is_active:
                return alert
        return None

    def _auto_clear(self, sensor: str) -> List[Alert]:
        cleared = []
        for alert in self._alerts.values():
            if alert.sensor == sensor and alert.is_open:
                self._fix(alert, resolution="auto")
                cleared.append(_copy(alert))
        if cleared:
            self._stats["auto_cleared"] += len(cleared)
            logger.info("%s back to normal, auto-cleared %d alert(s)", sensor, len(cleared))
        return cleared

    @staticmethod
    def _fix(alert: Alert, resolution: str) -> None:
        alert.state = AlertState.FIXED
        alert.fixed_at = utcnow()
        alert.resolution = resolution
