"""
Domain objects of the monitoring core.

Readings and risk assessments are immutable snapshots. Alerts are mutated
only by the alert manager, which hands out copies to everybody else.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from smartmonitor.errors import UnknownMetricError

METRICS = ("temperature", "humidity", "gas_emission", "vibration", "current")

METRIC_UNITS = {
    "temperature": "°C",
    "humidity": "%",
    "gas_emission": "ppm",
    "vibration": "units",
    "current": "A",
}


def utcnow() -> datetime:
    """Naive UTC timestamp; the SQLite store does not keep tz info."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class Band(str, Enum):
    """Severity band of a single metric value"""
    GOOD = "good"
    WARNING = "warning"
    DANGER = "danger"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class AlertState(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    FIXED = "fixed"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Reading:
    """One timestamped snapshot of all tracked metrics."""
    temperature: float
    humidity: float
    gas_emission: float
    vibration: float
    current: float
    device_id: str = "ESP32-001"
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: new_id("sensor"))

    def value(self, metric: str) -> float:
        if metric not in METRICS:
            raise UnknownMetricError(metric)
        return getattr(self, metric)

    def metrics(self) -> Dict[str, float]:
        return {metric: getattr(self, metric) for metric in METRICS}

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reading":
        kwargs: Dict[str, Any] = {metric: float(data[metric]) for metric in METRICS}
        if data.get("device_id"):
            kwargs["device_id"] = str(data["device_id"])
        if data.get("timestamp") is not None:
            kwargs["timestamp"] = _parse_dt(data["timestamp"])
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)


@dataclass(frozen=True)
class HistoryPoint:
    timestamp: datetime
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value}


@dataclass
class Alert:
    """
    One detected abnormal condition.

    ``state`` only ever moves forward: active -> acknowledged -> fixed, or
    straight from active to fixed when the sensor recovers.
    """
    id: str
    severity: AlertSeverity
    title: str
    message: str
    sensor: str
    metric: str
    value: float
    threshold: float
    suggestions: List[str] = field(default_factory=list)
    contact_info: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    state: AlertState = AlertState.ACTIVE
    acknowledged_at: Optional[datetime] = None
    fixed_at: Optional[datetime] = None
    resolution: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == AlertState.ACTIVE

    @property
    def is_open(self) -> bool:
        return self.state != AlertState.FIXED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "sensor": self.sensor,
            "metric": self.metric,
            "value": self.value,
            "threshold": self.threshold,
            "suggestions": list(self.suggestions),
            "contact_info": self.contact_info,
            "created_at": self.created_at.isoformat(),
            "state": self.state.value,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "fixed_at": self.fixed_at.isoformat() if self.fixed_at else None,
            "resolution": self.resolution,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        return cls(
            id=data["id"],
            severity=AlertSeverity(data["severity"]),
            title=data["title"],
            message=data["message"],
            sensor=data["sensor"],
            metric=data["metric"],
            value=float(data["value"]),
            threshold=float(data["threshold"]),
            suggestions=list(data.get("suggestions") or []),
            contact_info=data.get("contact_info"),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            state=AlertState(data.get("state", AlertState.ACTIVE.value)),
            acknowledged_at=_parse_dt(data.get("acknowledged_at")),
            fixed_at=_parse_dt(data.get("fixed_at")),
            resolution=data.get("resolution"),
        )


@dataclass(frozen=True)
class RiskAssessment:
    risk_level: RiskLevel
    failure_probability: float
    time_to_failure: str
    recommendations: Tuple[str, ...]
    confidence: float
    risk_score: float = 0.0
    generated_at: datetime = field(default_factory=utcnow, compare=False)
    trigger: str = "manual"
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_level": self.risk_level.value,
            "failure_probability": self.failure_probability,
            "time_to_failure": self.time_to_failure,
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "generated_at": self.generated_at.isoformat(),
            "trigger": self.trigger,
            "sequence": self.sequence,
        }
