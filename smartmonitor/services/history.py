"""
History Store
Bounded, metric-keyed series of recent readings.

- One deque per metric, oldest point evicted first
- A parallel deque of the raw readings, used for persistence and export
- Not thread-safe on its own; the monitor serializes access
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

import pandas as pd

from smartmonitor.errors import UnknownMetricError
from smartmonitor.models.domain import METRICS, HistoryPoint, Reading

# Upper bound on points kept per metric.
HISTORY_LIMIT = 20


class HistoryStore:
    """
    Usage:
        store = HistoryStore(maxlen=20)
        store.append(reading)
        points = store.series("temperature")
    """

    def __init__(self, maxlen: int = HISTORY_LIMIT):
        if not 1 <= maxlen <= HISTORY_LIMIT:
            raise ValueError(f"maxlen must be between 1 and {HISTORY_LIMIT}")
        self.maxlen = maxlen
        self._series: Dict[str, Deque[HistoryPoint]] = {
            metric: deque(maxlen=maxlen) for metric in METRICS
        }
        self._readings: Deque[Reading] = deque(maxlen=maxlen)

    def append(self, reading: Reading) -> None:
        for metric in METRICS:
            self._series[metric].append(HistoryPoint(reading.timestamp, reading.value(metric)))
        self._readings.append(reading)

    def restore(self, readings: Iterable[Reading]) -> int:
        """Replace the current content with ``readings`` (oldest first)."""
        self.clear()
        count = 0
        for reading in readings:
            self.append(reading)
            count += 1
        return count

    def series(self, metric: str) -> List[HistoryPoint]:
        if metric not in self._series:
            raise UnknownMetricError(metric)
        return list(self._series[metric])

    def snapshot(self) -> Dict[str, List[HistoryPoint]]:
        return {metric: list(points) for metric, points in self._series.items()}

    def readings(self) -> List[Reading]:
        return list(self._readings)

    def latest(self) -> Optional[Reading]:
        if not self._readings:
            return None
        return self._readings[-1]

    @property
    def length(self) -> int:
        return len(self._readings)

    def clear(self) -> None:
        for points in self._series.values():
            points.clear()
        self._readings.clear()

    def to_frame(self) -> pd.DataFrame:
        """Recent readings as a DataFrame, one row per reading."""
        if not self._readings:
            return pd.DataFrame(columns=["id", "device_id", "timestamp", *METRICS])
        df = pd.DataFrame([reading.to_dict() for reading in self._readings])
        df["timestamp"] = pd.to_datetime(df["timestamp"])
        return df[["id", "device_id", "timestamp", *METRICS]]

    def stats(self) -> dict:
        return {
            "maxlen": self.maxlen,
            "readings": len(self._readings),
            "per_metric": {metric: len(points) for metric, points in self._series.items()},
        }
