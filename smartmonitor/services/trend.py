from __future__ import annotations

from typing import Iterable, Sequence, Union

import pandas as pd

from smartmonitor.models.domain import HistoryPoint, Trend

DIRECTION_WINDOW = 3
UP_FACTOR = 1.05
DOWN_FACTOR = 0.95
RATIO_WINDOW = 5

SeriesLike = Union[Sequence[HistoryPoint], Sequence[float]]


def _as_series(points: Iterable) -> pd.Series:
    values = [p.value if isinstance(p, HistoryPoint) else p for p in points]
    return pd.Series(values, dtype="float64")


def trend(points: SeriesLike, window: int = DIRECTION_WINDOW) -> Trend:
    """
    Compare the mean of the last ``window`` points with the ``window``
    points before them. Too little data is reported as stable.
    """
    series = _as_series(points)
    if len(series) < 2 * window:
        return Trend.STABLE

    recent_mean = series.iloc[-window:].mean()
    earlier_mean = series.iloc[-2 * window:-window].mean()

    if recent_mean > earlier_mean * UP_FACTOR:
        return Trend.UP
    if recent_mean < earlier_mean * DOWN_FACTOR:
        return Trend.DOWN
    return Trend.STABLE


def trend_ratio(points: SeriesLike, window: int = RATIO_WINDOW) -> float:
    """
    Relative change between the last ``window`` points and up to ``window``
    points preceding them. Returns 0.0 when there is nothing to compare.
    """
    series = _as_series(points)
    if len(series) < window:
        return 0.0

    recent = series.iloc[-window:]
    earlier = series.iloc[max(0, len(series) - 2 * window):-window]
    if earlier.empty:
        return 0.0

    earlier_mean = float(earlier.mean())
    if earlier_mean == 0:
        return 0.0
    return (float(recent.mean()) - earlier_mean) / earlier_mean
