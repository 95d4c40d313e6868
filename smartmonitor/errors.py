from __future__ import annotations


class MonitorError(Exception):
    """Base class for errors reported by the monitoring core."""


class ReadingValidationError(MonitorError, ValueError):
    """A reading failed basic sanity checks and was rejected as a whole."""


class UnknownMetricError(MonitorError, KeyError):
    def __init__(self, metric: str):
        super().__init__(metric)
        self.metric = metric

    def __str__(self) -> str:
        return f"Unknown metric: {self.metric!r}"


class AlertNotFoundError(MonitorError, LookupError):
    def __init__(self, alert_id: str, reason: str = "not found"):
        super().__init__(alert_id, reason)
        self.alert_id = alert_id
        self.reason = reason

    def __str__(self) -> str:
        return f"Alert {self.alert_id}: {self.reason}"


class PersistenceError(MonitorError):
    """
    The store failed to save. The in-memory change has already been applied
    and is kept; callers may retry persisting. ``result`` carries the outcome
    of the operation whose save failed, when there is one.
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class AnalysisBusyError(MonitorError):
    """A manual analysis was rejected because another pass is in flight."""
