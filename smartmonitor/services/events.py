from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger("smartmonitor.events")

READING_INGESTED = "reading_ingested"
ALERT_CHANGED = "alert_changed"
RISK_ASSESSMENT_UPDATED = "risk_assessment_updated"

Listener = Callable[[Any], Any]


class MonitorEvents:
    """
    Listener registry for the events the monitor publishes. Listeners may be
    plain functions or coroutines; a failing listener is logged and skipped.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {
            READING_INGESTED: [],
            ALERT_CHANGED: [],
            RISK_ASSESSMENT_UPDATED: [],
        }

    def on_reading_ingested(self, callback: Listener) -> Listener:
        self._listeners[READING_INGESTED].append(callback)
        return callback

    def on_alert_changed(self, callback: Listener) -> Listener:
        self._listeners[ALERT_CHANGED].append(callback)
        return callback

    def on_risk_assessment_updated(self, callback: Listener) -> Listener:
        self._listeners[RISK_ASSESSMENT_UPDATED].append(callback)
        return callback

    def remove(self, event: str, callback: Listener) -> bool:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)
            return True
        return False

    async def publish(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener %r for %s failed", callback, event)

    def listener_count(self) -> Dict[str, int]:
        return {event: len(listeners) for event, listeners in self._listeners.items()}
