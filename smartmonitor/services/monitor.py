"""
Monitor
The single owner of mutable monitoring state.

History, alerts and the current risk assessment live here and are only
changed under ``Monitor._lock``. Risk scoring works on a snapshot taken
under the lock and commits its result under the lock again, so a slow pass
never holds up ingestion. Concurrent analysis requests share one pass.

Usage:
    monitor = Monitor(SqlAlchemyStore())
    await monitor.start()
    result = await monitor.ingest(reading)
    assessment = await monitor.run_analysis_now()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from smartmonitor.config import get_settings
from smartmonitor.errors import (
    AnalysisBusyError,
    MonitorError,
    PersistenceError,
    ReadingValidationError,
)
from smartmonitor.models.domain import (
    Alert,
    Band,
    HistoryPoint,
    Reading,
    RiskAssessment,
    utcnow,
)
from smartmonitor.services import scoring
from smartmonitor.services.alerts import AlertManager, AlertRule
from smartmonitor.services.data_ingest import validate_reading
from smartmonitor.services.events import (
    ALERT_CHANGED,
    READING_INGESTED,
    RISK_ASSESSMENT_UPDATED,
    MonitorEvents,
)
from smartmonitor.services.history import HistoryStore
from smartmonitor.services.store import InMemoryStore, MonitorStore
from smartmonitor.services.thresholds import classify_reading
from smartmonitor.services.trend import trend, trend_ratio

logger = logging.getLogger("smartmonitor.monitor")


@dataclass
class IngestResult:
    reading: Reading
    bands: Dict[str, Band]
    created: List[Alert] = field(default_factory=list)
    cleared: List[Alert] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "reading": self.reading.to_dict(),
            "bands": {metric: band.value for metric, band in self.bands.items()},
            "created_alerts": [alert.to_dict() for alert in self.created],
            "cleared_alerts": [alert.to_dict() for alert in self.cleared],
        }


@dataclass(frozen=True)
class MonitorSnapshot:
    latest: Optional[Reading]
    history: Dict[str, List[HistoryPoint]]
    alerts: List[Alert]
    assessment: RiskAssessment

    @property
    def active_alerts(self) -> List[Alert]:
        return [a for a in self.alerts if a.is_active]

    @property
    def handled_alerts(self) -> List[Alert]:
        return [a for a in self.alerts if not a.is_active]


class Monitor:
    def __init__(
        self,
        store: Optional[MonitorStore] = None,
        *,
        history_size: Optional[int] = None,
        rules: Optional[Dict[str, AlertRule]] = None,
        weights: scoring.RiskWeights = scoring.DEFAULT_WEIGHTS,
        reject_when_busy: Optional[bool] = None,
        events: Optional[MonitorEvents] = None,
    ):
        settings = get_settings()
        self._store = store if store is not None else InMemoryStore()
        self._history = HistoryStore(maxlen=history_size or settings.history_size)
        self._alerts = AlertManager(rules)
        self._weights = weights
        self._reject_when_busy = (
            settings.analysis_reject_when_busy if reject_when_busy is None else reject_when_busy
        )
        self.events = events or MonitorEvents()

        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None
        self._sequence = 0
        self._assessment = scoring.score(None, {}, weights=weights, trigger="startup")
        self._stats = {
            "readings_ingested": 0,
            "readings_rejected": 0,
            "analysis_runs": 0,
            "analysis_coalesced": 0,
            "persistence_failures": 0,
            "started_at": utcnow(),
        }

    @property
    def store(self) -> MonitorStore:
        return self._store

    @property
    def assessment(self) -> RiskAssessment:
        return self._assessment

    @property
    def analysis_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def start(self) -> RiskAssessment:
        """Seed state from the store and compute the first assessment."""
        alerts, readings = await self._store.load()
        async with self._lock:
            restored_readings = self._history.restore(readings)
            restored_alerts = self._alerts.restore(alerts)
        logger.info(
            "Monitor started with %d reading(s) and %d alert(s) from store",
            restored_readings,
            restored_alerts,
        )
        return await self.run_analysis_now(trigger="startup")

    async def ingest(self, reading: Reading) -> IngestResult:
        """
        Append, classify and reconcile one reading atomically. A reading that
        fails validation leaves every piece of state untouched.
        """
        try:
            reading = validate_reading(reading)
        except MonitorError:
            self._stats["readings_rejected"] += 1
            raise

        async with self._lock:
            # Readings are keyed by id once persisted.
            if any(held.id == reading.id for held in self._history.readings()):
                self._stats["readings_rejected"] += 1
                raise ReadingValidationError(f"Invalid reading: duplicate id {reading.id!r}")
            self._history.append(reading)
            bands = classify_reading(reading)
            result = IngestResult(reading=reading, bands=bands)
            for metric, band in bands.items():
                for alert in self._alerts.reconcile(metric, band, reading):
                    if alert.is_active:
                        result.created.append(alert)
                    else:
                        result.cleared.append(alert)
            self._stats["readings_ingested"] += 1
            persist_error = await self._persist_locked()

        await self.events.publish(READING_INGESTED, reading)
        for alert in result.created + result.cleared:
            await self.events.publish(ALERT_CHANGED, alert)

        if persist_error is not None:
            persist_error.result = result
            raise persist_error
        return result

    async def acknowledge(self, alert_id: str) -> Alert:
        async with self._lock:
            alert = self._alerts.acknowledge(alert_id)
            persist_error = await self._persist_locked()

        await self.events.publish(ALERT_CHANGED, alert)
        if persist_error is not None:
            persist_error.result = alert
            raise persist_error
        return alert

    async def mark_fixed(self, alert_id: str) -> Alert:
        async with self._lock:
            current = self._alerts.get(alert_id)
            if not current.is_open:
                return current
            alert = self._alerts.mark_fixed(alert_id)
            persist_error = await self._persist_locked()

        await self.events.publish(ALERT_CHANGED, alert)
        if persist_error is not None:
            persist_error.result = alert
            raise persist_error
        return alert

    async def run_analysis_now(self, trigger: str = "manual") -> RiskAssessment:
        """
        Run one scoring pass, or join the pass already running. With
        ``reject_when_busy`` a manual request during a pass raises
        AnalysisBusyError instead of waiting for it.
        """
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if self._reject_when_busy and trigger == "manual":
                raise AnalysisBusyError("An analysis pass is already running")
            self._stats["analysis_coalesced"] += 1
            return await asyncio.shield(inflight)

        task = asyncio.ensure_future(self._analysis_pass(trigger))
        self._inflight = task
        return await asyncio.shield(task)

    async def retry_persist(self) -> None:
        """Save the current state again, e.g. after a PersistenceError."""
        async with self._lock:
            persist_error = await self._persist_locked()
        if persist_error is not None:
            raise persist_error

    def snapshot(self) -> MonitorSnapshot:
        # No await in here, so no other coroutine can mutate state midway.
        return MonitorSnapshot(
            latest=self._history.latest(),
            history=self._history.snapshot(),
            alerts=self._alerts.all_alerts(),
            assessment=self._assessment,
        )

    def list_active(self) -> List[Alert]:
        return self._alerts.list_active()

    def list_acknowledged_or_fixed(self) -> List[Alert]:
        return self._alerts.list_acknowledged_or_fixed()

    def get_alert(self, alert_id: str) -> Alert:
        return self._alerts.get(alert_id)

    def alert_rules(self) -> Dict[str, AlertRule]:
        return {rule.metric: rule for rule in self._alerts.rules()}

    def alert_summary(self) -> dict:
        return self._alerts.summary()

    def trends(self) -> Dict[str, dict]:
        """Direction and ratio per metric over the current history window."""
        history = self._history.snapshot()
        return {
            metric: {"trend": trend(points).value, "ratio": round(trend_ratio(points), 4)}
            for metric, points in history.items()
        }

    def latest_reading(self) -> Optional[Reading]:
        return self._history.latest()

    def history_frame(self):
        return self._history.to_frame()

    def stats(self) -> dict:
        uptime = (utcnow() - self._stats["started_at"]).total_seconds()
        return {
            **{k: v for k, v in self._stats.items() if k != "started_at"},
            "uptime_seconds": round(uptime, 2),
            "history": self._history.stats(),
            "alerts": self._alerts.stats(),
            "analysis_sequence": self._sequence,
            "analysis_in_flight": self.analysis_in_flight,
        }

    async def _analysis_pass(self, trigger: str) -> RiskAssessment:
        async with self._lock:
            latest = self._history.latest()
            histories = self._history.snapshot()

        assessment = scoring.score(latest, histories, weights=self._weights, trigger=trigger)

        async with self._lock:
            self._sequence += 1
            assessment = replace(assessment, sequence=self._sequence, generated_at=utcnow())
            self._assessment = assessment
            self._stats["analysis_runs"] += 1

        logger.info(
            "Analysis #%d (%s): risk=%s score=%.1f probability=%.1f%%",
            assessment.sequence,
            trigger,
            assessment.risk_level.value,
            assessment.risk_score,
            assessment.failure_probability,
        )
        try:
            await self._store.record_analysis(assessment)
        except PersistenceError as exc:
            self._stats["persistence_failures"] += 1
            logger.warning("Analysis run log not saved: %s", exc)

        await self.events.publish(RISK_ASSESSMENT_UPDATED, assessment)
        return assessment

    async def _persist_locked(self) -> Optional[PersistenceError]:
        try:
            await self._store.persist(self._alerts.all_alerts(), self._history.readings())
        except PersistenceError as exc:
            self._stats["persistence_failures"] += 1
            logger.warning("Persisting monitor state failed: %s", exc)
            return exc
        except OSError as exc:
            self._stats["persistence_failures"] += 1
            logger.warning("Persisting monitor state failed: %s", exc)
            error = PersistenceError(f"Saving monitor state failed: {exc}")
            error.__cause__ = exc
            return error
        return None


class AnalysisScheduler:
    """
    Runs ``monitor.run_analysis_now("scheduled")`` every ``interval``
    seconds until stopped. ``stop()`` lets a running pass finish.
    """

    def __init__(self, monitor: Monitor, interval: Optional[float] = None):
        self._monitor = monitor
        self.interval = float(interval if interval is not None else get_settings().analysis_interval_seconds)
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.runs = 0
        self.errors = 0
        self.last_run_at = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info("Analysis scheduler started (every %.1fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Analysis scheduler stopped after %d run(s)", self.runs)

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            try:
                await self._monitor.run_analysis_now(trigger="scheduled")
                self.runs += 1
                self.last_run_at = utcnow()
            except MonitorError as exc:
                self.errors += 1
                logger.warning("Scheduled analysis failed: %s", exc)
            except Exception:
                self.errors += 1
                logger.exception("Scheduled analysis crashed, next pass in %.1fs", self.interval)

    def stats(self) -> dict:
        return {
            "is_running": self.is_running,
            "interval_seconds": self.interval,
            "runs": self.runs,
            "errors": self.errors,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }
