"""
Durable storage for the monitor's state.

The monitor only knows the ``MonitorStore`` protocol: save the full alert
set plus the recent readings after every mutation, load them back on start.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import delete, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smartmonitor.errors import PersistenceError
from smartmonitor.models.domain import (
    Alert,
    AlertSeverity,
    AlertState,
    Reading,
    RiskAssessment,
)
from smartmonitor.models.models import AlertRecord, AnalysisRun, SensorReading


class MonitorStore(Protocol):
    async def persist(self, alerts: Sequence[Alert], readings: Sequence[Reading]) -> None:
        ...

    async def load(self) -> Tuple[List[Alert], List[Reading]]:
        ...

    async def record_analysis(self, assessment: RiskAssessment) -> None:
        ...

    async def list_analysis_runs(self, limit: int = 50) -> List[dict]:
        ...


def _reading_row(reading: Reading, position: int) -> SensorReading:
    return SensorReading(
        id=reading.id,
        device_id=reading.device_id,
        timestamp=reading.timestamp,
        temperature=reading.temperature,
        humidity=reading.humidity,
        gas_emission=reading.gas_emission,
        vibration=reading.vibration,
        current=reading.current,
        position=position,
    )


def _reading_from_row(row: SensorReading) -> Reading:
    return Reading(
        id=row.id,
        device_id=row.device_id,
        timestamp=row.timestamp,
        temperature=row.temperature,
        humidity=row.humidity,
        gas_emission=row.gas_emission,
        vibration=row.vibration,
        current=row.current,
    )


def _alert_row(alert: Alert) -> AlertRecord:
    return AlertRecord(
        id=alert.id,
        severity=alert.severity.value,
        title=alert.title,
        message=alert.message,
        sensor=alert.sensor,
        metric=alert.metric,
        value=alert.value,
        threshold=alert.threshold,
        suggestions=list(alert.suggestions),
        contact_info=alert.contact_info,
        created_at=alert.created_at,
        state=alert.state.value,
        acknowledged_at=alert.acknowledged_at,
        fixed_at=alert.fixed_at,
        resolution=alert.resolution,
    )


def _alert_from_row(row: AlertRecord) -> Alert:
    return Alert(
        id=row.id,
        severity=AlertSeverity(row.severity),
        title=row.title,
        message=row.message,
        sensor=row.sensor,
        metric=row.metric,
        value=row.value,
        threshold=row.threshold,
        suggestions=list(row.suggestions or []),
        contact_info=row.contact_info,
        created_at=row.created_at,
        state=AlertState(row.state),
        acknowledged_at=row.acknowledged_at,
        fixed_at=row.fixed_at,
        resolution=row.resolution,
    )


def run_to_dict(run: AnalysisRun) -> dict:
    return {
        "id": run.id,
        "sequence": run.sequence,
        "trigger": run.trigger,
        "risk_level": run.risk_level,
        "risk_score": run.risk_score,
        "failure_probability": run.failure_probability,
        "time_to_failure": run.time_to_failure,
        "confidence": run.confidence,
        "recommendations": list(run.recommendations or []),
        "generated_at": run.generated_at.isoformat() if run.generated_at else None,
    }


class SqlAlchemyStore:
    """Store backed by the async SQLAlchemy session factory."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        if session_factory is None:
            from smartmonitor.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    async def persist(self, alerts: Sequence[Alert], readings: Sequence[Reading]) -> None:
        try:
            async with self._session_factory() as session:
                keep = [reading.id for reading in readings]
                await session.execute(delete(SensorReading).where(SensorReading.id.not_in(keep)))
                for position, reading in enumerate(readings):
                    await session.merge(_reading_row(reading, position))
                for alert in alerts:
                    await session.merge(_alert_row(alert))
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Saving monitor state failed: {exc}") from exc

    async def load(self) -> Tuple[List[Alert], List[Reading]]:
        try:
            async with self._session_factory() as session:
                alert_res = await session.execute(
                    select(AlertRecord).order_by(AlertRecord.created_at, AlertRecord.id)
                )
                reading_res = await session.execute(
                    select(SensorReading).order_by(SensorReading.position, SensorReading.timestamp)
                )
                alerts = [_alert_from_row(row) for row in alert_res.scalars().all()]
                readings = [_reading_from_row(row) for row in reading_res.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Loading monitor state failed: {exc}") from exc
        return alerts, readings

    async def record_analysis(self, assessment: RiskAssessment) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    AnalysisRun(
                        sequence=assessment.sequence,
                        trigger=assessment.trigger,
                        risk_level=assessment.risk_level.value,
                        risk_score=assessment.risk_score,
                        failure_probability=assessment.failure_probability,
                        time_to_failure=assessment.time_to_failure,
                        confidence=assessment.confidence,
                        recommendations=list(assessment.recommendations),
                        generated_at=assessment.generated_at,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Logging analysis run failed: {exc}") from exc

    async def list_analysis_runs(self, limit: int = 50) -> List[dict]:
        try:
            async with self._session_factory() as session:
                res = await session.execute(
                    select(AnalysisRun).order_by(desc(AnalysisRun.id)).limit(limit)
                )
                return [run_to_dict(run) for run in res.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Reading analysis runs failed: {exc}") from exc


class InMemoryStore:
    """
    Keeps serialized copies in process memory. Used for tests and for
    running the monitor without a database.
    """

    def __init__(self):
        self._alerts: List[dict] = []
        self._readings: List[dict] = []
        self._runs: List[dict] = []
        self.persist_calls = 0

    async def persist(self, alerts: Sequence[Alert], readings: Sequence[Reading]) -> None:
        self._alerts = [alert.to_dict() for alert in alerts]
        self._readings = [reading.to_dict() for reading in readings]
        self.persist_calls += 1

    async def load(self) -> Tuple[List[Alert], List[Reading]]:
        alerts = [Alert.from_dict(data) for data in self._alerts]
        readings = [Reading.from_dict(data) for data in self._readings]
        return alerts, readings

    async def record_analysis(self, assessment: RiskAssessment) -> None:
        run = assessment.to_dict()
        run["id"] = len(self._runs) + 1
        self._runs.append(run)

    async def list_analysis_runs(self, limit: int = 50) -> List[dict]:
        return list(reversed(self._runs))[:limit]
