# smartmonitor/main.py
import logging
import math
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from smartmonitor.config import get_settings
from smartmonitor.db.session import init_models
from smartmonitor.errors import (
    AlertNotFoundError,
    AnalysisBusyError,
    PersistenceError,
    ReadingValidationError,
)
from smartmonitor.models.domain import METRICS
from smartmonitor.schemas.monitoring import (
    AlertOut,
    IngestOut,
    ReadingIn,
    ReadingOut,
    RiskAssessmentOut,
)
from smartmonitor.services.data_ingest import reading_from_payload
from smartmonitor.services.monitor import AnalysisScheduler, Monitor
from smartmonitor.services.notifications import AlertNotifier
from smartmonitor.services.store import MonitorStore, SqlAlchemyStore
from smartmonitor.services.thresholds import THRESHOLDS

logger = logging.getLogger("smartmonitor.api")


def sanitize_floats(data):
    if isinstance(data, dict):
        return {k: sanitize_floats(v) for k, v in data.items()}
    if isinstance(data, list):
        return [sanitize_floats(v) for v in data]
    if isinstance(data, float):
        return data if math.isfinite(data) else None
    return data


def alert_to_dict(alert) -> dict:
    return AlertOut.model_validate(alert.to_dict()).model_dump(mode="json")


def assessment_to_dict(assessment) -> dict:
    return RiskAssessmentOut.model_validate(assessment.to_dict()).model_dump(mode="json")


# ------ Security (simple header key) ------
settings = get_settings()


async def require_key(request: Request):
    key = request.headers.get("x-api-key")
    if key != settings.api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_monitor(request: Request) -> Monitor:
    return request.app.state.monitor


def _persistence_failed(exc: PersistenceError) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail=f"State changed in memory but could not be saved: {exc}",
    )


# ------ App ------
def create_app(store: Optional[MonitorStore] = None, *, start_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if store is None:
            await init_models()
        monitor = Monitor(store if store is not None else SqlAlchemyStore())
        notifier = AlertNotifier()
        monitor.events.on_alert_changed(notifier)
        try:
            await monitor.start()
        except PersistenceError as exc:
            logger.error("Could not load stored state, starting empty: %s", exc)
            await monitor.run_analysis_now(trigger="startup")

        scheduler = AnalysisScheduler(monitor)
        if start_scheduler:
            scheduler.start()

        app.state.monitor = monitor
        app.state.scheduler = scheduler
        yield
        await scheduler.stop()
        await notifier.aclose()

    app = FastAPI(title="SmartMonitor", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"message": "SmartMonitor backend is running"}

    @app.get("/health")
    async def health(request: Request, monitor: Monitor = Depends(get_monitor)):
        summary = monitor.alert_summary()
        assessment = monitor.assessment
        return {
            "status": "ok",
            "readings": monitor.stats()["history"]["readings"],
            "active_alerts": summary["active"],
            "risk_level": assessment.risk_level.value,
            "last_analysis": assessment.generated_at.isoformat(),
            "scheduler": request.app.state.scheduler.stats(),
        }

    @app.get("/thresholds")
    async def thresholds(monitor: Monitor = Depends(get_monitor)):
        rules = monitor.alert_rules()
        return {
            metric: {
                **THRESHOLDS[metric].to_dict(),
                "sensor": rules[metric].sensor,
                "alert_bands": sorted(band.value for band in rules[metric].bands),
            }
            for metric in METRICS
        }

    @app.get("/stats", dependencies=[Depends(require_key)])
    async def stats(monitor: Monitor = Depends(get_monitor)):
        return sanitize_floats(monitor.stats())

    # ------ Readings ------
    @app.post(
        "/readings",
        dependencies=[Depends(require_key)],
        response_model=IngestOut,
        status_code=201,
    )
    async def ingest_reading(point: ReadingIn, monitor: Monitor = Depends(get_monitor)):
        """Ingest one reading: history, classification and alerts in one step."""
        try:
            reading = reading_from_payload(
                point.model_dump(exclude_none=True), default_device=settings.device_id
            )
            result = await monitor.ingest(reading)
        except ReadingValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise _persistence_failed(exc) from exc
        return result.to_dict()

    @app.get("/readings/latest", dependencies=[Depends(require_key)], response_model=ReadingOut)
    async def latest_reading(monitor: Monitor = Depends(get_monitor)):
        reading = monitor.latest_reading()
        if reading is None:
            raise HTTPException(status_code=404, detail="No readings ingested yet")
        return reading.to_dict()

    @app.get("/history", dependencies=[Depends(require_key)])
    async def history(
        metric: Optional[str] = Query(None, description="Optional metric filter"),
        monitor: Monitor = Depends(get_monitor),
    ):
        """Bounded per-metric series for charting."""
        snapshot = monitor.snapshot()
        if metric is not None and metric not in snapshot.history:
            raise HTTPException(status_code=404, detail=f"Unknown metric: {metric}")
        metrics = [metric] if metric else list(snapshot.history)
        return {m: [point.to_dict() for point in snapshot.history[m]] for m in metrics}

    @app.get("/history/trends", dependencies=[Depends(require_key)])
    async def history_trends(monitor: Monitor = Depends(get_monitor)):
        return sanitize_floats(monitor.trends())

    # ------ Alerts ------
    @app.get("/alerts", dependencies=[Depends(require_key)])
    async def alerts(
        state: Optional[str] = Query(None, description="active, acknowledged or fixed"),
        sensor: Optional[str] = Query(None, description="Optional sensor filter"),
        limit: int = Query(default=settings.dashboard_limit, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        monitor: Monitor = Depends(get_monitor),
    ):
        items = monitor.snapshot().alerts
        if state:
            items = [a for a in items if a.state.value == state.lower()]
        if sensor:
            items = [a for a in items if a.sensor == sensor]
        items = sorted(items, key=lambda a: a.created_at, reverse=True)
        total = len(items)
        page = items[offset:offset + limit]
        return {
            "items": [alert_to_dict(a) for a in page],
            "offset": offset,
            "limit": limit,
            "total": total,
            "has_next": offset + limit < total,
            "next_offset": offset + limit if offset + limit < total else None,
        }

    @app.get("/alerts/active", dependencies=[Depends(require_key)])
    async def active_alerts(monitor: Monitor = Depends(get_monitor)):
        return {"items": [alert_to_dict(a) for a in monitor.list_active()]}

    @app.get("/alerts/history", dependencies=[Depends(require_key)])
    async def alert_history(monitor: Monitor = Depends(get_monitor)):
        return {"items": [alert_to_dict(a) for a in monitor.list_acknowledged_or_fixed()]}

    @app.get("/alerts/summary", dependencies=[Depends(require_key)])
    async def alert_summary(monitor: Monitor = Depends(get_monitor)):
        return monitor.alert_summary()

    @app.post("/alerts/{alert_id}/acknowledge", dependencies=[Depends(require_key)])
    async def acknowledge_alert(alert_id: str, monitor: Monitor = Depends(get_monitor)):
        try:
            alert = await monitor.acknowledge(alert_id)
        except AlertNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise _persistence_failed(exc) from exc
        return alert_to_dict(alert)

    @app.post("/alerts/{alert_id}/fix", dependencies=[Depends(require_key)])
    async def fix_alert(alert_id: str, monitor: Monitor = Depends(get_monitor)):
        try:
            alert = await monitor.mark_fixed(alert_id)
        except AlertNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise _persistence_failed(exc) from exc
        return alert_to_dict(alert)

    # ------ Risk analysis ------
    @app.get("/analysis/latest", dependencies=[Depends(require_key)])
    async def analysis_latest(monitor: Monitor = Depends(get_monitor)):
        return assessment_to_dict(monitor.assessment)

    @app.post("/analysis/run", dependencies=[Depends(require_key)])
    async def analysis_run(monitor: Monitor = Depends(get_monitor)):
        """Run the risk analysis now (joins a pass that is already running)."""
        try:
            assessment = await monitor.run_analysis_now(trigger="manual")
        except AnalysisBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return assessment_to_dict(assessment)

    @app.get("/analysis/runs", dependencies=[Depends(require_key)])
    async def analysis_runs(
        limit: int = Query(default=settings.run_log_limit, ge=1, le=500),
        monitor: Monitor = Depends(get_monitor),
    ):
        try:
            runs = await monitor.store.list_analysis_runs(limit)
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"items": sanitize_floats(runs)}

    return app


app = create_app()
