import asyncio
import math
import unittest

from smartmonitor.errors import AlertNotFoundError, AnalysisBusyError, PersistenceError, ReadingValidationError
from smartmonitor.models.domain import AlertState, Band, Reading, RiskLevel
from smartmonitor.services.monitor import AnalysisScheduler, IngestResult, Monitor
from smartmonitor.services.store import InMemoryStore


def _reading(**overrides):
    values = dict(temperature=25.0, humidity=50.0, gas_emission=150.0, vibration=10000.0, current=1.5)
    values.update(overrides)
    return Reading(**values)


class FailingStore(InMemoryStore):
    def __init__(self, error=None):
        super().__init__()
        self.error = error or PersistenceError("disk full")

    async def persist(self, alerts, readings):
        if self.error is not None:
            raise self.error
        await super().persist(alerts, readings)


class GatedStore(InMemoryStore):
    """Holds every analysis pass at record_analysis until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def record_analysis(self, assessment):
        await self.gate.wait()
        await super().record_analysis(assessment)


class CrashingMonitor(Monitor):
    """Fails its first scheduled pass with an error outside MonitorError."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.crashed = False

    async def run_analysis_now(self, trigger="manual"):
        if not self.crashed:
            self.crashed = True
            raise RuntimeError("scorer blew up")
        return await super().run_analysis_now(trigger)


class MonitorIngestTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = InMemoryStore()
        self.monitor = Monitor(self.store, history_size=20)

    async def test_danger_then_recovery(self):
        first = await self.monitor.ingest(_reading(temperature=70.0))
        self.assertEqual(first.bands["temperature"], Band.DANGER)
        self.assertEqual(len(first.created), 1)

        second = await self.monitor.ingest(_reading(temperature=30.0))
        self.assertEqual(len(second.cleared), 1)

        alerts = self.monitor.snapshot().alerts
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].state, AlertState.FIXED)
        self.assertEqual(alerts[0].resolution, "auto")
        self.assertEqual(self.store.persist_calls, 2)

    async def test_repeated_danger_keeps_one_alert(self):
        for value in (70.0, 72.0, 75.0):
            await self.monitor.ingest(_reading(temperature=value))
        self.assertEqual(len(self.monitor.list_active()), 1)

    async def test_invalid_reading_changes_nothing(self):
        with self.assertRaises(ReadingValidationError):
            await self.monitor.ingest(_reading(temperature=math.nan))
        with self.assertRaises(ReadingValidationError):
            await self.monitor.ingest(_reading(device_id=""))

        self.assertIsNone(self.monitor.latest_reading())
        self.assertEqual(self.monitor.snapshot().alerts, [])
        self.assertEqual(self.store.persist_calls, 0)
        self.assertEqual(self.monitor.stats()["readings_rejected"], 2)

    async def test_history_is_bounded(self):
        for i in range(25):
            await self.monitor.ingest(_reading(temperature=20.0 + i * 0.5))
        history = self.monitor.snapshot().history
        self.assertEqual(len(history["temperature"]), 20)
        self.assertEqual(history["temperature"][0].value, 22.5)
        self.assertEqual(self.monitor.latest_reading().temperature, 32.0)

    async def test_history_size_above_limit_refused(self):
        with self.assertRaises(ValueError):
            Monitor(InMemoryStore(), history_size=40)

    async def test_duplicate_reading_id_rejected(self):
        await self.monitor.ingest(_reading(id="r-1"))
        with self.assertRaises(ReadingValidationError):
            await self.monitor.ingest(_reading(temperature=70.0, id="r-1"))

        self.assertEqual(len(self.monitor.snapshot().history["temperature"]), 1)
        self.assertEqual(self.monitor.list_active(), [])
        self.assertEqual(self.store.persist_calls, 1)
        _, stored = await self.store.load()
        self.assertEqual([r.id for r in stored], ["r-1"])

    async def test_trends(self):
        for value in (30.0, 30.0, 30.0, 20.0, 20.0, 20.0):
            await self.monitor.ingest(_reading(temperature=value))
        trends = self.monitor.trends()
        self.assertEqual(trends["temperature"]["trend"], "down")
        self.assertEqual(trends["humidity"]["trend"], "stable")
        self.assertAlmostEqual(trends["temperature"]["ratio"], -0.2)

    async def test_acknowledge_and_fix(self):
        result = await self.monitor.ingest(_reading(current=3.0))
        alert_id = result.created[0].id

        acked = await self.monitor.acknowledge(alert_id)
        self.assertEqual(acked.state, AlertState.ACKNOWLEDGED)
        fixed = await self.monitor.mark_fixed(alert_id)
        self.assertEqual(fixed.state, AlertState.FIXED)

        calls = self.store.persist_calls
        again = await self.monitor.mark_fixed(alert_id)
        self.assertEqual(again.fixed_at, fixed.fixed_at)
        self.assertEqual(self.store.persist_calls, calls)

        with self.assertRaises(AlertNotFoundError):
            await self.monitor.acknowledge(alert_id)
        with self.assertRaises(AlertNotFoundError):
            await self.monitor.mark_fixed("current-missing")

    async def test_events_published(self):
        seen = []
        self.monitor.events.on_reading_ingested(lambda reading: seen.append(("reading", reading.id)))

        async def on_alert(alert):
            seen.append(("alert", alert.state.value))

        self.monitor.events.on_alert_changed(on_alert)
        self.monitor.events.on_alert_changed(lambda alert: 1 / 0)

        with self.assertLogs("smartmonitor.events", level="ERROR"):
            reading = _reading(temperature=70.0)
            await self.monitor.ingest(reading)

        self.assertEqual(seen, [("reading", reading.id), ("alert", "active")])
        self.assertEqual(len(self.monitor.list_active()), 1)


class MonitorPersistenceTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_persistence_failure_keeps_state(self):
        store = FailingStore()
        monitor = Monitor(store)
        reading = _reading(temperature=70.0)

        with self.assertRaises(PersistenceError) as ctx:
            await monitor.ingest(reading)

        self.assertIsInstance(ctx.exception.result, IngestResult)
        self.assertEqual(len(ctx.exception.result.created), 1)
        self.assertEqual(monitor.latest_reading(), reading)
        self.assertEqual(len(monitor.list_active()), 1)
        self.assertEqual(monitor.stats()["persistence_failures"], 1)

        store.error = None
        await monitor.retry_persist()
        alerts, readings = await store.load()
        self.assertEqual(len(alerts), 1)
        self.assertEqual(readings, [reading])

    async def test_os_error_reported_as_persistence_error(self):
        monitor = Monitor(FailingStore(OSError("read-only file system")))
        with self.assertRaises(PersistenceError):
            await monitor.ingest(_reading())
        self.assertIsNotNone(monitor.latest_reading())

    async def test_start_restores_state(self):
        store = InMemoryStore()
        first = Monitor(store)
        await first.ingest(_reading(temperature=45.5))
        await first.ingest(_reading(temperature=70.0))

        second = Monitor(store)
        assessment = await second.start()

        self.assertEqual(len(second.list_active()), 1)
        self.assertEqual(second.latest_reading().temperature, 70.0)
        self.assertEqual(len(second.snapshot().history["temperature"]), 2)
        self.assertEqual(assessment.trigger, "startup")
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)
        self.assertEqual(assessment.sequence, 1)


class MonitorAnalysisTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_baseline_before_first_reading(self):
        monitor = Monitor(InMemoryStore())
        self.assertEqual(monitor.assessment.risk_level, RiskLevel.LOW)
        self.assertEqual(monitor.assessment.failure_probability, 5.0)
        self.assertEqual(monitor.assessment.sequence, 0)

    async def test_analysis_updates_assessment(self):
        store = InMemoryStore()
        monitor = Monitor(store)
        await monitor.ingest(_reading(temperature=65.0))
        assessment = await monitor.run_analysis_now()

        self.assertEqual(assessment.risk_score, 30.0)
        self.assertEqual(monitor.assessment, assessment)
        self.assertEqual(assessment.sequence, 1)
        runs = await store.list_analysis_runs()
        self.assertEqual(runs[0]["risk_level"], "medium")

    async def test_sequence_increases(self):
        monitor = Monitor(InMemoryStore())
        first = await monitor.run_analysis_now()
        second = await monitor.run_analysis_now()
        self.assertLess(first.sequence, second.sequence)
        self.assertGreaterEqual(second.generated_at, first.generated_at)

    async def test_concurrent_requests_share_one_pass(self):
        store = GatedStore()
        monitor = Monitor(store, reject_when_busy=False)

        first = asyncio.create_task(monitor.run_analysis_now())
        await asyncio.sleep(0)
        self.assertTrue(monitor.analysis_in_flight)
        second = asyncio.create_task(monitor.run_analysis_now())
        await asyncio.sleep(0)

        store.gate.set()
        a, b = await asyncio.gather(first, second)
        self.assertEqual(a.sequence, b.sequence)
        self.assertEqual(monitor.stats()["analysis_runs"], 1)
        self.assertEqual(monitor.stats()["analysis_coalesced"], 1)

    async def test_reject_when_busy(self):
        store = GatedStore()
        monitor = Monitor(store, reject_when_busy=True)

        first = asyncio.create_task(monitor.run_analysis_now())
        await asyncio.sleep(0)
        with self.assertRaises(AnalysisBusyError):
            await monitor.run_analysis_now()

        scheduled = asyncio.create_task(monitor.run_analysis_now(trigger="scheduled"))
        await asyncio.sleep(0)
        store.gate.set()
        a, b = await asyncio.gather(first, scheduled)
        self.assertEqual(a.sequence, b.sequence)

    async def test_ingest_not_blocked_by_analysis(self):
        store = GatedStore()
        monitor = Monitor(store)
        pending = asyncio.create_task(monitor.run_analysis_now())
        await asyncio.sleep(0)

        await asyncio.wait_for(monitor.ingest(_reading(temperature=70.0)), timeout=1)
        self.assertFalse(pending.done())

        store.gate.set()
        await pending


class AnalysisSchedulerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_runs_until_stopped(self):
        monitor = Monitor(InMemoryStore())
        scheduler = AnalysisScheduler(monitor, interval=0.01)
        scheduler.start()
        self.assertTrue(scheduler.is_running)
        await asyncio.sleep(0.1)
        await scheduler.stop()

        self.assertFalse(scheduler.is_running)
        self.assertGreaterEqual(scheduler.runs, 1)
        self.assertEqual(monitor.assessment.trigger, "scheduled")
        self.assertEqual(scheduler.stats()["errors"], 0)

    async def test_unexpected_error_keeps_loop_alive(self):
        monitor = CrashingMonitor(InMemoryStore())
        scheduler = AnalysisScheduler(monitor, interval=0.01)
        with self.assertLogs("smartmonitor.monitor", level="ERROR"):
            scheduler.start()
            await asyncio.sleep(0.1)
            self.assertTrue(scheduler.is_running)
            await scheduler.stop()

        self.assertEqual(scheduler.errors, 1)
        self.assertGreaterEqual(scheduler.runs, 1)

    async def test_stop_without_start(self):
        scheduler = AnalysisScheduler(Monitor(InMemoryStore()), interval=1)
        await scheduler.stop()
        self.assertFalse(scheduler.is_running)

    async def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            AnalysisScheduler(Monitor(InMemoryStore()), interval=0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
