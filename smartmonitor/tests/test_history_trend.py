import unittest
from datetime import datetime, timedelta

from smartmonitor.errors import UnknownMetricError
from smartmonitor.models.domain import HistoryPoint, Reading, Trend
from smartmonitor.services.history import HISTORY_LIMIT, HistoryStore
from smartmonitor.services.trend import trend, trend_ratio


def _reading(i, **overrides):
    values = dict(
        temperature=20.0 + i,
        humidity=50.0,
        gas_emission=150.0,
        vibration=10000.0,
        current=1.5,
        timestamp=datetime(2024, 1, 1) + timedelta(seconds=i),
    )
    values.update(overrides)
    return Reading(**values)


class HistoryStoreTestCase(unittest.TestCase):
    def test_bounded_fifo(self):
        store = HistoryStore(maxlen=20)
        for i in range(25):
            store.append(_reading(i))

        self.assertEqual(store.length, 20)
        values = [p.value for p in store.series("temperature")]
        self.assertEqual(len(values), 20)
        self.assertEqual(values[0], 25.0)
        self.assertEqual(values[-1], 44.0)
        self.assertEqual(store.latest().temperature, 44.0)

    def test_all_metrics_stay_aligned(self):
        store = HistoryStore(maxlen=5)
        for i in range(7):
            store.append(_reading(i))
        snapshot = store.snapshot()
        self.assertEqual({len(points) for points in snapshot.values()}, {5})
        self.assertEqual(
            [p.timestamp for p in snapshot["temperature"]],
            [p.timestamp for p in snapshot["current"]],
        )

    def test_empty_store(self):
        store = HistoryStore()
        self.assertIsNone(store.latest())
        self.assertEqual(store.series("humidity"), [])
        self.assertTrue(store.to_frame().empty)

    def test_unknown_metric(self):
        with self.assertRaises(UnknownMetricError):
            HistoryStore().series("pressure")

    def test_restore_replaces_content(self):
        store = HistoryStore(maxlen=3)
        store.append(_reading(100))
        count = store.restore([_reading(i) for i in range(5)])
        self.assertEqual(count, 5)
        self.assertEqual([p.value for p in store.series("temperature")], [22.0, 23.0, 24.0])

    def test_to_frame(self):
        store = HistoryStore()
        store.append(_reading(0))
        store.append(_reading(1))
        df = store.to_frame()
        self.assertEqual(len(df), 2)
        self.assertIn("gas_emission", df.columns)
        self.assertEqual(df["temperature"].tolist(), [20.0, 21.0])

    def test_invalid_size(self):
        self.assertEqual(HistoryStore().maxlen, HISTORY_LIMIT)
        with self.assertRaises(ValueError):
            HistoryStore(maxlen=0)
        with self.assertRaises(ValueError):
            HistoryStore(maxlen=HISTORY_LIMIT + 1)


class TrendTestCase(unittest.TestCase):
    def test_needs_two_windows(self):
        self.assertEqual(trend([10, 20, 30, 40, 50]), Trend.STABLE)

    def test_directions(self):
        self.assertEqual(trend([10, 10, 10, 20, 20, 20]), Trend.UP)
        self.assertEqual(trend([20, 20, 20, 10, 10, 10]), Trend.DOWN)
        self.assertEqual(trend([10, 10, 10, 10.4, 10.4, 10.4]), Trend.STABLE)

    def test_only_last_windows_count(self):
        self.assertEqual(trend([100, 100, 10, 10, 10, 10, 10, 10]), Trend.STABLE)

    def test_accepts_history_points(self):
        points = [HistoryPoint(datetime(2024, 1, 1), v) for v in (1, 1, 1, 2, 2, 2)]
        self.assertEqual(trend(points), Trend.UP)


class TrendRatioTestCase(unittest.TestCase):
    def test_not_enough_points(self):
        self.assertEqual(trend_ratio([10, 20, 30]), 0.0)
        self.assertEqual(trend_ratio([10, 20, 30, 40, 50]), 0.0)

    def test_ratio(self):
        self.assertAlmostEqual(trend_ratio([10] * 5 + [20] * 5), 1.0)
        self.assertAlmostEqual(trend_ratio([20] * 5 + [10] * 5), -0.5)

    def test_partial_earlier_window(self):
        self.assertAlmostEqual(trend_ratio([10, 10, 20, 20, 20, 20, 20]), 1.0)

    def test_zero_baseline(self):
        self.assertEqual(trend_ratio([0] * 5 + [10] * 5), 0.0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
