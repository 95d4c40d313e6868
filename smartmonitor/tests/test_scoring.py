import unittest
from datetime import datetime, timedelta

from smartmonitor.models.domain import Band, HistoryPoint, Reading, RiskLevel
from smartmonitor.services.scoring import (
    NORMAL_OPERATION,
    RiskWeights,
    confidence_for,
    map_risk_score,
    score,
)
from smartmonitor.services.thresholds import classify


def _reading(**overrides):
    values = dict(temperature=25.0, humidity=50.0, gas_emission=150.0, vibration=10000.0, current=1.5)
    values.update(overrides)
    return Reading(**values)


def _points(values):
    start = datetime(2024, 1, 1)
    return [HistoryPoint(start + timedelta(seconds=i), float(v)) for i, v in enumerate(values)]


class MapRiskScoreTestCase(unittest.TestCase):
    def test_band_table(self):
        level, probability, bucket = map_risk_score(80)
        self.assertEqual((level, bucket), (RiskLevel.CRITICAL, "1-3 days"))
        self.assertAlmostEqual(probability, 94.0)

        level, probability, bucket = map_risk_score(50)
        self.assertEqual((level, bucket), (RiskLevel.HIGH, "1-2 weeks"))
        self.assertAlmostEqual(probability, 60.0)

        level, probability, bucket = map_risk_score(25)
        self.assertEqual((level, bucket), (RiskLevel.MEDIUM, "1-2 months"))
        self.assertAlmostEqual(probability, 27.5)

        level, probability, bucket = map_risk_score(20)
        self.assertEqual((level, bucket), (RiskLevel.LOW, "3+ months"))
        self.assertAlmostEqual(probability, 16.0)

    def test_caps_and_floor(self):
        self.assertAlmostEqual(map_risk_score(200)[1], 95.0)
        self.assertAlmostEqual(map_risk_score(79)[1], 70.0)
        self.assertAlmostEqual(map_risk_score(0)[1], 5.0)

    def test_confidence(self):
        self.assertEqual(confidence_for(0), 85.0)
        self.assertEqual(confidence_for(10), 90.0)
        self.assertEqual(confidence_for(40), 95.0)


class ScoreTestCase(unittest.TestCase):
    def test_normal_operation(self):
        latest = _reading()
        result = score(latest, {"temperature": _points([25.0])})
        self.assertEqual(result.risk_level, RiskLevel.LOW)
        self.assertEqual(result.failure_probability, 5.0)
        self.assertEqual(result.time_to_failure, "3+ months")
        self.assertEqual(result.recommendations, (NORMAL_OPERATION,))
        self.assertEqual(result.confidence, 85.5)

    def test_single_hot_reading(self):
        latest = _reading(temperature=65.0, current=1.0, vibration=5000.0, gas_emission=100.0, humidity=50.0)
        self.assertEqual(classify("temperature", latest.temperature), Band.DANGER)
        result = score(latest, {"temperature": _points([65.0])})
        self.assertEqual(result.risk_score, 30.0)
        self.assertEqual(result.risk_level, RiskLevel.MEDIUM)
        self.assertAlmostEqual(result.failure_probability, 30.0)
        self.assertEqual(result.time_to_failure, "1-2 months")
        self.assertEqual(result.recommendations, ("Immediate cooling system check required",))

    def test_conditions_add_up(self):
        latest = _reading(temperature=65.0, vibration=19000.0, current=2.4)
        result = score(latest, {})
        self.assertEqual(result.risk_score, 90.0)
        self.assertEqual(result.risk_level, RiskLevel.CRITICAL)
        self.assertAlmostEqual(result.failure_probability, 95.0)
        self.assertEqual(len(result.recommendations), 3)

    def test_elevated_and_environment(self):
        latest = _reading(temperature=42.0, vibration=16000.0, current=2.1, gas_emission=360.0, humidity=20.0)
        result = score(latest, {})
        self.assertEqual(result.risk_score, 15 + 20 + 10 + 20 + 10)
        self.assertIn("Adjust environmental controls", result.recommendations)
        self.assertIn("Check ventilation and filtration systems", result.recommendations)
        self.assertEqual(result.risk_level, RiskLevel.HIGH)

    def test_rising_temperature_trend(self):
        histories = {"temperature": _points([20] * 5 + [40] * 5)}
        result = score(None, histories)
        self.assertEqual(result.risk_score, 15.0)
        self.assertEqual(result.risk_level, RiskLevel.LOW)
        self.assertAlmostEqual(result.failure_probability, 12.0)
        self.assertEqual(result.recommendations, ("Temperature rising rapidly: verify cooling capacity",))
        self.assertEqual(result.confidence, 90.0)

    def test_no_data_gives_baseline(self):
        result = score(None, {}, trigger="startup")
        self.assertEqual(result.risk_level, RiskLevel.LOW)
        self.assertEqual(result.failure_probability, 5.0)
        self.assertEqual(result.confidence, 85.0)
        self.assertEqual(result.trigger, "startup")

    def test_deterministic(self):
        latest = _reading(temperature=48.0, vibration=17000.0)
        histories = {"vibration": _points([10000] * 5 + [15000] * 5)}
        self.assertEqual(score(latest, histories), score(latest, histories))

    def test_custom_weights(self):
        weights = RiskWeights(temperature_high=70.0)
        result = score(_reading(temperature=65.0), {}, weights=weights)
        self.assertEqual(result.risk_score, 15.0)
        self.assertEqual(result.recommendations, ("Monitor temperature trends",))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
