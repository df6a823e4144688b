import threading
import time
import unittest
from unittest.mock import MagicMock, patch

from habpredict.cache import PredictionCache
from habpredict.config import Settings
from habpredict.errors import OrchestrationError
from habpredict.orchestrator import PredictionOrchestrator
from habpredict.prediction import EnvironmentalParameters, Location
from habpredict.terrain import TerrainSample
from habpredict.weather import StaticWeatherProvider, convert_weather_data, parse_timestamp

from tests.factories import LAUNCH_TIME, fixed_validator, make_request, weather_levels

SETTINGS = Settings(monte_carlo_samples=40, max_workers=4, weather_timeout=5.0, seed=1)

def warnings_of(result):
    return result.quality_assessment.warnings

class OrchestratorTestCase(unittest.TestCase):
    settings = SETTINGS

    def setUp(self):
        self.provider = MagicMock(wraps=StaticWeatherProvider(weather_levels()))
        self.orchestrator = self.build(self.provider)

    def build(self, provider, **kwargs):
        orchestrator = PredictionOrchestrator(weather_provider=provider, validator=fixed_validator(),
                                              cache=PredictionCache(), settings=self.settings, **kwargs)
        self.addCleanup(orchestrator.close)
        return orchestrator

class TestSuccessfulPrediction(OrchestratorTestCase):
    def test_full_pipeline(self):
        result, ctx = self.orchestrator.execute_with_context(make_request())
        self.assertIsNone(result.fallback_method)
        self.assertEqual(result.trajectory[0].phase, 'ascent')
        self.assertEqual(result.trajectory[-1].phase, 'landing')
        self.assertEqual(result.landing_site.location.altitude, 0.0)
        self.assertIsNotNone(result.landing_site.dispersion_radius)
        self.assertGreater(result.landing_site.location.longitude, -74.0060)  # wind blows east
        self.assertFalse(ctx.metrics.cache_hit)
        self.assertGreater(ctx.metrics.total_time, 0.0)
        status = self.orchestrator.get_status()
        self.assertEqual(status.phase, 'complete')
        self.assertEqual(status.progress, 1.0)
        self.provider.select_weather_data.assert_called_once()

    def test_float_ceiling_is_reported(self):
        result = self.orchestrator.execute(make_request())
        self.assertTrue(any('float ceiling' in w for w in warnings_of(result)))
        phases = [p.phase for p in result.trajectory]
        self.assertEqual(phases.count('burst'), 1)
        burst = result.trajectory[phases.index('burst')]
        self.assertEqual(burst.altitude, result.burst_site.altitude)

    def test_second_request_is_a_cache_hit(self):
        first, _ = self.orchestrator.execute_with_context(make_request())
        second, ctx = self.orchestrator.execute_with_context(make_request())
        self.assertTrue(ctx.metrics.cache_hit)
        self.assertTrue(self.orchestrator.get_metrics().cache_hit)
        self.assertEqual(first.to_dict(), second.to_dict())
        self.provider.select_weather_data.assert_called_once()

    def test_precision_controls_dispersion(self):
        fast = self.orchestrator.execute(make_request(precision='fast'))
        self.assertIsNone(fast.landing_site.dispersion_radius)
        precise = self.orchestrator.execute(make_request(precision='precise'))
        self.assertIsNotNone(precise.landing_site.dispersion_radius)

    def test_without_uncertainty(self):
        result = self.orchestrator.execute(make_request(include_uncertainty=False))
        self.assertIsNone(result.landing_site.dispersion_radius)
        self.assertEqual(result.burst_site.uncertainty, 0.0)
        self.assertEqual(result.landing_site.uncertainty, 0.0)

    def test_temperature_offset_applied(self):
        env = EnvironmentalParameters(temperature_offset=5.0)
        result = self.orchestrator.execute(make_request(environment=env))
        self.assertAlmostEqual(result.trajectory[0].temperature, 20.0)

    def test_terrain_sets_landing_altitude(self):
        service = MagicMock()
        service.sample.side_effect = lambda lat, lon, radius: [
            TerrainSample(lat, lon, 120.0, 2.0),
            TerrainSample(lat + 0.001, lon, 125.0, 3.0),
            TerrainSample(lat, lon + 0.001, 118.0, 1.0),
        ]
        orchestrator = self.build(self.provider, terrain=service)
        result = orchestrator.execute(make_request(precision='fast'))
        self.assertEqual(result.landing_site.location.altitude, 120.0)
        self.assertIsNotNone(result.landing_site.terrain)
        self.assertIn('difficulty_rating', result.landing_site.terrain)

    def test_terrain_failure_is_ignored(self):
        service = MagicMock()
        service.sample.side_effect = ConnectionError('dem offline')
        orchestrator = self.build(self.provider, terrain=service)
        result = orchestrator.execute(make_request(precision='fast'))
        self.assertIsNone(result.fallback_method)
        self.assertIsNone(result.landing_site.terrain)

class TestValidationFailures(OrchestratorTestCase):
    def test_invalid_latitude_is_terminal(self):
        with self.assertRaises(OrchestrationError) as ctx:
            self.orchestrator.execute(make_request(latitude=95.0))
        err = ctx.exception
        self.assertEqual(err.code, 'VALIDATION_FAILED')
        self.assertEqual(err.phase, 'validation')
        self.assertFalse(err.recoverable)
        self.assertEqual(err.details.kind, 'validation')
        self.assertEqual(err.details.errors[0].code, 'LATITUDE_OUT_OF_RANGE')
        self.assertEqual(self.orchestrator.get_status().phase, 'failed')
        self.assertEqual(len(self.orchestrator.cache), 0)
        self.provider.select_weather_data.assert_not_called()

    def test_far_launch_runs_degraded(self):
        result = self.orchestrator.execute(make_request(launch_time='2026-06-12T12:00:00Z'))
        self.assertEqual(result.fallback_method, 'degraded')
        self.assertIn('Using standard atmosphere without wind data', warnings_of(result))
        self.provider.select_weather_data.assert_not_called()
        self.assertEqual(len(self.orchestrator.cache), 0)

class TestWeatherFailures(OrchestratorTestCase):
    def test_unreachable_provider_falls_back_to_simple(self):
        self.provider.select_weather_data.side_effect = ConnectionError('down')
        result = self.orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'simple')
        self.assertAlmostEqual(result.quality_assessment.prediction_confidence, 0.8 * 0.7 * 0.7)
        self.assertLess(result.quality_assessment.prediction_confidence, 0.8)
        self.assertIn('Fallback prediction used due to error: Weather service unavailable: down',
                      warnings_of(result))
        self.assertEqual(len(self.orchestrator.cache), 0)

    def test_previous_weather_is_reused(self):
        self.orchestrator.execute(make_request())
        self.orchestrator.cache.invalidate()
        self.provider.select_weather_data.side_effect = ConnectionError('down')
        result = self.orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'cached')
        self.assertIn('Using previously retrieved weather data', warnings_of(result))

    def test_no_provider(self):
        orchestrator = self.build(None)
        result = orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'simple')

    def test_provider_error_is_api_error(self):
        self.provider.select_weather_data.side_effect = KeyError('levels')
        result = self.orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'simple')
        self.assertTrue(any('Weather provider error' in w for w in warnings_of(result)))

    def test_poor_quality_uses_standard_atmosphere(self):
        orchestrator = self.build(StaticWeatherProvider(weather_levels(uncertainty=0.9)))
        result = orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'degraded')
        self.assertIn('Using standard atmosphere without wind data', warnings_of(result))

class TestWeatherTimeout(OrchestratorTestCase):
    settings = Settings(monte_carlo_samples=40, max_workers=4, weather_timeout=0.05, seed=1)

    def test_slow_provider_times_out(self):
        provider = MagicMock()
        provider.select_weather_data.side_effect = lambda *args, **kwargs: time.sleep(0.5) or []
        orchestrator = self.build(provider)
        result = orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'simple')
        self.assertTrue(any('timed out' in w for w in warnings_of(result)))
        self.assertAlmostEqual(result.quality_assessment.prediction_confidence, 0.8 * 0.5 * 0.5)

class TestCalculationFailures(OrchestratorTestCase):
    def test_balloon_without_lift_does_not_converge(self):
        # Floats at about 33 m; the degraded rerun fails the same way and drops to simple
        result = self.orchestrator.execute(make_request(initial_volume=1.64))
        self.assertEqual(result.fallback_method, 'simple')
        self.assertTrue(any(w.startswith('Fallback prediction used due to error: Balloon only climbed')
                            and w.endswith('ascent did not converge') for w in warnings_of(result)))
        self.assertAlmostEqual(result.quality_assessment.prediction_confidence, 0.8 * 0.7 * 0.7)

    def test_degraded_rerun_recovers_convergence_failure(self):
        real = PredictionOrchestrator.simulate
        calls = []

        def flaky(orchestrator, *args, **kwargs):
            calls.append(kwargs.get('uncertainty', True))
            if len(calls) == 1:
                raise OrchestrationError('Balloon only climbed 20 m; ascent did not converge',
                                         'ALGORITHM_CONVERGENCE_FAILED', 'calculation', True)
            return real(orchestrator, *args, **kwargs)

        with patch.object(PredictionOrchestrator, 'simulate', autospec=True, side_effect=flaky):
            result = self.orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'degraded')
        self.assertEqual(calls, [True, False])

    def test_unexpected_algorithm_error(self):
        with patch('habpredict.orchestrator.predict_burst_site', side_effect=RuntimeError('nan')):
            result = self.orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'simple')
        self.assertTrue(any('Algorithm execution failed: nan' in w for w in warnings_of(result)))

    def test_processing_failure(self):
        with patch('habpredict.orchestrator.process_results', side_effect=RuntimeError('bad')):
            result = self.orchestrator.execute(make_request())
        self.assertEqual(result.fallback_method, 'simple')
        self.assertAlmostEqual(result.quality_assessment.prediction_confidence, 0.8 * 0.7 * 0.7)

class TestDeadline(OrchestratorTestCase):
    def weather(self):
        return convert_weather_data(weather_levels(), default_time=parse_timestamp(LAUNCH_TIME))

    def test_expired_deadline_skips_standard_dispersion(self):
        calc = self.orchestrator.simulate(make_request(), self.weather(), deadline=time.monotonic() - 1)
        self.assertIsNone(calc.dispersion_radius)
        self.assertIn('Uncertainty estimation stopped at deadline', calc.warnings)

    def test_expired_deadline_skips_precise_dispersion(self):
        calc = self.orchestrator.simulate(make_request(precision='precise'), self.weather(),
                                          deadline=time.monotonic() - 1)
        self.assertIsNone(calc.dispersion_radius)
        self.assertIn('Uncertainty estimation stopped at deadline', calc.warnings)

class TestLastWeatherStore(OrchestratorTestCase):
    def test_concurrent_inserts_stay_bounded(self):
        errors = []

        def remember(offset):
            try:
                for i in range(200):
                    self.orchestrator._remember_weather(Location(offset + i * 0.1, 0.0, 0.0), [i])
            except Exception as e:
                errors.append(e)

        with patch('habpredict.orchestrator.LAST_WEATHER_SIZE', 5):
            threads = [threading.Thread(target=remember, args=(n * 20.0 - 40.0,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        self.assertEqual(errors, [])
        self.assertLessEqual(len(self.orchestrator._last_weather), 5)

    def test_same_location_overwrites(self):
        location = Location(40.71, -74.01, 0.0)
        self.orchestrator._remember_weather(location, ['old'])
        self.orchestrator._remember_weather(Location(40.68, -73.98, 0.0), ['new'])
        self.assertEqual(self.orchestrator._remembered_weather(location), ['new'])
        self.assertEqual(len(self.orchestrator._last_weather), 1)

if __name__ == '__main__':
    unittest.main()
