import unittest
from unittest.mock import MagicMock

from habpredict.errors import OrchestrationError
from habpredict.recovery import (RecoveryStrategy, apply_recovery, classify, create_fallback_result,
                                 create_minimal_result, execute_fallback, fallback_options,
                                 handle_prediction_error, simple_trajectory, user_friendly_message)
from habpredict.winddrift import WindLevel, WindProfile

from tests.factories import make_request

def error(code, phase, recoverable=True):
    return OrchestrationError(f"{code} happened", code, phase, recoverable)

class TestClassify(unittest.TestCase):
    def test_recovery_table(self):
        cases = [
            ('validation', 'INVALID_COORDINATES', False, 'simple', 1.0),
            ('validation', 'LAUNCH_TIME_TOO_FAR', True, 'degraded', 0.2),
            ('validation', 'HRRR_OUTSIDE_CONUS', True, 'degraded', 0.2),
            ('weather', 'WEATHER_SERVICE_UNAVAILABLE', True, 'cached', 0.3),
            ('weather', 'WEATHER_API_ERROR', True, 'cached', 0.3),
            ('weather', 'WEATHER_DATA_POOR_QUALITY', True, 'degraded', 0.4),
            ('weather', 'WEATHER_TIMEOUT', True, 'simple', 0.5),
            ('weather', 'SOMETHING_ELSE', True, 'simple', 0.6),
            ('calculation', 'ALGORITHM_CONVERGENCE_FAILED', True, 'degraded', 0.3),
            ('calculation', 'PHYSICS_VALIDATION_FAILED', True, 'simple', 0.4),
            ('calculation', 'MEMORY_EXHAUSTED', True, 'degraded', 0.2),
            ('calculation', 'ALGORITHM_EXECUTION_FAILED', True, 'simple', 0.5),
            ('processing', 'RESULTS_PROCESSING_FAILED', True, 'simple', 0.3),
            ('processing', 'UNCERTAINTY_CALCULATION_FAILED', True, 'degraded', 0.2),
            ('processing', 'OTHER', True, 'simple', 0.4),
        ]
        for phase, code, can_recover, method, reduction in cases:
            with self.subTest(code=code):
                self.assertEqual(classify(error(code, phase)), RecoveryStrategy(can_recover, method, reduction))

    def test_unlisted_validation_code_is_terminal(self):
        self.assertIsNone(classify(error('VALIDATION_FAILED', 'validation', False)))

    def test_handle_prediction_error_wraps_foreign_exceptions(self):
        wrapped = handle_prediction_error(RuntimeError('boom'), 'calculation')
        self.assertEqual(wrapped.code, 'UNKNOWN_ERROR')
        self.assertEqual(wrapped.phase, 'calculation')
        self.assertFalse(wrapped.recoverable)
        original = error('WEATHER_TIMEOUT', 'weather')
        self.assertIs(handle_prediction_error(original, 'weather'), original)

    def test_fallback_options(self):
        options = fallback_options(RecoveryStrategy(True, 'simple', 0.6))
        self.assertTrue(options.use_simple_model)
        self.assertTrue(options.skip_uncertainty)
        self.assertFalse(fallback_options(RecoveryStrategy(True, 'cached', 0.3)).skip_uncertainty)

class TestFallbackResults(unittest.TestCase):
    def setUp(self):
        self.request = make_request(burst_altitude=20000.0)

    def test_simple_trajectory_shape(self):
        trajectory = simple_trajectory(self.request)
        self.assertEqual(trajectory[0].phase, 'ascent')
        self.assertEqual(trajectory[-1].phase, 'landing')
        self.assertEqual(trajectory[-1].altitude, 0.0)
        burst = [p for p in trajectory if p.phase == 'burst']
        self.assertEqual(len(burst), 1)
        self.assertEqual(burst[0].altitude, 20000.0)
        # no wind, no drift
        self.assertEqual(trajectory[-1].latitude, self.request.location.latitude)

    def test_simple_trajectory_drifts_with_mean_wind(self):
        profile = WindProfile([WindLevel(0.0, 10.0, 90.0), WindLevel(20000.0, 10.0, 90.0)])
        trajectory = simple_trajectory(self.request, profile)
        self.assertGreater(trajectory[-1].longitude, self.request.location.longitude)

    def test_fallback_result_confidences(self):
        options = fallback_options(RecoveryStrategy(True, 'simple', 0.5))
        result = create_fallback_result(self.request, options, 0.5)
        self.assertEqual(result.fallback_method, 'simple')
        self.assertAlmostEqual(result.burst_site.confidence, 0.35)
        self.assertAlmostEqual(result.burst_site.uncertainty, 10.0)
        self.assertAlmostEqual(result.landing_site.confidence, 0.3)
        self.assertAlmostEqual(result.landing_site.uncertainty, 20.0)
        self.assertAlmostEqual(result.quality_assessment.prediction_confidence, 0.4)
        self.assertEqual(result.quality_assessment.weather_data_quality, 'poor')

    def test_apply_recovery_scales_confidence(self):
        err = error('WEATHER_TIMEOUT', 'weather')
        strategy = classify(err)
        result = execute_fallback(self.request, err, strategy)
        self.assertAlmostEqual(result.quality_assessment.prediction_confidence, 0.8 * 0.5 * 0.5)
        self.assertIn('Fallback prediction used due to error: WEATHER_TIMEOUT happened',
                      result.quality_assessment.warnings)

    def test_compute_callback_used_for_cached(self):
        err = error('WEATHER_API_ERROR', 'weather')
        computed = create_fallback_result(self.request, fallback_options(classify(err)), 0.0)
        computed.fallback_method = 'cached'
        compute = MagicMock(return_value=computed)
        result = execute_fallback(self.request, err, classify(err), compute=compute)
        compute.assert_called_once()
        self.assertEqual(compute.call_args[0][0], 'cached')
        self.assertEqual(result.fallback_method, 'cached')

    def test_compute_failure_drops_to_simple(self):
        err = error('WEATHER_DATA_POOR_QUALITY', 'weather')
        compute = MagicMock(side_effect=LookupError('nothing cached'))
        result = execute_fallback(self.request, err, classify(err), compute=compute)
        self.assertEqual(result.fallback_method, 'simple')

    def test_simple_failure_gives_minimal_result(self):
        request = make_request(payload_weight=0.0)  # zero descent rate
        err = error('WEATHER_TIMEOUT', 'weather')
        result = execute_fallback(request, err, classify(err))
        self.assertEqual(result.fallback_method, 'minimal')
        self.assertEqual(result.quality_assessment.prediction_confidence, 0.1)
        self.assertEqual(result.landing_site.uncertainty, 999.0)
        self.assertIn('Prediction failed - minimal result returned', result.quality_assessment.warnings)

    def test_minimal_result_anchored_at_launch(self):
        result = create_minimal_result(self.request, error('X', 'processing'))
        self.assertEqual(result.landing_site.location.latitude, self.request.location.latitude)
        self.assertEqual(len(result.trajectory), 1)

    def test_user_friendly_message(self):
        self.assertEqual(user_friendly_message(error('WEATHER_SERVICE_UNAVAILABLE', 'weather')),
                         'Weather service is temporarily unavailable')
        self.assertEqual(user_friendly_message(error('NOPE', 'weather')),
                         'An unexpected error occurred. Please try again.')

    def test_apply_recovery_keeps_existing_method(self):
        result = create_fallback_result(self.request, fallback_options(RecoveryStrategy(True, 'degraded', 0.2)), 0.2)
        result.fallback_method = 'degraded'
        apply_recovery(result, RecoveryStrategy(True, 'degraded', 0.2), error('X', 'calculation'))
        self.assertEqual(result.fallback_method, 'degraded')

if __name__ == '__main__':
    unittest.main()
