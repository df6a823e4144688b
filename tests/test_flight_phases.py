import unittest
from datetime import datetime, timezone

from habpredict.ascent import AscentInput, simulate_ascent
from habpredict.burst import (BurstSiteInput, BurstUncertainty, early_burst_risk, estimate_burst_time,
                              predict_burst_site, predict_burst_site_with_uncertainty)
from habpredict.descent import (DescentInput, calculate_descent, estimate_descent_time,
                                landing_confidence, predict_landing_site)
from habpredict.errors import InputContractError
from habpredict.montecarlo import make_rng
from habpredict.winddrift import WindLevel, WindProfile

START = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

def ascent_input(**overrides):
    params = dict(launch_latitude=40.0, launch_longitude=-105.0, launch_altitude=0.0,
                  burst_altitude=5000.0, balloon_volume=10.0, payload_weight=2.0, ascent_rate=5.0,
                  start_time=START)
    params.update(overrides)
    return AscentInput(**params)

def burst_input(**overrides):
    params = dict(launch_latitude=40.0, launch_longitude=-105.0, launch_altitude=0.0,
                  burst_altitude=5000.0, balloon_volume=10.0, payload_weight=2.0, ascent_rate=5.0,
                  start_time=START)
    params.update(overrides)
    return BurstSiteInput(**params)

def descent_input(**overrides):
    params = dict(burst_latitude=40.7128, burst_longitude=-74.0060, burst_altitude=30000.0,
                  payload_weight=2.0, parachute_area=1.0, drag_coefficient=1.5, start_time=START)
    params.update(overrides)
    return DescentInput(**params)

class TestAscent(unittest.TestCase):
    def test_reaches_burst_altitude(self):
        result = simulate_ascent(ascent_input())
        self.assertTrue(result.reached_burst)
        self.assertFalse(result.timed_out)
        self.assertEqual(result.max_altitude, 5000.0)
        self.assertEqual(result.burst_point.phase, 'burst')
        self.assertGreater(result.max_velocity, 0.0)
        self.assertTrue(0.0 <= result.confidence <= 1.0)

    def test_float_ceiling_stalls(self):
        result = simulate_ascent(ascent_input(balloon_volume=4.0, burst_altitude=30000.0))
        self.assertFalse(result.reached_burst)
        self.assertFalse(result.timed_out)
        self.assertLess(result.max_altitude, 30000.0)
        self.assertTrue(any('float ceiling' in w for w in result.warnings))
        self.assertEqual(result.burst_point.phase, 'burst')

    def test_times_out(self):
        result = simulate_ascent(ascent_input(max_flight_time=3))
        self.assertTrue(result.timed_out)
        self.assertEqual(result.ascent_duration, 3.0)

    def test_input_contract(self):
        cases = [
            ({'launch_altitude': -1.0}, 'INVALID_LAUNCH_ALTITUDE'),
            ({'burst_altitude': 0.0}, 'INVALID_BURST_ALTITUDE'),
            ({'launch_altitude': 6000.0}, 'BURST_BELOW_LAUNCH'),
            ({'balloon_volume': 0.0}, 'INVALID_BALLOON_VOLUME'),
            ({'payload_weight': 0.0}, 'INVALID_PAYLOAD_WEIGHT'),
            ({'ascent_rate': 0.0}, 'INVALID_ASCENT_RATE'),
            ({'drag_coefficient': 0.0}, 'INVALID_DRAG_COEFFICIENT'),
            ({'max_flight_time': 0.0}, 'INVALID_MAX_FLIGHT_TIME'),
        ]
        for overrides, code in cases:
            with self.subTest(code=code):
                with self.assertRaises(InputContractError) as ctx:
                    simulate_ascent(ascent_input(**overrides))
                self.assertEqual(ctx.exception.code, code)

class TestBurstSite(unittest.TestCase):
    def test_early_burst_below_target(self):
        result = predict_burst_site(burst_input())
        self.assertTrue(result.early_burst)
        self.assertFalse(result.reached_target)
        self.assertLess(result.burst_altitude, 5000.0)
        self.assertGreater(result.early_burst_risk, 0.7)
        self.assertEqual(result.trajectory[-1].phase, 'burst')
        self.assertEqual(result.burst_time, result.ascent_duration)

    def test_float_ceiling(self):
        result = predict_burst_site(burst_input(balloon_volume=4.0, burst_altitude=30000.0))
        self.assertTrue(result.stalled)
        self.assertFalse(result.early_burst)
        self.assertGreater(result.burst_altitude, 100.0)
        self.assertEqual(result.trajectory[-1].phase, 'burst')
        self.assertEqual(result.trajectory[-1].altitude, result.burst_altitude)

    def test_timeout_reports_negative_burst_time(self):
        result = predict_burst_site(burst_input(max_flight_time=2))
        self.assertTrue(result.timed_out)
        self.assertEqual(result.burst_time, -1.0)

    def test_risk_is_bounded(self):
        self.assertEqual(early_burst_risk(0.0, 30000.0, 1.225, 4.0, 2.0), 0.0)
        self.assertEqual(early_burst_risk(30000.0, 30000.0, 1.225, 50.0, 2.0), 1.0)

    def test_validation_codes(self):
        with self.assertRaises(InputContractError) as ctx:
            predict_burst_site(burst_input(burst_altitude=0.0))
        self.assertEqual(ctx.exception.code, 'INVALID_BURST_ALTITUDE')
        with self.assertRaises(InputContractError) as ctx:
            predict_burst_site(burst_input(wind_direction=361.0))
        self.assertEqual(ctx.exception.code, 'INVALID_WIND_DIRECTION')

    def test_uncertainty_run_is_seeded(self):
        a = predict_burst_site_with_uncertainty(burst_input(wind_speed=5.0), BurstUncertainty(), make_rng(seed=3))
        b = predict_burst_site_with_uncertainty(burst_input(wind_speed=5.0), BurstUncertainty(), make_rng(seed=3))
        self.assertEqual(a.burst_point, b.burst_point)

    def test_estimate_burst_time(self):
        self.assertEqual(estimate_burst_time(0.0, 30000.0, 5.0), 6000.0)
        with self.assertRaises(InputContractError):
            estimate_burst_time(0.0, 30000.0, 0.0)

class TestDescent(unittest.TestCase):
    def test_zero_wind_lands_below_burst(self):
        result = calculate_descent(descent_input())
        self.assertTrue(result.landed)
        self.assertAlmostEqual(result.landing_latitude, 40.7128, places=6)
        self.assertAlmostEqual(result.landing_longitude, -74.0060, places=6)
        self.assertEqual(result.landing_point.altitude, 0.0)
        self.assertEqual(result.landing_point.velocity, 0.0)
        self.assertEqual(result.wind_drift, 0.0)
        self.assertEqual(result.trajectory[-1].phase, 'landing')

    def test_light_payload_descent_from_30km(self):
        result = calculate_descent(descent_input(payload_weight=1.0, parachute_area=2.0, drag_coefficient=1.2,
                                                 wind_speed=10.0, wind_direction=90.0))
        self.assertTrue(result.landed)
        self.assertGreater(result.terminal_velocity, 0.0)
        self.assertGreaterEqual(result.confidence, 0.0)
        self.assertLessEqual(result.confidence, 1.0)
        self.assertNotEqual((result.landing_latitude, result.landing_longitude), (40.7128, -74.0060))
        self.assertGreater(result.landing_longitude, -74.0060)

    def test_east_wind_moves_landing_east(self):
        result = calculate_descent(descent_input(burst_altitude=5000.0, wind_speed=10.0, wind_direction=90.0))
        self.assertGreater(result.landing_longitude, -74.0060)
        self.assertAlmostEqual(result.wind_drift, 10.0 * result.descent_duration / 1000)
        self.assertGreater(result.total_flight_distance, 0.0)

    def test_wind_profile_overrides_constant_wind(self):
        profile = WindProfile([WindLevel(0.0, 0.0, 0.0), WindLevel(10000.0, 0.0, 0.0)])
        result = calculate_descent(descent_input(burst_altitude=5000.0, wind_speed=10.0, wind_profile=profile))
        self.assertEqual(result.wind_drift, 0.0)

    def test_stops_at_landing_altitude(self):
        result = calculate_descent(descent_input(burst_altitude=5000.0, landing_altitude=1500.0))
        self.assertTrue(result.landed)
        self.assertEqual(result.landing_point.altitude, 1500.0)

    def test_timeout_leaves_payload_airborne(self):
        result = calculate_descent(descent_input(max_flight_time=10))
        self.assertFalse(result.landed)
        self.assertGreater(result.landing_point.altitude, 0.0)

    def test_input_contract(self):
        cases = [
            ({'burst_latitude': 100.0}, 'INVALID_LATITUDE'),
            ({'burst_altitude': 0.0}, 'INVALID_BURST_ALTITUDE'),
            ({'payload_weight': -1.0}, 'INVALID_PAYLOAD_WEIGHT'),
            ({'parachute_area': 0.0}, 'INVALID_PARACHUTE_AREA'),
            ({'drag_coefficient': 0.0}, 'INVALID_DRAG_COEFFICIENT'),
            ({'landing_altitude': -1.0}, 'INVALID_LANDING_ALTITUDE'),
            ({'landing_altitude': 40000.0}, 'BURST_BELOW_LANDING'),
            ({'wind_speed': -1.0}, 'INVALID_WIND_SPEED'),
        ]
        for overrides, code in cases:
            with self.subTest(code=code):
                with self.assertRaises(InputContractError) as ctx:
                    calculate_descent(descent_input(**overrides))
                self.assertEqual(ctx.exception.code, code)

    def test_confidence_adjustments(self):
        self.assertAlmostEqual(landing_confidence(1000, 10, 10, 5), 0.85)
        self.assertAlmostEqual(landing_confidence(4000, 25, 60, 20), 0.5)

    def test_helpers(self):
        self.assertEqual(estimate_descent_time(1000.0, 5.0), 200.0)
        with self.assertRaises(InputContractError):
            estimate_descent_time(1000.0, 0.0)
        result = predict_landing_site(40.0, -105.0, 3000.0, 1.0, 1.0, 1.5, 0.0, 0.0)
        self.assertTrue(result.landed)

if __name__ == '__main__':
    unittest.main()
