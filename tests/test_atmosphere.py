import math
import unittest

from habpredict import atmosphere
from habpredict.errors import InvalidAltitude, InvalidPhysicalParameters
from habpredict.physics import (ascent_net_force, ascent_velocity, descent_velocity, drag_force,
                                terminal_velocity)

class TestAtmosphere(unittest.TestCase):
    def test_sea_level_values(self):
        self.assertAlmostEqual(atmosphere.density(0), 1.225)
        self.assertAlmostEqual(atmosphere.pressure(0), 101325.0)
        self.assertAlmostEqual(atmosphere.temperature(0), 288.15)

    def test_density_drops_by_e_per_scale_height(self):
        self.assertAlmostEqual(atmosphere.density(7400), 1.225 / math.e)

    def test_linear_lapse(self):
        self.assertAlmostEqual(atmosphere.temperature(1000), 281.65)

    def test_negative_altitude_rejected(self):
        for func in (atmosphere.density, atmosphere.pressure, atmosphere.temperature):
            with self.assertRaises(InvalidAltitude):
                func(-1)

    def test_conditions(self):
        c = atmosphere.conditions(5000)
        self.assertEqual(c['altitude'], 5000)
        self.assertAlmostEqual(c['density'], atmosphere.density(5000))

    def test_density_from_weather(self):
        self.assertAlmostEqual(atmosphere.density_from_weather(1013.25, 15.0), 1.225, places=3)
        with self.assertRaises(InvalidPhysicalParameters):
            atmosphere.density_from_weather(1013.25, -300.0)

class TestPhysics(unittest.TestCase):
    def test_terminal_velocity_closed_form(self):
        expected = math.sqrt(2 * 1.0 * 9.81 / (1.225 * 1.0 * 1.0))
        self.assertAlmostEqual(terminal_velocity(1.0, 1.225, 1.0, 1.0), expected)

    def test_terminal_velocity_monotonic(self):
        base = terminal_velocity(2.0, 1.225, 1.0, 1.5)
        self.assertGreater(terminal_velocity(4.0, 1.225, 1.0, 1.5), base)
        self.assertLess(terminal_velocity(2.0, 1.225, 2.0, 1.5), base)
        self.assertGreater(terminal_velocity(2.0, 0.5, 1.0, 1.5), base)

    def test_terminal_velocity_rejects_zero_area(self):
        with self.assertRaises(InvalidPhysicalParameters):
            terminal_velocity(2.0, 1.225, 0.0, 1.5)

    def test_drag_is_quadratic(self):
        self.assertEqual(drag_force(0.0, 1.225, 1.0, 1.5), 0.0)
        self.assertAlmostEqual(drag_force(4.0, 1.225, 1.0, 1.5), 4 * drag_force(2.0, 1.225, 1.0, 1.5))

    def test_descent_velocity_never_negative(self):
        self.assertEqual(descent_velocity(-1000.0, 1.0, 5.0), 0.0)

    def test_descent_velocity_steady_at_zero_net_force(self):
        self.assertEqual(descent_velocity(0.0, 2.0, 4.5), 4.5)

    def test_ascent_velocity_never_negative(self):
        net = ascent_net_force(1.0, 5.0, 1.225)
        self.assertLess(net, 0)
        self.assertEqual(ascent_velocity(net, 5.0, 0.0), 0.0)

if __name__ == '__main__':
    unittest.main()
